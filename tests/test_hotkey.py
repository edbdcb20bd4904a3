from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from hotkey import ToggleHotkey


@patch("hotkey.keyboard")
def test_press_toggles_once_until_release(mock_keyboard: MagicMock) -> None:
    toggles: list[int] = []
    hotkey = ToggleHotkey(hotkey_name="Key.f9")
    hotkey.start(on_toggle=lambda: toggles.append(1))

    kwargs = mock_keyboard.Listener.call_args.kwargs
    on_press, on_release = kwargs["on_press"], kwargs["on_release"]

    on_press("Key.f9")
    on_press("Key.f9")  # auto-repeat
    on_release("Key.f9")
    on_press("Key.f8")
    on_press("Key.f9")

    assert len(toggles) == 2
    mock_keyboard.Listener.return_value.start.assert_called_once()

    hotkey.stop()
    mock_keyboard.Listener.return_value.stop.assert_called_once()


@patch("hotkey.keyboard", None)
def test_start_raises_without_pynput() -> None:
    with pytest.raises(RuntimeError, match="pynput is not installed"):
        ToggleHotkey().start(on_toggle=lambda: None)
