"""Tests for DashscopeSpeechCapture."""

from __future__ import annotations

import time
from unittest.mock import MagicMock, patch

import pytest

from errors import RecognitionError, UnsupportedCapability
from models import AudioFrame, Language, RecognitionEvent, RecognitionKind
from recognizer import DashscopeSpeechCapture, _is_sentence_end


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

class FakeStream:
    sample_rate = 16000
    channels = 1

    def __init__(self) -> None:
        self.sinks: list = []

    def add_sink(self, sink) -> None:  # noqa: ANN001
        self.sinks.append(sink)

    def remove_sink(self, sink) -> None:  # noqa: ANN001
        if sink in self.sinks:
            self.sinks.remove(sink)

    def release(self) -> None:
        pass

    def push(self, n_samples: int = 1600) -> None:
        for sink in list(self.sinks):
            sink(AudioFrame(pcm16_bytes=b"\x00\x00" * n_samples))


class FakeResult:
    def __init__(self, text: str, sentence_end: bool) -> None:
        self._sentence = {"text": text, "sentence_end": sentence_end}

    def get_sentence(self) -> dict:
        return self._sentence


class FakeError:
    def __init__(self, message: str) -> None:
        self.message = message


def _wait_for(predicate, timeout: float = 3.0) -> None:  # noqa: ANN001
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return
        time.sleep(0.02)


def _ended(events: list[RecognitionEvent]) -> bool:
    return any(e.kind == RecognitionKind.END for e in events)


def _listener(mock_ds: MagicMock):  # noqa: ANN202
    return mock_ds.audio.asr.Recognition.call_args.kwargs["callback"]


# ---------------------------------------------------------------
# _is_sentence_end
# ---------------------------------------------------------------

def test_sentence_end_detection() -> None:
    assert _is_sentence_end({"text": "a", "sentence_end": True}) is True
    assert _is_sentence_end({"text": "a", "sentence_end": False}) is False
    assert _is_sentence_end({"text": "a", "end_time": 1200}) is True
    assert _is_sentence_end({"text": "a", "end_time": None}) is False


# ---------------------------------------------------------------
# Start
# ---------------------------------------------------------------

@patch("recognizer.dashscope", None)
def test_start_without_dashscope_raises_unsupported() -> None:
    adapter = DashscopeSpeechCapture(api_key="test-key")
    with pytest.raises(UnsupportedCapability):
        adapter.start(Language.JAPANESE, FakeStream(), lambda e: None)


@patch("recognizer.dashscope")
def test_start_configures_engine_for_language(mock_ds: MagicMock) -> None:
    adapter = DashscopeSpeechCapture(api_key="test-key", model="paraformer-realtime-v2")
    stream = FakeStream()
    events: list[RecognitionEvent] = []

    adapter.start(Language.TRADITIONAL_CHINESE, stream, events.append)

    kwargs = mock_ds.audio.asr.Recognition.call_args.kwargs
    assert kwargs["model"] == "paraformer-realtime-v2"
    assert kwargs["format"] == "pcm"
    assert kwargs["sample_rate"] == 16000
    assert kwargs["language_hints"] == ["zh"]
    assert mock_ds.api_key == "test-key"
    mock_ds.audio.asr.Recognition.return_value.start.assert_called_once()
    assert len(stream.sinks) == 1

    adapter.stop()
    _wait_for(lambda: _ended(events))
    assert stream.sinks == []


@patch("recognizer.dashscope")
def test_engine_start_failure_is_classified(mock_ds: MagicMock) -> None:
    mock_ds.audio.asr.Recognition.return_value.start.side_effect = Exception(
        "401 Unauthorized: invalid api key"
    )
    adapter = DashscopeSpeechCapture(api_key="bad-key")

    with pytest.raises(RecognitionError) as info:
        adapter.start(Language.JAPANESE, FakeStream(), lambda e: None)
    assert info.value.kind == "not-allowed"


# ---------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------

@patch("recognizer.dashscope")
def test_audio_frames_are_forwarded(mock_ds: MagicMock) -> None:
    recognition = mock_ds.audio.asr.Recognition.return_value
    adapter = DashscopeSpeechCapture(api_key="test-key")
    stream = FakeStream()
    events: list[RecognitionEvent] = []
    adapter.start(Language.JAPANESE, stream, events.append)

    stream.push(1600)
    _wait_for(lambda: recognition.send_audio_frame.called)
    adapter.stop()
    _wait_for(lambda: _ended(events))

    recognition.send_audio_frame.assert_called_with(b"\x00\x00" * 1600)
    recognition.stop.assert_called_once()


@patch("recognizer.dashscope")
def test_partials_then_final_then_end(mock_ds: MagicMock) -> None:
    recognition = mock_ds.audio.asr.Recognition.return_value
    adapter = DashscopeSpeechCapture(api_key="test-key")
    events: list[RecognitionEvent] = []
    adapter.start(Language.JAPANESE, FakeStream(), events.append)

    listener = _listener(mock_ds)
    listener.on_event(FakeResult("こん", False))
    listener.on_event(FakeResult("こんにちは", False))
    listener.on_event(FakeResult("こんにちは。", True))
    _wait_for(lambda: _ended(events))

    kinds = [e.kind for e in events]
    assert kinds == [
        RecognitionKind.PARTIAL,
        RecognitionKind.PARTIAL,
        RecognitionKind.FINAL,
        RecognitionKind.END,
    ]
    assert events[2].text == "こんにちは。"
    recognition.stop.assert_called_once()


@patch("recognizer.dashscope")
def test_continuous_engine_keeps_running_after_final(mock_ds: MagicMock) -> None:
    adapter = DashscopeSpeechCapture(api_key="test-key", continuous=True)
    events: list[RecognitionEvent] = []
    adapter.start(Language.JAPANESE, FakeStream(), events.append)

    listener = _listener(mock_ds)
    listener.on_event(FakeResult("一つ目", True))
    listener.on_event(FakeResult("二つ目", True))
    time.sleep(0.2)
    assert not _ended(events)

    adapter.stop()
    _wait_for(lambda: _ended(events))
    finals = [e.text for e in events if e.kind == RecognitionKind.FINAL]
    assert finals == ["一つ目", "二つ目"]


@patch("recognizer.dashscope")
def test_interim_results_can_be_disabled(mock_ds: MagicMock) -> None:
    adapter = DashscopeSpeechCapture(api_key="test-key", interim_results=False)
    events: list[RecognitionEvent] = []
    adapter.start(Language.JAPANESE, FakeStream(), events.append)

    listener = _listener(mock_ds)
    listener.on_event(FakeResult("partial", False))
    listener.on_event(FakeResult("final", True))
    _wait_for(lambda: _ended(events))

    assert [e.kind for e in events] == [RecognitionKind.FINAL, RecognitionKind.END]


# ---------------------------------------------------------------
# Errors and end
# ---------------------------------------------------------------

@patch("recognizer.dashscope")
def test_no_speech_timeout_reports_no_speech_then_end(mock_ds: MagicMock) -> None:
    adapter = DashscopeSpeechCapture(api_key="test-key", no_speech_timeout_s=0.1)
    events: list[RecognitionEvent] = []
    adapter.start(Language.JAPANESE, FakeStream(), events.append)

    _wait_for(lambda: _ended(events))

    assert events[0].kind == RecognitionKind.ERROR
    assert events[0].error_kind == "no-speech"
    assert events[-1].kind == RecognitionKind.END


@patch("recognizer.dashscope")
def test_engine_error_maps_kind_and_ends(mock_ds: MagicMock) -> None:
    adapter = DashscopeSpeechCapture(api_key="test-key")
    events: list[RecognitionEvent] = []
    adapter.start(Language.JAPANESE, FakeStream(), events.append)

    _listener(mock_ds).on_error(FakeError("connection reset by peer"))
    _wait_for(lambda: _ended(events))

    errors = [e for e in events if e.kind == RecognitionKind.ERROR]
    assert len(errors) == 1
    assert errors[0].error_kind == "network"
    assert events[-1].kind == RecognitionKind.END


@patch("recognizer.dashscope")
def test_stop_emits_single_end(mock_ds: MagicMock) -> None:
    mock_ds.audio.asr.Recognition.return_value.stop.side_effect = RuntimeError("closed")
    adapter = DashscopeSpeechCapture(api_key="test-key")
    events: list[RecognitionEvent] = []
    adapter.start(Language.JAPANESE, FakeStream(), events.append)

    adapter.stop()
    adapter.stop()
    _wait_for(lambda: _ended(events))
    time.sleep(0.1)

    assert [e.kind for e in events] == [RecognitionKind.END]


@patch("recognizer.dashscope")
def test_restart_ignores_callbacks_from_previous_session(mock_ds: MagicMock) -> None:
    adapter = DashscopeSpeechCapture(api_key="test-key")
    stream = FakeStream()
    first: list[RecognitionEvent] = []
    adapter.start(Language.JAPANESE, stream, first.append)
    old_listener = _listener(mock_ds)
    adapter.stop()
    _wait_for(lambda: _ended(first))

    second: list[RecognitionEvent] = []
    adapter.start(Language.JAPANESE, stream, second.append)
    old_listener.on_event(FakeResult("late", True))

    assert second == []
    adapter.stop()
    _wait_for(lambda: _ended(second))
