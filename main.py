"""Application entrypoint."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from config import JsonConfigStore
from errors import ConfigurationError
from hotkey import ToggleHotkey
from microphone import SoundDeviceMicrophone, list_input_devices
from models import Language, ListenPhase, Mode, Recording
from orchestrator import ConversationOrchestrator
from playback import SoundDevicePlayer
from recognizer import DashscopeSpeechCapture
from recorder import WavClipRecorder
from translator import DashscopeTranslator
from window import InterpreterWindow

try:
    from PySide6.QtCore import QObject, Signal
    from PySide6.QtWidgets import QApplication, QFileDialog, QInputDialog, QLineEdit, QMessageBox
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)


class UIBridge(QObject):
    entry_signal = Signal(object)
    partial_signal = Signal(str)
    error_signal = Signal(str)
    state_signal = Signal(str, str)  # from_phase, to_phase
    language_signal = Signal(str)
    recordings_signal = Signal(object)


class App:
    def __init__(self, app: QApplication, config_store: JsonConfigStore) -> None:
        self.app = app
        self.config_store = config_store
        api_key = config_store.require_api_key()

        self.window = InterpreterWindow()
        self.player = SoundDevicePlayer()
        self.ui = UIBridge()
        self.ui.entry_signal.connect(self.window.upsert_entry)
        self.ui.partial_signal.connect(self.window.set_partial)
        self.ui.error_signal.connect(self.window.show_error)
        self.ui.state_signal.connect(self._on_state_change_ui)
        self.ui.language_signal.connect(self._on_language_ui)
        self.ui.recordings_signal.connect(self.window.set_recordings)

        language = config_store.get_language()
        mode = config_store.get_mode()
        self.controller = ConversationOrchestrator(
            microphone=SoundDeviceMicrophone(device=config_store.get_input_device()),
            recorder=WavClipRecorder(),
            speech=DashscopeSpeechCapture(api_key=api_key, model=config_store.get_asr_model()),
            translator=DashscopeTranslator(
                api_key=api_key, model=config_store.get_translation_model()
            ),
            language=language,
            mode=mode,
            on_state_change=self._on_state_change,
            on_partial=self.ui.partial_signal.emit,
            on_error=self._on_error,
            on_entry=self.ui.entry_signal.emit,
            on_recordings=self.ui.recordings_signal.emit,
            on_language=lambda lang: self.ui.language_signal.emit(lang.value),
        )
        self.hotkey = ToggleHotkey(hotkey_name=config_store.get_hotkey())

        self.window.set_language(language)
        self.window.set_mode(mode)
        self.window.mic_button.clicked.connect(self.controller.toggle_listening)
        self.window.language_button.clicked.connect(self._toggle_language)
        self.window.mode_button.clicked.connect(self._toggle_mode)
        self.window.play_button.clicked.connect(self._play_selected)
        self.window.export_button.clicked.connect(self._export_selected)
        self.window.delete_button.clicked.connect(self._delete_selected)
        self.window.api_key_button.clicked.connect(self._edit_api_key)
        self.window.hotkey_button.clicked.connect(self._edit_hotkey)
        self.window.device_button.clicked.connect(self._choose_device)
        self.window.save_transcript_button.clicked.connect(self._save_transcript)
        self.app.aboutToQuit.connect(self.quit)

    # ------------------------------------------------------------------
    # Callbacks (called on the orchestrator loop → emit signals for UI thread)
    # ------------------------------------------------------------------

    def _on_state_change(self, from_phase: ListenPhase, to_phase: ListenPhase) -> None:
        self.ui.state_signal.emit(from_phase.value, to_phase.value)

    def _on_error(self, code: str, message: str) -> None:
        self.ui.error_signal.emit(message)

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_state_change_ui(self, from_phase: str, to_phase: str) -> None:
        listening = to_phase != ListenPhase.IDLE.value
        self.window.set_listening(listening)
        if to_phase == ListenPhase.LISTENING.value:
            self.window.clear_error()

    def _on_language_ui(self, value: str) -> None:
        language = Language(value)
        self.window.set_language(language)
        self.config_store.set_language(language)

    def _toggle_language(self) -> None:
        if self.controller.state.listening:
            return
        self.controller.toggle_language()

    def _toggle_mode(self) -> None:
        if self.controller.state.listening:
            return
        mode = Mode.CONTINUOUS if self.window.mode_button.isChecked() else Mode.TURN_TAKING
        self.controller.set_mode(mode)
        self.window.set_mode(mode)
        self.config_store.set_mode(mode)

    def _selected_recording(self) -> Recording | None:
        recording_id = self.window.selected_recording_id()
        if recording_id is None:
            return None
        try:
            return self.controller.recordings.get(recording_id)
        except KeyError:
            return None

    def _play_selected(self) -> None:
        recording = self._selected_recording()
        if recording is None:
            return
        if self.player.current_id == recording.id:
            self.player.stop()
            return
        try:
            self.player.play(recording)
        except Exception as exc:
            logger.warning("Playback failed: %s", exc)
            self.window.show_error(f"Playback failed: {exc}")

    def _export_selected(self) -> None:
        recording = self._selected_recording()
        if recording is None:
            return
        directory = QFileDialog.getExistingDirectory(self.window, "Save recording")
        if not directory:
            return
        path = self.controller.recordings.export(recording.id, Path(directory))
        QMessageBox.information(self.window, "Saved", f"Saved to {path}")

    def _delete_selected(self) -> None:
        recording_id = self.window.selected_recording_id()
        if recording_id is None:
            return
        if self.player.current_id == recording_id:
            self.player.stop()
        self.controller.delete_recording(recording_id)

    def _save_transcript(self) -> None:
        if len(self.controller.transcript) == 0:
            return
        filename, _ = QFileDialog.getSaveFileName(
            self.window, "Save transcript", "transcript.txt", "Text files (*.txt)"
        )
        if not filename:
            return
        text = self.controller.transcript.render_plain_text()
        Path(filename).write_text(text + "\n", encoding="utf-8")
        logger.info("Transcript saved to %s", filename)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def _edit_api_key(self) -> None:
        key = _ask_api_key(self.window)
        if key is None:
            return
        self.config_store.set_api_key(key)
        QMessageBox.information(self.window, "API Key", "The new key is used after a restart.")

    def _edit_hotkey(self) -> None:
        name, ok = QInputDialog.getText(
            self.window,
            "Hotkey",
            "pynput key name (e.g. Key.f9):",
            QLineEdit.Normal,
            self.config_store.get_hotkey(),
        )
        name = name.strip()
        if not ok or not name:
            return
        self.config_store.set_hotkey(name)
        self.hotkey.stop()
        self.hotkey = ToggleHotkey(hotkey_name=name)
        self._start_hotkey()

    def _choose_device(self) -> None:
        devices = list_input_devices()
        if not devices:
            self.window.show_error("No input devices found")
            return
        labels = ["System default"] + [f"{index}: {name}" for index, name in devices]
        current = self.config_store.get_input_device()
        selected = 0
        for position, (index, _) in enumerate(devices, start=1):
            if index == current:
                selected = position
        label, ok = QInputDialog.getItem(
            self.window, "Microphone", "Input device:", labels, selected, False
        )
        if not ok:
            return
        position = labels.index(label)
        device = None if position == 0 else devices[position - 1][0]
        self.config_store.set_input_device(device)
        QMessageBox.information(self.window, "Microphone", "The new device is used after a restart.")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        self.controller.start()
        self._start_hotkey()
        self.window.show()
        return self.app.exec()

    def _start_hotkey(self) -> None:
        try:
            self.hotkey.start(on_toggle=self.controller.toggle_listening)
        except Exception as exc:
            logger.warning("Hotkey disabled: %s", exc)

    def quit(self) -> None:
        self.hotkey.stop()
        self.player.stop()
        self.controller.shutdown()


def _ask_api_key(parent: object = None) -> str | None:
    key, ok = QInputDialog.getText(
        parent, "API Key", "DashScope API key:", QLineEdit.Password, ""
    )
    key = key.strip()
    if not ok or not key:
        return None
    return key


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Live Japanese / Traditional Chinese interpreter")
    parser.add_argument("--config", type=Path, default=None, help="Path to the JSON config file")
    parser.add_argument(
        "--log-level",
        default=os.getenv("INTERPRETER_LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    qt_app = QApplication(sys.argv)
    config_store = JsonConfigStore(path=args.config)
    try:
        app = App(qt_app, config_store)
    except ConfigurationError as exc:
        logger.warning("%s", exc.user_message)
        key = _ask_api_key()
        if key is None:
            QMessageBox.critical(None, "Configuration", exc.user_message)
            return 1
        config_store.set_api_key(key)
        app = App(qt_app, config_store)
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
