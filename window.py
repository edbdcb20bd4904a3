"""Main window showing the bilingual transcript and recordings."""

from __future__ import annotations

from models import Language, LogEntry, Mode, Recording

try:
    from PySide6.QtCore import Qt
    from PySide6.QtWidgets import (
        QHBoxLayout,
        QLabel,
        QListWidget,
        QListWidgetItem,
        QPushButton,
        QVBoxLayout,
        QWidget,
    )
except Exception:  # pragma: no cover
    Qt = None  # type: ignore
    QListWidgetItem = None  # type: ignore
    QWidget = object  # type: ignore

_ARROWS = {
    Language.JAPANESE: "日 → 中",
    Language.TRADITIONAL_CHINESE: "中 → 日",
}
_MODE_LABELS = {
    Mode.TURN_TAKING: "輪流對話",
    Mode.CONTINUOUS: "持續聆聽",
}
_ERROR_STYLE = (
    "color: #FF6B6B; font-size: 14px; padding: 8px;"
    "background: rgba(0,0,0,210); border-radius: 8px;"
)


class InterpreterWindow(QWidget):
    def __init__(self) -> None:
        if Qt is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__()
        self.setWindowTitle("AI 即時翻譯")
        self.resize(720, 560)

        self.transcript = QListWidget()
        self.transcript.setWordWrap(True)
        self._entry_items: dict[int, QListWidgetItem] = {}

        self.partial_label = QLabel("")
        self.partial_label.setStyleSheet("color: gray; font-style: italic;")
        self.error_label = QLabel("")
        self.error_label.setStyleSheet(_ERROR_STYLE)
        self.error_label.setWordWrap(True)
        self.error_label.hide()

        self.language_button = QPushButton()
        self.mic_button = QPushButton()
        self.mode_button = QPushButton()
        self.mode_button.setCheckable(True)

        self.recordings = QListWidget()
        self.play_button = QPushButton("Play")
        self.export_button = QPushButton("Download")
        self.delete_button = QPushButton("Delete")

        self.api_key_button = QPushButton("API Key")
        self.hotkey_button = QPushButton("Hotkey")
        self.device_button = QPushButton("Microphone")
        self.save_transcript_button = QPushButton("Save Transcript")

        controls = QHBoxLayout()
        controls.addWidget(self.language_button)
        controls.addWidget(self.mic_button)
        controls.addWidget(self.mode_button)

        recording_controls = QHBoxLayout()
        recording_controls.addWidget(self.play_button)
        recording_controls.addWidget(self.export_button)
        recording_controls.addWidget(self.delete_button)

        settings = QHBoxLayout()
        settings.addWidget(self.api_key_button)
        settings.addWidget(self.hotkey_button)
        settings.addWidget(self.device_button)
        settings.addStretch(1)
        settings.addWidget(self.save_transcript_button)

        layout = QVBoxLayout()
        layout.addWidget(self.transcript, stretch=3)
        layout.addWidget(self.partial_label)
        layout.addWidget(QLabel("Saved Recordings"))
        layout.addWidget(self.recordings, stretch=1)
        layout.addLayout(recording_controls)
        layout.addWidget(self.error_label)
        layout.addLayout(controls)
        layout.addLayout(settings)
        self.setLayout(layout)

        self.set_listening(False)
        self.set_language(Language.JAPANESE)
        self.set_mode(Mode.TURN_TAKING)
        self.set_recordings([])

    def set_listening(self, listening: bool) -> None:
        self.mic_button.setText("Stop" if listening else "Listen")
        self.language_button.setEnabled(not listening)
        self.mode_button.setEnabled(not listening)

    def set_language(self, language: Language) -> None:
        self.language_button.setText(_ARROWS[language])
        self.language_button.setToolTip(
            f"{language.display_name} to {language.counterpart.display_name}"
        )

    def set_mode(self, mode: Mode) -> None:
        self.mode_button.setChecked(mode == Mode.CONTINUOUS)
        self.mode_button.setText(_MODE_LABELS[mode])

    def upsert_entry(self, entry: LogEntry) -> None:
        """Add or refresh the transcript row for ``entry`` by its id."""
        translated = entry.translated_text if entry.translated_text is not None else "..."
        text = f"{entry.original_text}\n{translated}"
        item = self._entry_items.get(entry.id)
        if item is None:
            item = QListWidgetItem(text)
            if entry.source_language == Language.TRADITIONAL_CHINESE:
                item.setTextAlignment(Qt.AlignRight)
            self._entry_items[entry.id] = item
            self.transcript.addItem(item)
            self.transcript.scrollToBottom()
        else:
            item.setText(text)

    def set_partial(self, text: str) -> None:
        self.partial_label.setText(text)

    def show_error(self, message: str) -> None:
        self.error_label.setText(message)
        self.error_label.show()

    def clear_error(self) -> None:
        self.error_label.clear()
        self.error_label.hide()

    def set_recordings(self, recordings: list[Recording]) -> None:
        self.recordings.clear()
        for recording in recordings:
            item = QListWidgetItem(f"{recording.display_name}  {recording.duration_label}")
            item.setData(Qt.UserRole, recording.id)
            self.recordings.addItem(item)
        has_any = bool(recordings)
        for button in (self.play_button, self.export_button, self.delete_button):
            button.setEnabled(has_any)

    def selected_recording_id(self) -> int | None:
        item = self.recordings.currentItem()
        if item is None:
            return None
        return int(item.data(Qt.UserRole))
