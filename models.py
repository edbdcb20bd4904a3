"""Core data models for the interpreter."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

TRANSLATION_FAILED_TEXT = "Translation failed."


class Language(str, Enum):
    JAPANESE = "ja-JP"
    TRADITIONAL_CHINESE = "zh-TW"

    @property
    def counterpart(self) -> "Language":
        if self is Language.JAPANESE:
            return Language.TRADITIONAL_CHINESE
        return Language.JAPANESE

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def hint(self) -> str:
        """Language hint understood by the recognizer."""
        return self.value.split("-", 1)[0]


_DISPLAY_NAMES = {
    Language.JAPANESE: "Japanese",
    Language.TRADITIONAL_CHINESE: "Traditional Chinese",
}


class Mode(str, Enum):
    TURN_TAKING = "turn-taking"
    CONTINUOUS = "continuous"


class ListenPhase(str, Enum):
    IDLE = "IDLE"
    LISTENING = "LISTENING"
    STOPPING_INTENTIONAL = "STOPPING_INTENTIONAL"


class RecognitionKind(str, Enum):
    PARTIAL = "partial"
    FINAL = "final"
    ERROR = "error"
    END = "end"


class EntryStatus(str, Enum):
    PENDING = "pending"
    TRANSLATED = "translated"
    FAILED = "failed"


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass
class RecognitionEvent:
    kind: RecognitionKind
    text: str = ""
    error_kind: str = ""
    message: str = ""


@dataclass(frozen=True)
class LogEntry:
    id: int
    original_text: str
    source_language: Language
    translated_text: Optional[str] = None
    status: EntryStatus = EntryStatus.PENDING

    @property
    def target_language(self) -> Language:
        return self.source_language.counterpart

    @property
    def is_pending(self) -> bool:
        return self.status is EntryStatus.PENDING


class AudioClip:
    """In-memory encoded audio owned by a single recording."""

    def __init__(
        self,
        data: bytes,
        duration_seconds: float,
        mime_type: str = "audio/wav",
        sample_rate: int = 16000,
        channels: int = 1,
        recorded_at: Optional[datetime] = None,
    ) -> None:
        self._data: Optional[bytes] = data
        self.duration_seconds = duration_seconds
        self.mime_type = mime_type
        self.sample_rate = sample_rate
        self.channels = channels
        self.recorded_at = recorded_at or datetime.now()

    @property
    def released(self) -> bool:
        return self._data is None

    @property
    def data(self) -> bytes:
        if self._data is None:
            raise ValueError("audio clip has been released")
        return self._data

    def release(self) -> bool:
        """Free the audio bytes. Returns False if already released."""
        if self._data is None:
            return False
        self._data = None
        return True


@dataclass
class Recording:
    id: int
    clip: AudioClip
    display_name: str

    @property
    def duration_seconds(self) -> float:
        return self.clip.duration_seconds

    @property
    def duration_label(self) -> str:
        return format_duration(self.clip.duration_seconds)


@dataclass
class SessionState:
    mode: Mode = Mode.TURN_TAKING
    current_language: Language = Language.JAPANESE
    run_language: Language = Language.JAPANESE
    phase: ListenPhase = ListenPhase.IDLE
    intentional_stop_requested: bool = False
    stream: Any = None
    run_id: int = 0
    restart_attempts: int = 0

    @property
    def listening(self) -> bool:
        return self.phase != ListenPhase.IDLE


# Inbox messages consumed by the orchestrator loop.


@dataclass(frozen=True)
class ToggleListen:
    pass


@dataclass(frozen=True)
class SetMode:
    mode: Mode


@dataclass(frozen=True)
class ToggleLanguage:
    pass


@dataclass(frozen=True)
class SpeechNotice:
    run_id: int
    event: RecognitionEvent


@dataclass(frozen=True)
class TranslationOutcome:
    entry_id: int
    text: Optional[str] = None
    error: Optional[BaseException] = field(default=None, compare=False)


@dataclass(frozen=True)
class RestartRecognition:
    run_id: int


@dataclass(frozen=True)
class DeleteRecording:
    recording_id: int


@dataclass(frozen=True)
class Shutdown:
    pass


def format_duration(seconds: float) -> str:
    """Format seconds as ``m:ss``; fractional seconds are truncated."""
    total = max(int(seconds), 0)
    minutes, secs = divmod(total, 60)
    return f"{minutes}:{secs:02d}"
