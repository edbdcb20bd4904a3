"""Protocol interfaces used by ConversationOrchestrator."""

from __future__ import annotations

from typing import Callable, Optional, Protocol

from models import AudioClip, AudioFrame, Language, RecognitionEvent

FrameSink = Callable[[AudioFrame], None]


class AudioStream(Protocol):
    sample_rate: int
    channels: int

    def add_sink(self, sink: FrameSink) -> None: ...

    def remove_sink(self, sink: FrameSink) -> None: ...

    def release(self) -> None: ...


class Microphone(Protocol):
    def acquire(self) -> AudioStream: ...


class AudioRecorder(Protocol):
    def begin(self, stream: AudioStream) -> None: ...

    def end(self) -> Optional[AudioClip]: ...

    def abort(self) -> None: ...


class SpeechCapture(Protocol):
    def start(
        self,
        language: Language,
        stream: AudioStream,
        on_event: Callable[[RecognitionEvent], None],
    ) -> None: ...

    def stop(self) -> None: ...


class Translator(Protocol):
    def translate(self, text: str, source_language: Language) -> str: ...

