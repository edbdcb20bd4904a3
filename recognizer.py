"""Streaming speech recognition adapter using DashScope Paraformer realtime.

Frames from the shared microphone stream are queued by a sink and forwarded
to the engine by a worker thread. Engine callbacks arrive on SDK threads and
are translated into ``RecognitionEvent`` objects. Every started session ends
with exactly one END event, whether it stopped on request, after an error,
or on its own.
"""

from __future__ import annotations

import logging
import threading
import time
from queue import Empty, Full, Queue
from typing import Any, Callable, Optional

from errors import (
    NO_SPEECH,
    RecognitionError,
    UnsupportedCapability,
    classify_engine_failure,
)
from interfaces import AudioStream
from models import AudioFrame, Language, RecognitionEvent, RecognitionKind

try:
    import dashscope
    import dashscope.audio.asr  # noqa: F401
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger(__name__)


def _is_sentence_end(sentence: dict) -> bool:
    if "sentence_end" in sentence:
        return bool(sentence["sentence_end"])
    return sentence.get("end_time") is not None


class _RecognitionListener:
    """Callback object handed to ``dashscope.audio.asr.Recognition``."""

    def __init__(self, adapter: "DashscopeSpeechCapture", session: int) -> None:
        self._adapter = adapter
        self._session = session

    def on_open(self) -> None:
        logger.debug("Recognition session %d opened", self._session)

    def on_complete(self) -> None:
        logger.debug("Recognition session %d complete", self._session)

    def on_close(self) -> None:
        logger.debug("Recognition session %d closed", self._session)

    def on_error(self, result: Any) -> None:
        message = str(getattr(result, "message", "") or result)
        self._adapter._handle_engine_error(self._session, message)

    def on_event(self, result: Any) -> None:
        sentence = result.get_sentence()
        if not isinstance(sentence, dict):
            return
        text = str(sentence.get("text", ""))
        self._adapter._handle_sentence(self._session, text, _is_sentence_end(sentence))


class DashscopeSpeechCapture:
    def __init__(
        self,
        api_key: str,
        model: str = "paraformer-realtime-v2",
        continuous: bool = False,
        interim_results: bool = True,
        no_speech_timeout_s: float = 8.0,
        queue_maxsize: int = 100,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self.continuous = continuous
        self.interim_results = interim_results
        self._no_speech_timeout_s = no_speech_timeout_s
        self._queue_maxsize = queue_maxsize

        self._lock = threading.Lock()
        self._session = 0
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._frames: Queue[AudioFrame] = Queue(maxsize=queue_maxsize)
        self._on_event: Optional[Callable[[RecognitionEvent], None]] = None
        self._heard_speech = False
        self.dropped_chunks = 0

    def start(
        self,
        language: Language,
        stream: AudioStream,
        on_event: Callable[[RecognitionEvent], None],
    ) -> None:
        if dashscope is None:
            raise UnsupportedCapability("dashscope is not installed")
        if self._thread and self._thread.is_alive():
            # The previous worker emits END just before exiting.
            self._thread.join(timeout=1.0)
            if self._thread.is_alive():
                raise RecognitionError("busy", "a recognition session is already running")

        with self._lock:
            self._session += 1
            session = self._session
            self._frames = Queue(maxsize=self._queue_maxsize)
            self._stop_event.clear()
            self._heard_speech = False
            self._on_event = on_event

        if self._api_key:
            dashscope.api_key = self._api_key
        try:
            recognition = dashscope.audio.asr.Recognition(
                model=self._model,
                format="pcm",
                sample_rate=stream.sample_rate,
                callback=_RecognitionListener(self, session),
                language_hints=[language.hint],
            )
            recognition.start()
        except Exception as exc:
            raise RecognitionError(classify_engine_failure(str(exc)), str(exc)) from exc

        stream.add_sink(self._on_frame)
        self._thread = threading.Thread(
            target=self._worker,
            args=(session, recognition, stream),
            name=f"recognition-{session}",
            daemon=True,
        )
        self._thread.start()
        logger.info("Recognition started (%s, session %d)", language.value, session)

    def stop(self) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=0.5)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _on_frame(self, frame: AudioFrame) -> None:
        if self._stop_event.is_set():
            return
        try:
            self._frames.put_nowait(frame)
        except Full:
            self.dropped_chunks += 1

    def _worker(self, session: int, recognition: Any, stream: AudioStream) -> None:
        """Forward audio until stopped, then close the engine and emit END."""
        started = time.monotonic()
        try:
            while not self._stop_event.is_set():
                try:
                    frame = self._frames.get(timeout=0.1)
                except Empty:
                    frame = None
                if frame is not None:
                    recognition.send_audio_frame(frame.pcm16_bytes)
                if (
                    not self._heard_speech
                    and time.monotonic() - started > self._no_speech_timeout_s
                ):
                    self._emit(session, RecognitionEvent(
                        kind=RecognitionKind.ERROR,
                        error_kind=NO_SPEECH,
                        message="no speech detected",
                    ))
                    break
        except Exception as exc:
            logger.warning("Sending audio failed: %s", exc)
            self._emit(session, RecognitionEvent(
                kind=RecognitionKind.ERROR,
                error_kind=classify_engine_failure(str(exc)),
                message=str(exc),
            ))
        finally:
            stream.remove_sink(self._on_frame)
            try:
                recognition.stop()
            except Exception as exc:
                logger.debug("Recognition stop raised: %s", exc)
            self._emit(session, RecognitionEvent(kind=RecognitionKind.END))

    def _handle_sentence(self, session: int, text: str, is_final: bool) -> None:
        if session != self._session or not text:
            return
        self._heard_speech = True
        if is_final:
            self._emit(session, RecognitionEvent(kind=RecognitionKind.FINAL, text=text))
            if not self.continuous:
                self._stop_event.set()
        elif self.interim_results:
            self._emit(session, RecognitionEvent(kind=RecognitionKind.PARTIAL, text=text))

    def _handle_engine_error(self, session: int, message: str) -> None:
        if session != self._session:
            return
        logger.warning("Recognition engine error: %s", message)
        self._emit(session, RecognitionEvent(
            kind=RecognitionKind.ERROR,
            error_kind=classify_engine_failure(message),
            message=message,
        ))
        self._stop_event.set()

    def _emit(self, session: int, event: RecognitionEvent) -> None:
        with self._lock:
            if session != self._session or self._on_event is None:
                return
            on_event = self._on_event
        on_event(event)
