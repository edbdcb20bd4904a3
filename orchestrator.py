"""Conversation orchestration state machine.

All state changes happen on one dispatcher loop. Collaborators (the speech
engine, the translation executor, restart timers) never touch the state
directly: they post messages to the inbox and the loop handles them in
arrival order.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from queue import Empty, Queue
from typing import Callable, Optional, Union

from errors import (
    ENGINE,
    RESTART_LIMIT,
    InterpreterError,
    MicrophoneUnavailable,
    RecognitionError,
    RecorderFinalizeError,
    UnsupportedCapability,
)
from interfaces import AudioRecorder, AudioStream, Microphone, SpeechCapture, Translator
from models import (
    DeleteRecording,
    Language,
    ListenPhase,
    LogEntry,
    Mode,
    RecognitionEvent,
    RecognitionKind,
    Recording,
    RestartRecognition,
    SessionState,
    SetMode,
    Shutdown,
    SpeechNotice,
    ToggleLanguage,
    ToggleListen,
    TranslationOutcome,
)
from transcript import RecordingStore, TranscriptStore

logger = logging.getLogger(__name__)

Message = Union[
    ToggleListen,
    SetMode,
    ToggleLanguage,
    SpeechNotice,
    TranslationOutcome,
    RestartRecognition,
    DeleteRecording,
    Shutdown,
]
StateCallback = Callable[[ListenPhase, ListenPhase], None]
PartialCallback = Callable[[str], None]
ErrorCallback = Callable[[str, str], None]
EntryCallback = Callable[[LogEntry], None]
RecordingsCallback = Callable[[list[Recording]], None]
LanguageCallback = Callable[[Language], None]
Scheduler = Callable[[float, Callable[[], None]], None]


def _as_interpreter_error(exc: Exception) -> InterpreterError:
    if isinstance(exc, InterpreterError):
        return exc
    return RecognitionError(ENGINE, str(exc))


def schedule_with_timer(delay_s: float, action: Callable[[], None]) -> None:
    timer = threading.Timer(delay_s, action)
    timer.daemon = True
    timer.start()


class ConversationOrchestrator:
    def __init__(
        self,
        microphone: Microphone,
        recorder: AudioRecorder,
        speech: SpeechCapture,
        translator: Translator,
        language: Language = Language.JAPANESE,
        mode: Mode = Mode.TURN_TAKING,
        executor: Optional[Executor] = None,
        max_restarts: int = 5,
        restart_backoff_s: float = 0.5,
        max_backoff_s: float = 8.0,
        schedule: Scheduler = schedule_with_timer,
        on_state_change: Optional[StateCallback] = None,
        on_partial: Optional[PartialCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_entry: Optional[EntryCallback] = None,
        on_recordings: Optional[RecordingsCallback] = None,
        on_language: Optional[LanguageCallback] = None,
    ) -> None:
        self._microphone = microphone
        self._recorder = recorder
        self._speech = speech
        self._translator = translator
        self._executor = executor or ThreadPoolExecutor(
            max_workers=4, thread_name_prefix="translate"
        )
        self._max_restarts = max_restarts
        self._restart_backoff_s = restart_backoff_s
        self._max_backoff_s = max_backoff_s
        self._schedule = schedule

        self._on_state_change = on_state_change
        self._on_partial = on_partial
        self._on_error = on_error
        self._on_entry = on_entry
        self._on_recordings = on_recordings
        self._on_language = on_language

        self._state = SessionState(mode=mode, current_language=language)
        self.transcript = TranscriptStore()
        self.recordings = RecordingStore()
        self._last_error: Optional[str] = None
        self._inbox: Queue[Message] = Queue()
        self._loop_thread: Optional[threading.Thread] = None
        self._closed = False

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Public commands (safe from any thread)
    # ------------------------------------------------------------------

    def toggle_listening(self) -> None:
        self.post(ToggleListen())

    def set_mode(self, mode: Mode) -> None:
        self.post(SetMode(mode))

    def toggle_language(self) -> None:
        self.post(ToggleLanguage())

    def delete_recording(self, recording_id: int) -> None:
        self.post(DeleteRecording(recording_id))

    def shutdown(self, timeout_s: float = 2.0) -> None:
        self.post(Shutdown())
        thread = self._loop_thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=timeout_s)

    def post(self, message: Message) -> None:
        self._inbox.put(message)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Run the dispatcher loop on a background thread."""
        if self._loop_thread and self._loop_thread.is_alive():
            return
        self._loop_thread = threading.Thread(
            target=self._run, name="conversation-loop", daemon=True
        )
        self._loop_thread.start()

    def process_pending(self) -> int:
        """Handle every queued message on the calling thread."""
        handled = 0
        while not self._closed:
            try:
                message = self._inbox.get_nowait()
            except Empty:
                break
            self._dispatch(message)
            handled += 1
        return handled

    def _run(self) -> None:
        while not self._closed:
            self._dispatch(self._inbox.get())

    def _dispatch(self, message: Message) -> None:
        try:
            if isinstance(message, SpeechNotice):
                self._handle_speech(message)
            elif isinstance(message, TranslationOutcome):
                self._handle_translation(message)
            elif isinstance(message, ToggleListen):
                self._handle_toggle_listen()
            elif isinstance(message, RestartRecognition):
                self._handle_restart(message)
            elif isinstance(message, SetMode):
                self._handle_set_mode(message.mode)
            elif isinstance(message, ToggleLanguage):
                self._handle_toggle_language()
            elif isinstance(message, DeleteRecording):
                self._handle_delete_recording(message.recording_id)
            elif isinstance(message, Shutdown):
                self._handle_shutdown()
        except Exception:
            logger.exception("Unhandled error while processing %r", message)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _handle_toggle_listen(self) -> None:
        if self._state.listening:
            self._state.intentional_stop_requested = True
            self._transition(ListenPhase.STOPPING_INTENTIONAL)
            self._safe_stop_speech()
            self._finalize_session()
        else:
            self._begin_session()

    def _begin_session(self) -> None:
        if self._closed:
            return
        try:
            stream = self._microphone.acquire()
        except (MicrophoneUnavailable, UnsupportedCapability) as exc:
            self._surface(exc)
            return

        try:
            self._recorder.begin(stream)
        except Exception as exc:
            self._safe_release(stream)
            self._surface(MicrophoneUnavailable(str(exc)))
            return

        self._state.stream = stream
        self._state.intentional_stop_requested = False
        self._state.restart_attempts = 0
        try:
            self._start_recognition()
        except Exception as exc:
            self._state.stream = None
            self._safe_abort_recorder()
            self._surface(_as_interpreter_error(exc))
            return

        self._last_error = None
        self._transition(ListenPhase.LISTENING)

    def _start_recognition(self) -> None:
        self._state.run_id += 1
        self._state.run_language = self._state.current_language
        run_id = self._state.run_id
        self._speech.start(
            self._state.run_language,
            self._state.stream,
            lambda event: self.post(SpeechNotice(run_id, event)),
        )

    def _handle_speech(self, notice: SpeechNotice) -> None:
        event = notice.event
        if notice.run_id != self._state.run_id:
            logger.debug("Dropping stale %s event from run %d", event.kind.value, notice.run_id)
            return
        if self._state.phase != ListenPhase.LISTENING:
            # The last utterance of a stopped run is still transcribed.
            if event.kind == RecognitionKind.FINAL:
                self._handle_final(event.text)
            return
        if event.kind == RecognitionKind.PARTIAL:
            self._state.restart_attempts = 0
            self._emit_partial(event.text)
        elif event.kind == RecognitionKind.FINAL:
            self._state.restart_attempts = 0
            self._emit_partial("")
            self._handle_final(event.text)
        elif event.kind == RecognitionKind.ERROR:
            self._handle_recognition_error(event)
        elif event.kind == RecognitionKind.END:
            self._handle_session_end()

    def _handle_final(self, text: str) -> None:
        text = text.strip()
        if not text:
            return
        entry = self.transcript.append(text, self._state.run_language)
        logger.info("Transcribed entry %d (%s)", entry.id, entry.source_language.value)
        self._emit_entry(entry)
        future = self._executor.submit(self._translator.translate, text, entry.source_language)
        future.add_done_callback(lambda f, entry_id=entry.id: self._post_translation(entry_id, f))

    def _post_translation(self, entry_id: int, future: Future) -> None:
        error = future.exception()
        if error is not None:
            self.post(TranslationOutcome(entry_id, error=error))
        else:
            self.post(TranslationOutcome(entry_id, text=future.result()))

    def _handle_translation(self, outcome: TranslationOutcome) -> None:
        if outcome.error is not None:
            logger.warning("Translation of entry %d failed: %s", outcome.entry_id, outcome.error)
            settled = self.transcript.fail(outcome.entry_id)
            if settled is not None:
                self._emit_entry(settled)
            return

        settled = self.transcript.complete(outcome.entry_id, outcome.text or "")
        if settled is None:
            return
        self._emit_entry(settled)
        if self._state.mode == Mode.TURN_TAKING:
            self._set_language(self._state.current_language.counterpart)

    def _handle_recognition_error(self, event: RecognitionEvent) -> None:
        error = RecognitionError(event.error_kind, event.message)
        if not error.fatal:
            self._state.restart_attempts = 0
            logger.debug("No speech detected")
            return
        logger.warning("Recognition error %s: %s", event.error_kind, event.message)
        self._abort_listening(error)

    def _handle_session_end(self) -> None:
        if self._state.intentional_stop_requested:
            self._finalize_session()
        elif self._state.mode == Mode.CONTINUOUS:
            self._schedule_restart()
        else:
            logger.info("Recognition ended, stopping turn")
            self._finalize_session()

    def _schedule_restart(self) -> None:
        if self._state.restart_attempts >= self._max_restarts:
            logger.warning("Giving up after %d restarts", self._state.restart_attempts)
            self._abort_listening(RecognitionError(RESTART_LIMIT))
            return
        self._state.restart_attempts += 1
        attempt = self._state.restart_attempts
        run_id = self._state.run_id
        if attempt == 1:
            self._handle_restart(RestartRecognition(run_id))
            return
        delay = min(self._restart_backoff_s * 2 ** (attempt - 2), self._max_backoff_s)
        logger.info("Restarting recognition in %.2fs (attempt %d)", delay, attempt)
        self._schedule(delay, lambda: self.post(RestartRecognition(run_id)))

    def _handle_restart(self, request: RestartRecognition) -> None:
        if request.run_id != self._state.run_id or self._state.phase != ListenPhase.LISTENING:
            return
        try:
            self._start_recognition()
        except Exception as exc:
            logger.warning("Restarting recognition failed: %s", exc)
            self._abort_listening(_as_interpreter_error(exc))

    def _abort_listening(self, error: InterpreterError) -> None:
        self._safe_stop_speech()
        self._finalize_session()
        self._surface(error)

    def _finalize_session(self) -> None:
        if self._state.phase == ListenPhase.IDLE:
            return
        self._state.stream = None
        try:
            clip = self._recorder.end()
        except RecorderFinalizeError as exc:
            logger.warning("Dropping recording: %s", exc)
            clip = None
        except Exception:
            logger.warning("Finalizing recorder failed", exc_info=True)
            clip = None
        if clip is not None:
            recording = self.recordings.add(clip)
            logger.info("Saved %s (%s)", recording.display_name, recording.duration_label)
            self._emit_recordings()
        self._state.intentional_stop_requested = False
        self._emit_partial("")
        self._transition(ListenPhase.IDLE)

    def _handle_set_mode(self, mode: Mode) -> None:
        if self._state.listening:
            logger.info("Ignoring mode change while listening")
            return
        self._state.mode = mode

    def _handle_toggle_language(self) -> None:
        if self._state.listening:
            logger.info("Ignoring language toggle while listening")
            return
        self._set_language(self._state.current_language.counterpart)

    def _handle_delete_recording(self, recording_id: int) -> None:
        if self.recordings.delete(recording_id):
            self._emit_recordings()

    def _handle_shutdown(self) -> None:
        if self._state.listening:
            self._safe_stop_speech()
            self._state.stream = None
            self._safe_abort_recorder()
            self._transition(ListenPhase.IDLE)
        self.recordings.clear()
        self._executor.shutdown(wait=False)
        self._closed = True
        logger.info("Orchestrator shut down")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _set_language(self, language: Language) -> None:
        if language == self._state.current_language:
            return
        self._state.current_language = language
        if self._on_language:
            self._on_language(language)

    def _surface(self, error: InterpreterError) -> None:
        self._last_error = error.user_message
        logger.error("%s: %s", error.code, error.user_message)
        if self._on_error:
            self._on_error(error.code, error.user_message)

    def _safe_abort_recorder(self) -> None:
        try:
            self._recorder.abort()
        except Exception:
            logger.warning("Aborting recorder failed", exc_info=True)

    def _safe_release(self, stream: AudioStream) -> None:
        try:
            stream.release()
        except Exception:
            logger.warning("Releasing microphone failed", exc_info=True)

    def _safe_stop_speech(self) -> None:
        try:
            self._speech.stop()
        except Exception:
            logger.warning("Stopping recognition failed", exc_info=True)

    def _emit_partial(self, text: str) -> None:
        if self._on_partial:
            self._on_partial(text)

    def _emit_entry(self, entry: LogEntry) -> None:
        if self._on_entry:
            self._on_entry(entry)

    def _emit_recordings(self) -> None:
        if self._on_recordings:
            self._on_recordings(list(self.recordings))

    def _transition(self, to_phase: ListenPhase) -> None:
        from_phase = self._state.phase
        if from_phase == to_phase:
            return
        self._state.phase = to_phase
        logger.info("Session %s -> %s", from_phase.value, to_phase.value)
        if self._on_state_change:
            self._on_state_change(from_phase, to_phase)
