"""Shared error types, codes and user-facing messages."""

from __future__ import annotations

CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
UNSUPPORTED_CAPABILITY = "UNSUPPORTED_CAPABILITY"
MICROPHONE_UNAVAILABLE = "MICROPHONE_UNAVAILABLE"
RECOGNITION_ERROR = "RECOGNITION_ERROR"
TRANSLATION_FAILURE = "TRANSLATION_FAILURE"
RECORDER_FINALIZE_ERROR = "RECORDER_FINALIZE_ERROR"

NO_SPEECH = "no-speech"
NETWORK = "network"
NOT_ALLOWED = "not-allowed"
ENGINE = "engine"
RESTART_LIMIT = "restart-limit"

ERROR_MESSAGES = {
    CONFIGURATION_ERROR: "API key is not configured.",
    UNSUPPORTED_CAPABILITY: "Speech recognition is not supported on this system.",
    MICROPHONE_UNAVAILABLE: "Could not start microphone.",
    RECOGNITION_ERROR: "Speech recognition error.",
    TRANSLATION_FAILURE: "Failed to translate text.",
    RECORDER_FINALIZE_ERROR: "Recording could not be saved.",
}


class InterpreterError(Exception):
    code = ""

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail or ERROR_MESSAGES.get(self.code, self.code))
        self.detail = detail

    @property
    def user_message(self) -> str:
        base = ERROR_MESSAGES.get(self.code, self.code)
        if self.detail:
            return f"{base.rstrip('.')}: {self.detail}"
        return base


class ConfigurationError(InterpreterError):
    code = CONFIGURATION_ERROR


class UnsupportedCapability(InterpreterError):
    code = UNSUPPORTED_CAPABILITY


class MicrophoneUnavailable(InterpreterError):
    code = MICROPHONE_UNAVAILABLE


class RecognitionError(InterpreterError):
    code = RECOGNITION_ERROR

    def __init__(self, kind: str, detail: str = "") -> None:
        super().__init__(detail or kind)
        self.kind = kind

    @property
    def user_message(self) -> str:
        return f"Speech recognition error: {self.kind}"

    @property
    def fatal(self) -> bool:
        return self.kind != NO_SPEECH


class TranslationFailure(InterpreterError):
    code = TRANSLATION_FAILURE


class RecorderFinalizeError(InterpreterError):
    code = RECORDER_FINALIZE_ERROR


def classify_engine_failure(message: str) -> str:
    """Map an SDK/network failure message to a recognition error kind."""
    low = message.lower()
    if "401" in low or "403" in low or "auth" in low or "api key" in low:
        return NOT_ALLOWED
    if "timeout" in low or "network" in low or "connection" in low:
        return NETWORK
    return ENGINE
