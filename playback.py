"""Playback of recorded clips."""

from __future__ import annotations

import io
import logging
import wave

from errors import UnsupportedCapability
from models import Recording

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)


def decode_samples(wav_bytes: bytes):
    """Decode 16-bit WAV bytes into an int16 array shaped (frames, channels)."""
    with wave.open(io.BytesIO(wav_bytes), "rb") as wf:
        channels = wf.getnchannels()
        rate = wf.getframerate()
        raw = wf.readframes(wf.getnframes())
    samples = np.frombuffer(raw, dtype=np.int16)
    return samples.reshape(-1, channels), rate


class SoundDevicePlayer:
    def __init__(self) -> None:
        self.current_id: int | None = None

    def play(self, recording: Recording) -> None:
        if sd is None or np is None:
            raise UnsupportedCapability("sounddevice is not installed")
        samples, rate = decode_samples(recording.clip.data)
        sd.stop()
        self.current_id = recording.id
        if len(samples):
            sd.play(samples, samplerate=rate)
        logger.info("Playing %s", recording.display_name)

    def stop(self) -> None:
        self.current_id = None
        if sd is not None:
            sd.stop()
