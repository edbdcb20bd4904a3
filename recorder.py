"""Clip recorder that captures the microphone alongside recognition."""

from __future__ import annotations

import io
import logging
import threading
import wave
from datetime import datetime
from typing import Optional

from errors import RecorderFinalizeError
from interfaces import AudioStream
from models import AudioClip, AudioFrame

logger = logging.getLogger(__name__)


def encode_wav(
    pcm: bytes,
    sample_rate: int = 16000,
    channels: int = 1,
    sample_width: int = 2,
) -> bytes:
    """Wrap raw PCM bytes in a WAV container."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return buf.getvalue()


def decode_duration(wav_bytes: bytes) -> float:
    """Return the duration in seconds of an encoded WAV clip."""
    with wave.open(io.BytesIO(wav_bytes), "rb") as wf:
        rate = wf.getframerate()
        if rate <= 0:
            raise wave.Error(f"invalid frame rate {rate}")
        return wf.getnframes() / float(rate)


class WavClipRecorder:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stream: Optional[AudioStream] = None
        self._pcm = bytearray()
        self._started_at: Optional[datetime] = None

    def begin(self, stream: AudioStream) -> None:
        with self._lock:
            if self._stream is not None:
                raise RuntimeError("recorder is already capturing")
            self._stream = stream
            self._pcm = bytearray()
            self._started_at = datetime.now()
        stream.add_sink(self._on_frame)

    def end(self) -> Optional[AudioClip]:
        """Stop capture and materialize the buffered audio as a WAV clip.

        Returns None when nothing is being captured. The stream is released
        even if encoding fails.
        """
        stream, pcm, started_at = self._detach()
        if stream is None:
            return None
        try:
            data = encode_wav(bytes(pcm), stream.sample_rate, stream.channels)
            duration = decode_duration(data)
        except (wave.Error, EOFError, ValueError) as exc:
            raise RecorderFinalizeError(str(exc)) from exc
        finally:
            stream.release()
        logger.info("Recorded clip of %.2fs (%d bytes)", duration, len(data))
        return AudioClip(
            data=data,
            duration_seconds=duration,
            sample_rate=stream.sample_rate,
            channels=stream.channels,
            recorded_at=started_at,
        )

    def abort(self) -> None:
        stream, _, _ = self._detach()
        if stream is not None:
            stream.release()
            logger.info("Recording discarded")

    def _detach(self) -> tuple[Optional[AudioStream], bytearray, Optional[datetime]]:
        with self._lock:
            stream, self._stream = self._stream, None
            pcm, self._pcm = self._pcm, bytearray()
            started_at, self._started_at = self._started_at, None
        if stream is not None:
            stream.remove_sink(self._on_frame)
        return stream, pcm, started_at

    def _on_frame(self, frame: AudioFrame) -> None:
        with self._lock:
            if self._stream is None:
                return
            self._pcm.extend(frame.pcm16_bytes)
