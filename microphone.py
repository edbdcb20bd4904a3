"""Microphone acquisition and frame fan-out."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Optional

from errors import MicrophoneUnavailable, UnsupportedCapability
from interfaces import FrameSink
from models import AudioFrame

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)


class MicrophoneStream:
    """An open input stream shared by the recorder and the recognizer.

    Frames arrive on the PortAudio callback thread and are handed to every
    registered sink. ``release`` closes the device exactly once.
    """

    def __init__(self, stream: Any, sample_rate: int, channels: int) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self._stream = stream
        self._sinks: list[FrameSink] = []
        self._lock = threading.Lock()
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def add_sink(self, sink: FrameSink) -> None:
        with self._lock:
            if sink not in self._sinks:
                self._sinks.append(sink)

    def remove_sink(self, sink: FrameSink) -> None:
        with self._lock:
            if sink in self._sinks:
                self._sinks.remove(sink)

    def release(self) -> None:
        with self._lock:
            if self._released:
                return
            self._released = True
            self._sinks.clear()
            stream, self._stream = self._stream, None
        if stream is not None:
            try:
                stream.stop()
            finally:
                stream.close()
        logger.info("Microphone released")

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if status:
            logger.debug("Input stream status: %s", status)
        if self._released or np is None:
            return
        frame = AudioFrame(
            pcm16_bytes=np.asarray(indata, dtype=np.int16).tobytes(),
            sample_rate=self.sample_rate,
            channels=self.channels,
            timestamp_ms=int(time.time() * 1000),
        )
        with self._lock:
            sinks = list(self._sinks)
        for sink in sinks:
            sink(frame)


class SoundDeviceMicrophone:
    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_ms: int = 100,
        device: Optional[int] = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self.device = device

    def acquire(self) -> MicrophoneStream:
        if sd is None:
            raise UnsupportedCapability("sounddevice is not installed")
        blocksize = int(self.sample_rate * (self.chunk_ms / 1000.0))
        handle = MicrophoneStream(None, self.sample_rate, self.channels)
        stream = None
        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                blocksize=blocksize,
                device=self.device,
                callback=handle._on_audio,
            )
            stream.start()
        except Exception as exc:
            if stream is not None:
                stream.close()
            raise MicrophoneUnavailable(str(exc)) from exc
        handle._stream = stream
        logger.info("Microphone acquired (device=%s, %d Hz)", self.device, self.sample_rate)
        return handle


def list_input_devices() -> list[tuple[int, str]]:
    """List available input devices as (index, name) tuples."""
    if sd is None:
        return []
    devices = []
    for index, info in enumerate(sd.query_devices()):
        if info.get("max_input_channels", 0) > 0:
            devices.append((index, str(info.get("name", "Unknown"))))
    return devices
