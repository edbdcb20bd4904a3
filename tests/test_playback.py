from __future__ import annotations

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from errors import UnsupportedCapability
from models import AudioClip, Recording
from playback import SoundDevicePlayer, decode_samples
from recorder import encode_wav


def _recording(n_samples: int = 1600) -> Recording:
    pcm = np.arange(n_samples, dtype=np.int16).tobytes()
    clip = AudioClip(data=encode_wav(pcm), duration_seconds=n_samples / 16000)
    return Recording(id=1, clip=clip, display_name="Recording - test")


def test_decode_samples_round_trips_pcm() -> None:
    samples, rate = decode_samples(_recording(4).clip.data)
    assert rate == 16000
    assert samples.shape == (4, 1)
    assert samples[:, 0].tolist() == [0, 1, 2, 3]


@patch("playback.sd")
def test_play_hands_samples_to_sounddevice(mock_sd: MagicMock) -> None:
    player = SoundDevicePlayer()
    player.play(_recording())

    args, kwargs = mock_sd.play.call_args
    assert args[0].shape == (1600, 1)
    assert kwargs["samplerate"] == 16000
    assert player.current_id == 1

    player.stop()
    assert player.current_id is None


@patch("playback.sd")
def test_released_clip_cannot_be_played(mock_sd: MagicMock) -> None:
    recording = _recording()
    recording.clip.release()

    with pytest.raises(ValueError):
        SoundDevicePlayer().play(recording)
    mock_sd.play.assert_not_called()


@patch("playback.sd", None)
def test_play_without_sounddevice() -> None:
    with pytest.raises(UnsupportedCapability):
        SoundDevicePlayer().play(_recording())
