"""
Shared pytest fixtures for mono-convert tests.

Synthetic WAV inputs are generated on the fly with soundfile so the suite needs
no binary fixtures.
"""

import sys
from pathlib import Path

import numpy as np
import pytest
import soundfile as sf

# Add src to path for tests
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


def write_wav(path: Path, data: np.ndarray, samplerate: int, subtype: str) -> Path:
    sf.write(path, data, samplerate=samplerate, subtype=subtype, format="WAV")
    return path


def stereo_ramp(frames: int) -> np.ndarray:
    """Stereo int16 test signal with distinct, sign-mixed channels."""
    n = np.arange(frames, dtype=np.int32)
    left = ((n * 37) % 20001) - 10000
    right = ((n * 53) % 16001) - 8003
    return np.column_stack((left, right)).astype(np.int16)


@pytest.fixture
def stereo_s16_wav(tmp_path):
    """2-channel 16-bit 8 kHz input of 1000 frames."""
    data = stereo_ramp(1000)
    path = write_wav(tmp_path / "stereo.wav", data, 8000, "PCM_16")
    return path, data


@pytest.fixture
def long_stereo_wav(tmp_path):
    """Input long enough to span dozens of demuxed packets."""
    data = stereo_ramp(48_000)
    return write_wav(tmp_path / "long.wav", data, 8000, "PCM_16")


@pytest.fixture
def not_audio_file(tmp_path):
    path = tmp_path / "notes.bin"
    path.write_bytes(b"this is plainly not an audio container\n" * 64)
    return path
