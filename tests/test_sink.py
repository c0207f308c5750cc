import numpy as np
import pytest
import soundfile as sf

from mono_convert.errors import FinalizeError, OutputCreateError
from mono_convert.sink import WaveformSink


def test_written_samples_round_trip(tmp_path):
    path = tmp_path / "out.wav"
    sink = WaveformSink(path, 22_050)
    sink.write(np.array([0, 1, -1, 32767], dtype=np.int16))
    sink.write(np.array([-32768], dtype=np.int16))
    sink.finalize()

    assert sink.finalized
    assert sink.frames_written == 5
    data, rate = sf.read(path, dtype="int16")
    assert rate == 22_050
    assert data.tolist() == [0, 1, -1, 32767, -32768]
    info = sf.info(path)
    assert info.channels == 1
    assert info.subtype == "PCM_16"
    assert info.format == "WAV"


def test_empty_sink_is_still_a_valid_file(tmp_path):
    path = tmp_path / "silent.wav"
    sink = WaveformSink(path, 8000)
    sink.write(np.zeros(0, dtype=np.int16))
    sink.finalize()
    info = sf.info(path)
    assert info.frames == 0
    assert info.samplerate == 8000


def test_discard_removes_partial_output(tmp_path):
    path = tmp_path / "partial.wav"
    sink = WaveformSink(path, 8000)
    sink.write(np.ones(64, dtype=np.int16))
    assert path.exists()
    sink.discard()
    assert not path.exists()
    sink.discard()


def test_finalize_twice_fails(tmp_path):
    sink = WaveformSink(tmp_path / "twice.wav", 8000)
    sink.finalize()
    with pytest.raises(FinalizeError):
        sink.finalize()


def test_missing_directory_is_create_error(tmp_path):
    with pytest.raises(OutputCreateError):
        WaveformSink(tmp_path / "no" / "such" / "dir.wav", 8000)
