import threading

import pytest
import soundfile as sf

from mono_convert.events import ProgressEvent
from mono_convert.processing import JobState
from mono_convert.service import ConversionService

WAIT = 30.0


class _Recorder:
    """Listener that keeps every notification; optionally cancels a job."""

    def __init__(self, cancel_job: int | None = None):
        self.cancel_job = cancel_job
        self.service: ConversionService | None = None
        self.progress: list[ProgressEvent] = []
        self.results = []
        self._lock = threading.Lock()

    def on_progress(self, event):
        with self._lock:
            self.progress.append(event)
        if event.percent is not None and event.job_id == self.cancel_job:
            for handle in self.service.active_jobs:
                if handle.job_id == event.job_id:
                    handle.cancel()

    def on_result(self, outcome):
        with self._lock:
            self.results.append(outcome)


def test_conversion_runs_in_background(stereo_s16_wav):
    path, _data = stereo_s16_wav
    recorder = _Recorder()
    service = ConversionService(recorder)

    handle = service.start_conversion(path)
    outcome = handle.wait(WAIT)

    assert outcome is not None
    assert outcome.success
    assert outcome.output_path == path.with_name("stereo_mono.wav")
    assert outcome.message == f"Converted to mono: {outcome.output_path}"
    assert handle.state is JobState.SUCCEEDED
    assert not handle.running
    assert sf.info(outcome.output_path).channels == 1
    messages = [event.message for event in handle.progress_events()]
    assert messages[0] == "Starting conversion..."
    assert messages[-1].startswith("Conversion complete. Total packets: ")
    assert recorder.results == [outcome]


def test_progress_percent_events(long_stereo_wav):
    service = ConversionService(progress_interval=10)
    handle = service.start_conversion(long_stereo_wav)
    assert handle.wait(WAIT).success
    percents = [event.percent for event in handle.progress_events() if event.percent is not None]
    assert percents
    assert percents == sorted(percents)
    assert all(event_pct <= 100.0 for event_pct in percents)


def test_cancel_from_listener_removes_output(long_stereo_wav):
    recorder = _Recorder()
    service = ConversionService(recorder, progress_interval=1)
    recorder.service = service

    gate = threading.Event()
    forward = recorder.on_progress

    def on_progress(event):
        gate.wait(WAIT)
        forward(event)

    recorder.on_progress = on_progress
    handle = service.start_conversion(long_stereo_wav)
    recorder.cancel_job = handle.job_id
    gate.set()

    outcome = handle.wait(WAIT)
    assert outcome is not None
    assert not outcome.success
    assert outcome.cancelled
    assert outcome.error_kind == "Cancelled"
    assert handle.state is JobState.CANCELLED
    assert not handle.output_path.exists()


def test_missing_input_reports_failure(tmp_path):
    service = ConversionService()
    handle = service.start_conversion(tmp_path / "absent.flac")
    outcome = handle.wait(WAIT)
    assert outcome.error_kind == "IoOpenError"
    assert outcome.message.startswith("Failed to open file")
    assert handle.state is JobState.FAILED


def test_unrecognized_input_reports_failure(not_audio_file):
    service = ConversionService()
    outcome = service.start_conversion(not_audio_file).wait(WAIT)
    assert outcome.error_kind == "UnsupportedFormat"
    assert not not_audio_file.with_name("notes_mono.wav").exists()


def test_cancel_without_jobs_is_noop():
    service = ConversionService()
    service.cancel_conversion()
    assert service.active_jobs == []


def test_cancel_after_finish_is_noop(stereo_s16_wav):
    path, _data = stereo_s16_wav
    service = ConversionService()
    handle = service.start_conversion(path)
    assert handle.wait(WAIT).success
    service.cancel_conversion(handle)
    assert not handle.cancel_requested
    assert handle.output_path.exists()


def test_concurrent_jobs_are_isolated(tmp_path, long_stereo_wav, stereo_s16_wav):
    other, _data = stereo_s16_wav
    recorder = _Recorder()
    service = ConversionService(recorder, progress_interval=1)
    recorder.service = service

    gate = threading.Event()
    forward = recorder.on_progress

    def on_progress(event):
        gate.wait(WAIT)
        forward(event)

    recorder.on_progress = on_progress
    doomed = service.start_conversion(long_stereo_wav)
    survivor = service.start_conversion(other)
    assert doomed.job_id != survivor.job_id
    recorder.cancel_job = doomed.job_id
    gate.set()

    assert doomed.wait(WAIT).cancelled
    survived = survivor.wait(WAIT)
    assert survived.success
    assert survivor.output_path.exists()
    assert not doomed.output_path.exists()
    assert doomed.cancel_requested
    assert not survivor.cancel_requested
    assert doomed._job.counter is not survivor._job.counter
    assert doomed._job.cancel_event is not survivor._job.cancel_event
    assert survivor.bytes_read >= other.stat().st_size


def test_inspect_audio(stereo_s16_wav):
    path, _data = stereo_s16_wav
    info = ConversionService().inspect_audio(path)
    assert info.channels == 2
    assert info.sample_rate == 8000
    assert info.bits_per_sample == 16
    assert info.duration_seconds == pytest.approx(0.125)
