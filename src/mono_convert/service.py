from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Optional

from .events import (
    ChannelProgressSink,
    ConversionListener,
    ConversionOutcome,
    EventChannel,
    ProgressEvent,
    deliver_result,
)
from .errors import ConversionError
from .probe import AudioInfo, inspect_audio
from .processing import (
    DEFAULT_PROGRESS_INTERVAL,
    ConversionConfig,
    ConversionJob,
    ConversionPipeline,
    JobState,
)

LOG = logging.getLogger(__name__)


class ConversionHandle:
    """Caller-side view of one background conversion."""

    def __init__(self, job: ConversionJob, channel: EventChannel):
        self._job = job
        self._channel = channel

    @property
    def job_id(self) -> int:
        return self._job.job_id

    @property
    def output_path(self) -> Path:
        return self._job.output_path

    @property
    def state(self) -> JobState:
        return self._job.state

    @property
    def running(self) -> bool:
        return not self._channel.finished

    @property
    def bytes_read(self) -> int:
        return self._job.bytes_read

    @property
    def cancel_requested(self) -> bool:
        return self._job.cancel_requested

    def cancel(self) -> None:
        """Ask the job to stop at its next packet boundary; safe to repeat."""
        if self._channel.finished:
            return
        self._job.cancel_event.set()

    def wait(self, timeout: float | None = None) -> ConversionOutcome | None:
        return self._channel.wait_result(timeout)

    def progress_events(self) -> Iterator[ProgressEvent]:
        """Yield progress events until the job has finished and the backlog is empty."""
        while True:
            event = self._channel.get_progress(timeout=None)
            if event is None:
                return
            yield event


class ConversionService:
    """Start, cancel and inspect mono conversions on background threads."""

    def __init__(
        self,
        listener: Optional[ConversionListener] = None,
        *,
        progress_interval: int = DEFAULT_PROGRESS_INTERVAL,
        channel_size: int = 64,
    ):
        self.listener = listener
        self.progress_interval = progress_interval
        self.channel_size = channel_size
        self._lock = threading.Lock()
        self._active: dict[int, ConversionHandle] = {}

    def start_conversion(
        self,
        input_path: Path | str,
        *,
        output_path: Path | str | None = None,
        format_hint: str | None = None,
    ) -> ConversionHandle:
        """Launch a conversion and return immediately with its handle."""
        config = ConversionConfig(
            in_path=Path(input_path),
            output_path=Path(output_path) if output_path is not None else None,
            progress_interval=self.progress_interval,
            format_hint=format_hint,
        )
        job = ConversionJob(input_path=config.in_path, output_path=config.resolved_output_path)
        pipeline = ConversionPipeline(config, job)
        channel = EventChannel(self.channel_size)
        thread = threading.Thread(
            target=self._run_job,
            args=(pipeline, channel),
            name=f"MonoConversion-{job.job_id}",
            daemon=True,
        )
        handle = ConversionHandle(job, channel)
        with self._lock:
            self._active[job.job_id] = handle
        LOG.info("Job %d accepted: %s -> %s", job.job_id, job.input_path, job.output_path)
        thread.start()
        return handle

    def cancel_conversion(self, handle: ConversionHandle | None = None) -> None:
        """Cancel ``handle``, or every running job when no handle is given."""
        if handle is not None:
            handle.cancel()
            return
        with self._lock:
            handles = list(self._active.values())
        for active in handles:
            active.cancel()

    def inspect_audio(self, input_path: Path | str) -> AudioInfo:
        return inspect_audio(Path(input_path))

    @property
    def active_jobs(self) -> list[ConversionHandle]:
        with self._lock:
            return list(self._active.values())

    def _run_job(self, pipeline: ConversionPipeline, channel: EventChannel) -> None:
        job = pipeline.job
        sink = ChannelProgressSink(job.job_id, channel, self.listener)
        try:
            result = pipeline.run(progress_sink=sink)
        except ConversionError as exc:
            outcome = ConversionOutcome.failed(job.job_id, exc)
        except Exception as exc:
            LOG.exception("Job %d crashed", job.job_id)
            outcome = ConversionOutcome.failed(job.job_id, exc)
        else:
            outcome = ConversionOutcome.succeeded(job.job_id, result.output_path)
        LOG.info("Job %d finished: %s", job.job_id, outcome.message)
        try:
            deliver_result(channel, outcome, self.listener)
        finally:
            with self._lock:
                self._active.pop(job.job_id, None)
