"""
Per-job notification channel between a background conversion and its caller.

Progress messages are best-effort: the channel keeps a bounded backlog and
drops the oldest entry when full. The terminal outcome is stored in its own
slot and is always delivered exactly once.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from .errors import ConversionError
from .progress import ProgressSink, format_percent

LOG = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    job_id: int
    message: str
    percent: float | None = None


@dataclass(frozen=True, slots=True)
class ConversionOutcome:
    job_id: int
    success: bool
    output_path: Path | None = None
    error_kind: str | None = None
    message: str = ""

    @classmethod
    def succeeded(cls, job_id: int, output_path: Path) -> ConversionOutcome:
        return cls(
            job_id=job_id,
            success=True,
            output_path=output_path,
            message=f"Converted to mono: {output_path}",
        )

    @classmethod
    def failed(cls, job_id: int, error: BaseException) -> ConversionOutcome:
        kind = error.kind if isinstance(error, ConversionError) else ConversionError.kind
        return cls(
            job_id=job_id,
            success=False,
            error_kind=kind,
            message=str(error) or kind,
        )

    @property
    def cancelled(self) -> bool:
        return self.error_kind == "Cancelled"


class ConversionListener(Protocol):
    def on_progress(self, event: ProgressEvent) -> None: ...

    def on_result(self, outcome: ConversionOutcome) -> None: ...


class EventChannel:
    """Bounded drop-oldest progress backlog plus a one-shot result slot."""

    def __init__(self, maxsize: int = 64):
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        self._progress: deque[ProgressEvent] = deque(maxlen=maxsize)
        self._cond = threading.Condition()
        self._result: ConversionOutcome | None = None
        self.dropped = 0

    def put_progress(self, event: ProgressEvent) -> None:
        with self._cond:
            if len(self._progress) == self._progress.maxlen:
                self.dropped += 1
            self._progress.append(event)
            self._cond.notify_all()

    def put_result(self, outcome: ConversionOutcome) -> None:
        with self._cond:
            if self._result is not None:
                raise RuntimeError("Job outcome has already been delivered.")
            self._result = outcome
            self._cond.notify_all()

    def get_progress(self, timeout: float | None = None) -> ProgressEvent | None:
        """Pop the oldest pending event, waiting up to ``timeout`` seconds."""
        with self._cond:
            if not self._progress and self._result is None:
                self._cond.wait_for(lambda: self._progress or self._result is not None, timeout)
            if self._progress:
                return self._progress.popleft()
            return None

    def drain_progress(self) -> list[ProgressEvent]:
        with self._cond:
            events = list(self._progress)
            self._progress.clear()
            return events

    def wait_result(self, timeout: float | None = None) -> ConversionOutcome | None:
        with self._cond:
            self._cond.wait_for(lambda: self._result is not None, timeout)
            return self._result

    @property
    def finished(self) -> bool:
        with self._cond:
            return self._result is not None


class ChannelProgressSink(ProgressSink):
    """Forward pipeline progress into a job's channel and optional listener."""

    def __init__(
        self,
        job_id: int,
        channel: EventChannel,
        listener: Optional[ConversionListener] = None,
    ):
        self.job_id = job_id
        self.channel = channel
        self.listener = listener

    def start(self, *, total_bytes: int) -> None:
        LOG.debug("Job %d reading %d input bytes", self.job_id, total_bytes)

    def update(self, percent: float, *, packets: int) -> None:
        LOG.debug("Job %d progress %.1f%% (%d packets)", self.job_id, percent, packets)
        self._emit(ProgressEvent(self.job_id, format_percent(percent), percent))

    def status(self, message: str) -> None:
        self._emit(ProgressEvent(self.job_id, message))

    def close(self) -> None:
        return

    def cancel(self) -> None:
        return

    def _emit(self, event: ProgressEvent) -> None:
        self.channel.put_progress(event)
        if self.listener is None:
            return
        try:
            self.listener.on_progress(event)
        except Exception as exc:  # listener failures never affect the job
            LOG.warning("Progress listener failed for job %d: %s", self.job_id, exc)


def deliver_result(
    channel: EventChannel,
    outcome: ConversionOutcome,
    listener: Optional[ConversionListener] = None,
) -> None:
    channel.put_result(outcome)
    if listener is None:
        return
    try:
        listener.on_result(outcome)
    except Exception as exc:  # listener failures never affect the job
        LOG.warning("Result listener failed for job %d: %s", outcome.job_id, exc)
