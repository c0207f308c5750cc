from __future__ import annotations

from typing import Callable, Optional

from .source import ByteCounter


class ProgressSink:
    """Interface for receiving progress events."""

    def start(self, *, total_bytes: int) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def update(self, percent: float, *, packets: int) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def status(self, message: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def close(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def set_cancel_callback(self, callback: Callable[[], None]) -> None:  # pragma: no cover - optional hook
        return

    def cancel(self) -> None:  # pragma: no cover - optional hook
        raise NotImplementedError


class NullProgressSink(ProgressSink):
    """Sink that ignores all progress events."""

    def start(self, *, total_bytes: int) -> None:
        return

    def update(self, percent: float, *, packets: int) -> None:
        return

    def status(self, message: str) -> None:
        return

    def close(self) -> None:
        return

    def cancel(self) -> None:
        return


def format_percent(percent: float) -> str:
    return f"{percent:.1f}%"


class ProgressTracker:
    """Sample byte-level read progress every ``interval`` packets."""

    _MAX_STATUS_WIDTH = 64

    def __init__(
        self,
        sink: Optional[ProgressSink] = None,
        *,
        counter: Optional[ByteCounter] = None,
        interval: int = 100,
    ):
        self._sink: ProgressSink = sink or NullProgressSink()
        self._counter = counter or ByteCounter()
        self.interval = max(1, int(interval))
        self._total_bytes = 0
        self._packets = 0
        self._last_percent = 0.0
        self._started = False
        self._cancelled = False
        self._cancel_notified = False

    def start(self, total_bytes: int) -> None:
        if self._started:
            return
        self._total_bytes = max(0, int(total_bytes))
        self._packets = 0
        self._last_percent = 0.0
        self._sink.start(total_bytes=self._total_bytes)
        self._started = True
        self._cancelled = False
        self._cancel_notified = False

    @property
    def packets(self) -> int:
        return self._packets

    @property
    def percent(self) -> float:
        """Bytes read as a percentage of the input size, capped at 100."""
        if self._total_bytes <= 0:
            return 0.0
        return min(self._counter.value / self._total_bytes * 100.0, 100.0)

    def packet(self) -> bool:
        """Count one packet; report progress when the interval is reached."""
        if not self._started or self._cancelled:
            return False
        self._packets += 1
        if self._packets % self.interval:
            return False
        percent = max(self.percent, self._last_percent)
        self._last_percent = percent
        self._sink.update(percent, packets=self._packets)
        return True

    def status(self, message: str) -> None:
        if not self._started:
            return
        self._sink.status(self._normalize_status(message))

    def close(self) -> None:
        self._sink.close()
        self._started = False
        self._cancelled = False
        self._cancel_notified = False

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if not self._cancel_notified and hasattr(self._sink, "cancel"):
            try:
                self._sink.cancel()
            except NotImplementedError:
                pass
            finally:
                self._cancel_notified = True

    def _normalize_status(self, message: str) -> str:
        stripped = " ".join(str(message).split())
        if len(stripped) <= self._MAX_STATUS_WIDTH:
            return stripped
        return stripped[: self._MAX_STATUS_WIDTH - 1] + "…"
