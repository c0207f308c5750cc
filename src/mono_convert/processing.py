from __future__ import annotations

import contextlib
import itertools
import logging
import os
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .decoding import Decoder, make_decoder
from .downmix import downmix
from .errors import (
    ConversionCancelled,
    DemuxError,
    IoMetadataError,
    IoOpenError,
    OutputCreateError,
    StreamReset,
)
from .probe import AudioTrackDescriptor, Demuxer, probe_source, select_track
from .progress import ProgressSink, ProgressTracker
from .sink import WaveformSink
from .source import ByteCounter, CountingReader

LOG = logging.getLogger(__name__)

DEFAULT_PROGRESS_INTERVAL = 100
START_STATUS = "Starting conversion..."

_JOB_IDS = itertools.count(1)


def default_output_path(in_path: Path) -> Path:
    """Sibling ``<stem>_mono.wav`` path; never equal to the input."""
    return in_path.with_name(f"{in_path.stem}_mono.wav")


@dataclass
class ConversionConfig:
    in_path: Path
    output_path: Path | None = None
    progress_interval: int = DEFAULT_PROGRESS_INTERVAL
    format_hint: str | None = None

    def __post_init__(self) -> None:
        self.in_path = Path(self.in_path)
        if self.output_path is not None:
            self.output_path = Path(self.output_path)
        if self.progress_interval <= 0:
            raise ValueError("progress_interval must be positive.")

    @property
    def resolved_output_path(self) -> Path:
        return self.output_path if self.output_path is not None else default_output_path(self.in_path)


class JobState(str, Enum):
    IDLE = "idle"
    OPENING = "opening"
    PROBING = "probing"
    DECODING = "decoding"
    FINALIZING = "finalizing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ConversionJob:
    """State owned by one conversion run; never shared between runs."""

    input_path: Path
    output_path: Path
    job_id: int = field(default_factory=lambda: next(_JOB_IDS))
    cancel_event: threading.Event = field(default_factory=threading.Event, repr=False)
    counter: ByteCounter = field(default_factory=ByteCounter, repr=False)
    total_bytes: int = 0
    state: JobState = JobState.IDLE

    @property
    def bytes_read(self) -> int:
        return self.counter.value

    @property
    def cancel_requested(self) -> bool:
        return self.cancel_event.is_set()


@dataclass
class ConversionResult:
    output_path: Path
    track: AudioTrackDescriptor
    packets: int
    frames_written: int
    bytes_read: int
    total_bytes: int


class ConversionPipeline:
    """Decode one input file and stream a mono 16-bit WAV beside it."""

    def __init__(self, config: ConversionConfig, job: ConversionJob | None = None):
        self.config = config
        self.job = job or ConversionJob(
            input_path=config.in_path,
            output_path=config.resolved_output_path,
        )

    @property
    def state(self) -> JobState:
        return self.job.state

    def cancel(self) -> None:
        self.job.cancel_event.set()

    def _enter(self, state: JobState) -> None:
        LOG.debug("Job %d: %s -> %s", self.job.job_id, self.job.state.value, state.value)
        self.job.state = state

    def run(self, progress_sink: ProgressSink | None = None) -> ConversionResult:
        job = self.job
        tracker = ProgressTracker(
            progress_sink,
            counter=job.counter,
            interval=self.config.progress_interval,
        )
        cancel_logged = False
        sink: WaveformSink | None = None

        def _request_cancel() -> None:
            job.cancel_event.set()
            tracker.cancel()

        def _check_cancel(stage: str) -> None:
            nonlocal cancel_logged
            if not job.cancel_event.is_set():
                return
            tracker.cancel()
            if not cancel_logged:
                LOG.info("Conversion cancelled during %s.", stage)
                cancel_logged = True
            raise ConversionCancelled("Conversion cancelled")

        if progress_sink is not None:
            with contextlib.suppress(AttributeError):
                progress_sink.set_cancel_callback(_request_cancel)

        try:
            _check_cancel("startup")
            self._enter(JobState.OPENING)
            if job.output_path.resolve() == job.input_path.resolve():
                raise OutputCreateError(
                    f"Output path {job.output_path} would overwrite the input file."
                )
            try:
                handle = job.input_path.open("rb")
            except OSError as exc:
                raise IoOpenError(f"Failed to open file: {exc}") from exc
            try:
                job.total_bytes = _file_size(handle)
            except IoMetadataError:
                handle.close()
                raise
            reader = CountingReader(handle, job.counter, job.total_bytes)
            LOG.info("Converting %s (%d bytes)", job.input_path, job.total_bytes)

            with reader:
                self._enter(JobState.PROBING)
                with probe_source(reader, self.config.format_hint) as demuxer:
                    track = select_track(demuxer.tracks)
                    sample_rate = track.descriptor.require_sample_rate()
                    decoder = make_decoder(track)
                    LOG.info(
                        "Selected track #%d (%s, %d ch, %d Hz) from %s container",
                        track.track_id,
                        track.codec,
                        track.descriptor.channel_count,
                        sample_rate,
                        demuxer.format_name,
                    )

                    sink = WaveformSink(job.output_path, sample_rate)
                    tracker.start(job.total_bytes)
                    tracker.status(START_STATUS)

                    self._enter(JobState.DECODING)
                    self._decode_loop(demuxer, decoder, track.track_id, sink, tracker, _check_cancel)

                    self._enter(JobState.FINALIZING)
                    sink.finalize()

            packets = tracker.packets
            LOG.info(
                "Wrote %d mono frames to %s (%d packets)",
                sink.frames_written,
                job.output_path,
                packets,
            )
            tracker.status(f"Conversion complete. Total packets: {packets}")
            self._enter(JobState.SUCCEEDED)
            return ConversionResult(
                output_path=job.output_path,
                track=track.descriptor,
                packets=packets,
                frames_written=sink.frames_written,
                bytes_read=job.bytes_read,
                total_bytes=job.total_bytes,
            )
        except ConversionCancelled:
            self._enter(JobState.CANCELLED)
            if sink is not None:
                sink.discard()
            raise
        except Exception as exc:
            self._enter(JobState.FAILED)
            LOG.info("Conversion failed (%s): %s", getattr(exc, "kind", type(exc).__name__), exc)
            if sink is not None and not sink.finalized:
                sink.discard()
            raise
        finally:
            tracker.close()

    def _decode_loop(
        self,
        demuxer: Demuxer,
        decoder: Decoder,
        track_id: int,
        sink: WaveformSink,
        tracker: ProgressTracker,
        check_cancel,
    ) -> None:
        while True:
            check_cancel(f"packet {tracker.packets + 1}")
            try:
                packet = demuxer.next_packet()
            except StreamReset as exc:
                LOG.debug("Demuxer requested a retry: %s", exc)
                continue
            except DemuxError as exc:
                LOG.warning("Stopping at packet %d after read error: %s", tracker.packets, exc)
                break
            if packet is None:
                break
            if packet.track_id != track_id:
                continue

            tracker.packet()
            for buffer in decoder.decode(packet):
                sink.write(downmix(buffer))


def _file_size(handle) -> int:
    try:
        return os.fstat(handle.fileno()).st_size
    except OSError as exc:
        raise IoMetadataError(f"Failed to get file metadata: {exc}") from exc
