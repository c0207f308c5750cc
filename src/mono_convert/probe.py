from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, BinaryIO

import av
from av.error import FFmpegError

from .errors import (
    DemuxError,
    IoOpenError,
    NoSupportedTrack,
    StreamReset,
    UnknownSampleRate,
    UnsupportedFormat,
)

LOG = logging.getLogger(__name__)

NULL_CODEC = "null"
DEFAULT_BIT_DEPTH = 16
_PCM_DEPTH = re.compile(r"pcm_[suf](\d+)")
FLAC_STREAMINFO_SIZE = 34


@dataclass(frozen=True, slots=True)
class AudioTrackDescriptor:
    """Audio parameters of one track, fixed at probe time."""

    channel_count: int
    sample_rate: int | None
    bit_depth: int
    total_frames: int | None = None

    @property
    def duration(self) -> float | None:
        if self.total_frames is None or not self.sample_rate:
            return None
        return self.total_frames / self.sample_rate

    def require_sample_rate(self) -> int:
        if not self.sample_rate:
            raise UnknownSampleRate("Unknown sample rate")
        return self.sample_rate


@dataclass(slots=True)
class TrackInfo:
    track_id: int
    kind: str
    codec: str
    descriptor: AudioTrackDescriptor
    stream: Any = field(default=None, repr=False, compare=False)

    @property
    def is_null(self) -> bool:
        return self.codec == NULL_CODEC


@dataclass(frozen=True, slots=True)
class EncodedPacket:
    """One demuxed packet tagged with the track it belongs to."""

    track_id: int
    size: int
    raw: Any = field(repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class AudioInfo:
    channels: int
    sample_rate: int
    bits_per_sample: int
    duration_seconds: float | None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class Demuxer:
    """Pull-based packet reader over a probed container."""

    def __init__(self, container: Any):
        self._container = container
        self._packets: Iterator[Any] | None = None
        self._exhausted = False
        self.tracks: list[TrackInfo] = [_describe_stream(stream) for stream in container.streams]

    def __enter__(self) -> Demuxer:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def format_name(self) -> str:
        fmt = getattr(self._container, "format", None)
        return getattr(fmt, "name", "unknown") or "unknown"

    def next_packet(self) -> EncodedPacket | None:
        """Return the next packet of any track, or ``None`` once the stream ends.

        Raises ``StreamReset`` when FFmpeg asks for the read to be retried and
        ``DemuxError`` for any other read failure.
        """
        if self._exhausted:
            return None
        if self._packets is None:
            self._packets = iter(self._container.demux())
        try:
            packet = next(self._packets)
        except StopIteration:
            self._exhausted = True
            return None
        except BlockingIOError as exc:
            # The demux generator is finished after raising; the next pull
            # resumes from the container's current read position.
            self._packets = None
            raise StreamReset(str(exc)) from exc
        except (FFmpegError, OSError) as exc:
            self._exhausted = True
            raise DemuxError(str(exc)) from exc
        return EncodedPacket(track_id=packet.stream.index, size=packet.size, raw=packet)

    def close(self) -> None:
        if self._container is not None:
            self._container.close()
            self._container = None
        self._packets = None
        self._exhausted = True


def probe_source(source: BinaryIO | str | Path, hint: str | None = None) -> Demuxer:
    """Identify the container format of ``source`` from its content."""
    target = str(source) if isinstance(source, Path) else source
    try:
        container = av.open(target, mode="r", format=hint or None)
    except (FFmpegError, ValueError) as exc:
        raise UnsupportedFormat(f"Unsupported format: {exc}") from exc
    try:
        demuxer = Demuxer(container)
    except Exception:
        container.close()
        raise
    LOG.debug(
        "Probed %s container with %d track(s): %s",
        demuxer.format_name,
        len(demuxer.tracks),
        ", ".join(f"#{t.track_id} {t.kind}/{t.codec}" for t in demuxer.tracks) or "none",
    )
    return demuxer


def select_track(tracks: Iterable[TrackInfo]) -> TrackInfo:
    """Pick the first audio track with a real codec."""
    for track in tracks:
        if track.kind == "audio" and not track.is_null:
            return track
    raise NoSupportedTrack("No supported audio tracks")


def inspect_audio(path: Path, *, hint: str | None = None) -> AudioInfo:
    """Probe ``path`` and report the selected track's audio parameters."""
    try:
        handle = Path(path).open("rb")
    except OSError as exc:
        raise IoOpenError(f"Failed to open file: {exc}") from exc
    with handle, probe_source(handle, hint) as demuxer:
        track = select_track(demuxer.tracks)
        descriptor = track.descriptor
        sample_rate = descriptor.require_sample_rate()
        return AudioInfo(
            channels=descriptor.channel_count,
            sample_rate=sample_rate,
            bits_per_sample=descriptor.bit_depth,
            duration_seconds=descriptor.duration,
        )


def _describe_stream(stream: Any) -> TrackInfo:
    ctx = getattr(stream, "codec_context", None)
    codec = (getattr(ctx, "name", None) or NULL_CODEC) if ctx is not None else NULL_CODEC
    if stream.type != "audio" or ctx is None:
        descriptor = AudioTrackDescriptor(
            channel_count=0,
            sample_rate=None,
            bit_depth=DEFAULT_BIT_DEPTH,
        )
        return TrackInfo(
            track_id=stream.index,
            kind=stream.type,
            codec=codec,
            descriptor=descriptor,
            stream=stream,
        )
    sample_rate = int(ctx.sample_rate or 0) or None
    descriptor = AudioTrackDescriptor(
        channel_count=int(ctx.channels or 0),
        sample_rate=sample_rate,
        bit_depth=_bit_depth(ctx),
        total_frames=_total_frames(stream, sample_rate),
    )
    return TrackInfo(
        track_id=stream.index,
        kind=stream.type,
        codec=codec,
        descriptor=descriptor,
        stream=stream,
    )


def _bit_depth(ctx: Any) -> int:
    """Coded sample width from the PCM codec name or the FLAC STREAMINFO block."""
    name = ctx.name or ""
    match = _PCM_DEPTH.match(name)
    if match:
        return int(match.group(1))
    if name == "flac":
        return _flac_bit_depth(ctx.extradata) or DEFAULT_BIT_DEPTH
    return DEFAULT_BIT_DEPTH


def _flac_bit_depth(extradata: bytes | None) -> int | None:
    if not extradata:
        return None
    if extradata[:4] == b"fLaC":
        # Full stream header: magic plus the metadata block header.
        extradata = extradata[8:]
    if len(extradata) < FLAC_STREAMINFO_SIZE:
        return None
    # 5-bit (bits per sample - 1) straddling bytes 12 and 13.
    return (((extradata[12] & 0x01) << 4) | (extradata[13] >> 4)) + 1


def _total_frames(stream: Any, sample_rate: int | None) -> int | None:
    if not sample_rate or stream.duration is None or stream.time_base is None:
        return None
    return max(0, int(round(float(stream.duration * stream.time_base) * sample_rate)))
