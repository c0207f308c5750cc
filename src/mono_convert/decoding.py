from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import numpy as np
from av.error import FFmpegError

from .errors import DecodeError, UnsupportedCodec
from .probe import EncodedPacket, TrackInfo

LOG = logging.getLogger(__name__)


class SampleFormat(str, Enum):
    """Sample representation carried by a decoded buffer."""

    U8 = "u8"
    U16 = "u16"
    U24 = "u24"
    U32 = "u32"
    S8 = "s8"
    S16 = "s16"
    S24 = "s24"
    S32 = "s32"
    F32 = "f32"
    F64 = "f64"


# FFmpeg sample format names (packed variants) to buffer representation.
_FFMPEG_FORMATS: dict[str, SampleFormat] = {
    "u8": SampleFormat.U8,
    "s16": SampleFormat.S16,
    "s32": SampleFormat.S32,
    "flt": SampleFormat.F32,
    "dbl": SampleFormat.F64,
}


@dataclass(slots=True)
class DecodedBuffer:
    """Planar samples for one decoded frame: ``planes`` is (channels, frames)."""

    kind: SampleFormat
    planes: np.ndarray
    frames: int

    @property
    def channels(self) -> int:
        return int(self.planes.shape[0])


class Decoder:
    """Stateful decoder bound to one track's codec."""

    def __init__(self, track: TrackInfo, context: Any):
        self.track = track
        self._context = context
        self.codec = track.codec

    def decode(self, packet: EncodedPacket) -> list[DecodedBuffer]:
        """Decode one packet into zero or more buffers.

        Codecs with decoder delay return nothing for their first packets; the
        end-of-stream flush packet drains whatever is still queued.
        """
        try:
            frames = self._context.decode(packet.raw)
        except FFmpegError as exc:
            raise DecodeError(f"Decode error: {exc}") from exc
        return [self._to_buffer(frame) for frame in frames]

    def _to_buffer(self, frame: Any) -> DecodedBuffer:
        fmt = frame.format
        name = fmt.name[:-1] if fmt.is_planar else fmt.name
        kind = _FFMPEG_FORMATS.get(name)
        if kind is None:
            raise DecodeError(f"Decode error: unsupported sample format '{fmt.name}'")
        if kind is SampleFormat.S32 and self.track.descriptor.bit_depth == 24:
            kind = SampleFormat.S24
        channels = len(frame.layout.channels)
        data = frame.to_ndarray()
        if fmt.is_planar:
            planes = data.reshape(channels, -1)
        else:
            planes = data.reshape(-1, channels).T
        return DecodedBuffer(kind=kind, planes=planes, frames=int(frame.samples))


def make_decoder(track: TrackInfo) -> Decoder:
    """Create a decoder for ``track`` or raise ``UnsupportedCodec``."""
    context = getattr(track.stream, "codec_context", None)
    if track.is_null or context is None:
        raise UnsupportedCodec(f"Unsupported codec: {track.codec}")
    if not getattr(context, "is_decoder", True):
        raise UnsupportedCodec(f"Unsupported codec: no decoder for {track.codec}")
    LOG.debug(
        "Decoding track #%d with %s (%d ch, %s Hz, %d-bit)",
        track.track_id,
        track.codec,
        track.descriptor.channel_count,
        track.descriptor.sample_rate,
        track.descriptor.bit_depth,
    )
    return Decoder(track, context)
