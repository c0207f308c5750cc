"""
Channel averaging and int16 rescaling for decoded buffers.

Each sample representation is normalized with a ``(scale, offset)`` pair, the
channels are averaged in float32, and most formats are then stretched to the
int16 range by 32767. Signed 16-bit and signed 32-bit input skip that final
stretch: 16-bit samples are already at int16 scale and the 32-bit branch is
divided down to roughly that range instead. Output is bit-compatible with the
established converter, including that asymmetry.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .decoding import DecodedBuffer, SampleFormat

INT16_SCALE = np.float32(32767.0)
_INT16_MIN = -32768.0
_INT16_MAX = 32767.0


@dataclass(frozen=True, slots=True)
class Normalization:
    scale: float
    offset: float = 0.0
    rescale: bool = True

    def apply(self, plane: np.ndarray) -> np.ndarray:
        values = np.asarray(plane).astype(np.float32)
        if self.scale != 1.0:
            values = values / np.float32(self.scale)
        if self.offset:
            values = values - np.float32(self.offset)
        return values


NORMALIZATIONS: dict[SampleFormat, Normalization] = {
    SampleFormat.U8: Normalization(scale=128.0, offset=1.0),
    SampleFormat.U16: Normalization(scale=32768.0, offset=1.0),
    SampleFormat.U32: Normalization(scale=2147483648.0, offset=1.0),
    SampleFormat.S8: Normalization(scale=128.0),
    SampleFormat.S16: Normalization(scale=1.0, rescale=False),
    SampleFormat.S32: Normalization(scale=32768.0, rescale=False),
    SampleFormat.F32: Normalization(scale=1.0),
    SampleFormat.F64: Normalization(scale=1.0),
}

UNSUPPORTED_FORMATS = frozenset({SampleFormat.U24, SampleFormat.S24})


def to_int16(values: np.ndarray) -> np.ndarray:
    """Truncate toward zero and saturate to int16; NaN maps to 0."""
    cleaned = np.nan_to_num(
        np.asarray(values, dtype=np.float32),
        nan=0.0,
        posinf=_INT16_MAX,
        neginf=_INT16_MIN,
    )
    return np.clip(np.trunc(cleaned), _INT16_MIN, _INT16_MAX).astype(np.int16)


def downmix(buffer: DecodedBuffer) -> np.ndarray:
    """Average all channels of ``buffer`` into int16 mono samples.

    24-bit buffers yield an empty array.
    """
    if buffer.kind in UNSUPPORTED_FORMATS:
        return np.empty(0, dtype=np.int16)
    rule = NORMALIZATIONS[buffer.kind]
    frames = buffer.frames
    channels = buffer.channels
    if frames <= 0:
        return np.empty(0, dtype=np.int16)
    if channels == 0:
        return np.zeros(frames, dtype=np.int16)
    total = np.zeros(frames, dtype=np.float32)
    for plane in buffer.planes:
        total += rule.apply(plane[:frames])
    mono = total / np.float32(channels)
    if rule.rescale:
        mono = mono * INT16_SCALE
    return to_int16(mono)
