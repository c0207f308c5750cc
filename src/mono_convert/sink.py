from __future__ import annotations

import contextlib
import logging
from pathlib import Path

import numpy as np
import soundfile as sf

from .errors import FinalizeError, OutputCreateError, WriteError

LOG = logging.getLogger(__name__)


class WaveformSink:
    """Stream int16 mono samples into a PCM_16 WAV file."""

    channels = 1
    subtype = "PCM_16"

    def __init__(self, output_path: Path, sample_rate: int):
        self.output_path = Path(output_path)
        self.sample_rate = int(sample_rate)
        self.frames_written = 0
        self._finalized = False
        try:
            self._file: sf.SoundFile | None = sf.SoundFile(
                self.output_path,
                mode="w",
                samplerate=self.sample_rate,
                channels=self.channels,
                subtype=self.subtype,
                format="WAV",
            )
        except (sf.SoundFileError, RuntimeError, OSError, ValueError) as exc:
            raise OutputCreateError(f"Failed to create WAV file: {exc}") from exc

    @property
    def finalized(self) -> bool:
        return self._finalized

    def write(self, samples: np.ndarray) -> None:
        if self._file is None:
            raise WriteError("Write error: sink is closed")
        if samples.size == 0:
            return
        try:
            self._file.write(np.asarray(samples, dtype=np.int16))
        except (sf.SoundFileError, RuntimeError, OSError) as exc:
            raise WriteError(f"Write error: {exc}") from exc
        self.frames_written += int(samples.size)

    def finalize(self) -> None:
        """Flush the header and close the file; call once after the last write."""
        if self._file is None:
            raise FinalizeError("Finalize error: sink is already closed")
        handle, self._file = self._file, None
        try:
            handle.close()
        except (sf.SoundFileError, RuntimeError, OSError) as exc:
            raise FinalizeError(f"Finalize error: {exc}") from exc
        self._finalized = True
        LOG.debug("Finalized %s with %d frames", self.output_path, self.frames_written)

    def discard(self) -> None:
        """Close without keeping the output and remove the partial file."""
        if self._file is not None:
            with contextlib.suppress(Exception):
                self._file.close()
            self._file = None
        try:
            self.output_path.unlink(missing_ok=True)
        except OSError:
            LOG.warning("Failed to remove partial output %s", self.output_path)
