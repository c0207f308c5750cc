from __future__ import annotations

import io
import os
import threading
from typing import BinaryIO


class ByteCounter:
    """Thread-safe running total of bytes read from a source."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0

    def add(self, amount: int) -> None:
        if amount <= 0:
            return
        with self._lock:
            self._value += amount

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


class CountingReader(io.RawIOBase):
    """Seekable binary reader that tallies every byte handed to the consumer.

    Progress is derived from read volume, not position: seeks are forwarded
    untouched, so decoders that seek backwards may push the tally past
    ``total_length``.
    """

    def __init__(self, inner: BinaryIO, counter: ByteCounter, total_length: int):
        super().__init__()
        self._inner = inner
        self.counter = counter
        self.total_length = int(total_length)

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        data = self._inner.read(size)
        if data:
            self.counter.add(len(data))
        return data

    def readinto(self, buffer) -> int:
        data = self.read(len(buffer))
        count = len(data)
        buffer[:count] = data
        return count

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        return self._inner.seek(offset, whence)

    def tell(self) -> int:
        return self._inner.tell()

    def close(self) -> None:
        if not self.closed:
            try:
                self._inner.close()
            finally:
                super().close()

    @property
    def bytes_read(self) -> int:
        return self.counter.value
