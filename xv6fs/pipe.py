"""A bounded in-memory pipe with blocking reads and writes."""

from __future__ import annotations

import threading

PIPESIZE = 512


class PipeClosedError(Exception):
    """Raised when writing to a full pipe whose read end is closed."""


class Pipe:
    """A byte pipe holding at most PIPESIZE unread bytes."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._data = bytearray()
        self.readopen = True
        self.writeopen = True

    def write(self, data: bytes) -> int:
        """Write all of ``data``, waiting for room; return the count written."""
        view = memoryview(bytes(data))
        pos = 0
        with self._cond:
            while pos < len(view):
                while len(self._data) == PIPESIZE:
                    if not self.readopen:
                        raise PipeClosedError("pipe read end is closed")
                    self._cond.notify_all()
                    self._cond.wait()
                take = min(PIPESIZE - len(self._data), len(view) - pos)
                self._data += view[pos:pos + take]
                pos += take
            self._cond.notify_all()
        return len(view)

    def read(self, n: int) -> bytes:
        """Wait for data, then return up to ``n`` bytes; b"" once writers are gone."""
        if n < 0:
            raise ValueError("read size must not be negative")
        with self._cond:
            while not self._data and self.writeopen:
                self._cond.wait()
            chunk = bytes(self._data[:n])
            del self._data[:n]
            self._cond.notify_all()
            return chunk

    def close(self, writable: bool) -> None:
        """Close the write end if ``writable`` is true, else the read end."""
        with self._cond:
            if writable:
                self.writeopen = False
            else:
                self.readopen = False
            self._cond.notify_all()