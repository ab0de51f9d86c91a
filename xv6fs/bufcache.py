"""Buffer cache: a fixed set of block buffers kept in most-recently-used order."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from .layout import BSIZE

NBUF = 30


class CacheError(Exception):
    """Raised when the cache is misused or has no buffer to give."""


@dataclass(eq=False)
class Buffer:
    """A cached copy of one disk block."""

    blockno: int | None = None
    data: bytearray = field(default_factory=lambda: bytearray(BSIZE))
    valid: bool = False
    dirty: bool = False
    refcnt: int = 0
    holder: int | None = field(default=None, repr=False)


class BufferCache:
    """Caches disk blocks; a buffer is held by one thread at a time."""

    def __init__(self, disk, nbuf: int = NBUF):
        if nbuf < 1:
            raise ValueError("the cache needs at least one buffer")
        self.disk = disk
        self._cond = threading.Condition()
        # Index 0 is the most recently used buffer.
        self._mru = [Buffer() for _ in range(nbuf)]

    def _get(self, blockno: int) -> Buffer:
        me = threading.get_ident()
        with self._cond:
            buf = next((b for b in self._mru if b.blockno == blockno), None)
            if buf is None:
                # A dirty buffer is pinned by the log even with no references.
                buf = next(
                    (b for b in reversed(self._mru) if b.refcnt == 0 and not b.dirty),
                    None,
                )
                if buf is None:
                    raise CacheError("bget: no buffers")
                buf.blockno = blockno
                buf.valid = False
                buf.dirty = False
                buf.refcnt = 0
            buf.refcnt += 1
            while buf.holder is not None:
                if buf.holder == me:
                    buf.refcnt -= 1
                    raise CacheError(f"block {blockno} is already held by this thread")
                self._cond.wait()
            buf.holder = me
            return buf

    def _check_held(self, buf: Buffer, operation: str) -> None:
        if buf.holder != threading.get_ident():
            raise CacheError(f"{operation}: buffer not held")

    def read(self, blockno: int) -> Buffer:
        """Return the held buffer for ``blockno``, reading it from disk if needed."""
        buf = self._get(blockno)
        if not buf.valid:
            try:
                buf.data[:] = self.disk.read_block(blockno)
            except Exception:
                self.release(buf)
                raise
            buf.valid = True
        return buf

    def write(self, buf: Buffer) -> None:
        """Write a held buffer's contents to disk."""
        self._check_held(buf, "bwrite")
        buf.dirty = True
        self.disk.write_block(buf.blockno, bytes(buf.data))
        buf.dirty = False
        buf.valid = True

    def release(self, buf: Buffer) -> None:
        """Give up a held buffer; an unreferenced one becomes most recently used."""
        self._check_held(buf, "brelse")
        with self._cond:
            buf.holder = None
            buf.refcnt -= 1
            if buf.refcnt == 0:
                self._mru.remove(buf)
                self._mru.insert(0, buf)
            self._cond.notify_all()