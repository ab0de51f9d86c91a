"""Write-ahead redo log that makes multi-block updates atomic.

The on-disk log is a header block listing block numbers, followed by
copies of those blocks.  A transaction commits when the header is
written with a non-zero count.  Recovery replays a committed log.
"""

from __future__ import annotations

import struct
import threading
from contextlib import contextmanager
from typing import Iterator

from .bufcache import Buffer, BufferCache
from .layout import BSIZE, Superblock

LOGSIZE = 30
MAXOPBLOCKS = 10

_COUNT = struct.Struct("<i")


class LogError(Exception):
    """Raised when the log is misused or its on-disk header is corrupt."""


class Log:
    """Groups the block writes of concurrent operations into one commit."""

    def __init__(
        self,
        cache: BufferCache,
        logsize: int = LOGSIZE,
        maxopblocks: int = MAXOPBLOCKS,
    ):
        if _COUNT.size * (1 + logsize) >= BSIZE:
            raise LogError("initlog: too big logheader")
        self.cache = cache
        self.logsize = logsize
        self.maxopblocks = maxopblocks
        with self._held(1) as buf:
            sb = Superblock.unpack(bytes(buf.data))
        self.start = sb.logstart
        self.size = sb.nlog
        self.outstanding = 0
        self.committing = False
        # Block numbers logged by the current transaction, in log order.
        self.blocks: list[int] = []
        self._cond = threading.Condition()
        self.recover()

    @contextmanager
    def _held(self, blockno: int) -> Iterator[Buffer]:
        buf = self.cache.read(blockno)
        try:
            yield buf
        finally:
            self.cache.release(buf)

    def _read_head(self) -> None:
        with self._held(self.start) as buf:
            (n,) = _COUNT.unpack_from(buf.data)
            if not 0 <= n <= self.logsize:
                raise LogError(f"corrupt log header: {n} blocks")
            self.blocks = list(struct.unpack_from(f"<{n}i", buf.data, _COUNT.size))

    def _write_head(self) -> None:
        """Write the in-memory header to disk: the point where a commit happens."""
        n = len(self.blocks)
        with self._held(self.start) as buf:
            struct.pack_into(f"<i{n}i", buf.data, 0, n, *self.blocks)
            self.cache.write(buf)

    def _install_trans(self) -> None:
        """Copy committed blocks from the log to their home locations."""
        for tail, blockno in enumerate(self.blocks):
            with self._held(self.start + tail + 1) as lbuf, self._held(blockno) as dbuf:
                dbuf.data[:] = lbuf.data
                self.cache.write(dbuf)

    def _write_log(self) -> None:
        """Copy modified blocks from the cache into the log area."""
        for tail, blockno in enumerate(self.blocks):
            with self._held(self.start + tail + 1) as to, self._held(blockno) as src:
                to.data[:] = src.data
                self.cache.write(to)

    def _commit(self) -> None:
        if self.blocks:
            self._write_log()
            self._write_head()
            self._install_trans()
            self.blocks = []
            self._write_head()

    def recover(self) -> None:
        """Replay any committed transaction found on disk, then clear the log."""
        self._read_head()
        self._install_trans()
        self.blocks = []
        self._write_head()

    def begin_op(self) -> None:
        """Start an operation, waiting while a commit runs or space is short."""
        with self._cond:
            while self.committing or (
                len(self.blocks) + (self.outstanding + 1) * self.maxopblocks
                > self.logsize
            ):
                self._cond.wait()
            self.outstanding += 1

    def end_op(self) -> None:
        """Finish an operation; the last one out commits the transaction."""
        with self._cond:
            if self.outstanding < 1:
                raise LogError("end_op outside of transaction")
            self.outstanding -= 1
            if self.committing:
                raise LogError("log.committing")
            do_commit = self.outstanding == 0
            if do_commit:
                self.committing = True
            else:
                self._cond.notify_all()
        if do_commit:
            try:
                self._commit()
            finally:
                with self._cond:
                    self.committing = False
                    self._cond.notify_all()

    def log_write(self, buf: Buffer) -> None:
        """Record a modified buffer in the transaction and pin it in the cache."""
        if len(self.blocks) >= self.logsize or len(self.blocks) >= self.size - 1:
            raise LogError("too big a transaction")
        if self.outstanding < 1:
            raise LogError("log_write outside of trans")
        with self._cond:
            if buf.blockno not in self.blocks:
                self.blocks.append(buf.blockno)
            buf.dirty = True

    @contextmanager
    def transaction(self) -> Iterator[Log]:
        """Run the enclosed block as one file-system operation."""
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()