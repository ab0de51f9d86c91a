"""Open files: reference-counted handles on pipes and inodes."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum

from .fs import FsError, Inode
from .layout import BSIZE
from .pipe import Pipe

NFILE = 100


class FileType(Enum):
    """What an open file refers to."""

    NONE = 0
    PIPE = 1
    INODE = 2


@dataclass(eq=False)
class OpenFile:
    """An open file: a pipe end or an inode with a current offset."""

    type: FileType = FileType.NONE
    ref: int = 0
    readable: bool = False
    writable: bool = False
    pipe: Pipe | None = None
    ip: Inode | None = None
    off: int = 0

    def stat(self):
        """Return the inode's dev, ino, type, nlink and size."""
        if self.type is not FileType.INODE or self.ip is None:
            raise FsError("stat of a file that is not an inode")
        with self.ip:
            return self.ip.stat()

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, advancing the offset of an inode file."""
        if not self.readable:
            raise FsError("file not open for reading")
        if self.type is FileType.PIPE:
            return self.pipe.read(n)
        if self.type is FileType.INODE:
            with self.ip:
                data = self.ip.read(self.off, n)
                self.off += len(data)
            return data
        raise FsError("fileread")

    def write(self, data: bytes) -> int:
        """Write all of ``data``; inode writes go a few blocks per transaction."""
        if not self.writable:
            raise FsError("file not open for writing")
        data = bytes(data)
        if self.type is FileType.PIPE:
            return self.pipe.write(data)
        if self.type is FileType.INODE:
            fs = self.ip.fs
            # Room for the inode, an indirect block, allocation blocks and
            # two blocks of slop for unaligned writes.
            chunk_max = ((fs.log.maxopblocks - 1 - 1 - 2) // 2) * BSIZE
            for start in range(0, len(data), chunk_max):
                chunk = data[start:start + chunk_max]
                with fs.log.transaction():
                    with self.ip:
                        written = self.ip.write(chunk, self.off)
                        self.off += written
                if written != len(chunk):
                    raise FsError("short filewrite")
            return len(data)
        raise FsError("filewrite")


class FileTable:
    """A fixed pool of open-file slots shared by everyone."""

    def __init__(self, nfile: int = NFILE):
        if nfile < 1:
            raise ValueError("the file table needs at least one slot")
        self._lock = threading.Lock()
        self._files = [OpenFile() for _ in range(nfile)]

    def alloc(self) -> OpenFile:
        """Return a free slot with one reference."""
        with self._lock:
            for f in self._files:
                if f.ref == 0:
                    f.ref = 1
                    return f
        raise FsError("filealloc: file table full")

    def dup(self, f: OpenFile) -> OpenFile:
        """Add a reference to ``f`` and return it."""
        with self._lock:
            if f.ref < 1:
                raise FsError("filedup")
            f.ref += 1
        return f

    def close(self, f: OpenFile) -> None:
        """Drop a reference; the last one closes the pipe end or releases the inode."""
        with self._lock:
            if f.ref < 1:
                raise FsError("fileclose")
            f.ref -= 1
            if f.ref > 0:
                return
            kind, pipe, ip, writable = f.type, f.pipe, f.ip, f.writable
            f.type = FileType.NONE
            f.pipe = None
            f.ip = None
            f.readable = False
            f.writable = False
            f.off = 0
        if kind is FileType.PIPE:
            pipe.close(writable)
        elif kind is FileType.INODE:
            with ip.fs.log.transaction():
                ip.fs.put(ip)