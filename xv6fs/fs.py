"""Inodes, directories and path names on top of the buffer cache and log.

An inode is obtained with ``FileSystem.iget`` (or ``ialloc``/``namei``),
locked with ``with ip:`` while its fields or contents are examined, and
given back with ``FileSystem.put``.  Any operation that may modify the
disk, including ``put`` of an unlinked inode, must run inside a log
transaction.
"""

from __future__ import annotations

import struct
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterator, NamedTuple

from .bufcache import NBUF, Buffer, BufferCache
from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
    DIRSIZ,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    DiskInode,
    Dirent,
    InodeType,
    Superblock,
    bitmap_block,
    inode_block,
)
from .log import Log

NINODE = 50
NDEV = 10
ROOTDEV = 1

_ADDR = struct.Struct("<I")

DeviceRead = Callable[["Inode", int], bytes]
DeviceWrite = Callable[["Inode", bytes], int]


class FsError(Exception):
    """Raised when a file-system operation cannot be carried out."""


class _Stat(NamedTuple):
    dev: int
    ino: int
    type: int
    nlink: int
    size: int


class _Device(NamedTuple):
    read: DeviceRead | None
    write: DeviceWrite | None


def _name_key(name: str) -> bytes:
    raw = name.encode("utf-8", "surrogateescape")[:DIRSIZ]
    return raw.split(b"\0", 1)[0]


def skipelem(path: str) -> tuple[str, str] | None:
    """Split off the first element of ``path``.

    Returns ``(name, rest)`` where ``rest`` has no leading slashes, or
    None if the path holds no element.  Names are cut to DIRSIZ bytes.
    """
    stripped = path.lstrip("/")
    if not stripped:
        return None
    elem, _, tail = stripped.partition("/")
    raw = elem.encode("utf-8", "surrogateescape")[:DIRSIZ]
    return raw.decode("utf-8", "surrogateescape"), tail.lstrip("/")


@dataclass(eq=False)
class Inode:
    """In-memory copy of an inode; lock it with ``with ip:`` before use."""

    fs: FileSystem = field(repr=False)
    inum: int = 0
    ref: int = 0
    valid: bool = False
    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))
    holder: int | None = field(default=None, repr=False)

    def __enter__(self) -> Inode:
        self.fs._ilock(self)
        return self

    def __exit__(self, *exc) -> None:
        self.fs._iunlock(self)

    def _check_held(self, operation: str) -> None:
        if self.holder != threading.get_ident():
            raise FsError(f"{operation}: inode {self.inum} not locked")

    def _device(self) -> _Device:
        dev = self.fs._devsw.get(self.major)
        if dev is None:
            raise FsError(f"no device with major number {self.major}")
        return dev

    def read(self, off: int, n: int) -> bytes:
        """Read up to ``n`` bytes starting at ``off``; short at end of file."""
        self._check_held("readi")
        if n < 0 or off < 0:
            raise ValueError("offset and count must not be negative")
        if self.type == InodeType.DEV:
            dev = self._device()
            if dev.read is None:
                raise FsError(f"device {self.major} cannot be read")
            return bytes(dev.read(self, n))
        if off > self.size:
            raise FsError(f"read offset {off} beyond end of file ({self.size})")
        n = min(n, self.size - off)
        out = bytearray()
        while len(out) < n:
            pos = off + len(out)
            with self.fs._block(self._bmap(pos // BSIZE)) as bp:
                start = pos % BSIZE
                m = min(n - len(out), BSIZE - start)
                out += bp.data[start:start + m]
        return bytes(out)

    def write(self, data: bytes, off: int) -> int:
        """Write ``data`` at ``off``, growing the file; return the count written."""
        self._check_held("writei")
        if off < 0:
            raise ValueError("offset must not be negative")
        data = bytes(data)
        if self.type == InodeType.DEV:
            dev = self._device()
            if dev.write is None:
                raise FsError(f"device {self.major} cannot be written")
            return dev.write(self, data)
        n = len(data)
        if off > self.size:
            raise FsError(f"write offset {off} beyond end of file ({self.size})")
        if off + n > MAXFILE * BSIZE:
            raise FsError("write would exceed the maximum file size")
        done = 0
        while done < n:
            pos = off + done
            with self.fs._block(self._bmap(pos // BSIZE)) as bp:
                start = pos % BSIZE
                m = min(n - done, BSIZE - start)
                bp.data[start:start + m] = data[done:done + m]
                self.fs.log.log_write(bp)
            done += m
        end = off + n
        if n > 0 and end > self.size:
            self.size = end
            self.update()
        return n

    def update(self) -> None:
        """Copy the in-memory inode to its disk block through the log."""
        self._check_held("iupdate")
        din = DiskInode(self.type, self.major, self.minor, self.nlink, self.size, list(self.addrs))
        with self.fs._block(inode_block(self.inum, self.fs.sb)) as bp:
            off = (self.inum % IPB) * DINODE_SIZE
            bp.data[off:off + DINODE_SIZE] = din.pack()
            self.fs.log.log_write(bp)

    def stat(self) -> _Stat:
        """Return dev, ino, type, nlink and size of the inode."""
        self._check_held("stati")
        return _Stat(ROOTDEV, self.inum, self.type, self.nlink, self.size)

    def _bmap(self, bn: int) -> int:
        """Disk block holding block ``bn`` of the file, allocating it if absent."""
        if bn < NDIRECT:
            if self.addrs[bn] == 0:
                self.addrs[bn] = self.fs._balloc()
            return self.addrs[bn]
        bn -= NDIRECT
        if bn < NINDIRECT:
            if self.addrs[NDIRECT] == 0:
                self.addrs[NDIRECT] = self.fs._balloc()
            with self.fs._block(self.addrs[NDIRECT]) as bp:
                (addr,) = _ADDR.unpack_from(bp.data, bn * _ADDR.size)
                if addr == 0:
                    addr = self.fs._balloc()
                    _ADDR.pack_into(bp.data, bn * _ADDR.size, addr)
                    self.fs.log.log_write(bp)
            return addr
        raise FsError("bmap: out of range")

    def _truncate(self) -> None:
        """Free every data block of the inode and set its size to zero."""
        for i, addr in enumerate(self.addrs[:NDIRECT]):
            if addr:
                self.fs._bfree(addr)
                self.addrs[i] = 0
        if self.addrs[NDIRECT]:
            with self.fs._block(self.addrs[NDIRECT]) as bp:
                addrs = struct.unpack_from(f"<{NINDIRECT}I", bp.data)
            for addr in addrs:
                if addr:
                    self.fs._bfree(addr)
            self.fs._bfree(self.addrs[NDIRECT])
            self.addrs[NDIRECT] = 0
        self.size = 0
        self.update()


class FileSystem:
    """A mounted file system: inode cache, block allocator and name lookup."""

    def __init__(self, disk, nbuf: int = NBUF, ninode: int = NINODE):
        if ninode < 1:
            raise ValueError("the inode cache needs at least one entry")
        self.disk = disk
        self.cache = BufferCache(disk, nbuf)
        with self._block(1) as bp:
            self.sb = Superblock.unpack(bytes(bp.data))
        self.log = Log(self.cache)
        self._icache = threading.Condition()
        self._inodes = [Inode(self) for _ in range(ninode)]
        self._devsw: dict[int, _Device] = {}

    @contextmanager
    def _block(self, blockno: int) -> Iterator[Buffer]:
        buf = self.cache.read(blockno)
        try:
            yield buf
        finally:
            self.cache.release(buf)

    def register_device(self, major: int, read: DeviceRead | None, write: DeviceWrite | None) -> None:
        """Route reads and writes of device inodes with ``major`` to these callables."""
        if not 0 <= major < NDEV:
            raise ValueError(f"major device number must be below {NDEV}")
        self._devsw[major] = _Device(read, write)

    # Blocks.

    def _bzero(self, blockno: int) -> None:
        with self._block(blockno) as bp:
            bp.data[:] = bytes(BSIZE)
            self.log.log_write(bp)

    def _claim_bit(self, bp: Buffer, base: int) -> int | None:
        for bi in range(min(BPB, self.sb.size - base)):
            mask = 1 << (bi % 8)
            if not bp.data[bi // 8] & mask:
                bp.data[bi // 8] |= mask
                self.log.log_write(bp)
                return base + bi
        return None

    def _balloc(self) -> int:
        """Allocate a zeroed disk block."""
        for base in range(0, self.sb.size, BPB):
            with self._block(bitmap_block(base, self.sb)) as bp:
                blockno = self._claim_bit(bp, base)
            if blockno is not None:
                self._bzero(blockno)
                return blockno
        raise FsError("balloc: out of blocks")

    def _bfree(self, blockno: int) -> None:
        with self._block(bitmap_block(blockno, self.sb)) as bp:
            bi = blockno % BPB
            mask = 1 << (bi % 8)
            if not bp.data[bi // 8] & mask:
                raise FsError(f"freeing free block {blockno}")
            bp.data[bi // 8] &= ~mask & 0xFF
            self.log.log_write(bp)

    # Inodes.

    def ialloc(self, type: InodeType) -> Inode:
        """Allocate a free on-disk inode of ``type``; return it referenced, unlocked."""
        for inum in range(1, self.sb.ninodes):
            with self._block(inode_block(inum, self.sb)) as bp:
                off = (inum % IPB) * DINODE_SIZE
                din = DiskInode.unpack(bytes(bp.data[off:off + DINODE_SIZE]))
                if din.type != InodeType.FREE:
                    continue
                bp.data[off:off + DINODE_SIZE] = DiskInode(type=int(type)).pack()
                self.log.log_write(bp)
            return self.iget(inum)
        raise FsError("ialloc: no inodes")

    def iget(self, inum: int) -> Inode:
        """Return the cached inode ``inum`` with one more reference; does not read it."""
        with self._icache:
            empty = None
            for ip in self._inodes:
                if ip.ref > 0 and ip.inum == inum:
                    ip.ref += 1
                    return ip
                if empty is None and ip.ref == 0:
                    empty = ip
            if empty is None:
                raise FsError("iget: no inodes")
            empty.inum = inum
            empty.ref = 1
            empty.valid = False
            return empty

    def idup(self, ip: Inode) -> Inode:
        """Add a reference to ``ip`` and return it."""
        with self._icache:
            ip.ref += 1
        return ip

    def _acquire(self, ip: Inode) -> None:
        me = threading.get_ident()
        with self._icache:
            while ip.holder is not None:
                if ip.holder == me:
                    raise FsError(f"inode {ip.inum} is already locked by this thread")
                self._icache.wait()
            ip.holder = me

    def _release(self, ip: Inode) -> None:
        with self._icache:
            ip.holder = None
            self._icache.notify_all()

    def _ilock(self, ip: Inode) -> None:
        if ip.ref < 1:
            raise FsError("ilock")
        self._acquire(ip)
        if ip.valid:
            return
        with self._block(inode_block(ip.inum, self.sb)) as bp:
            off = (ip.inum % IPB) * DINODE_SIZE
            din = DiskInode.unpack(bytes(bp.data[off:off + DINODE_SIZE]))
        ip.type, ip.major, ip.minor = din.type, din.major, din.minor
        ip.nlink, ip.size, ip.addrs = din.nlink, din.size, list(din.addrs)
        ip.valid = True
        if ip.type == InodeType.FREE:
            self._release(ip)
            raise FsError("ilock: no type")

    def _iunlock(self, ip: Inode) -> None:
        if ip.holder != threading.get_ident() or ip.ref < 1:
            raise FsError("iunlock")
        self._release(ip)

    def put(self, ip: Inode) -> None:
        """Drop a reference; the last one to an unlinked inode frees it on disk."""
        if ip.ref < 1:
            raise FsError("iput of an unreferenced inode")
        self._acquire(ip)
        try:
            if ip.valid and ip.nlink == 0:
                with self._icache:
                    last = ip.ref == 1
                if last:
                    ip._truncate()
                    ip.type = InodeType.FREE
                    ip.update()
                    ip.valid = False
        finally:
            self._release(ip)
        with self._icache:
            ip.ref -= 1

    # Directories.

    def _entries(self, dp: Inode) -> Iterator[tuple[int, Dirent]]:
        for off in range(0, dp.size, DIRENT_SIZE):
            raw = dp.read(off, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise FsError("dirlookup read")
            yield off, Dirent.unpack(raw)

    def dirlookup(self, dp: Inode, name: str) -> tuple[Inode, int] | None:
        """Find ``name`` in locked directory ``dp``; return (inode, offset) or None."""
        if dp.type != InodeType.DIR:
            raise FsError("dirlookup not DIR")
        key = _name_key(name)
        for off, de in self._entries(dp):
            if de.inum != 0 and _name_key(de.name) == key:
                return self.iget(de.inum), off
        return None

    def dirlink(self, dp: Inode, name: str, inum: int) -> None:
        """Add entry (``name``, ``inum``) to locked directory ``dp``."""
        found = self.dirlookup(dp, name)
        if found is not None:
            self.put(found[0])
            raise FsError(f"{name}: entry already exists")
        end = -(-dp.size // DIRENT_SIZE) * DIRENT_SIZE
        off = next((off for off, de in self._entries(dp) if de.inum == 0), end)
        dp.write(Dirent(inum, name).pack(), off)

    # Paths.

    def _namex(self, path: str, cwd: Inode | None, parent: bool) -> tuple[Inode, str] | None:
        if path.startswith("/") or cwd is None:
            ip = self.iget(ROOTINO)
        else:
            ip = self.idup(cwd)
        name = ""
        while (step := skipelem(path)) is not None:
            name, path = step
            with ip:
                if ip.type != InodeType.DIR:
                    found = None
                elif parent and not path:
                    # Stop one level early.
                    return ip, name
                else:
                    found = self.dirlookup(ip, name)
            self.put(ip)
            if found is None:
                return None
            ip = found[0]
        if parent:
            self.put(ip)
            return None
        return ip, name

    def namei(self, path: str, cwd: Inode | None = None) -> Inode | None:
        """Look up ``path``; relative paths start at ``cwd`` (root if None)."""
        found = self._namex(path, cwd, parent=False)
        return None if found is None else found[0]

    def nameiparent(self, path: str, cwd: Inode | None = None) -> tuple[Inode, str] | None:
        """Return the parent directory of ``path`` and the final element's name."""
        return self._namex(path, cwd, parent=True)