"""Build a file-system image holding a root directory and a set of files."""

from __future__ import annotations

import os
import struct
import sys
from pathlib import Path

from .disk import MemDisk
from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    DiskInode,
    Dirent,
    InodeType,
    Superblock,
    inode_block,
)
from .log import LOGSIZE

FSSIZE = 1000
NINODES = 200

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class ImageBuilder:
    """Lays out a fresh image: boot, superblock, log, inodes, bitmap, data."""

    def __init__(self, fssize: int = FSSIZE, ninodes: int = NINODES, nlog: int = LOGSIZE):
        self.fssize = fssize
        self.ninodes = ninodes
        self.nlog = nlog
        self.nbitmap = fssize // BPB + 1
        self.ninodeblocks = ninodes // IPB + 1
        self.nmeta = 2 + nlog + self.ninodeblocks + self.nbitmap
        self.nblocks = fssize - self.nmeta
        if self.nblocks <= 0:
            raise ValueError("image too small for its metadata")
        self.sb = Superblock(
            size=fssize,
            nblocks=self.nblocks,
            ninodes=ninodes,
            nlog=nlog,
            logstart=2,
            inodestart=2 + nlog,
            bmapstart=2 + nlog + self.ninodeblocks,
        )
        self.disk = MemDisk(nblocks=fssize)
        self.freeinode = 1
        self.freeblock = self.nmeta
        self._finished = False
        self.disk.write_block(1, self.sb.pack().ljust(BSIZE, b"\0"))

        self.root = self.ialloc(InodeType.DIR)
        if self.root != ROOTINO:
            raise RuntimeError("root directory did not get the root inode number")
        for name in (".", ".."):
            self.iappend(self.root, Dirent(self.root, name).pack())

    def _rinode(self, inum: int) -> DiskInode:
        block = self.disk.read_block(inode_block(inum, self.sb))
        off = (inum % IPB) * DINODE_SIZE
        return DiskInode.unpack(block[off:off + DINODE_SIZE])

    def _winode(self, inum: int, din: DiskInode) -> None:
        bn = inode_block(inum, self.sb)
        block = bytearray(self.disk.read_block(bn))
        off = (inum % IPB) * DINODE_SIZE
        block[off:off + DINODE_SIZE] = din.pack()
        self.disk.write_block(bn, bytes(block))

    def _alloc_block(self) -> int:
        if self.freeblock >= self.fssize:
            raise ValueError("image out of blocks")
        blockno = self.freeblock
        self.freeblock += 1
        return blockno

    def ialloc(self, type: InodeType) -> int:
        """Allocate the next inode with the given type and one link."""
        if self.freeinode >= self.ninodes:
            raise ValueError("image out of inodes")
        inum = self.freeinode
        self.freeinode += 1
        self._winode(inum, DiskInode(type=int(type), nlink=1))
        return inum

    def iappend(self, inum: int, data: bytes) -> None:
        """Append ``data`` to the end of inode ``inum``, allocating blocks."""
        din = self._rinode(inum)
        off = din.size
        view = memoryview(bytes(data))
        pos = 0
        while pos < len(view):
            fbn = off // BSIZE
            if fbn >= MAXFILE:
                raise ValueError("file too large")
            if fbn < NDIRECT:
                if din.addrs[fbn] == 0:
                    din.addrs[fbn] = self._alloc_block()
                x = din.addrs[fbn]
            else:
                if din.addrs[NDIRECT] == 0:
                    din.addrs[NDIRECT] = self._alloc_block()
                ind = din.addrs[NDIRECT]
                indirect = list(_INDIRECT.unpack(self.disk.read_block(ind)))
                if indirect[fbn - NDIRECT] == 0:
                    indirect[fbn - NDIRECT] = self._alloc_block()
                    self.disk.write_block(ind, _INDIRECT.pack(*indirect))
                x = indirect[fbn - NDIRECT]
            n1 = min(len(view) - pos, (fbn + 1) * BSIZE - off)
            block = bytearray(self.disk.read_block(x))
            start = off - fbn * BSIZE
            block[start:start + n1] = view[pos:pos + n1]
            self.disk.write_block(x, bytes(block))
            pos += n1
            off += n1
        din.size = off
        self._winode(inum, din)

    def add_file(self, name: str, data: bytes) -> int:
        """Add a file to the root directory; a leading '_' is dropped from its name."""
        if self._finished:
            raise ValueError("image already finished")
        if "/" in name:
            raise ValueError(f"file name must not contain '/': {name}")
        if name.startswith("_"):
            name = name[1:]
        inum = self.ialloc(InodeType.FILE)
        self.iappend(self.root, Dirent(inum, name).pack())
        self.iappend(inum, data)
        return inum

    def finish(self) -> bytes:
        """Round the root directory up to a block, write the bitmap, return the image."""
        if self._finished:
            raise ValueError("image already finished")
        self._finished = True
        din = self._rinode(self.root)
        din.size = (din.size // BSIZE + 1) * BSIZE
        self._winode(self.root, din)

        used = self.freeblock
        if used >= BPB:
            raise ValueError("too many blocks in use for one bitmap block")
        bitmap = bytearray(BSIZE)
        full, rem = divmod(used, 8)
        bitmap[:full] = b"\xff" * full
        if rem:
            bitmap[full] = (1 << rem) - 1
        self.disk.write_block(self.sb.bmapstart, bytes(bitmap))
        return self.disk.image()


def build_image(
    path: str | os.PathLike,
    files,
    fssize: int = FSSIZE,
    ninodes: int = NINODES,
    nlog: int = LOGSIZE,
) -> ImageBuilder:
    """Write an image holding ``files`` (names without '/') to ``path``.

    Returns the finished builder, which records the layout used.
    """
    builder = ImageBuilder(fssize, ninodes, nlog)
    for f in files:
        name = os.fspath(f)
        if "/" in name:
            raise ValueError(f"file name must not contain '/': {name}")
        builder.add_file(name, Path(name).read_bytes())
    Path(path).write_bytes(builder.finish())
    return builder


def main(argv=None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        sys.stderr.write("Usage: mkfs fs.img files...\n")
        return 1
    image, *files = args
    try:
        builder = build_image(image, files)
    except OSError as exc:
        sys.stderr.write(f"{exc.filename}: {exc.strerror}\n")
        return 1
    except ValueError as exc:
        sys.stderr.write(f"mkfs: {exc}\n")
        return 1
    print(
        f"nmeta {builder.nmeta} (boot, super, log blocks {builder.nlog} "
        f"inode blocks {builder.ninodeblocks}, bitmap blocks {builder.nbitmap}) "
        f"blocks {builder.nblocks} total {builder.fssize}"
    )
    print(f"balloc: first {builder.freeblock} blocks have been allocated")
    print(f"balloc: write bitmap block at sector {builder.sb.bmapstart}")
    return 0