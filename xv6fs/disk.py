"""A disk kept entirely in memory, addressed in BSIZE blocks."""

from __future__ import annotations

from .layout import BSIZE


class DiskError(Exception):
    """Raised for a request the disk cannot serve."""


class MemDisk:
    """In-memory block device built from an image or a block count."""

    def __init__(self, data: bytes | bytearray | None = None, nblocks: int | None = None):
        if data is not None and nblocks is not None:
            raise ValueError("give either an image or a block count, not both")
        if data is None:
            self._data = bytearray(BSIZE * (nblocks or 0))
        else:
            self._data = bytearray(data)
        self.nblocks = len(self._data) // BSIZE

    def _offset(self, blockno: int) -> int:
        if not 0 <= blockno < self.nblocks:
            raise DiskError(f"block {blockno} out of range")
        return blockno * BSIZE

    def read_block(self, blockno: int) -> bytes:
        off = self._offset(blockno)
        return bytes(self._data[off:off + BSIZE])

    def write_block(self, blockno: int, data: bytes) -> None:
        if len(data) != BSIZE:
            raise ValueError(f"a block is {BSIZE} bytes, got {len(data)}")
        off = self._offset(blockno)
        self._data[off:off + BSIZE] = data

    def image(self) -> bytes:
        return bytes(self._data)