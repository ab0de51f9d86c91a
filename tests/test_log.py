import struct

import pytest

from xv6fs.bufcache import BufferCache
from xv6fs.disk import MemDisk
from xv6fs.layout import BSIZE, Superblock
from xv6fs.log import LOGSIZE, Log, LogError

LOGSTART = 2


def make_disk(nblocks=100, nlog=LOGSIZE):
    disk = MemDisk(nblocks=nblocks)
    sb = Superblock(
        size=nblocks,
        nlog=nlog,
        logstart=LOGSTART,
        inodestart=LOGSTART + nlog,
        bmapstart=LOGSTART + nlog + 1,
    )
    disk.write_block(1, sb.pack().ljust(BSIZE, b"\0"))
    return disk


def header_count(disk):
    return struct.unpack_from("<i", disk.read_block(LOGSTART))[0]


def stamp(cache, log, blockno, byte):
    buf = cache.read(blockno)
    try:
        buf.data[:] = bytes([byte]) * BSIZE
        log.log_write(buf)
    finally:
        cache.release(buf)


def test_reads_log_geometry_from_superblock():
    log = Log(BufferCache(make_disk()))
    assert log.start == LOGSTART
    assert log.size == LOGSIZE


def test_commit_installs_blocks_at_home():
    disk = make_disk()
    cache = BufferCache(disk)
    log = Log(cache)
    with log.transaction():
        stamp(cache, log, 80, 0xAB)
        assert disk.read_block(80) == bytes(BSIZE)
    assert disk.read_block(80) == b"\xab" * BSIZE
    assert header_count(disk) == 0
    assert log.blocks == []


def test_logged_block_is_pinned_until_commit():
    disk = make_disk()
    cache = BufferCache(disk)
    log = Log(cache)
    log.begin_op()
    stamp(cache, log, 70, 0x11)
    buf = cache.read(70)
    assert buf.dirty
    assert bytes(buf.data) == b"\x11" * BSIZE
    cache.release(buf)
    log.end_op()
    assert not buf.dirty


def test_repeated_writes_are_absorbed():
    cache = BufferCache(make_disk())
    log = Log(cache)
    log.begin_op()
    stamp(cache, log, 60, 1)
    stamp(cache, log, 61, 2)
    stamp(cache, log, 60, 3)
    assert log.blocks == [60, 61]
    log.end_op()


def test_nested_operations_commit_once_at_the_end():
    disk = make_disk()
    cache = BufferCache(disk)
    log = Log(cache)
    log.begin_op()
    log.begin_op()
    stamp(cache, log, 50, 9)
    log.end_op()
    assert disk.read_block(50) == bytes(BSIZE)
    log.end_op()
    assert disk.read_block(50) == b"\x09" * BSIZE


def test_recovery_replays_committed_log():
    disk = make_disk()
    header = bytearray(BSIZE)
    struct.pack_into("<ii", header, 0, 1, 90)
    disk.write_block(LOGSTART, bytes(header))
    disk.write_block(LOGSTART + 1, b"\x07" * BSIZE)
    Log(BufferCache(disk))
    assert disk.read_block(90) == b"\x07" * BSIZE
    assert header_count(disk) == 0


def test_empty_log_recovery_leaves_data_alone():
    disk = make_disk()
    disk.write_block(90, b"\x05" * BSIZE)
    Log(BufferCache(disk))
    assert disk.read_block(90) == b"\x05" * BSIZE


def test_corrupt_header_is_rejected():
    disk = make_disk()
    header = bytearray(BSIZE)
    struct.pack_into("<i", header, 0, LOGSIZE + 5)
    disk.write_block(LOGSTART, bytes(header))
    with pytest.raises(LogError):
        Log(BufferCache(disk))


def test_log_write_outside_transaction():
    disk = make_disk()
    cache = BufferCache(disk)
    log = Log(cache)
    with pytest.raises(LogError):
        stamp(cache, log, 40, 1)
    assert log.blocks == []
    assert disk.read_block(40) == bytes(BSIZE)


def test_end_op_without_begin():
    log = Log(BufferCache(make_disk()))
    with pytest.raises(LogError):
        log.end_op()


def test_transaction_too_big():
    disk = make_disk()
    cache = BufferCache(disk, nbuf=64)
    log = Log(cache)
    limit = LOGSIZE - 1
    with log.transaction():
        for blockno in range(40, 40 + limit):
            stamp(cache, log, blockno, 0x22)
        with pytest.raises(LogError):
            stamp(cache, log, 40 + limit, 0x22)
    assert all(disk.read_block(b) == b"\x22" * BSIZE for b in range(40, 40 + limit))
    assert disk.read_block(40 + limit) == bytes(BSIZE)


def test_header_must_fit_in_a_block():
    with pytest.raises(LogError):
        Log(BufferCache(make_disk()), logsize=BSIZE // 4 - 1)