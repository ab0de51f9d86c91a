import pytest

from xv6fs.layout import (
    BPB,
    DINODE_SIZE,
    DIRENT_SIZE,
    DIRSIZ,
    IPB,
    NDIRECT,
    DiskInode,
    Dirent,
    InodeType,
    Superblock,
    bitmap_block,
    inode_block,
)


def test_superblock_round_trip():
    sb = Superblock(1000, 941, 200, 30, 2, 32, 58)
    data = sb.pack()
    assert len(data) == 28
    assert Superblock.unpack(data) == sb


def test_superblock_unpack_from_whole_block():
    sb = Superblock(1000, 941, 200, 30, 2, 32, 58)
    block = sb.pack() + bytes(512 - len(sb.pack()))
    assert Superblock.unpack(block) == sb


def test_superblock_short_data_rejected():
    with pytest.raises(ValueError):
        Superblock.unpack(b"\x00" * 10)


def test_disk_inode_round_trip():
    addrs = list(range(100, 100 + NDIRECT + 1))
    ino = DiskInode(InodeType.FILE, 0, 0, 1, 4096, addrs)
    data = ino.pack()
    assert len(data) == DINODE_SIZE
    back = DiskInode.unpack(data)
    assert back == ino
    assert back.type == InodeType.FILE


def test_disk_inode_negative_fields_survive():
    ino = DiskInode(InodeType.DEV, -1, 7, 0, 0)
    assert DiskInode.unpack(ino.pack()).major == -1


def test_disk_inode_wrong_addr_count():
    with pytest.raises(ValueError):
        DiskInode(addrs=[0] * NDIRECT).pack()


def test_dirent_wire_format():
    assert Dirent(1, ".").pack() == b"\x01\x00." + bytes(13)


def test_dirent_round_trip_and_size():
    de = Dirent(17, "README")
    data = de.pack()
    assert len(data) == DIRENT_SIZE
    assert Dirent.unpack(data) == de


def test_dirent_name_truncated_without_terminator():
    de = Dirent(2, "abcdefghijklmnopq")
    data = de.pack()
    assert data[2:] == b"abcdefghijklmnopq"[:DIRSIZ]
    assert Dirent.unpack(data).name == "abcdefghijklmnopq"[:DIRSIZ]


def test_inode_block():
    sb = Superblock(inodestart=32)
    assert inode_block(0, sb) == sb.inodestart
    assert inode_block(IPB - 1, sb) == sb.inodestart
    assert inode_block(IPB, sb) == sb.inodestart + 1


def test_bitmap_block():
    sb = Superblock(bmapstart=58)
    assert bitmap_block(0, sb) == sb.bmapstart
    assert bitmap_block(BPB - 1, sb) == sb.bmapstart
    assert bitmap_block(BPB, sb) == sb.bmapstart + 1