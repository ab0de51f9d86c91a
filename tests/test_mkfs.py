import struct

import pytest

from xv6fs.bufcache import BufferCache
from xv6fs.disk import MemDisk
from xv6fs.layout import (
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
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
from xv6fs.log import LOGSIZE, Log
from xv6fs.mkfs import FSSIZE, ImageBuilder, build_image, main


def block(image, b):
    return image[b * BSIZE:(b + 1) * BSIZE]


def superblock(image):
    return Superblock.unpack(block(image, 1))


def read_inode(image, inum):
    sb = superblock(image)
    raw = block(image, inode_block(inum, sb))
    off = (inum % IPB) * DINODE_SIZE
    return DiskInode.unpack(raw[off:off + DINODE_SIZE])


def file_bytes(image, inum):
    din = read_inode(image, inum)
    addrs = list(din.addrs[:NDIRECT])
    if din.addrs[NDIRECT]:
        addrs += struct.unpack(f"<{NINDIRECT}I", block(image, din.addrs[NDIRECT]))
    data = b"".join(block(image, a) for a in addrs if a)
    return data[:din.size]


def root_entries(image):
    raw = file_bytes(image, ROOTINO)
    entries = (Dirent.unpack(raw[i:i + DIRENT_SIZE]) for i in range(0, len(raw), DIRENT_SIZE))
    return [e for e in entries if e.inum]


def test_superblock_describes_layout():
    builder = ImageBuilder()
    sb = superblock(builder.finish())
    assert sb == builder.sb
    assert sb.size == FSSIZE
    assert sb.logstart == 2
    assert sb.nlog == LOGSIZE
    assert sb.inodestart == sb.logstart + sb.nlog
    assert sb.bmapstart == sb.inodestart + builder.ninodeblocks
    assert sb.nblocks + builder.nmeta == sb.size


def test_root_directory():
    image = ImageBuilder().finish()
    root = read_inode(image, ROOTINO)
    assert root.type == InodeType.DIR
    assert root.nlink == 1
    assert root.size % BSIZE == 0
    assert [(e.inum, e.name) for e in root_entries(image)] == [(ROOTINO, "."), (ROOTINO, "..")]


def test_add_file_strips_underscore_and_round_trips():
    builder = ImageBuilder()
    inum = builder.add_file("_cat", b"meow\n")
    image = builder.finish()
    assert root_entries(image)[-1] == Dirent(inum, "cat")
    assert read_inode(image, inum).type == InodeType.FILE
    assert file_bytes(image, inum) == b"meow\n"


def test_large_file_uses_indirect_block():
    builder = ImageBuilder()
    data = bytes(range(256)) * 30
    inum = builder.add_file("big", data)
    image = builder.finish()
    assert read_inode(image, inum).addrs[NDIRECT] != 0
    assert file_bytes(image, inum) == data


def test_data_blocks_come_after_metadata():
    builder = ImageBuilder()
    inum = builder.add_file("a", b"x")
    image = builder.finish()
    assert read_inode(image, inum).addrs[0] >= builder.nmeta


def test_bitmap_marks_allocated_blocks():
    builder = ImageBuilder()
    builder.add_file("a", b"y" * 3000)
    image = builder.finish()
    bitmap = int.from_bytes(block(image, builder.sb.bmapstart), "little")
    assert bitmap == (1 << builder.freeblock) - 1


def test_name_with_slash_rejected():
    with pytest.raises(ValueError):
        ImageBuilder().add_file("dir/file", b"")


def test_file_too_large():
    with pytest.raises(ValueError):
        ImageBuilder().add_file("huge", bytes(MAXFILE * BSIZE + 1))


def test_finish_twice_rejected():
    builder = ImageBuilder()
    builder.finish()
    with pytest.raises(ValueError):
        builder.finish()


def test_image_is_accepted_by_log():
    image = ImageBuilder().finish()
    disk = MemDisk(image)
    log = Log(BufferCache(disk))
    assert log.blocks == []
    assert disk.image() == image


def test_build_image_writes_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "_echo").write_bytes(b"hello")
    builder = build_image("fs.img", ["_echo"], fssize=200, ninodes=50, nlog=LOGSIZE)
    image = (tmp_path / "fs.img").read_bytes()
    assert len(image) == 200 * BSIZE
    assert builder.sb.size == 200
    names = [e.name for e in root_entries(image)]
    assert names == [".", "..", "echo"]


def test_main_builds_image(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "README").write_bytes(b"read me\n")
    (tmp_path / "_ls").write_bytes(b"\x7fELF")
    assert main(["fs.img", "README", "_ls"]) == 0
    image = (tmp_path / "fs.img").read_bytes()
    assert len(image) == FSSIZE * BSIZE
    entries = root_entries(image)
    assert [e.name for e in entries] == [".", "..", "README", "ls"]
    assert file_bytes(image, entries[2].inum) == b"read me\n"
    assert "balloc: first" in capsys.readouterr().out


def test_main_usage(capsys):
    assert main([]) == 1
    assert "Usage: mkfs" in capsys.readouterr().err


def test_main_missing_input(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    assert main(["fs.img", "nosuchfile"]) == 1
    assert "nosuchfile" in capsys.readouterr().err