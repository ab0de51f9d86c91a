# xv6fs

A small Unix-style teaching file system, written in plain Python so you can
inspect it. It covers the on-disk format and an image builder. On top of an
in-memory disk it adds a buffer cache, a write-ahead redo log, and the inode
and directory layers. It also has open-file and pipe objects, a console line
editor, a keyboard scancode decoder, and three command-line tools.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Disk layout

```
[ boot block | super block | log | inode blocks | free bitmap | data blocks ]
```

Blocks are 512 bytes (`BSIZE`). The dataclasses are in `xv6fs.layout`:

- `Superblock`
- `DiskInode`
- `Dirent`

Each one has `pack()` and `unpack()`. `inode_block(inum, sb)` returns the block that holds an inode. `bitmap_block(b, sb)` returns the bitmap block that holds the bit for block `b`. Inode types are given by `InodeType`:

- `FREE`
- `DIR`
- `FILE`
- `DEV`

## Building an image

```
xv6-mkfs fs.img README cat echo
```

This writes a 1000-block image with 200 inodes and a 30-block log. The root
directory holds `.`, `..` and each named file. File names must not contain
`/`. A leading `_` is dropped from a name.

You can do the same from code:

- `xv6fs.mkfs.build_image(path, files, fssize, ninodes, nlog)` writes the image and returns the finished builder.
- `ImageBuilder` gives finer control through `ialloc`, `iappend`, `add_file` and `finish`. `finish` returns the image bytes.

## Working with an image

`FileSystem` takes a disk, such as `MemDisk`. It creates its own
`BufferCache` and `Log`, and replays any committed transaction it finds on
the disk. Lock an inode with `with ip:` before you read or change it. Give
up each reference with `fs.put`. Run anything that may modify the disk
inside `fs.log.transaction()`.

```python
from pathlib import Path

from xv6fs.disk import MemDisk
from xv6fs.fs import FileSystem
from xv6fs.layout import InodeType

fs = FileSystem(MemDisk(Path("fs.img").read_bytes()))

with fs.log.transaction():
    ip = fs.namei("/README")
    with ip:
        print(ip.read(0, 64))
    fs.put(ip)

with fs.log.transaction():
    root = fs.namei("/")
    ip = fs.ialloc(InodeType.FILE)
    with ip:
        ip.nlink = 1
        ip.update()
        ip.write(b"hello\n", 0)
    with root:
        fs.dirlink(root, "hello", ip.inum)
    fs.put(ip)
    fs.put(root)

Path("fs.img").write_bytes(fs.disk.image())
```

When the last outstanding operation ends, the log commits the changes to
the disk. `namei` and `nameiparent` return `None` for a path that does not
exist. Other failures raise exceptions:

- `DiskError`
- `CacheError`
- `LogError`
- `FsError`

Device inodes are handled by callables that you register with
`FileSystem.register_device(major, read, write)`.

## Listing a directory

```
xv6-ls fs.img /
```

This prints one line per entry: the name padded to 14 characters, the type
number, the inode number and the size. With no path it lists `.`, which is
resolved from the root. To get the same lines from code, call
`xv6fs.ls.list_entries(fs, path)`.

## Searching text

```
xv6-grep 'ab*c$' notes.txt
```

The matcher supports `^`, `.`, `*` and `$`. From code, use:

- `xv6fs.grep.match(pattern, text)`
- `xv6fs.grep.grep(pattern, stream)`

`grep` yields the matching lines, each ending in a newline. It reads through a 1024-byte buffer, so a final line without a newline is not reported.

## Other pieces

- `xv6fs.pipe.Pipe` is a blocking byte pipe that holds at most 512 unread bytes. Writing to it after the read end is closed raises `PipeClosedError` once the pipe is full.
- `xv6fs.file` has reference-counted open files over inodes or pipes:
  - `FileTable` provides `alloc`, `dup` and `close`.
  - `OpenFile` provides `read`, `write` and `stat`. Inode writes are split across several log transactions.
- `xv6fs.console.Console` handles line editing, echoes input to an output stream, and offers `read`, `write` and `printf`. It supports:
  - kill-line (Ctrl-U)
  - backspace
  - end of input (Ctrl-D)
  - a Ctrl-P callback
- `xv6fs.kbd.KeyboardDecoder` turns PC scancodes (set 1) into character codes. It tracks shift, control and caps lock.
- `xv6fs.fmt` has two minimal formatters:
  - `kformat` handles `%d %x %p %s`, with lower-case hex.
  - `uformat` also handles `%c` and uses upper-case hex.

## What it does not do

Disks live only in memory. `xv6-ls` reads an image and never writes it
back. To save changes made from code, write out `MemDisk.image()` yourself.

There is no process model, no shell and no system-call layer. `FileSystem`
does not provide ready-made create, unlink or mkdir operations. Build these
from `ialloc`, `dirlink`, inode writes and `put`, as the example above does.
The package cannot mount an image into the host's file system.