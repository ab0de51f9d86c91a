"""List directories and files of a file-system image."""

from __future__ import annotations

import sys
from pathlib import Path

from .disk import MemDisk
from .fs import FileSystem, FsError
from .layout import DIRENT_SIZE, DIRSIZ, Dirent, InodeType

_PATHBUF = 512


def fmtname(path: str) -> str:
    """Final element of ``path``, blank-padded to DIRSIZ characters."""
    name = path.rsplit("/", 1)[-1]
    if len(name) >= DIRSIZ:
        return name
    return name.ljust(DIRSIZ)


def _stat_path(fs: FileSystem, path: str):
    with fs.log.transaction():
        ip = fs.namei(path)
        if ip is None:
            return None
        try:
            with ip:
                return ip.stat()
        except FsError:
            return None
        finally:
            fs.put(ip)


def _line(path: str, st) -> str:
    return f"{fmtname(path)} {int(st.type)} {st.ino} {st.size}"


def list_entries(fs: FileSystem, path: str) -> list[str]:
    """Return the lines ls prints for ``path``; raise FsError if it cannot be opened."""
    with fs.log.transaction():
        ip = fs.namei(path)
        if ip is None:
            raise FsError(f"cannot open {path}")
        try:
            with ip:
                st = ip.stat()
                entries = []
                if st.type == InodeType.DIR:
                    for off in range(0, ip.size - DIRENT_SIZE + 1, DIRENT_SIZE):
                        de = Dirent.unpack(ip.read(off, DIRENT_SIZE))
                        if de.inum != 0:
                            entries.append(de.name)
        finally:
            fs.put(ip)

    if st.type == InodeType.FILE:
        return [_line(path, st)]
    if st.type != InodeType.DIR:
        return []
    if len(path) + 1 + DIRSIZ + 1 > _PATHBUF:
        return ["ls: path too long"]
    lines = []
    for name in entries:
        full = f"{path}/{name}"
        est = _stat_path(fs, full)
        if est is None:
            lines.append(f"ls: cannot stat {full}")
        else:
            lines.append(_line(full, est))
    return lines


def main(argv=None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        sys.stderr.write("Usage: ls fs.img [path...]\n")
        return 1
    image, *paths = args
    try:
        fs = FileSystem(MemDisk(Path(image).read_bytes()))
    except OSError as exc:
        sys.stderr.write(f"ls: cannot read {image}: {exc.strerror}\n")
        return 1
    status = 0
    for path in paths or ["."]:
        try:
            lines = list_entries(fs, path)
        except FsError:
            sys.stderr.write(f"ls: cannot open {path}\n")
            status = 1
            continue
        for line in lines:
            print(line)
    return status