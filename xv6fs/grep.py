"""Simple grep supporting the ^ . * $ operators."""

from __future__ import annotations

import sys
from typing import Iterator, TextIO

_BUFSIZE = 1024


def _matchhere(re: str, text: str) -> bool:
    if not re:
        return True
    if len(re) > 1 and re[1] == "*":
        return _matchstar(re[0], re[2:], text)
    if re == "$":
        return text == ""
    if text and (re[0] == "." or re[0] == text[0]):
        return _matchhere(re[1:], text[1:])
    return False


def _matchstar(c: str, re: str, text: str) -> bool:
    i = 0
    while True:
        if _matchhere(re, text[i:]):
            return True
        if i < len(text) and (text[i] == c or c == "."):
            i += 1
        else:
            return False


def match(pattern: str, text: str) -> bool:
    """True if ``pattern`` matches anywhere in ``text``."""
    if pattern.startswith("^"):
        return _matchhere(pattern[1:], text)
    return any(_matchhere(pattern, text[i:]) for i in range(len(text) + 1))


def grep(pattern: str, stream: TextIO) -> Iterator[str]:
    """Yield the newline-terminated lines of ``stream`` that match ``pattern``.

    Input is read through a fixed-size buffer: a trailing line without a
    newline, or a buffer fill holding no newline at all, is dropped.
    """
    pending = ""
    while True:
        chunk = stream.read(_BUFSIZE - 1 - len(pending))
        if not chunk:
            break
        pending += chunk
        *lines, rest = pending.split("\n")
        for line in lines:
            if match(pattern, line):
                yield line + "\n"
        pending = rest if lines else ""


def main(argv=None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        sys.stderr.write("usage: grep pattern [file ...]\n")
        return 1
    pattern, *paths = args
    out = sys.stdout
    if not paths:
        out.writelines(grep(pattern, sys.stdin))
        return 0
    for path in paths:
        try:
            stream = open(path, encoding="utf-8", errors="surrogateescape", newline="")
        except OSError:
            out.write(f"grep: cannot open {path}\n")
            return 1
        with stream:
            out.writelines(grep(pattern, stream))
    return 0