"""Console: line-edited keyboard input and character output."""

from __future__ import annotations

import sys
import threading
from typing import Callable, Iterable, TextIO

from .fmt import kformat

INPUT_BUF = 128
BACKSPACE = 0x100


def _ctrl(ch: str) -> int:
    return ord(ch) - ord("@")


_CTRL_P = _ctrl("P")
_CTRL_U = _ctrl("U")
_CTRL_H = _ctrl("H")
_CTRL_D = _ctrl("D")
_DEL = 0x7F
_NL = ord("\n")
_CR = ord("\r")


class Console:
    """Collects typed characters into lines and echoes output to a stream."""

    def __init__(
        self,
        output: TextIO | None = None,
        procdump: Callable[[], None] | None = None,
    ):
        self.output = output if output is not None else sys.stdout
        self.procdump = procdump
        self._cond = threading.Condition()
        self._buf = [0] * INPUT_BUF
        self._r = 0  # read index
        self._w = 0  # write index
        self._e = 0  # edit index

    def _putc(self, c: int) -> None:
        if c == BACKSPACE:
            self.output.write("\b \b")
        else:
            self.output.write(chr(c))

    def interrupt(self, chars: Iterable[int] | str) -> None:
        """Handle typed characters: editing keys, line commits and echo."""
        doprocdump = False
        with self._cond:
            for ch in chars:
                c = ord(ch) if isinstance(ch, str) else ch
                if c == _CTRL_P:
                    doprocdump = True
                elif c == _CTRL_U:
                    while self._e != self._w and self._buf[(self._e - 1) % INPUT_BUF] != _NL:
                        self._e -= 1
                        self._putc(BACKSPACE)
                elif c in (_CTRL_H, _DEL):
                    if self._e != self._w:
                        self._e -= 1
                        self._putc(BACKSPACE)
                elif c != 0 and self._e - self._r < INPUT_BUF:
                    if c == _CR:
                        c = _NL
                    self._buf[self._e % INPUT_BUF] = c
                    self._e += 1
                    self._putc(c)
                    if c in (_NL, _CTRL_D) or self._e == self._r + INPUT_BUF:
                        self._w = self._e
                        self._cond.notify_all()
        if doprocdump and self.procdump is not None:
            self.procdump()

    def read(self, n: int) -> str:
        """Read up to ``n`` characters, stopping after a newline; "" at end of input."""
        if n < 0:
            raise ValueError("read size must not be negative")
        target = n
        out = []
        with self._cond:
            while n > 0:
                while self._r == self._w:
                    self._cond.wait()
                c = self._buf[self._r % INPUT_BUF]
                self._r += 1
                if c == _CTRL_D:
                    if n < target:
                        # Keep ^D so the next read returns nothing.
                        self._r -= 1
                    break
                out.append(chr(c))
                n -= 1
                if c == _NL:
                    break
        return "".join(out)

    def write(self, data: str | bytes) -> int:
        """Write characters to the console; return how many were written."""
        with self._cond:
            for ch in data:
                c = ord(ch) if isinstance(ch, str) else ch
                self._putc(c & 0xFF)
        return len(data)

    def printf(self, fmt: str, *args) -> None:
        """Format with %d, %x, %p, %s and write the result."""
        text = kformat(fmt, *args)
        with self._cond:
            self.output.write(text)