"""PC keyboard scancode decoder (scancode set 1)."""

from __future__ import annotations

from enum import IntFlag
from typing import Iterable


class Modifier(IntFlag):
    NONE = 0
    SHIFT = 1 << 0
    CTL = 1 << 1
    ALT = 1 << 2
    CAPSLOCK = 1 << 3
    NUMLOCK = 1 << 4
    SCROLLLOCK = 1 << 5
    E0ESC = 1 << 6


KEY_HOME = 0xE0
KEY_END = 0xE1
KEY_UP = 0xE2
KEY_DN = 0xE3
KEY_LF = 0xE4
KEY_RT = 0xE5
KEY_PGUP = 0xE6
KEY_PGDN = 0xE7
KEY_INS = 0xE8
KEY_DEL = 0xE9


def _ctl(ch: str) -> int:
    return (ord(ch) - ord("@")) & 0xFF


def _table(base: Iterable[int], specials: dict[int, int]) -> tuple[int, ...]:
    table = [0] * 256
    base = list(base)
    table[:len(base)] = base
    for code, value in specials.items():
        table[code] = value
    return tuple(table)


_SHIFTCODE = _table(
    [],
    {
        0x1D: Modifier.CTL,
        0x2A: Modifier.SHIFT,
        0x36: Modifier.SHIFT,
        0x38: Modifier.ALT,
        0x9D: Modifier.CTL,
        0xB8: Modifier.ALT,
    },
)

_TOGGLECODE = _table(
    [],
    {0x3A: Modifier.CAPSLOCK, 0x45: Modifier.NUMLOCK, 0x46: Modifier.SCROLLLOCK},
)

_NAV = {
    0xC8: KEY_UP, 0xD0: KEY_DN,
    0xC9: KEY_PGUP, 0xD1: KEY_PGDN,
    0xCB: KEY_LF, 0xCD: KEY_RT,
    0x97: KEY_HOME, 0xCF: KEY_END,
    0xD2: KEY_INS, 0xD3: KEY_DEL,
}

_KEYPAD = "\0" * 13 + "789-456+1230."

_NORMALMAP = _table(
    map(ord, "\0\x1b1234567890-=\b\tqwertyuiop[]\n\0asdfghjkl;'`\0\\zxcvbnm,./\0*\0 " + _KEYPAD),
    {0x9C: ord("\n"), 0xB5: ord("/"), **_NAV},
)

_SHIFTMAP = _table(
    map(ord, "\0\x1b!@#$%^&*()_+\b\tQWERTYUIOP{}\n\0ASDFGHJKL:\"~\0|ZXCVBNM<>?\0*\0 " + _KEYPAD),
    {0x9C: ord("\n"), 0xB5: ord("/"), **_NAV},
)

_CTLMAP = _table(
    [0] * 16
    + [_ctl(c) for c in "QWERTYUI"]
    + [_ctl("O"), _ctl("P"), 0, 0, ord("\r"), 0, _ctl("A"), _ctl("S")]
    + [_ctl(c) for c in "DFGHJKL"] + [0]
    + [0, 0, 0, _ctl("\\"), _ctl("Z"), _ctl("X"), _ctl("C"), _ctl("V")]
    + [_ctl("B"), _ctl("N"), _ctl("M"), 0, 0, _ctl("/"), 0, 0],
    {0x9C: ord("\r"), 0xB5: _ctl("/"), **_NAV},
)

_CHARCODE = (_NORMALMAP, _SHIFTMAP, _CTLMAP, _CTLMAP)


class KeyboardDecoder:
    """Turns raw scancodes into character codes, tracking modifier state."""

    def __init__(self) -> None:
        self._shift = 0

    @property
    def modifiers(self) -> Modifier:
        return Modifier(self._shift)

    def feed(self, scancode: int) -> int | None:
        """Process one scancode; return the character code it produces, if any."""
        data = scancode & 0xFF
        if data == 0xE0:
            self._shift |= Modifier.E0ESC
            return None
        if data & 0x80:
            # Key released.
            if not self._shift & Modifier.E0ESC:
                data &= 0x7F
            self._shift &= ~(_SHIFTCODE[data] | Modifier.E0ESC)
            return None
        if self._shift & Modifier.E0ESC:
            data |= 0x80
            self._shift &= ~Modifier.E0ESC

        self._shift |= _SHIFTCODE[data]
        self._shift ^= _TOGGLECODE[data]
        c = _CHARCODE[self._shift & (Modifier.CTL | Modifier.SHIFT)][data]
        if self._shift & Modifier.CAPSLOCK:
            if ord("a") <= c <= ord("z"):
                c -= ord("a") - ord("A")
            elif ord("A") <= c <= ord("Z"):
                c += ord("a") - ord("A")
        return c or None

    def decode(self, scancodes: Iterable[int]) -> list[int]:
        """Feed a sequence of scancodes and collect the characters produced."""
        return [c for c in map(self.feed, scancodes) if c is not None]