"""Minimal printf-style formatting with %d, %x, %p, %s (and %c for user code)."""

from __future__ import annotations

_LOWER = "0123456789abcdef"
_UPPER = "0123456789ABCDEF"


def _int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value & 0x80000000 else value


def format_int(value: int, base: int = 10, signed: bool = True, upper: bool = False) -> str:
    """Render a 32-bit integer in ``base``; unsigned values wrap like a machine word."""
    if not 2 <= base <= 16:
        raise ValueError(f"base must be between 2 and 16, got {base}")
    digits = _UPPER if upper else _LOWER
    xx = _int32(value)
    negative = signed and xx < 0
    x = (-xx if negative else xx) & 0xFFFFFFFF
    out = []
    while True:
        x, r = divmod(x, base)
        out.append(digits[r])
        if x == 0:
            break
    if negative:
        out.append("-")
    return "".join(reversed(out))


def _format(fmt: str, args: tuple, *, upper: bool, with_char: bool) -> str:
    pending = iter(args)

    def take():
        try:
            return next(pending)
        except StopIteration:
            raise TypeError("not enough arguments for format string") from None

    out = []
    chars = iter(fmt)
    for c in chars:
        if c != "%":
            out.append(c)
            continue
        spec = next(chars, None)
        if spec is None:
            break
        if spec == "d":
            out.append(format_int(take(), 10, True, upper))
        elif spec in ("x", "p"):
            out.append(format_int(take(), 16, False, upper))
        elif spec == "s":
            arg = take()
            out.append("(null)" if arg is None else str(arg))
        elif spec == "c" and with_char:
            arg = take()
            out.append(arg[:1] if isinstance(arg, str) else chr(arg & 0xFF))
        elif spec == "%":
            out.append("%")
        else:
            # Unknown sequence: print it to draw attention.
            out.append("%" + spec)
    return "".join(out)


def kformat(fmt: str, *args) -> str:
    """Kernel console formatting: lower-case hex, no %c."""
    return _format(fmt, args, upper=False, with_char=False)


def uformat(fmt: str, *args) -> str:
    """User-level formatting: upper-case hex and %c."""
    return _format(fmt, args, upper=True, with_char=True)