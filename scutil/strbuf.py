"""A mutable string with length limits, trimming, replacing and tokenizing."""

from __future__ import annotations

import re
from collections.abc import Iterator

__all__ = ["StrBuf", "tokenize", "STR_MAX"]

# A 32-bit length header plus a terminator bound the stored length.
STR_MAX = 2**32 - 1 - 4 - 1


def _check_len(length: int) -> None:
    if length > STR_MAX:
        raise ValueError(f"string length {length} exceeds the maximum of {STR_MAX}")


def _format(fmt: str, args: tuple) -> str:
    return fmt % args


def tokenize(text: str, delims: str) -> Iterator[str]:
    """Yield the pieces of ``text`` separated by any character of ``delims``.

    Adjacent delimiters produce empty tokens; an empty text yields a single
    empty token and empty ``delims`` yields the whole text.
    """
    if not delims:
        yield text
        return
    pattern = "[" + re.escape(delims) + "]"
    yield from re.split(pattern, text)


class StrBuf:
    """A length-limited mutable string."""

    __hash__ = None  # type: ignore[assignment]

    def __init__(self, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"expected str, got {type(value).__name__}")
        _check_len(len(value))
        self._value = value

    @classmethod
    def from_fmt(cls, fmt: str, *args: object) -> "StrBuf":
        """Build a buffer from a printf-style format and its arguments."""
        return cls(_format(fmt, args))

    def set(self, value: str) -> None:
        """Replace the contents with ``value``."""
        if not isinstance(value, str):
            raise TypeError(f"expected str, got {type(value).__name__}")
        _check_len(len(value))
        self._value = value

    def set_fmt(self, fmt: str, *args: object) -> None:
        """Replace the contents with a formatted string.

        The contents are left untouched if formatting fails.
        """
        self.set(_format(fmt, args))

    def append(self, value: str) -> None:
        """Append ``value`` to the contents."""
        if len(value) > STR_MAX - len(self._value):
            raise ValueError("appended string exceeds the maximum length")
        self._value += value

    def trim(self, chars: str) -> None:
        """Strip any of ``chars`` from both ends."""
        self._value = self._value.strip(chars) if chars else self._value

    def substring(self, start: int, end: int) -> None:
        """Keep only the characters from ``start`` up to ``end``.

        Raises IndexError if the bounds are negative, past the end, or reversed.
        """
        length = len(self._value)
        if start < 0 or end < 0 or start > length or end > length or start > end:
            raise IndexError(
                f"invalid substring bounds [{start}, {end}) for length {length}"
            )
        self._value = self._value[start:end]

    def replace(self, old: str, new: str) -> None:
        """Replace every non-overlapping occurrence of ``old`` with ``new``."""
        if not old:
            raise ValueError("the string to replace must not be empty")
        count = self._value.count(old)
        if count == 0:
            return
        _check_len(len(self._value) + count * (len(new) - len(old)))
        self._value = self._value.replace(old, new)

    def tokens(self, delims: str) -> Iterator[str]:
        """Yield the tokens of the contents split on any of ``delims``."""
        return tokenize(self._value, delims)

    def __len__(self) -> int:
        return len(self._value)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, StrBuf):
            return self._value == other._value
        if isinstance(other, str):
            return self._value == other
        return NotImplemented

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"StrBuf({self._value!r})"