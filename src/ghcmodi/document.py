"""Plain-text helpers for Haskell source buffers."""

from __future__ import annotations

import re

from ghcmodi.types import Position, Range

_OPERATOR_CHARS = frozenset("!#$%&*+./<=>?@\\^|-~:")
_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_']*")


def _is_identifier_char(char: str) -> bool:
    return char.isascii() and (char.isalnum() or char in "_'")


def offset_at(text: str, position: Position) -> int:
    """Convert a zero-based position into an offset, clamped to the text."""
    if position.line < 0:
        return 0
    offset = 0
    lines = text.splitlines(keepends=True)
    for index, line in enumerate(lines):
        if index == position.line:
            content = line.rstrip("\r\n")
            return offset + max(0, min(position.character, len(content)))
        offset += len(line)
    return len(text)


def symbol_at_offset(text: str | None, offset: int | None) -> str:
    """Return the operator or identifier under ``offset``, or ``""``."""
    if text is None or offset is None or not 0 <= offset < len(text):
        return ""

    char = text[offset]
    if char in _OPERATOR_CHARS:
        matches = _OPERATOR_CHARS.__contains__
    elif _is_identifier_char(char):
        matches = _is_identifier_char
    else:
        return ""

    start = offset
    while start > 0 and matches(text[start - 1]):
        start -= 1
    end = offset
    while end < len(text) and matches(text[end]):
        end += 1
    symbol = text[start:end]

    if matches is _is_identifier_char and not _IDENTIFIER.fullmatch(symbol):
        return ""
    if symbol == "--":
        return ""
    if symbol == "-" and (text[offset - 1 : offset] == "{" or text[offset + 1 : offset + 2] == "}"):
        return ""
    return symbol


def is_position_in_range(position: Position | None, range_: Range | None) -> bool:
    if position is None or range_ is None:
        return False
    return range_.contains(position)
