"""Value types shared by the session core and the provider layer."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


@dataclass(frozen=True)
class Command:
    """One ghc-mod command as submitted by a caller."""

    name: str
    args: tuple[str, ...] = ()
    overlay_text: str | None = None
    target_path: str | None = None

    @property
    def label(self) -> str:
        parts = [self.name]
        if self.target_path:
            parts.append(self.target_path)
        parts.extend(self.args)
        return " ".join(parts)


@dataclass(frozen=True, order=True)
class Position:
    """Zero-based line/character position."""

    line: int
    character: int


@dataclass(frozen=True)
class Range:
    start: Position
    end: Position

    @classmethod
    def create(cls, start_line: int, start_character: int, end_line: int, end_character: int) -> Range:
        return cls(Position(start_line, start_character), Position(end_line, end_character))

    @classmethod
    def point(cls, line: int, character: int) -> Range:
        return cls.create(line, character, line, character)

    def contains(self, position: Position) -> bool:
        if position.line < self.start.line or position.line > self.end.line:
            return False
        return self.start.character <= position.character <= self.end.character


class DiagnosticSeverity(IntEnum):
    ERROR = 1
    WARNING = 2


@dataclass(frozen=True)
class Diagnostic:
    range: Range
    severity: DiagnosticSeverity
    message: str
    source: str = "ghc-mod"


@dataclass(frozen=True)
class Location:
    uri: str
    range: Range
