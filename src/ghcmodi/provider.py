"""Editor-facing operations built on top of a :class:`GhcModSession`."""

from __future__ import annotations

import os
import re
from pathlib import Path
from urllib.parse import unquote, urlparse

from loguru import logger

from ghcmodi.document import is_position_in_range, offset_at, symbol_at_offset
from ghcmodi.session import GhcModSession
from ghcmodi.types import Command, Diagnostic, DiagnosticSeverity, Location, Position, Range

CHECK_LINE = re.compile(r"^(.*?):([0-9]+):([0-9]+): *(?:(Warning|Error): *)?")
TYPE_LINE = re.compile(r'^\s*(-?\d+)\s+(-?\d+)\s+(-?\d+)\s+(-?\d+)\s+"(.*)"\s*$')
DEFINED_AT = re.compile(r"-- Defined at (.+?):(\d+):(\d+)")
NO_INFO_MARKER = "Cannot show info"


def parse_check_line(line: str) -> Diagnostic | None:
    match = CHECK_LINE.match(line)
    if match is None:
        return None
    line_no = int(match.group(2)) - 1
    column = int(match.group(3)) - 1
    severity = DiagnosticSeverity.WARNING if match.group(4) == "Warning" else DiagnosticSeverity.ERROR
    return Diagnostic(range=Range.point(line_no, column), severity=severity, message=line[match.end() :])


def parse_check_output(lines: list[str]) -> list[Diagnostic]:
    return [diagnostic for line in lines if (diagnostic := parse_check_line(line)) is not None]


def parse_type_line(line: str) -> tuple[Range, str] | None:
    """Parse ``startLine startCol endLine endCol "type"`` (1-based) into a 0-based range."""
    match = TYPE_LINE.match(line)
    if match is None:
        return None
    start_line, start_col, end_line, end_col = (int(match.group(i)) - 1 for i in range(1, 5))
    return Range.create(start_line, start_col, end_line, end_col), match.group(5)


def select_type(lines: list[str], position: Position) -> str:
    """Pick the first (narrowest) type whose range contains ``position``."""
    for line in lines:
        parsed = parse_type_line(line)
        if parsed is None:
            logger.debug("ghcmod.type.malformed line={!r}", line)
            continue
        type_range, type_text = parsed
        if is_position_in_range(position, type_range):
            return type_text
    return ""


def strip_definition_notes(info: str) -> str:
    tooltip = DEFINED_AT.sub("", info)
    if NO_INFO_MARKER in tooltip:
        return ""
    return tooltip


def parse_definitions(info: str, root: Path) -> list[Location]:
    locations: list[Location] = []
    for match in DEFINED_AT.finditer(info):
        target = Path(match.group(1))
        if not target.is_absolute():
            target = root / target
        line_no = int(match.group(2)) - 1
        column = int(match.group(3)) - 1
        locations.append(Location(uri=target.resolve().as_uri(), range=Range.point(line_no, column)))
    return locations


def is_blacklisted(word: str) -> bool:
    """Words that are really comment delimiters must not be looked up."""
    return any(marker in word for marker in ("--", "{-", "-}", "{\\-", "-\\}"))


def path_from_uri(uri_or_path: str) -> Path:
    parsed = urlparse(uri_or_path)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    return Path(uri_or_path)


class GhcModProvider:
    """check/type/info/definition requests answered through one session."""

    def __init__(self, session: GhcModSession, workspace_root: Path | None = None) -> None:
        self.session = session
        self.workspace_root = (workspace_root or session.root).resolve()

    def relative_path(self, path: str | Path) -> str:
        if not str(path):
            return ""
        target = path_from_uri(str(path)) if isinstance(path, str) else path
        if not target.is_absolute():
            return target.as_posix()
        return Path(os.path.relpath(target.resolve(), self.workspace_root)).as_posix()

    async def check(self, text: str | None, path: str | Path, map_file: bool = True) -> list[Diagnostic]:
        lines = await self.session.run_command(
            Command(
                name="check",
                overlay_text=text if map_file else None,
                target_path=self.relative_path(path),
            )
        )
        return parse_check_output(lines)

    async def get_type(self, text: str | None, path: str | Path, position: Position, map_file: bool = True) -> str:
        lines = await self.session.run_command(
            Command(
                name="type",
                args=(str(position.line + 1), str(position.character + 1)),
                overlay_text=text if map_file else None,
                target_path=self.relative_path(path),
            )
        )
        return select_type(lines, position)

    async def get_info(self, text: str, path: str | Path, position: Position, map_file: bool = True) -> str:
        info = await self._info(text, path, position, map_file)
        return strip_definition_notes(info)

    async def definition_location(self, text: str, path: str | Path, position: Position) -> list[Location]:
        info = await self._info(text, path, position, map_file=False)
        return parse_definitions(info, self.workspace_root)

    async def shutdown(self) -> None:
        await self.session.shutdown()

    async def _info(self, text: str, path: str | Path, position: Position, map_file: bool) -> str:
        symbol = symbol_at_offset(text, offset_at(text, position))
        if not symbol or is_blacklisted(symbol):
            return ""
        lines = await self.session.run_command(
            Command(
                name="info",
                args=(symbol,),
                overlay_text=text if map_file else None,
                target_path=self.relative_path(path),
            )
        )
        return "\n".join(lines)
