"""Wire format of ghc-mod's ``legacy-interactive`` mode.

Requests are single lines. A response is any number of payload lines closed
by a line reading ``OK`` (or ``NG <reason>`` when the tool refuses the
command). Newlines inside a payload line travel as NUL characters.
"""

from __future__ import annotations

import codecs
import os
import re

from ghcmodi.types import Command

EOL = os.linesep
EOT = f"{EOL}\x04{EOL}"
OK_SENTINEL = "OK"
NG_SENTINEL = "NG"

_NEWLINES = re.compile(r"\r\n|\r|\n")


def flatten_line(text: str) -> str:
    """Collapse every line break into a single space."""
    return _NEWLINES.sub(" ", text)


def encode_command(command: Command) -> str:
    parts = [command.name]
    if command.target_path:
        parts.append(command.target_path)
    parts.extend(command.args)
    return flatten_line(" ".join(parts)) + EOL


def encode_map_file(path: str, text: str) -> str:
    return f"map-file {flatten_line(path)}{EOL}{text}{EOT}"


def encode_unmap_file(path: str) -> str:
    return f"unmap-file {flatten_line(path)}{EOL}"


def decode_line(line: str) -> str:
    return line.replace("\0", EOL)


class ResponseParser:
    """Accumulate raw stdout chunks until a response terminator shows up.

    Chunks may split lines (and UTF-8 sequences) anywhere. The first complete
    ``OK``/``NG`` line ends the response; whatever follows it in the same
    chunk belongs to a later response and is kept in :meth:`take_remainder`.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._lines: list[str] = []
        self._terminator: str | None = None
        self._remainder = ""

    @property
    def complete(self) -> bool:
        return self._terminator is not None

    @property
    def rejected(self) -> bool:
        return self._terminator is not None and self._terminator != OK_SENTINEL

    @property
    def reason(self) -> str:
        """Text following ``NG`` in a rejection, decoded."""
        if not self.rejected or self._terminator is None:
            return ""
        return decode_line(self._terminator[len(NG_SENTINEL) :].strip())

    def feed(self, chunk: bytes | str) -> bool:
        """Add a chunk; return True once the response is complete."""
        text = self._decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        if self.complete:
            self._remainder += text
            return True
        self._buffer += text
        while "\n" in self._buffer:
            raw, self._buffer = self._buffer.split("\n", 1)
            line = raw.removesuffix("\r")
            if _is_terminator(line):
                self._terminator = line
                self._remainder, self._buffer = self._buffer, ""
                return True
            self._lines.append(line)
        return False

    def take_remainder(self) -> str:
        """Return and forget output that arrived after the terminator."""
        remainder, self._remainder = self._remainder, ""
        return remainder

    def payload(self) -> list[str]:
        return [decode_line(line) for line in self._lines]

    def received_lines(self) -> list[str]:
        """Everything seen so far, including an unterminated trailing fragment."""
        lines = list(self._lines)
        if self._terminator is not None:
            lines.append(self._terminator)
        if self._buffer:
            lines.append(self._buffer)
        return lines


def _is_terminator(line: str) -> bool:
    return line == OK_SENTINEL or line == NG_SENTINEL or line.startswith(NG_SENTINEL + " ")
