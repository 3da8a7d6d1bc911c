"""Exception types for ghcmodi."""

from __future__ import annotations

from collections.abc import Sequence


class GhcModError(Exception):
    """Base exception for ghcmodi."""


class ConfigurationError(GhcModError):
    """Raised when settings cannot describe a usable tool invocation."""


class SpawnFailureError(GhcModError):
    """Raised when the analysis tool cannot be started."""

    def __init__(self, argv: Sequence[str], reason: str) -> None:
        super().__init__(f"could not start {' '.join(argv)!r}: {reason}")
        self.argv = list(argv)
        self.reason = reason


class CommandError(GhcModError):
    """Base exception for a single command that did not produce a response."""

    def __init__(self, message: str, command: str, partial_lines: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.command = command
        self.partial_lines = list(partial_lines)


class CommandTimeoutError(CommandError):
    """Raised when no response terminator arrives within the timeout."""

    def __init__(self, command: str, timeout: float, partial_lines: Sequence[str] = ()) -> None:
        super().__init__(f"ghc-mod timed out after {timeout:g}s on command {command!r}", command, partial_lines)
        self.timeout = timeout


class ProcessCrashError(CommandError):
    """Raised when the tool exits while a command is in flight."""

    def __init__(self, command: str, returncode: int | None, partial_lines: Sequence[str] = ()) -> None:
        super().__init__(
            f"ghc-mod crashed on command {command!r} (exit={returncode}) with output {list(partial_lines)!r}",
            command,
            partial_lines,
        )
        self.returncode = returncode


class CommandRejectedError(CommandError):
    """Raised when the tool answers a command with an ``NG`` line."""

    def __init__(self, command: str, reason: str, partial_lines: Sequence[str] = ()) -> None:
        super().__init__(f"ghc-mod rejected command {command!r}: {reason}", command, partial_lines)
        self.reason = reason


class SessionClosedError(GhcModError):
    """Raised when work reaches a session that has been shut down."""
