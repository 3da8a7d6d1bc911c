"""ghcmodi - interactive ghc-mod sessions for editors."""

from .config import Settings, get_settings
from .errors import (
    CommandRejectedError,
    CommandTimeoutError,
    GhcModError,
    ProcessCrashError,
    SessionClosedError,
    SpawnFailureError,
)
from .provider import GhcModProvider
from .scheduler import CoalescingScheduler, ThrottledDelayer
from .service import AnalysisService
from .session import GhcModSession
from .types import Command, Diagnostic, DiagnosticSeverity, Location, Position, Range

__version__ = "0.1.0"

__all__ = [
    "AnalysisService",
    "CoalescingScheduler",
    "Command",
    "CommandRejectedError",
    "CommandTimeoutError",
    "Diagnostic",
    "DiagnosticSeverity",
    "GhcModError",
    "GhcModProvider",
    "GhcModSession",
    "Location",
    "Position",
    "ProcessCrashError",
    "Range",
    "SessionClosedError",
    "Settings",
    "SpawnFailureError",
    "ThrottledDelayer",
    "get_settings",
]
