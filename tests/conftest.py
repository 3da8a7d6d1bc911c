from __future__ import annotations

import sys
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

from ghcmodi.config import Settings
from ghcmodi.process import ProcessSupervisor
from ghcmodi.session import GhcModSession

FAKE_TOOL = Path(__file__).with_name("fake_ghc_mod.py")


class Transcript:
    def __init__(self, path: Path) -> None:
        self.path = path

    def lines(self) -> list[str]:
        if not self.path.exists():
            return []
        return self.path.read_text(encoding="utf-8").splitlines()

    def commands(self) -> list[str]:
        """Request lines only, without overlay bodies and EOT markers."""
        result: list[str] = []
        in_overlay = False
        for line in self.lines():
            if in_overlay:
                in_overlay = line != "\x04"
                continue
            result.append(line)
            in_overlay = line.startswith("map-file ")
        return result


@pytest.fixture
def transcript(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Transcript:
    path = tmp_path / "transcript.log"
    monkeypatch.setenv("FAKE_GHCMOD_TRANSCRIPT", str(path))
    return Transcript(path)


@pytest.fixture
def make_settings(tmp_path: Path) -> Callable[..., Settings]:
    def _make(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "executable": sys.executable,
            "executable_args": [str(FAKE_TOOL)],
            "workspace_root": tmp_path,
            "command_timeout_seconds": 5.0,
            "check_delay_seconds": 0.05,
            "hover_delay_seconds": 0.05,
            "stderr_delay_seconds": 0.01,
            "startup_grace_seconds": 0.05,
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def make_supervisor(make_settings: Callable[..., Settings]) -> Callable[..., ProcessSupervisor]:
    def _make(**kwargs: Any) -> ProcessSupervisor:
        settings = make_settings()
        options: dict[str, Any] = {
            "probe_argv": settings.probe_argv(),
            "cwd": settings.workspace_root,
            "command_timeout": settings.command_timeout_seconds,
            "stderr_delay": settings.stderr_delay_seconds,
            "startup_grace": settings.startup_grace_seconds,
        }
        options.update(kwargs)
        return ProcessSupervisor(settings.tool_argv(), **options)

    return _make


@pytest_asyncio.fixture
async def session(make_settings: Callable[..., Settings], transcript: Transcript) -> AsyncIterator[GhcModSession]:
    ghc = GhcModSession(make_settings())
    try:
        yield ghc
    finally:
        await ghc.shutdown()
