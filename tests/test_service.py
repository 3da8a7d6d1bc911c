from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path

import pytest

from ghcmodi.config import Settings
from ghcmodi.service import AnalysisService
from ghcmodi.types import DiagnosticSeverity, Position


def _source(version: int) -> str:
    return f"module A where\n-- diag A.hs:{version}:1:Warning: version {version}\n"


@pytest.mark.asyncio
async def test_change_burst_runs_one_check(
    make_settings: Callable[..., Settings], tmp_path: Path, transcript
) -> None:
    service = AnalysisService(make_settings())
    path = str(tmp_path / "A.hs")
    try:
        results = await asyncio.gather(*(service.document_changed(path, _source(i)) for i in range(1, 6)))
        assert f"check:{path}" not in service.session_for(tmp_path).scheduler
    finally:
        await service.shutdown()

    for diagnostics in results:
        assert [d.message for d in diagnostics] == ["version 5"]
        assert diagnostics[0].severity is DiagnosticSeverity.WARNING
    assert [line for line in transcript.commands() if line.startswith("check")] == ["check A.hs"]


@pytest.mark.asyncio
async def test_diagnostics_are_capped(make_settings: Callable[..., Settings], tmp_path: Path, transcript) -> None:
    service = AnalysisService(make_settings(max_number_of_problems=2))
    text = "".join(f"-- diag A.hs:{line}:1:problem {line}\n" for line in range(1, 5))
    try:
        diagnostics = await service.document_changed(str(tmp_path / "A.hs"), text)
    finally:
        await service.shutdown()
    assert [d.message for d in diagnostics] == ["problem 1", "problem 2"]


@pytest.mark.asyncio
async def test_hover_prefers_info(make_settings: Callable[..., Settings], tmp_path: Path, transcript) -> None:
    service = AnalysisService(make_settings())
    try:
        tooltip = await service.hover(str(tmp_path / "A.hs"), "x = greeting\n", Position(0, 6))
    finally:
        await service.shutdown()
    assert tooltip.startswith("greeting :: Int")
    assert "Defined at" not in tooltip


@pytest.mark.asyncio
async def test_hover_falls_back_to_type(make_settings: Callable[..., Settings], tmp_path: Path, transcript) -> None:
    service = AnalysisService(make_settings())
    text = "module A where\n\nf x = bogus\n"
    try:
        tooltip = await service.hover(str(tmp_path / "A.hs"), text, Position(2, 7))
    finally:
        await service.shutdown()
    assert tooltip == "a"
    commands = transcript.commands()
    assert "info A.hs bogus" in commands
    assert "type A.hs 3 8" in commands


@pytest.mark.asyncio
async def test_rapid_hovers_only_answer_latest(
    make_settings: Callable[..., Settings], tmp_path: Path, transcript
) -> None:
    service = AnalysisService(make_settings())
    text = "a = alpha\nb = beta\n"
    path = str(tmp_path / "A.hs")
    try:
        first = asyncio.ensure_future(service.hover(path, text, Position(0, 5)))
        second = asyncio.ensure_future(service.hover(path, text, Position(1, 5)))
        results = await asyncio.gather(first, second)
    finally:
        await service.shutdown()
    assert all(result.startswith("beta :: Int") for result in results)
    assert not any("alpha" in line for line in transcript.commands())


@pytest.mark.asyncio
async def test_definition(make_settings: Callable[..., Settings], tmp_path: Path, transcript) -> None:
    service = AnalysisService(make_settings())
    try:
        locations = await service.definition(str(tmp_path / "A.hs"), "x = greeting\n", Position(0, 6))
    finally:
        await service.shutdown()
    assert [location.uri for location in locations] == [(tmp_path / "src" / "A.hs").resolve().as_uri()]
    # Definitions are looked up against the file on disk.
    assert not any(line.startswith("map-file") for line in transcript.commands())


@pytest.mark.asyncio
async def test_unavailable_tool_is_reported_once(
    make_settings: Callable[..., Settings], tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    errors: list[str] = []

    def _capture(message: str, *args: object) -> None:
        errors.append(message)

    monkeypatch.setattr("ghcmodi.service.logger.error", _capture)
    settings = make_settings(executable=str(tmp_path / "missing-ghc-mod"), executable_args=[])
    service = AnalysisService(settings)
    path = str(tmp_path / "A.hs")
    try:
        assert await service.document_changed(path, "x = 1") == []
        assert await service.hover(path, "x = y", Position(0, 4)) == ""
    finally:
        await service.shutdown()
    assert errors.count("ghcmod.unavailable root={} error={}") == 1


@pytest.mark.asyncio
async def test_one_session_per_root(make_settings: Callable[..., Settings], tmp_path: Path) -> None:
    service = AnalysisService(make_settings())
    other = tmp_path / "other"
    other.mkdir()

    first = service.session_for(tmp_path)
    assert service.session_for(tmp_path) is first
    assert service.session_for(other) is not first

    await service.shutdown()
    assert first.closed
