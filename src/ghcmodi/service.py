"""Rate-limited analysis requests for an editor front end."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from pathlib import Path
from typing import TypeVar

from loguru import logger

from ghcmodi.config import Settings, get_settings
from ghcmodi.errors import GhcModError, SpawnFailureError
from ghcmodi.provider import GhcModProvider, path_from_uri
from ghcmodi.session import GhcModSession
from ghcmodi.types import Diagnostic, Location, Position

HOVER_KEY = "hover"

T = TypeVar("T")


class AnalysisService:
    """Route editor events to one ghc-mod session per analysis root.

    Document changes are debounced per document, so a burst of keystrokes
    produces a single ``check``. Hover requests share one key because only
    the latest hover matters. A document's slot is dropped once its check
    settles with nothing else pending.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self._providers: dict[Path, GhcModProvider] = {}
        self._reported_failures: set[Path] = set()

    def session_for(self, root: Path | None = None) -> GhcModSession:
        return self.provider_for(root).session

    def provider_for(self, root: Path | None = None) -> GhcModProvider:
        key = (root or self.settings.resolve_root()).resolve()
        provider = self._providers.get(key)
        if provider is None:
            session = GhcModSession(self.settings, root=key)
            provider = GhcModProvider(session, key)
            self._providers[key] = provider
            logger.info("ghcmod.session.created root={}", key)
        return provider

    async def document_changed(self, path: str, text: str, root: Path | None = None) -> list[Diagnostic]:
        provider = self.provider_for(root)
        key = f"check:{path_from_uri(path)}"
        map_file = self.settings.map_unsaved_files

        async def _check() -> list[Diagnostic]:
            return await self._guard(provider, provider.check(text, path, map_file), [])

        scheduler = provider.session.scheduler
        try:
            diagnostics = await asyncio.shield(scheduler.trigger(key, _check, self.settings.check_delay_seconds))
        finally:
            scheduler.release(key)
        return diagnostics[: self.settings.max_number_of_problems]

    def document_closed(self, path: str, root: Path | None = None) -> None:
        self.provider_for(root).session.scheduler.discard(f"check:{path_from_uri(path)}")

    async def hover(self, path: str, text: str, position: Position, root: Path | None = None) -> str:
        provider = self.provider_for(root)
        map_file = self.settings.map_unsaved_files

        async def _tooltip() -> str:
            info = await self._guard(provider, provider.get_info(text, path, position, map_file), "")
            if info:
                return info
            return await self._guard(provider, provider.get_type(text, path, position, map_file), "")

        return await asyncio.shield(
            provider.session.scheduler.trigger(HOVER_KEY, _tooltip, self.settings.hover_delay_seconds)
        )

    async def definition(self, path: str, text: str, position: Position, root: Path | None = None) -> list[Location]:
        provider = self.provider_for(root)
        return await self._guard(provider, provider.definition_location(text, path, position), [])

    async def shutdown(self) -> None:
        providers = list(self._providers.values())
        self._providers.clear()
        for provider in providers:
            await provider.shutdown()

    async def _guard(self, provider: GhcModProvider, request: Awaitable[T], fallback: T) -> T:
        """Await ``request``; log core failures and answer ``fallback`` instead."""
        try:
            return await request
        except SpawnFailureError as exc:
            root = provider.workspace_root
            if root not in self._reported_failures:
                self._reported_failures.add(root)
                logger.error("ghcmod.unavailable root={} error={}", root, exc)
            return fallback
        except GhcModError as exc:
            logger.warning("ghcmod.request.failed error={}", exc)
            return fallback
