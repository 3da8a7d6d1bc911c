"""Session façade: one ghc-mod process per analysis root."""

from __future__ import annotations

from pathlib import Path
from types import TracebackType

from loguru import logger

from ghcmodi.command_queue import CommandQueue
from ghcmodi.config import Settings, get_settings
from ghcmodi.errors import SessionClosedError
from ghcmodi.overlay import FileOverlay
from ghcmodi.process import ProcessSupervisor
from ghcmodi.scheduler import CoalescingScheduler
from ghcmodi.types import Command


class GhcModSession:
    """Run ghc-mod commands for one project root, strictly one after another."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        root: Path | None = None,
        supervisor: ProcessSupervisor | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.root = (root or self.settings.resolve_root()).resolve()
        self.scheduler = CoalescingScheduler(self.settings.stderr_delay_seconds)
        self.supervisor = supervisor or ProcessSupervisor(
            self.settings.tool_argv(),
            probe_argv=self.settings.probe_argv(),
            cwd=self.root,
            command_timeout=self.settings.command_timeout_seconds,
            kill_on_timeout=self.settings.kill_on_timeout,
            stderr_delay=self.settings.stderr_delay_seconds,
            startup_grace=self.settings.startup_grace_seconds,
            scheduler=self.scheduler,
        )
        self.overlay = FileOverlay(self.supervisor)
        self.queue = CommandQueue(self._execute)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self) -> GhcModSession:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.shutdown()

    async def run_command(self, command: Command) -> list[str]:
        """Queue ``command`` and return its decoded payload lines."""
        if self._closed:
            raise SessionClosedError(f"session for {self.root} is shut down")
        return await self.queue.enqueue(command)

    async def start(self) -> None:
        """Spawn the process ahead of the first command."""
        await self.supervisor.ensure_process()

    async def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        rejected = self.queue.reject_pending()
        self.scheduler.cancel()
        await self.supervisor.kill()
        await self.queue.close()
        # The worker may have finished spawning while it was being cancelled.
        await self.supervisor.kill()
        logger.info("ghcmod.session.shutdown root={} rejected={}", self.root, rejected)

    async def _execute(self, command: Command) -> list[str]:
        handle = await self.supervisor.ensure_process()
        return await self.overlay.run(handle, command)
