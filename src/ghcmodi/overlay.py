"""In-memory file overlays (``map-file``/``unmap-file``) around one command."""

from __future__ import annotations

from loguru import logger

from ghcmodi.errors import GhcModError
from ghcmodi.process import ProcessHandle, ProcessSupervisor
from ghcmodi.protocol import encode_command, encode_map_file, encode_unmap_file
from ghcmodi.types import Command


class FileOverlay:
    """Run a command, bracketed by map/unmap when it carries unsaved text.

    The overlay lives for exactly one queued command. Unmapping is best effort:
    its failure is logged and never replaces the outcome of the command.
    """

    def __init__(self, supervisor: ProcessSupervisor) -> None:
        self._supervisor = supervisor

    @staticmethod
    def needs_overlay(command: Command) -> bool:
        return command.overlay_text is not None and bool(command.target_path)

    async def run(self, handle: ProcessHandle, command: Command) -> list[str]:
        if not self.needs_overlay(command):
            return await self._send(handle, command)

        path = command.target_path or ""
        try:
            await self._supervisor.interact(
                handle,
                encode_map_file(path, command.overlay_text or ""),
                command=f"map-file {path}",
            )
            return await self._send(handle, command)
        finally:
            await self._unmap(handle, path)

    async def _send(self, handle: ProcessHandle, command: Command) -> list[str]:
        return await self._supervisor.interact(handle, encode_command(command), command=command.label)

    async def _unmap(self, handle: ProcessHandle, path: str) -> None:
        if not handle.is_alive:
            # The mapping went away with the process.
            logger.debug("ghcmod.unmap.skipped path={} pid={}", path, handle.pid)
            return
        try:
            await self._supervisor.interact(handle, encode_unmap_file(path), command=f"unmap-file {path}")
        except GhcModError as exc:
            logger.warning("ghcmod.unmap.failed path={} error={}", path, exc)
