"""Strict FIFO, single-flight execution of ghc-mod commands."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeAlias

from loguru import logger

from ghcmodi.errors import SessionClosedError
from ghcmodi.types import Command

CommandRunner: TypeAlias = "Callable[[Command], Awaitable[list[str]]]"


@dataclass(eq=False)
class _Job:
    command: Command
    future: asyncio.Future[list[str]]


class CommandQueue:
    """Feed commands to ``runner`` one at a time, in submission order.

    A command is not started until the previous one has fully resolved. A
    failure only fails its own command; the queue moves on to the next one.
    """

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner
        self._jobs: asyncio.Queue[_Job] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._current: _Job | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def in_flight(self) -> Command | None:
        return self._current.command if self._current is not None else None

    def __len__(self) -> int:
        return self._jobs.qsize()

    def enqueue(self, command: Command) -> asyncio.Future[list[str]]:
        if self._closed:
            raise SessionClosedError("command queue is closed")
        job = _Job(command, asyncio.get_running_loop().create_future())
        self._jobs.put_nowait(job)
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain())
        return job.future

    async def submit(self, command: Command) -> list[str]:
        return await self.enqueue(command)

    def reject_pending(self) -> int:
        """Stop accepting work and fail every command that has not started."""
        self._closed = True
        rejected = 0
        while not self._jobs.empty():
            job = self._jobs.get_nowait()
            self._jobs.task_done()
            if not job.future.done():
                job.future.set_exception(SessionClosedError(f"session closed before {job.command.label!r} ran"))
                rejected += 1
        return rejected

    async def close(self) -> None:
        self.reject_pending()
        worker, self._worker = self._worker, None
        if worker is None or worker.done():
            return
        worker.cancel()
        try:
            await worker
        except asyncio.CancelledError:
            pass

    async def _drain(self) -> None:
        while True:
            job = await self._jobs.get()
            try:
                await self._run(job)
            finally:
                self._jobs.task_done()

    async def _run(self, job: _Job) -> None:
        if job.future.done():
            logger.debug("ghcmod.queue.skip command={}", job.command.label)
            return
        if self._closed:
            job.future.set_exception(SessionClosedError(f"session closed before {job.command.label!r} ran"))
            return
        self._current = job
        logger.debug("ghcmod.queue.start command={} waiting={}", job.command.label, self._jobs.qsize())
        try:
            result = await self._runner(job.command)
        except asyncio.CancelledError:
            if not job.future.done():
                job.future.set_exception(SessionClosedError(f"session closed while {job.command.label!r} ran"))
            raise
        except Exception as exc:
            if not job.future.done():
                job.future.set_exception(exc)
        else:
            if not job.future.done():
                job.future.set_result(result)
        finally:
            self._current = None
