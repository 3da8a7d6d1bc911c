"""Lifecycle of the long-lived ghc-mod subprocess."""

from __future__ import annotations

import asyncio
import codecs
from collections import deque
from collections.abc import Callable, Sequence
from contextlib import suppress
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from loguru import logger

from ghcmodi.errors import (
    CommandRejectedError,
    CommandTimeoutError,
    GhcModError,
    ProcessCrashError,
    SessionClosedError,
    SpawnFailureError,
)
from ghcmodi.protocol import ResponseParser
from ghcmodi.scheduler import CoalescingScheduler

READ_CHUNK_SIZE = 4096
DEFAULT_COMMAND_TIMEOUT_SECONDS = 60.0
PROBE_TIMEOUT_SECONDS = 30.0
TERMINATE_GRACE_SECONDS = 2.0
STARTUP_GRACE_SECONDS = 0.5


class ResponseState(StrEnum):
    AWAITING = "awaiting"
    SATISFIED = "satisfied"
    REJECTED = "rejected"
    CRASHED = "crashed"
    TIMED_OUT = "timed_out"
    ABANDONED = "abandoned"


class PendingResponse:
    """Response accumulator for the one command currently on the wire.

    Leaves ``AWAITING`` exactly once. Leaving it cancels the deadline timer and
    runs ``on_settle`` so the owner stops routing output here.
    """

    def __init__(
        self,
        command: str,
        *,
        loop: asyncio.AbstractEventLoop,
        on_settle: Callable[[PendingResponse], None] | None = None,
    ) -> None:
        self.command = command
        self.parser = ResponseParser()
        self.state = ResponseState.AWAITING
        self.completion: asyncio.Future[list[str]] = loop.create_future()
        self.deadline: float | None = None
        self._loop = loop
        self._timer: asyncio.TimerHandle | None = None
        self._on_settle = on_settle

    def arm(self, timeout: float) -> None:
        self.deadline = self._loop.time() + timeout
        self._timer = self._loop.call_later(timeout, self.expire, timeout)

    def feed(self, chunk: bytes | str) -> None:
        if self.state is not ResponseState.AWAITING or not self.parser.feed(chunk):
            return
        if self.parser.rejected:
            error = CommandRejectedError(self.command, self.parser.reason, self.parser.payload())
            self._settle(ResponseState.REJECTED, error=error)
        else:
            self._settle(ResponseState.SATISFIED, result=self.parser.payload())

    def crash(self, returncode: int | None) -> None:
        error = ProcessCrashError(self.command, returncode, self.parser.received_lines())
        self._settle(ResponseState.CRASHED, error=error)

    def expire(self, timeout: float) -> None:
        error = CommandTimeoutError(self.command, timeout, self.parser.received_lines())
        self._settle(ResponseState.TIMED_OUT, error=error)

    def abandon(self, error: BaseException | None = None) -> None:
        self._settle(ResponseState.ABANDONED, error=error)

    def _settle(
        self,
        state: ResponseState,
        *,
        result: list[str] | None = None,
        error: BaseException | None = None,
    ) -> None:
        if self.state is not ResponseState.AWAITING:
            return
        self.state = state
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if not self.completion.done():
            if error is not None:
                self.completion.set_exception(error)
            elif state is ResponseState.ABANDONED:
                self.completion.cancel()
            else:
                self.completion.set_result(result or [])
        on_settle, self._on_settle = self._on_settle, None
        if on_settle is not None:
            on_settle(self)


@dataclass(eq=False)
class ProcessHandle:
    """A running ghc-mod process together with its reader tasks."""

    process: asyncio.subprocess.Process
    argv: list[str]
    pending: PendingResponse | None = None
    stopping: bool = False
    exited: bool = False
    tasks: list[asyncio.Task[None]] = field(default_factory=list)
    stderr_chunks: list[str] = field(default_factory=list)
    stdout_decoder: codecs.IncrementalDecoder = field(
        default_factory=lambda: codecs.getincrementaldecoder("utf-8")(errors="replace")
    )
    stderr_decoder: codecs.IncrementalDecoder = field(
        default_factory=lambda: codecs.getincrementaldecoder("utf-8")(errors="replace")
    )
    # Parsers of timed-out commands whose replies are still owed, oldest first.
    stale: deque[ResponseParser] = field(default_factory=deque)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    @property
    def is_alive(self) -> bool:
        return not (self.exited or self.stopping) and self.process.returncode is None

    def release(self, pending: PendingResponse) -> None:
        if self.pending is pending:
            self.pending = None
        if pending.state is ResponseState.TIMED_OUT:
            # ghc-mod still answers the command eventually; that reply must not
            # be read as the answer to the next one.
            self.stale.append(pending.parser)


class ProcessSupervisor:
    """Spawn ghc-mod on demand, watch it, and talk to it one command at a time.

    Callers must not overlap :meth:`interact` calls on the same handle; the
    command queue guarantees that.
    """

    def __init__(
        self,
        argv: Sequence[str],
        *,
        probe_argv: Sequence[str] | None = None,
        cwd: Path | None = None,
        command_timeout: float = DEFAULT_COMMAND_TIMEOUT_SECONDS,
        kill_on_timeout: bool = False,
        stderr_delay: float = 0.1,
        startup_grace: float = STARTUP_GRACE_SECONDS,
        scheduler: CoalescingScheduler | None = None,
    ) -> None:
        self.argv = list(argv)
        self.probe_argv = list(probe_argv) if probe_argv else None
        self.cwd = cwd
        self.command_timeout = command_timeout
        self.kill_on_timeout = kill_on_timeout
        self.stderr_delay = stderr_delay
        self.startup_grace = startup_grace
        self._scheduler = scheduler or CoalescingScheduler(stderr_delay)
        self._handle: ProcessHandle | None = None
        self._spawn_lock = asyncio.Lock()
        self._spawn_failure: SpawnFailureError | None = None
        self._probed = False
        self.spawn_count = 0

    @property
    def handle(self) -> ProcessHandle | None:
        return self._handle

    @property
    def is_running(self) -> bool:
        return self._handle is not None and self._handle.is_alive

    @property
    def spawn_failure(self) -> SpawnFailureError | None:
        return self._spawn_failure

    def reset(self) -> None:
        """Forget a recorded spawn failure so the next command tries again."""
        self._spawn_failure = None
        self._probed = False

    async def ensure_process(self) -> ProcessHandle:
        if self._spawn_failure is not None:
            raise self._spawn_failure
        handle = self._handle
        if handle is not None and handle.is_alive:
            return handle
        async with self._spawn_lock:
            handle = self._handle
            if handle is not None and handle.is_alive:
                return handle
            if self._spawn_failure is not None:
                raise self._spawn_failure
            try:
                if not self._probed:
                    await self._probe()
                    self._probed = True
                handle = await self._spawn()
            except SpawnFailureError as exc:
                self._spawn_failure = exc
                logger.error("ghcmod.spawn.failed argv={} reason={}", exc.argv, exc.reason)
                raise
            self._handle = handle
            return handle

    async def interact(
        self,
        handle: ProcessHandle,
        payload: str,
        *,
        command: str,
        timeout: float | None = None,
    ) -> list[str]:
        """Write one request and wait for its terminated response."""
        if not handle.is_alive:
            raise ProcessCrashError(command, handle.returncode)
        if handle.pending is not None:
            raise GhcModError(f"command {handle.pending.command!r} is still in flight")

        timeout = self.command_timeout if timeout is None else timeout
        pending = PendingResponse(command, loop=asyncio.get_running_loop(), on_settle=handle.release)
        handle.pending = pending
        pending.arm(timeout)
        logger.debug("ghcmod.send pid={} command={}", handle.pid, command)

        stdin = handle.process.stdin
        try:
            if stdin is None:
                raise BrokenPipeError("stdin is not connected")
            stdin.write(payload.encode("utf-8"))
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            logger.warning("ghcmod.write.failed pid={} command={} error={}", handle.pid, command, exc)
            pending.crash(handle.returncode)

        try:
            return await pending.completion
        except asyncio.CancelledError:
            pending.abandon()
            raise
        except CommandTimeoutError as exc:
            logger.warning("ghcmod.timeout command={} partial={!r}", command, exc.partial_lines)
            if self.kill_on_timeout:
                await self.kill()
            raise
        except ProcessCrashError as exc:
            logger.error("ghcmod.crash command={} returncode={} partial={!r}", command, exc.returncode, exc.partial_lines)
            raise

    async def kill(self) -> None:
        """Stop the current process, if any. Safe to call repeatedly."""
        handle, self._handle = self._handle, None
        if handle is None or handle.stopping:
            return
        handle.stopping = True
        if handle.pending is not None:
            handle.pending.abandon(SessionClosedError(f"ghc-mod was stopped during {handle.pending.command!r}"))

        stdin = handle.process.stdin
        if stdin is not None and not stdin.is_closing():
            stdin.close()
        if handle.process.returncode is None:
            with suppress(ProcessLookupError):
                handle.process.terminate()
            try:
                await asyncio.wait_for(handle.process.wait(), timeout=TERMINATE_GRACE_SECONDS)
            except TimeoutError:
                with suppress(ProcessLookupError):
                    handle.process.kill()
                await handle.process.wait()

        for task in handle.tasks:
            task.cancel()
        await asyncio.gather(*handle.tasks, return_exceptions=True)
        self._flush_stderr(handle)
        logger.info("ghcmod.killed pid={} returncode={}", handle.pid, handle.returncode)

    async def _probe(self) -> None:
        if self.probe_argv is None:
            return
        try:
            process = await asyncio.create_subprocess_exec(
                *self.probe_argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
            )
        except OSError as exc:
            raise SpawnFailureError(self.probe_argv, str(exc)) from exc
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=PROBE_TIMEOUT_SECONDS)
        except TimeoutError:
            with suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            raise SpawnFailureError(self.probe_argv, "version probe timed out") from None
        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip() or "(no output)"
            raise SpawnFailureError(self.probe_argv, f"exit={process.returncode}: {detail}")
        logger.info("ghcmod.version {}", stdout.decode("utf-8", errors="replace").strip())

    async def _spawn(self) -> ProcessHandle:
        try:
            process = await asyncio.create_subprocess_exec(
                *self.argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
            )
        except OSError as exc:
            raise SpawnFailureError(self.argv, str(exc)) from exc
        await self._await_startup(process)
        handle = ProcessHandle(process=process, argv=list(self.argv))
        handle.tasks.append(asyncio.create_task(self._pump_stdout(handle)))
        handle.tasks.append(asyncio.create_task(self._pump_stderr(handle)))
        self.spawn_count += 1
        logger.info("ghcmod.spawn pid={} argv={}", process.pid, self.argv)
        return handle

    async def _await_startup(self, process: asyncio.subprocess.Process) -> None:
        """Fail the spawn if the process exits before it is given any work."""
        if self.startup_grace <= 0:
            return
        try:
            returncode = await asyncio.wait_for(process.wait(), timeout=self.startup_grace)
        except TimeoutError:
            return
        except asyncio.CancelledError:
            with suppress(ProcessLookupError):
                process.kill()
            raise
        stderr = await process.stderr.read() if process.stderr is not None else b""
        detail = stderr.decode("utf-8", errors="replace").strip() or "(no output)"
        raise SpawnFailureError(self.argv, f"exit={returncode}: {detail}")

    async def _pump_stdout(self, handle: ProcessHandle) -> None:
        stream = handle.process.stdout
        if stream is None:
            return
        while chunk := await stream.read(READ_CHUNK_SIZE):
            self._route_stdout(handle, handle.stdout_decoder.decode(chunk))
        returncode = await handle.process.wait()
        self._handle_exit(handle, returncode)

    def _route_stdout(self, handle: ProcessHandle, text: str) -> None:
        while text:
            if handle.stale:
                late = handle.stale[0]
                if not late.feed(text):
                    return
                handle.stale.popleft()
                logger.warning("ghcmod.stdout.late pid={} lines={!r}", handle.pid, late.payload())
                text = late.take_remainder()
                continue
            pending = handle.pending
            if pending is None:
                logger.debug("ghcmod.stdout.unsolicited pid={} data={!r}", handle.pid, text)
                return
            pending.feed(text)
            text = pending.parser.take_remainder()

    async def _pump_stderr(self, handle: ProcessHandle) -> None:
        stream = handle.process.stderr
        if stream is None:
            return
        while chunk := await stream.read(READ_CHUNK_SIZE):
            handle.stderr_chunks.append(handle.stderr_decoder.decode(chunk))
            self._scheduler.trigger(f"stderr:{handle.pid}", lambda: self._relay_stderr(handle), self.stderr_delay)

    async def _relay_stderr(self, handle: ProcessHandle) -> None:
        self._flush_stderr(handle)

    def _flush_stderr(self, handle: ProcessHandle) -> None:
        text = "".join(handle.stderr_chunks).strip()
        handle.stderr_chunks.clear()
        if text:
            logger.info("ghcmod.stderr pid={} {}", handle.pid, text)

    def _handle_exit(self, handle: ProcessHandle, returncode: int) -> None:
        if handle.exited:
            return
        handle.exited = True
        if self._handle is handle:
            self._handle = None
        self._flush_stderr(handle)
        self._scheduler.discard(f"stderr:{handle.pid}")
        if handle.stopping:
            return
        logger.warning("ghcmod.exit pid={} returncode={}", handle.pid, returncode)
        if handle.pending is not None:
            handle.pending.crash(returncode)
