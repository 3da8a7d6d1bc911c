"""Debounce and coalescing primitives used to rate-limit calls into ghc-mod.

Each primitive hands out plain :class:`asyncio.Future` objects. Several callers
may share one future: whichever invocation finally runs on their behalf
settles it. Callers that can be cancelled should await the future through
:func:`asyncio.shield` so their cancellation does not cancel the shared result.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterator
from typing import Any, Generic, TypeAlias, TypeVar

from loguru import logger

T = TypeVar("T")

TaskFactory: TypeAlias = "Callable[[], Awaitable[T]]"


def chain_future(source: asyncio.Future[T], target: asyncio.Future[T]) -> None:
    """Settle ``target`` with the outcome of ``source`` once it completes."""

    def _copy(done: asyncio.Future[T]) -> None:
        if done.cancelled():
            if not target.done():
                target.cancel()
            return
        exc = done.exception()
        if target.done():
            return
        if exc is not None:
            target.set_exception(exc)
        else:
            target.set_result(done.result())

    source.add_done_callback(_copy)


def _invoke(factory: TaskFactory[T]) -> asyncio.Future[T]:
    try:
        return asyncio.ensure_future(factory())
    except Exception as exc:
        failed: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        failed.set_exception(exc)
        return failed


class Delayer(Generic[T]):
    """Run the most recently supplied factory once no trigger arrived for ``delay`` seconds."""

    def __init__(self, default_delay: float) -> None:
        self.default_delay = default_delay
        self._timer: asyncio.TimerHandle | None = None
        self._completion: asyncio.Future[T] | None = None
        self._factory: TaskFactory[T] | None = None

    @property
    def is_triggered(self) -> bool:
        return self._timer is not None

    def trigger(self, factory: TaskFactory[T], delay: float | None = None) -> asyncio.Future[T]:
        loop = asyncio.get_running_loop()
        self._factory = factory
        self._cancel_timer()
        if self._completion is None or self._completion.done():
            self._completion = loop.create_future()
        self._timer = loop.call_later(self.default_delay if delay is None else delay, self._fire)
        return self._completion

    def cancel(self) -> None:
        """Drop the pending invocation, cancelling the future its callers hold."""
        self._cancel_timer()
        if self._completion is not None and not self._completion.done():
            self._completion.cancel()
        self._completion = None
        self._factory = None

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        completion, factory = self._completion, self._factory
        self._timer = None
        self._completion = None
        self._factory = None
        if completion is None or factory is None or completion.cancelled():
            return
        chain_future(_invoke(factory), completion)


class Throttler(Generic[T]):
    """Allow one running task; keep only the latest request queued behind it."""

    def __init__(self) -> None:
        self._active: asyncio.Future[T] | None = None
        self._queued: asyncio.Future[T] | None = None
        self._queued_factory: TaskFactory[T] | None = None

    @property
    def is_active(self) -> bool:
        return self._active is not None

    @property
    def has_queued(self) -> bool:
        return self._queued is not None

    def queue(self, factory: TaskFactory[T]) -> asyncio.Future[T]:
        if self._active is None:
            return self._start(factory)

        # Later callers overwrite the factory; every caller shares the queued future.
        self._queued_factory = factory
        if self._queued is None:
            self._queued = asyncio.get_running_loop().create_future()
            self._active.add_done_callback(self._start_queued)
        return self._queued

    def _start(self, factory: TaskFactory[T]) -> asyncio.Future[T]:
        active = _invoke(factory)
        self._active = active
        active.add_done_callback(self._clear_active)
        return active

    def _clear_active(self, done: asyncio.Future[T]) -> None:
        if self._active is done:
            self._active = None

    def _start_queued(self, _done: asyncio.Future[T]) -> None:
        queued, factory = self._queued, self._queued_factory
        self._queued = None
        self._queued_factory = None
        if queued is None or factory is None or queued.cancelled():
            return
        chain_future(self._start(factory), queued)


class ThrottledDelayer(Generic[T]):
    """Debounced entry into a :class:`Throttler`.

    Triggers inside the delay window collapse into one invocation. A trigger
    that arrives while an invocation is running skips the delay and waits in
    the throttler's single queue slot, so it starts as soon as the running one
    settles.
    """

    def __init__(self, default_delay: float) -> None:
        self._delayer: Delayer[T] = Delayer(default_delay)
        self._throttler: Throttler[T] = Throttler()

    @property
    def is_triggered(self) -> bool:
        return self._delayer.is_triggered

    @property
    def is_running(self) -> bool:
        return self._throttler.is_active

    @property
    def is_idle(self) -> bool:
        """True when no invocation is pending or running."""
        return not (self._delayer.is_triggered or self._throttler.is_active or self._throttler.has_queued)

    def trigger(self, factory: TaskFactory[T], delay: float | None = None) -> asyncio.Future[T]:
        if self._throttler.is_active and not self._delayer.is_triggered:
            return self._throttler.queue(factory)
        return self._delayer.trigger(lambda: self._throttler.queue(factory), delay)

    def cancel(self) -> None:
        self._delayer.cancel()


class CoalescingScheduler:
    """Registry of :class:`ThrottledDelayer` slots keyed by caller-chosen strings."""

    def __init__(self, default_delay: float = 0.1) -> None:
        self.default_delay = default_delay
        self._slots: dict[str, ThrottledDelayer[Any]] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._slots

    def __iter__(self) -> Iterator[str]:
        return iter(tuple(self._slots))

    def __len__(self) -> int:
        return len(self._slots)

    def trigger(self, key: str, factory: TaskFactory[T], delay: float | None = None) -> asyncio.Future[T]:
        slot = self._slots.get(key)
        if slot is None:
            slot = ThrottledDelayer(self.default_delay if delay is None else delay)
            self._slots[key] = slot
            logger.trace("scheduler.slot.created key={}", key)
        return slot.trigger(factory, delay)

    def cancel(self, key: str | None = None) -> None:
        """Cancel pending (not yet running) invocations for one key or for all keys."""
        keys = list(self._slots) if key is None else [key]
        for name in keys:
            slot = self._slots.get(name)
            if slot is not None:
                slot.cancel()

    def discard(self, key: str) -> None:
        slot = self._slots.pop(key, None)
        if slot is not None:
            slot.cancel()

    def release(self, key: str) -> None:
        """Drop the slot for ``key`` once it has no scheduled or running work."""
        slot = self._slots.get(key)
        if slot is not None and slot.is_idle:
            del self._slots[key]
