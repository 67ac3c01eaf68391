"""Timer backends: the platform capability that measures time and fires."""
from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import sys
import threading
import time
from typing import Any, Callable, Protocol, runtime_checkable

from ticktock.duration import SECOND, to_seconds

logger = logging.getLogger(__name__)

Fire = Callable[[], None]


@runtime_checkable
class TimerBackend(Protocol):
    """Protocol for timer backends.

    Durations are milliseconds. Handles are opaque to callers and only ever
    handed back to ``cancel``. A backend may also offer
    ``schedule_immediate(fn)``; ``Tick`` looks for it once at construction.
    """

    def schedule_once(self, ms: float, fn: Fire) -> Any:
        """Call ``fn`` once after ``ms`` milliseconds."""
        ...

    def schedule_repeating(self, ms: float, fn: Fire) -> Any:
        """Call ``fn`` every ``ms`` milliseconds until cancelled."""
        ...

    def cancel(self, handle: Any) -> None:
        """Stop a handle of either kind. Cancelling twice is harmless."""
        ...


# --- Threads ---


def _wait_until(stopped: threading.Event, deadline: float) -> bool:
    """Block until the monotonic ``deadline`` or until ``stopped`` is set.

    Waits in slices of at most ``threading.TIMEOUT_MAX`` so far deadlines do
    not overflow the lock timeout. Returns True if stopped.
    """
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return stopped.is_set()
        if stopped.wait(min(remaining, threading.TIMEOUT_MAX)):
            return True


class _ThreadTimeout(threading.Thread):
    """One-shot timer on a daemon thread."""

    def __init__(self, ms: float, fn: Fire) -> None:
        super().__init__(name="ticktock-timeout", daemon=True)
        self._deadline = time.monotonic() + to_seconds(ms)
        self._fn = fn
        self._stopped = threading.Event()
        self.start()

    def run(self) -> None:
        if not _wait_until(self._stopped, self._deadline):
            self._fn()

    def cancel(self) -> None:
        self._stopped.set()


class _ThreadInterval(threading.Thread):
    """Repeating timer on one daemon thread.

    Ticks run one after another, never overlapping. Deadlines come from a
    monotonic schedule; ticks missed while a callback overran are skipped.
    A callback that raises is reported through ``threading.excepthook`` and
    the interval carries on.
    """

    def __init__(self, ms: float, fn: Fire) -> None:
        super().__init__(name="ticktock-interval", daemon=True)
        self._interval = to_seconds(ms)
        self._fn = fn
        self._stopped = threading.Event()
        self.start()

    def run(self) -> None:
        due = time.monotonic() + self._interval
        while not _wait_until(self._stopped, due):
            try:
                self._fn()
            except Exception:
                threading.excepthook(
                    threading.ExceptHookArgs([*sys.exc_info(), self])
                )
            due += self._interval
            now = time.monotonic()
            if due <= now:
                due += ((now - due) // self._interval + 1) * self._interval

    def cancel(self) -> None:
        self._stopped.set()


class ThreadingBackend:
    """Wall-clock timers on daemon threads. Callbacks fire off the caller's thread."""

    def schedule_once(self, ms: float, fn: Fire) -> _ThreadTimeout:
        return _ThreadTimeout(ms, fn)

    def schedule_repeating(self, ms: float, fn: Fire) -> _ThreadInterval:
        return _ThreadInterval(ms, fn)

    def cancel(self, handle: Any) -> None:
        handle.cancel()


# --- asyncio ---


class _LoopInterval:
    """Repeating timer on an event loop, rescheduled from ``loop.time()``.

    Ticks that fall behind the loop clock are skipped rather than replayed.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, ms: float, fn: Fire) -> None:
        self._loop = loop
        self._interval = to_seconds(ms)
        self._fn = fn
        self._cancelled = False
        self._due = loop.time()
        self._handle: asyncio.TimerHandle | None = None
        self._arm()

    def _arm(self) -> None:
        self._due += self._interval
        now = self._loop.time()
        if self._due <= now:
            self._due += ((now - self._due) // self._interval + 1) * self._interval
        self._handle = self._loop.call_at(self._due, self._run)

    def _run(self) -> None:
        if self._cancelled:
            return
        self._arm()
        self._fn()

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()


class AsyncioBackend:
    """Timers on an asyncio event loop.

    Without an explicit loop the running loop is used, so scheduling must
    happen from inside a coroutine or loop callback. ``call_soon`` provides
    the immediate capability.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        return asyncio.get_running_loop()

    def schedule_once(self, ms: float, fn: Fire) -> asyncio.TimerHandle:
        return self.loop.call_later(to_seconds(ms), fn)

    def schedule_repeating(self, ms: float, fn: Fire) -> _LoopInterval:
        return _LoopInterval(self.loop, ms, fn)

    def schedule_immediate(self, fn: Fire) -> asyncio.Handle:
        return self.loop.call_soon(fn)

    def cancel(self, handle: Any) -> None:
        handle.cancel()


# --- Virtual time ---


class _ManualTimer:
    __slots__ = ("due", "interval", "fn", "cancelled")

    def __init__(self, due: float, interval: float | None, fn: Fire) -> None:
        self.due = due
        self.interval = interval
        self.fn = fn
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualBackend:
    """Deterministic backend driven by ``advance`` instead of a clock.

    Timers due at the same instant fire in the order they were armed.
    Exceptions raised by a fired callback propagate out of ``advance`` with
    virtual time left at that timer's due time. Timer state is already
    updated by then, so advancing again resumes from there.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)
        self._queue: list[tuple[float, int, _ManualTimer]] = []
        self._counter = itertools.count()

    @property
    def now(self) -> float:
        """Current virtual time in milliseconds."""
        return self._now

    def _push(self, timer: _ManualTimer) -> None:
        heapq.heappush(self._queue, (timer.due, next(self._counter), timer))

    def schedule_once(self, ms: float, fn: Fire) -> _ManualTimer:
        timer = _ManualTimer(self._now + max(0.0, ms), None, fn)
        self._push(timer)
        return timer

    def schedule_repeating(self, ms: float, fn: Fire) -> _ManualTimer:
        if ms <= 0:
            raise ValueError("repeating interval must be positive")
        timer = _ManualTimer(self._now + ms, ms, fn)
        self._push(timer)
        return timer

    def cancel(self, handle: Any) -> None:
        handle.cancel()

    def pending(self) -> int:
        """Number of timers that have not fired (one-shot) or been cancelled."""
        return sum(1 for _, _, timer in self._queue if not timer.cancelled)

    def advance(self, ms: float = 0.0) -> int:
        """Move virtual time forward by ``ms``, firing everything that falls due.

        Returns the number of callbacks fired.
        """
        target = self._now + max(0.0, ms)
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now = due
            if timer.interval is not None:
                timer.due = due + timer.interval
                self._push(timer)
            fired += 1
            timer.fn()
        self._now = target
        return fired

    def advance_seconds(self, seconds: float) -> int:
        return self.advance(seconds * SECOND)


_BACKENDS: dict[str, Callable[[], TimerBackend]] = {
    "thread": ThreadingBackend,
    "asyncio": AsyncioBackend,
    "manual": ManualBackend,
}


def make_backend(name: str) -> TimerBackend:
    """Build a backend by name. Raises ValueError for unknown names."""
    factory = _BACKENDS.get(name)
    if factory is None:
        raise ValueError(
            f"Unknown timer backend {name!r}, expected one of {sorted(_BACKENDS)}"
        )
    logger.debug("Using %s timer backend", name)
    return factory()
