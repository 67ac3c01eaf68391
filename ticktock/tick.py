"""Tick - named timers with coalesced callbacks."""
from __future__ import annotations

import functools
import itertools
import logging
import re
import threading
from typing import Any

from ticktock.backends import TimerBackend, make_backend
from ticktock.config import TickConfig
from ticktock.duration import parse
from ticktock.types import Callback, DurationSpec, Kind, TimerEntry

logger = logging.getLogger(__name__)


class Tick:
    """Registry of named timers.

    Scheduling a name that is already active adds the callback to the
    existing timer instead of starting another one. Callbacks are called
    with the instance context, which defaults to the Tick itself.

    After ``end()`` the instance is inert: every operation is a no-op,
    ``active`` is False and ``end`` returns False.
    """

    parse = staticmethod(parse)

    def __init__(
        self,
        context: Any = None,
        backend: TimerBackend | None = None,
        config: TickConfig | None = None,
    ) -> None:
        self.config: TickConfig = config if config is not None else TickConfig()

        if backend is None:
            backend = make_backend(self.config.backend)
        elif not isinstance(backend, TimerBackend):
            raise TypeError(
                f"{type(backend).__qualname__} does not implement TimerBackend"
            )
        self._backend = backend

        # Resolved once; never re-detected per call.
        self._immediate = (
            getattr(backend, "schedule_immediate", None)
            if self.config.use_immediate
            else None
        )

        self._timers: dict[str, TimerEntry] | None = {}
        self._context: Any = context if context is not None else self
        self._lock = threading.RLock()
        self._serials = itertools.count()
        self._delimiters = re.compile(self.config.delimiters)

    @property
    def backend(self) -> TimerBackend:
        return self._backend

    @property
    def context(self) -> Any:
        """Value passed to every callback. None once ended."""
        return self._context

    @property
    def ended(self) -> bool:
        return self._timers is None

    # --- Scheduling ---

    def schedule(
        self,
        name: str,
        fn: Callback,
        duration: DurationSpec = 0,
        kind: Kind = Kind.ONCE,
    ) -> Tick:
        """Attach ``fn`` to the timer called ``name``, starting it if needed.

        An active name keeps its original timer; ``duration`` and ``kind``
        only apply when a new timer is created.
        """
        with self._lock:
            if self._timers is None:
                logger.debug("Tick ended, ignoring schedule of %r", name)
                return self

            entry = self._timers.get(name)
            if entry is not None:
                entry.callbacks.append(fn)
                logger.debug(
                    "Coalesced callback onto %r (%d attached)",
                    name,
                    len(entry.callbacks),
                )
                return self

            entry = TimerEntry(name=name, kind=kind, owner=self, callbacks=[fn])
            self._timers[name] = entry
            try:
                self._arm(entry, parse(duration), immediate=kind is Kind.IMMEDIATE)
            except BaseException:
                del self._timers[name]
                raise
            logger.debug("Scheduled %s timer %r", kind.value, name)
        return self

    def set_timeout(self, name: str, fn: Callback, duration: DurationSpec = 0) -> Tick:
        return self.schedule(name, fn, duration, Kind.ONCE)

    def set_interval(self, name: str, fn: Callback, duration: DurationSpec = 0) -> Tick:
        return self.schedule(name, fn, duration, Kind.REPEATING)

    def set_immediate(self, name: str, fn: Callback) -> Tick:
        return self.schedule(name, fn, 0, Kind.IMMEDIATE)

    def _arm(self, entry: TimerEntry, ms: float, immediate: bool = False) -> None:
        """Start a fresh underlying timer for ``entry``. Caller holds the lock."""
        entry.serial = next(self._serials)
        fire = functools.partial(entry.fire, entry.serial)
        if entry.kind is Kind.REPEATING:
            entry.handle = self._backend.schedule_repeating(
                max(ms, self.config.min_interval), fire
            )
        elif immediate and self._immediate is not None:
            entry.handle = self._immediate(fire)
        else:
            entry.handle = self._backend.schedule_once(max(0.0, ms), fire)

    # --- Firing ---

    def _dispatch(self, name: str, serial: int) -> None:
        """Run the callbacks attached to ``name`` when its timer elapses.

        A missing entry or a serial mismatch means the timer was cleared or
        replaced after the platform queued this event; nothing runs. The
        callback list is copied before anything is invoked, and auto-clearing
        kinds leave the registry first, so callbacks that schedule the same
        name start a new timer rather than joining this one.
        """
        with self._lock:
            if self._timers is None:
                return
            entry = self._timers.get(name)
            if entry is None or entry.serial != serial:
                return
            fns = tuple(entry.callbacks)
            if entry.kind.auto_clear:
                self._drop(entry)
            context = self._context

        logger.debug("Firing %r (%d callbacks)", name, len(fns))
        errors: list[Exception] = []
        for fn in fns:
            try:
                fn(context)
            except Exception as exc:
                errors.append(exc)

        if len(errors) == 1:
            raise errors[0]
        if errors:
            raise ExceptionGroup(
                f"{len(errors)} callbacks failed for timer {name!r}", errors
            )

    # --- Lifecycle ---

    def _drop(self, entry: TimerEntry) -> None:
        """Cancel and forget ``entry``. Caller holds the lock."""
        self._backend.cancel(entry.handle)
        entry.callbacks.clear()
        del self._timers[entry.name]  # type: ignore[index]

    def clear(self, *names: str) -> Tick:
        """Cancel timers by name.

        With no arguments every timer is cleared. A single string is split on
        commas and whitespace, so ``clear("a, b")`` equals ``clear("a", "b")``.
        Unknown names are ignored.
        """
        with self._lock:
            if self._timers is None:
                logger.debug("Tick ended, ignoring clear")
                return self

            if not names:
                names = tuple(self._timers)
            elif len(names) == 1 and isinstance(names[0], str):
                names = tuple(n for n in self._delimiters.split(names[0]) if n)

            for name in names:
                entry = self._timers.get(name)
                if entry is None:
                    continue
                self._drop(entry)
                logger.debug("Cleared timer %r", name)
        return self

    def adjust(self, name: str, duration: DurationSpec) -> Tick:
        """Restart the timer for ``name`` with a new duration.

        Kind and callbacks are kept. Unknown names are ignored.
        """
        with self._lock:
            if self._timers is None:
                logger.debug("Tick ended, ignoring adjust of %r", name)
                return self

            entry = self._timers.get(name)
            if entry is None:
                return self

            self._backend.cancel(entry.handle)
            ms = parse(duration)
            self._arm(entry, ms)
            logger.debug("Adjusted %s timer %r to %sms", entry.kind.value, name, ms)
        return self

    # --- Introspection ---

    def active(self, name: str) -> bool:
        with self._lock:
            return self._timers is not None and name in self._timers

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.active(name)

    def names(self) -> list[str]:
        """Active names in the order their timers were created."""
        with self._lock:
            if self._timers is None:
                return []
            return list(self._timers)

    def end(self) -> bool:
        """Clear every timer and release the registry and context.

        Returns True the first time, False on every later call.
        """
        with self._lock:
            if self._timers is None:
                return False
            self.clear()
            self._timers = None
            self._context = None
        logger.debug("Tick ended")
        return True
