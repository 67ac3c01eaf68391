"""ticktock - Named timers with coalesced callbacks."""
from __future__ import annotations

from ticktock.backends import (
    AsyncioBackend,
    ManualBackend,
    ThreadingBackend,
    TimerBackend,
    make_backend,
)
from ticktock.config import TickConfig
from ticktock.duration import parse
from ticktock.tick import Tick
from ticktock.types import Callback, DurationSpec, Kind, TimerEntry

__all__ = [
    "Tick",
    "TickConfig",
    "Kind",
    "TimerEntry",
    "Callback",
    "DurationSpec",
    "TimerBackend",
    "ThreadingBackend",
    "AsyncioBackend",
    "ManualBackend",
    "make_backend",
    "parse",
]
