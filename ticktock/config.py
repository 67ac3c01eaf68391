"""Tick configuration dataclass."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TickConfig:
    """Immutable configuration for a Tick instance.

    Attributes:
        backend: Backend name used when no backend instance is injected
            ("thread", "asyncio" or "manual").
        use_immediate: Use the backend's immediate capability when it has
            one. When False, immediates are zero-length one-shot timers.
        min_interval: Lower bound in milliseconds for repeating timers.
        delimiters: Regex splitting a single string passed to ``clear``.
    """

    backend: str = "thread"
    use_immediate: bool = True
    min_interval: float = 1.0
    delimiters: str = r"[,\s]+"

    def __post_init__(self) -> None:
        if self.min_interval <= 0:
            raise ValueError("min_interval must be positive")
