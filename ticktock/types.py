"""Core data types for named timers."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Union

if TYPE_CHECKING:
    from ticktock.tick import Tick

# Callbacks receive the owning Tick's context as their only argument.
Callback = Callable[[Any], None]

# Milliseconds as a number, or a human readable string such as "1.5h".
DurationSpec = Union[int, float, str]


class Kind(Enum):
    """How an underlying timer fires and whether its entry survives firing."""

    ONCE = "once"
    REPEATING = "repeating"
    IMMEDIATE = "immediate"

    @property
    def auto_clear(self) -> bool:
        return self is not Kind.REPEATING


@dataclass(eq=False)
class TimerEntry:
    """Registry record for one active name.

    ``serial`` identifies the underlying timer currently backing the entry.
    It is replaced whenever the timer is, so a late fire from an old handle
    no longer matches.
    """

    name: str
    kind: Kind
    owner: Tick
    serial: int = -1
    handle: Any = None
    callbacks: list[Callback] = field(default_factory=list)

    def fire(self, serial: int) -> None:
        """Completion handler for the underlying timer."""
        self.owner._dispatch(self.name, serial)
