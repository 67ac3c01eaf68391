"""Duration strings to milliseconds."""
from __future__ import annotations

import math
import re
from typing import Any

SECOND = 1000.0
MINUTE = SECOND * 60
HOUR = MINUTE * 60
DAY = HOUR * 24

_PATTERN = re.compile(
    r"^(\d*\.?\d+)\s*"
    r"(milliseconds?|msecs?|ms|seconds?|secs?|s|minutes?|mins?|m"
    r"|hours?|hrs?|h|days?|d)?$",
    re.IGNORECASE,
)

_UNITS: dict[str, float] = {}
for _multiplier, _tokens in (
    (1.0, ("millisecond", "milliseconds", "msec", "msecs", "ms")),
    (SECOND, ("second", "seconds", "sec", "secs", "s")),
    (MINUTE, ("minute", "minutes", "min", "mins", "m")),
    (HOUR, ("hour", "hours", "hr", "hrs", "h")),
    (DAY, ("day", "days", "d")),
):
    for _token in _tokens:
        _UNITS[_token] = _multiplier


def parse(value: Any) -> float:
    """Convert a duration to milliseconds.

    Numbers pass through. Strings are either a plain number ("100") or an
    amount followed by an optional unit ("1.5h", "2 days", ".5ms"). Anything
    that cannot be understood is 0. Surrounding whitespace is ignored.
    """
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else 0.0
    if not isinstance(value, str):
        return 0.0

    try:
        number = float(value)
    except ValueError:
        pass
    else:
        return number if math.isfinite(number) else 0.0

    match = _PATTERN.match(value.strip())
    if match is None:
        return 0.0

    amount = float(match.group(1))
    unit = match.group(2)
    if unit is None:
        return amount
    return amount * _UNITS[unit.lower()]


def to_seconds(ms: float) -> float:
    """Milliseconds to seconds, never negative."""
    return max(0.0, ms) / SECOND
