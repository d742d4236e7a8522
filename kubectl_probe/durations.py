"""Parsing and formatting of human-readable durations such as "5s" or "1m30s"."""

import re
from datetime import timedelta
from typing import Annotated

from pydantic import BeforeValidator, PlainSerializer

UNIT_SECONDS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_COMPONENT = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")


def parse_duration(value: str | float | int | timedelta) -> timedelta:
    """Parse a duration string like "5s", "250ms" or "1m30s".

    Bare numbers are taken as seconds.

    Raises:
        ValueError: If the value is not a valid, positive duration

    """
    if isinstance(value, timedelta):
        duration = value
    elif isinstance(value, int | float):
        duration = timedelta(seconds=value)
    else:
        text = value.strip()
        try:
            duration = timedelta(seconds=float(text))
        except ValueError:
            duration = _parse_components(text)

    if duration <= timedelta(0):
        raise ValueError(f"Duration must be positive: {value!r}")
    return duration


def _parse_components(text: str) -> timedelta:
    position = 0
    seconds = 0.0
    for match in _COMPONENT.finditer(text):
        if match.start() != position:
            break
        seconds += float(match.group(1)) * UNIT_SECONDS[match.group(2)]
        position = match.end()

    if not text or position != len(text):
        raise ValueError(f"Invalid duration: {text!r}")
    return timedelta(seconds=seconds)


def format_duration(duration: timedelta) -> str:
    """Format a duration in the shortest unit that represents it exactly."""
    milliseconds = round(duration.total_seconds() * 1000)
    if milliseconds % 1000:
        return f"{milliseconds}ms"
    seconds = milliseconds // 1000
    if seconds % 3600 == 0:
        return f"{seconds // 3600}h"
    if seconds % 60 == 0:
        return f"{seconds // 60}m"
    return f"{seconds}s"


Duration = Annotated[
    timedelta,
    BeforeValidator(parse_duration),
    PlainSerializer(format_duration, return_type=str),
]
