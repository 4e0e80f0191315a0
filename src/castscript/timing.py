from __future__ import annotations

import time
from typing import Callable

_UNITS = (("ms", 1e-3), ("us", 1e-6), ("s", 1.0))


class DurationError(ValueError):
    """Raised for duration strings that are not ``<int>s|ms|us``."""


def parse_duration(text: str) -> float:
    """Parse ``"1s"``, ``"150ms"`` or ``"900us"`` into seconds."""

    value = text.strip()
    if any(ch.isspace() for ch in value):
        raise DurationError(f"duration {text!r} cannot contain whitespace")
    for suffix, scale in _UNITS:
        if value.endswith(suffix):
            number = value[: -len(suffix)]
            if not number.isdigit():
                raise DurationError(f"duration {text!r} is not a non-negative integer amount")
            return int(number) * scale
    raise DurationError(f"duration {text!r} has an unknown unit, must be: s, ms, or us")


def format_duration(seconds: float) -> str:
    micros = round(seconds * 1_000_000)
    if micros % 1_000_000 == 0:
        return f"{micros // 1_000_000}s"
    if micros % 1_000 == 0:
        return f"{micros // 1_000}ms"
    return f"{micros}us"


class VirtualClock:
    """Maps real monotonic instants onto the recorded timeline.

    The recorded time of an instant is its distance from ``real_start`` plus
    every synthetic delay accumulated so far. Synthetic delays (scripted
    waits, virtual typing) never elapse for real; they only push later
    events further out in the recording.
    """

    def __init__(self, source: Callable[[], float] = time.monotonic) -> None:
        self._source = source
        self._real_start: float | None = None
        self._virtual_offset = 0.0

    @property
    def started(self) -> bool:
        return self._real_start is not None

    @property
    def real_start(self) -> float:
        if self._real_start is None:
            msg = "Clock has not been started"
            raise RuntimeError(msg)
        return self._real_start

    @property
    def virtual_offset(self) -> float:
        return self._virtual_offset

    def start(self) -> None:
        if self._real_start is None:
            self._real_start = self._source()

    def real_now(self) -> float:
        return self._source()

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            msg = f"Virtual offset cannot move backwards (got {seconds})"
            raise ValueError(msg)
        self._virtual_offset += seconds

    def virtual_time(self, real_instant: float) -> float:
        return (real_instant - self.real_start) + self._virtual_offset

    def now(self) -> float:
        return self.virtual_time(self._source())
