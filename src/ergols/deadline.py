from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol
import threading
import time

from ergols.invariants import never


class DeadlineClock(Protocol):
    def get_mark(self) -> int:
        """Return the current monotonic mark in nanoseconds."""


@dataclass(frozen=True)
class MonotonicClock:
    """Default wall-clock implementation used when no clock is injected."""

    def get_mark(self) -> int:
        return time.monotonic_ns()


_SYSTEM_CLOCK = MonotonicClock()


@dataclass(frozen=True)
class Deadline:
    deadline_ns: int
    clock: DeadlineClock = field(default=_SYSTEM_CLOCK, compare=False, repr=False)

    @classmethod
    def from_timeout_ticks(
        cls, ticks: int, tick_ns: int, *, clock: DeadlineClock = _SYSTEM_CLOCK
    ) -> "Deadline":
        ticks_value = int(ticks)
        tick_ns_value = int(tick_ns)
        if ticks_value < 0:
            never("invalid timeout ticks", ticks=ticks)
        if tick_ns_value <= 0:
            never("invalid timeout tick_ns", tick_ns=tick_ns)
        total_ns = ticks_value * tick_ns_value
        return cls(deadline_ns=clock.get_mark() + total_ns, clock=clock)

    @classmethod
    def from_timeout_ms(
        cls, milliseconds: int, *, clock: DeadlineClock = _SYSTEM_CLOCK
    ) -> "Deadline":
        return cls.from_timeout_ticks(milliseconds, 1_000_000, clock=clock)

    def remaining_ns(self) -> int:
        return max(0, self.deadline_ns - self.clock.get_mark())

    def remaining_seconds(self) -> float:
        return self.remaining_ns() / 1_000_000_000

    def expired(self) -> bool:
        return self.clock.get_mark() >= self.deadline_ns


class CancelToken:
    """One-shot cancellation flag shared between a coordinator and an invoker."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        return self._event.wait(timeout)
