from __future__ import annotations

import time
from collections.abc import Callable
from typing import Protocol


class Clock(Protocol):
    """Monotonic clock abstraction.

    Core logic depends on this interface rather than calling real time directly.
    """

    def now(self) -> float:
        """Return monotonic seconds."""


class RealClock:
    """Production clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Cancellable callbacks driven by the surrounding environment."""

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle: ...
    def call_every(self, interval_s: float, callback: Callable[[], None]) -> TimerHandle: ...


class _ScheduledCall:
    def __init__(self, *, due_s: float, interval_s: float | None, callback: Callable[[], None], seq: int) -> None:
        self.due_s = due_s
        self.interval_s = interval_s
        self.callback = callback
        self.seq = seq
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Timer queue pumped explicitly via :meth:`run_due`.

    The pygame frame loop calls ``run_due`` once per frame; tests call it after
    advancing a fake clock. Callbacks run on the caller's thread, in due-time
    order, and may schedule or cancel other calls while running.
    """

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._calls: list[_ScheduledCall] = []
        self._seq = 0

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> _ScheduledCall:
        if delay_s < 0:
            raise ValueError("delay_s must be >= 0")
        return self._add(delay_s=float(delay_s), interval_s=None, callback=callback)

    def call_every(self, interval_s: float, callback: Callable[[], None]) -> _ScheduledCall:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        return self._add(delay_s=float(interval_s), interval_s=float(interval_s), callback=callback)

    def pending_count(self) -> int:
        return sum(1 for c in self._calls if not c.cancelled)

    def run_due(self) -> int:
        """Fire every call due at the current time. Returns the number fired."""

        fired = 0
        now = self._clock.now()
        while True:
            self._calls = [c for c in self._calls if not c.cancelled]
            due = [c for c in self._calls if c.due_s <= now]
            if not due:
                return fired
            call = min(due, key=lambda c: (c.due_s, c.seq))
            if call.interval_s is None:
                call.cancelled = True
            else:
                # Periodic calls catch up one interval at a time.
                call.due_s += call.interval_s
            call.callback()
            fired += 1

    def _add(self, *, delay_s: float, interval_s: float | None, callback: Callable[[], None]) -> _ScheduledCall:
        self._seq += 1
        call = _ScheduledCall(
            due_s=self._clock.now() + delay_s,
            interval_s=interval_s,
            callback=callback,
            seq=self._seq,
        )
        self._calls.append(call)
        return call
