"""Backoff policy and loop-driven scheduling for broker reconnection."""

import time
from dataclasses import dataclass
from typing import Callable, List


@dataclass
class ReconnectPolicy:
    """Exponential backoff with a fixed attempt budget."""
    base_delay_ms: int = 5000
    multiplier: int = 2
    max_attempts: int = 10

    def delay_for(self, attempt: int) -> int:
        """Delay in milliseconds before retry number ``attempt`` (1-based)."""
        if attempt < 1:
            raise ValueError("attempt must be >= 1")
        return self.base_delay_ms * (self.multiplier ** (attempt - 1))

    def exhausted(self, attempts: int) -> bool:
        return attempts >= self.max_attempts


class ScheduledCall:
    """Cancellation token for a deferred call."""

    def __init__(self, due: float, callback: Callable[[], None]):
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class RetryScheduler:
    """Holds deferred calls until the loop that owns the connection runs them.

    pika's blocking connection is bound to one thread, so nothing here
    starts a thread: ``run_due`` is called from the same loop that pumps
    broker I/O.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._pending: List[ScheduledCall] = []

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> ScheduledCall:
        call = ScheduledCall(self.clock() + delay_seconds, callback)
        self._pending.append(call)
        return call

    @property
    def pending(self) -> int:
        return sum(1 for call in self._pending if not call.cancelled)

    def run_due(self) -> int:
        """Run every call whose delay has elapsed. Returns how many ran."""
        now = self.clock()
        due = [c for c in self._pending if not c.cancelled and c.due <= now]
        # Calls scheduled by a callback wait for the next run
        self._pending = [c for c in self._pending if not c.cancelled and c.due > now]
        for call in due:
            call.callback()
        return len(due)
