"""Fixed-delay retry policy with an optional attempt bound.

The tailer has three retry sites with different contracts:

- reopening when no file is open      — unbounded, paced by ``reopen_delay``
- the current file vanished           — bounded (3 by default)
- appending to the done-file log      — unbounded, must never drop a record

All three use :class:`RetryPolicy`.  Sleeping goes through
:meth:`RetryPolicy.pause`, which waits on the tailer's stop event, so
``FileTailer.close()`` interrupts any pending delay.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    """Retry every ``delay`` seconds, at most ``max_attempts`` times (None = forever)."""

    delay: float
    max_attempts: int | None = None

    def allows(self, attempt: int) -> bool:
        """Return True if attempt number *attempt* (1-based) may still run."""
        return self.max_attempts is None or attempt <= self.max_attempts

    def pause(self, stop: threading.Event) -> bool:
        """Sleep for ``delay`` seconds; return False if *stop* was set meanwhile."""
        if self.delay <= 0:
            return not stop.is_set()
        return not stop.wait(self.delay)
