"""Per-chat sliding-window limit on LLM-backed query parsing.

Each chat may spend at most `max_calls` remote parses within `window_s` seconds. Over the limit the
handler still answers, using the local parser instead of the paid LLM endpoint.
"""

from __future__ import annotations

import math
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from time import monotonic


@dataclass
class SlidingWindowLimiter:
    """In-memory rolling-window counter keyed by chat id. `max_calls=0` disables the limit."""

    max_calls: int = 20
    window_s: float = 60.0
    clock: Callable[[], float] = monotonic
    _calls: dict[int, deque[float]] = field(default_factory=dict, init=False, repr=False)

    def _recent(self, key: int, now: float) -> deque[float]:
        calls = self._calls.setdefault(key, deque())
        while calls and now - calls[0] >= self.window_s:
            calls.popleft()
        return calls

    def try_acquire(self, key: int) -> bool:
        """Record one call for `key` and return True, or return False when the window is full."""

        if self.max_calls <= 0:
            return True
        now = self.clock()
        calls = self._recent(key, now)
        if len(calls) >= self.max_calls:
            return False
        calls.append(now)
        return True

    def retry_after_s(self, key: int) -> int:
        """Whole seconds until `key` may call again (0 when a call is allowed now)."""

        if self.max_calls <= 0:
            return 0
        now = self.clock()
        calls = self._recent(key, now)
        if len(calls) < self.max_calls:
            return 0
        return max(1, math.ceil(self.window_s - (now - calls[0])))
