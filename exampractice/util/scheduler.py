from __future__ import annotations

"""Timer scheduling for debounced saves and the exam clock.

All engine mutation is single-threaded. Two schedulers share one interface:

- ManualScheduler keeps virtual time and fires callbacks only from
  ``advance()``; tests and step-driven hosts use it.
- ThreadingScheduler fires real ``threading.Timer`` callbacks, each one
  serialized under ``lock``. Front-ends take the same lock around engine
  commands so no two callbacks ever run at once.
"""

import heapq
import itertools
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol


@dataclass(order=True)
class TimerHandle:
    due: float
    seq: int
    callback: Callable[[], None] = field(compare=False)
    cancelled: bool = field(default=False, compare=False)
    _timer: Optional[threading.Timer] = field(default=None, compare=False, repr=False)


class Scheduler(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle: ...

    def cancel(self, handle: Optional[TimerHandle]) -> None: ...


class ManualScheduler:
    """Virtual-time scheduler; nothing fires until ``advance`` is called."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)
        self._heap: List[TimerHandle] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(due=self._now + max(0.0, float(delay_s)), seq=next(self._seq), callback=callback)
        heapq.heappush(self._heap, handle)
        return handle

    def cancel(self, handle: Optional[TimerHandle]) -> None:
        if handle is not None:
            handle.cancelled = True

    def pending(self) -> int:
        return sum(1 for h in self._heap if not h.cancelled)

    def advance(self, seconds: float) -> int:
        """Move virtual time forward, firing due callbacks in order. Returns fired count."""
        target = self._now + float(seconds)
        fired = 0
        while self._heap and self._heap[0].due <= target:
            handle = heapq.heappop(self._heap)
            if handle.cancelled:
                continue
            self._now = handle.due
            handle.cancelled = True
            handle.callback()
            fired += 1
        self._now = target
        return fired


class ThreadingScheduler:
    """Wall-clock scheduler; callbacks run one at a time under ``lock``."""

    def __init__(self, lock: Optional[threading.RLock] = None) -> None:
        self.lock = lock or threading.RLock()
        self._seq = itertools.count()

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(due=self.now() + float(delay_s), seq=next(self._seq), callback=callback)

        def _fire() -> None:
            with self.lock:
                if handle.cancelled:
                    return
                handle.cancelled = True
                callback()

        t = threading.Timer(max(0.0, float(delay_s)), _fire)
        t.daemon = True
        handle._timer = t
        t.start()
        return handle

    def cancel(self, handle: Optional[TimerHandle]) -> None:
        if handle is None:
            return
        handle.cancelled = True
        if handle._timer is not None:
            handle._timer.cancel()
