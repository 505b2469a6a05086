from __future__ import annotations

"""Exam-mode countdown.

Ticks every ``tick_s`` seconds through the scheduler. Whenever the remaining
time lands on a multiple of ``autosave_every`` ticks the clock asks for an
immediate save; at zero it stops and calls ``on_expire``.
"""

from typing import Callable, Optional

from ..util.scheduler import Scheduler, TimerHandle


class SessionClock:
    def __init__(
        self,
        scheduler: Scheduler,
        *,
        tick_s: float = 1.0,
        autosave_every: int = 5,
        on_tick: Optional[Callable[[float], None]] = None,
        on_autosave: Optional[Callable[[], None]] = None,
        on_expire: Optional[Callable[[], None]] = None,
    ) -> None:
        self.scheduler = scheduler
        self.tick_s = float(tick_s)
        self.autosave_every = max(1, int(autosave_every))
        self.on_tick = on_tick
        self.on_autosave = on_autosave
        self.on_expire = on_expire
        self.time_left: Optional[float] = None
        self._handle: Optional[TimerHandle] = None

    @property
    def running(self) -> bool:
        return self._handle is not None

    @property
    def expired(self) -> bool:
        return self.time_left is not None and self.time_left <= 0

    def start(self, duration_s: float) -> None:
        """(Re)start counting down from ``duration_s``. A non-positive value does not schedule."""
        self.stop()
        self.time_left = max(0.0, float(duration_s))
        if not self.expired:
            self._schedule()

    def stop(self) -> None:
        if self._handle is not None:
            self.scheduler.cancel(self._handle)
        self._handle = None

    def _schedule(self) -> None:
        self._handle = self.scheduler.call_later(self.tick_s, self._tick)

    def _tick(self) -> None:
        self._handle = None
        if self.time_left is None:
            return
        self.time_left = max(0.0, self.time_left - self.tick_s)
        if self.on_tick is not None:
            self.on_tick(self.time_left)
        if self.expired:
            if self.on_expire is not None:
                self.on_expire()
            return
        remaining_ticks = int(round(self.time_left / self.tick_s))
        if remaining_ticks % self.autosave_every == 0 and self.on_autosave is not None:
            self.on_autosave()
        self._schedule()
