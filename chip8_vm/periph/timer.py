"""
CHIP-8 VM — Delay / Sound Timers

Two 8-bit down-counters:
  DT  delay timer, read by Fx07, written by Fx15
  ST  sound timer, written by Fx18; the buzzer sounds while ST > 0

Both decrement once per tick while nonzero. Ticks come from outside the
instruction loop: TimerClock runs a daemon thread at timer_hz (60 Hz
on real hardware), so instruction throughput and timer cadence are
independent. Tests call tick() directly.
"""

import logging
import threading
import time
from typing import Callable, Optional

log = logging.getLogger(__name__)

TIMER_HZ = 60.0


class Timers:
    """DT/ST pair, safe to tick from another thread."""

    def __init__(self):
        self._lock = threading.Lock()
        self._dt = 0
        self._st = 0
        self.ticks = 0
        self.on_sound: Optional[Callable[[bool], None]] = None

    @property
    def dt(self) -> int:
        with self._lock:
            return self._dt

    @dt.setter
    def dt(self, value: int):
        with self._lock:
            self._dt = value & 0xFF

    @property
    def st(self) -> int:
        with self._lock:
            return self._st

    @st.setter
    def st(self, value: int):
        with self._lock:
            was_on = self._st > 0
            self._st = value & 0xFF
            now_on = self._st > 0
        if was_on != now_on:
            self._notify_sound(now_on)

    @property
    def sound_active(self) -> bool:
        return self.st > 0

    def tick(self):
        """One 1/60 s period: decrement each timer that is nonzero."""
        with self._lock:
            self.ticks += 1
            if self._dt > 0:
                self._dt -= 1
            stopped = False
            if self._st > 0:
                self._st -= 1
                stopped = self._st == 0
        if stopped:
            self._notify_sound(False)

    def _notify_sound(self, on: bool):
        if self.on_sound is not None:
            self.on_sound(on)

    def reset(self):
        with self._lock:
            was_on = self._st > 0
            self._dt = 0
            self._st = 0
            self.ticks = 0
        if was_on:
            self._notify_sound(False)


class TimerClock:
    """Background driver that calls Timers.tick() at a fixed rate.

    Uses absolute deadlines so a late wakeup is caught up rather than
    drifting. Usable as a context manager.
    """

    def __init__(self, timers: Timers, hz: float = TIMER_HZ):
        if hz <= 0:
            raise ValueError(f"timer rate must be positive, got {hz}")
        self.timers = timers
        self.period = 1.0 / hz
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name='chip8-timers',
                                        daemon=True)
        self._thread.start()
        log.debug("Timer clock started (%.1f Hz)", 1.0 / self.period)

    def stop(self):
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
            log.debug("Timer clock stopped after %d ticks", self.timers.ticks)

    def _run(self):
        deadline = time.perf_counter() + self.period
        while not self._stop.wait(max(0.0, deadline - time.perf_counter())):
            now = time.perf_counter()
            while deadline <= now:
                self.timers.tick()
                deadline += self.period

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False
