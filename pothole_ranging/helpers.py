# helpers.py
"""Small timing utilities for the frame loop."""
from __future__ import annotations

import time
from typing import Callable, Optional


class FrameClock:
    """
    Wall-clock Δt between successive ``tick()`` calls (monotonic seconds).
    The first tick after construction or ``reset()`` returns 0.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._last: Optional[float] = None

    def tick(self) -> float:
        now = self._clock()
        dt = 0.0 if self._last is None else max(0.0, now - self._last)
        self._last = now
        return dt

    def reset(self) -> None:
        self._last = None


class FramePacer:
    """How long to wait after a frame so the loop runs at ``target_fps``."""

    def __init__(self, target_fps: float, clock: Callable[[], float] = time.monotonic):
        self.frame_time_ms = 1000.0 / target_fps if target_fps > 0 else 0.0
        self._clock = clock
        self._last = clock()

    def wait_ms(self) -> int:
        """Milliseconds left in the current frame slot (at least 1)."""
        elapsed_ms = (self._clock() - self._last) * 1000.0
        return max(1, int(self.frame_time_ms - elapsed_ms))

    def mark(self) -> None:
        self._last = self._clock()


class RateMeter:
    """Frames-per-second and mean processing time over ~1 s windows."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._window_start = clock()
        self._frames = 0
        self._proc_ms_sum = 0.0
        self.fps = 0.0
        self.proc_ms_avg = 0.0

    def add(self, proc_ms: float) -> None:
        self._frames += 1
        self._proc_ms_sum += proc_ms
        now = self._clock()
        span = now - self._window_start
        if span >= 1.0:
            self.fps = self._frames / span
            self.proc_ms_avg = self._proc_ms_sum / self._frames
            self._frames = 0
            self._proc_ms_sum = 0.0
            self._window_start = now
