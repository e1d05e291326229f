"""
Frame admission: thins a high-rate camera stream down to the analysis rate.
"""

import logging
import math
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class FrameGate:
    """Fixed minimum-interval limiter."""

    def __init__(self, max_fps: float = 2.0, clock: Optional[Callable[[], float]] = None):
        """
        Args:
            max_fps: Maximum admitted frames per second
            clock: Millisecond clock (defaults to monotonic time)
        """
        if max_fps <= 0:
            raise ValueError(f"max_fps must be positive, got {max_fps}")
        self.max_fps = max_fps
        self.min_interval_ms = max(1, int(math.floor(1000.0 / max_fps + 0.5)))
        self._clock = clock or monotonic_ms
        self._last_admitted_at: Optional[float] = None
        # Only guards the compare-and-set below; never held across I/O
        self._lock = threading.Lock()

    def admit(self, now: Optional[float] = None) -> bool:
        """Return True and record `now` if enough time has passed since the last admitted frame."""
        if now is None:
            now = self._clock()
        with self._lock:
            last = self._last_admitted_at
            if last is not None and now - last < self.min_interval_ms:
                admitted = False
            else:
                self._last_admitted_at = now
                admitted = True
        if not admitted:
            logger.debug("Frame dropped due to FPS limit")
        return admitted

    def wait_time_ms(self, now: Optional[float] = None) -> float:
        """Milliseconds until the next frame would be admitted (0 if now)."""
        if now is None:
            now = self._clock()
        last = self._last_admitted_at
        if last is None:
            return 0.0
        return max(0.0, last + self.min_interval_ms - now)

    def reset(self):
        with self._lock:
            self._last_admitted_at = None
