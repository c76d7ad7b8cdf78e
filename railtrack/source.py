"""Location sources that push raw fixes into a callback."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Iterable

from railtrack.location_filter import clamp_interval
from railtrack.models import RawFix

logger = logging.getLogger(__name__)


class ReplayLocationSource:
    """Replays recorded fixes, one callback per fix.

    The recording interval is a hint: fixes closer in time than the interval to
    the previously delivered fix are skipped.

    ``now_ms`` is a clock that follows the replay (the first fix before
    anything is delivered, then the last delivered fix), so a controller
    driven by it gets session start/end times on the fixes' own time axis.
    """

    def __init__(self, fixes: Iterable[RawFix], interval_s: float = 1.0) -> None:
        self._fixes = list(fixes)
        self._interval_s = clamp_interval(interval_s)
        self._stop = threading.Event()
        self._last_ms: int | None = None

    def update_interval(self, seconds: float) -> None:
        self._interval_s = clamp_interval(seconds)

    def stop(self) -> None:
        self._stop.set()

    def now_ms(self) -> int:
        if self._last_ms is not None:
            return self._last_ms
        if self._fixes:
            return self._fixes[0].geo_time_ms
        return int(time.time() * 1000)

    def run(self, on_fix: Callable[[RawFix], object]) -> int:
        """Deliver fixes until exhausted or stopped. Returns the number delivered."""

        delivered = 0
        for fix in self._fixes:
            if self._stop.is_set():
                break
            if self._last_ms is not None and fix.geo_time_ms - self._last_ms < self._interval_s * 1000.0:
                continue
            self._last_ms = fix.geo_time_ms
            on_fix(fix)
            delivered += 1
        logger.debug("replay source delivered %s fixes", delivered)
        return delivered
