"""
gojo/core/clock.py — Wall-clock access for the scheduler.

Every "what time is it" and "wait N seconds" in the summary worker goes
through a clock object so a trigger minute can be simulated without real delays.
"""

import time
import logging
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

log = logging.getLogger("gojo.clock")


class SystemClock:
    """Real time, in the host's local zone or a named IANA zone."""

    def __init__(self, tz_name: Optional[str] = None):
        self.tz = None
        if tz_name:
            try:
                self.tz = ZoneInfo(tz_name)
            except ZoneInfoNotFoundError:
                log.warning("Unknown timezone %r, falling back to local time", tz_name)

    def now(self) -> datetime:
        if self.tz is None:
            return datetime.now()
        return datetime.now(self.tz)

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)

    def __repr__(self):
        return f"SystemClock(tz={self.tz or 'local'})"
