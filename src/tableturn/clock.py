"""Wall-clock source for countdowns and extensions.

Countdowns compare a resolved end minute against "now" every second, so a
drifting system clock shows up directly as early or late expiry prompts. The
clock can compensate with an NTP offset (non-blocking via asyncio.to_thread).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)


class FloorClock:
    """
    Current time as seen by the floor, optionally NTP-compensated.

    Minutes are expressed relative to an operating date, so a seating filed
    on D that is still running at 00:10 on D+1 sees minute 1450.
    """

    def __init__(self, timezone: str | None = None) -> None:
        self._tz = ZoneInfo(timezone) if timezone else None
        self._ntp_offset: float | None = None

    @property
    def offset(self) -> float:
        """Clock correction in seconds (0.0 until an NTP check succeeded)."""
        return self._ntp_offset or 0.0

    @staticmethod
    def _now(tz) -> datetime:
        """Get current time in given timezone. Extracted for testability."""
        return datetime.now(tz)

    def now(self) -> datetime:
        return self._now(self._tz) + timedelta(seconds=self.offset)

    def today_key(self) -> str:
        return self.now().date().isoformat()

    def seconds_into(self, operating_date: str) -> float:
        """Seconds elapsed since 00:00 of `operating_date` (may exceed a day)."""
        now = self.now()
        midnight = datetime.combine(date.fromisoformat(operating_date), time(), tzinfo=now.tzinfo)
        return (now - midnight).total_seconds()

    def minute_of(self, operating_date: str) -> int:
        """Current minute relative to `operating_date` (1440+ on the next day)."""
        return int(self.seconds_into(operating_date) // 60)

    def check_ntp_offset(self) -> float | None:
        """Check system clock offset against NTP. Returns seconds offset or None.

        Blocking; use check_ntp_offset_async() in async contexts.
        """
        try:
            import ntplib

            client = ntplib.NTPClient()
            resp = client.request("pool.ntp.org", version=3)
            self._ntp_offset = resp.offset
            return resp.offset
        except Exception:
            return None

    async def check_ntp_offset_async(self) -> float | None:
        """Non-blocking NTP check, runs in a thread to keep the event loop free."""
        try:
            offset = await asyncio.to_thread(self.check_ntp_offset)
        except Exception:
            return None
        if offset is not None:
            logger.info("NTP offset: %.1fms, compensating", offset * 1000)
        return offset
