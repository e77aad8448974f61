from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from app.config import settings


APP_TIMEZONE = settings.app_timezone or "UTC"
APP_ZONEINFO = ZoneInfo(APP_TIMEZONE)


class TimeProvider:
    def now(self) -> datetime:
        return datetime.now(APP_ZONEINFO)

    def today(self) -> date:
        return self.now().date()

    def utc_now(self) -> datetime:
        """Naive UTC timestamp, the form stored in DateTime columns."""
        return to_utc_naive(self.now())


def to_utc_naive(dt: datetime) -> datetime:
    # Naive values are taken to already be UTC.
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


default_time_provider = TimeProvider()
