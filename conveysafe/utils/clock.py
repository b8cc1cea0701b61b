"""Time sources and ISO-8601 helpers"""

import re
from datetime import datetime, timezone

ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
ISO_DATETIME_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d{1,3})?Z$")


def is_iso_date(value: str | None) -> bool:
    """True for `YYYY-MM-DD`"""
    return bool(value) and ISO_DATE_PATTERN.match(value) is not None


def is_iso_datetime(value: str | None) -> bool:
    """True for UTC timestamps like `2024-03-01T00:00:00Z` or with milliseconds"""
    return bool(value) and ISO_DATETIME_PATTERN.match(value) is not None


def format_timestamp(moment: datetime) -> str:
    """Format a datetime as a millisecond-precision UTC timestamp"""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


class SystemClock:
    """Wall clock in UTC"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def now_iso(self) -> str:
        return format_timestamp(self.now())

    def today(self) -> str:
        return self.now().strftime("%Y-%m-%d")


class FixedClock(SystemClock):
    """Clock pinned to a single instant; `advance_to` moves it"""

    def __init__(self, moment: datetime):
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        self._moment = moment

    def now(self) -> datetime:
        return self._moment

    def advance_to(self, moment: datetime) -> None:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        self._moment = moment
