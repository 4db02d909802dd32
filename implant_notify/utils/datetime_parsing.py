"""Wall-clock helpers for digest timing and clinical date math."""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime

DIGEST_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


@dataclass(frozen=True)
class DigestTime:
    """Target wall-clock time of a daily digest."""

    hour: int
    minute: int

    def matches(self, moment: datetime) -> bool:
        return moment.hour == self.hour and moment.minute == self.minute

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


def local_now() -> datetime:
    """Server-local wall clock (naive). Organization time zones are not applied."""
    return datetime.now().replace(microsecond=0)


def parse_digest_time(raw_value: str) -> DigestTime:
    """Parse a zero-padded ``HH:MM`` string.

    Raises ValueError for anything else ("8:00", "24:00", "08:60", "").
    """
    match = DIGEST_TIME_PATTERN.match((raw_value or "").strip())
    if not match:
        raise ValueError(f"Invalid digest time '{raw_value}', expected HH:MM")
    return DigestTime(hour=int(match.group(1)), minute=int(match.group(2)))


def subtract_months(value: date, months: int) -> date:
    """Calendar month subtraction, clamping the day to the target month's length."""
    month_index = value.year * 12 + (value.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(value.day, last_day))
