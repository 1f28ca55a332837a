from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum
from typing import Optional, Union

DateInput = Union[date, datetime, str, None]

MAX_SPAN_DAYS = 7
MAX_MONTHS_AHEAD = 1


class PeriodRejection(StrEnum):
    INVALID_DATE = "INVALID_DATE"
    PAST_DATE = "PAST_DATE"
    TOO_FAR_AHEAD = "TOO_FAR_AHEAD"
    END_BEFORE_START = "END_BEFORE_START"
    SPAN_TOO_LONG = "SPAN_TOO_LONG"


PERIOD_MESSAGES: dict[PeriodRejection, str] = {
    PeriodRejection.INVALID_DATE: "invalid date format",
    PeriodRejection.PAST_DATE: "cannot reserve parking for past dates",
    PeriodRejection.TOO_FAR_AHEAD: "cannot reserve parking more than 1 month in advance",
    PeriodRejection.END_BEFORE_START: "end date must not be before start date",
    PeriodRejection.SPAN_TOO_LONG: "maximum reservation period is 1 week",
}


@dataclass(frozen=True)
class PeriodCheck:
    valid: bool
    reason: Optional[PeriodRejection] = None

    @property
    def message(self) -> Optional[str]:
        return PERIOD_MESSAGES[self.reason] if self.reason else None


def parse_date(value: DateInput) -> Optional[date]:
    """Return ``value`` as a calendar date, or None when it cannot be read as one."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value).date()
    except ValueError:
        return None


def add_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def span_days(start_date: date, end_date: date) -> int:
    return (end_date - start_date).days


def requires_document(start_date: date, end_date: date, *, threshold_days: int = 2) -> bool:
    return span_days(start_date, end_date) > threshold_days


def validate_period(start_date: DateInput, end_date: DateInput, now: Union[datetime, date]) -> PeriodCheck:
    """
    Check a candidate reservation window against the booking rules.
    Rules run in order and the first failure wins; ``now`` pins "today" so the
    result is deterministic.
    """
    start = parse_date(start_date)
    end = parse_date(end_date)
    if start is None or end is None:
        return PeriodCheck(valid=False, reason=PeriodRejection.INVALID_DATE)

    today = now.date() if isinstance(now, datetime) else now
    if start < today:
        return PeriodCheck(valid=False, reason=PeriodRejection.PAST_DATE)
    if start > add_months(today, MAX_MONTHS_AHEAD):
        return PeriodCheck(valid=False, reason=PeriodRejection.TOO_FAR_AHEAD)
    if end < start:
        return PeriodCheck(valid=False, reason=PeriodRejection.END_BEFORE_START)
    if span_days(start, end) > MAX_SPAN_DAYS:
        return PeriodCheck(valid=False, reason=PeriodRejection.SPAN_TOO_LONG)
    return PeriodCheck(valid=True)
