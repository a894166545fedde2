"""
Statement periods. Maps a period token (current_month, ytd, ...) to a
concrete [start, end] datetime range.
"""

import calendar
import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional

log = logging.getLogger('financials')


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

PERIOD_OPTIONS = [
    ('current_month', 'Current Month'),
    ('last_month', 'Last Month'),
    ('last_3_months', 'Last 3 Months'),
    ('last_6_months', 'Last 6 Months'),
    ('ytd', 'Year to Date'),
    ('all_time', 'All Time'),
]

DEFAULT_PERIOD = 'current_month'

PLATFORM_INCEPTION = datetime(2020, 1, 1)

_LABELS = dict(PERIOD_OPTIONS)


@dataclass(frozen=True)
class Period:
    """A resolved statement period."""
    token: str
    label: str
    start: datetime
    end: datetime

    def to_dict(self) -> dict:
        return {
            'token': self.token,
            'label': self.label,
            'start': self.start.isoformat(),
            'end': self.end.isoformat(),
        }


# ---------------------------------------------------------------------------
# Month arithmetic
# ---------------------------------------------------------------------------

def month_start(dt: datetime) -> datetime:
    return datetime(dt.year, dt.month, 1)


def month_end(dt: datetime) -> datetime:
    """Last instant of dt's month."""
    last_day = calendar.monthrange(dt.year, dt.month)[1]
    return datetime.combine(date(dt.year, dt.month, last_day), time.max)


def shift_months(dt: datetime, months: int) -> datetime:
    """Move dt by a whole number of months, clamping the day to the target month."""
    idx = dt.year * 12 + (dt.month - 1) + months
    year, month = divmod(idx, 12)
    month += 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

def period_label(token: str) -> str:
    return _LABELS.get(token, _LABELS[DEFAULT_PERIOD])


def resolve_period(token: Optional[str], now: Optional[datetime] = None) -> Period:
    """Resolve a period token against `now`.

    Unknown tokens resolve to the current month; no error is raised.
    """
    if now is None:
        now = datetime.now()
    elif not isinstance(now, datetime):
        now = datetime.combine(now, time.min)

    if token not in _LABELS:
        log.debug("Unknown period token %r, using %s", token, DEFAULT_PERIOD)
        token = DEFAULT_PERIOD

    if token == 'current_month':
        start, end = month_start(now), month_end(now)
    elif token == 'last_month':
        prev = shift_months(now, -1)
        start, end = month_start(prev), month_end(prev)
    elif token == 'last_3_months':
        start, end = month_start(shift_months(now, -3)), month_end(now)
    elif token == 'last_6_months':
        start, end = month_start(shift_months(now, -6)), month_end(now)
    elif token == 'ytd':
        start, end = datetime(now.year, 1, 1), now
    else:  # all_time
        start, end = min(PLATFORM_INCEPTION, now), now

    return Period(token=token, label=_LABELS[token], start=start, end=end)
