from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Tuple

from ..models import PeriodKey, PeriodKind


def to_local_date(ts: float, tz: tzinfo = timezone.utc) -> date:
    """Calendar date of a real (UTC epoch) instant on a clock running in `tz`."""
    return datetime.fromtimestamp(ts, tz=tz).date()


def server_date(ts: float) -> date:
    # deal times are server wall-clock seconds encoded as if they were UTC
    return datetime.fromtimestamp(ts, tz=timezone.utc).date()


def platform_day_of_week(d: date) -> int:
    """Day of week as the terminal reports it: 0 = Sunday ... 6 = Saturday."""
    return d.isoweekday() % 7


def day_key(d: date) -> PeriodKey:
    return PeriodKey(start=d, kind=PeriodKind.DAY)


def week_key(d: date) -> PeriodKey:
    # Weeks run Monday..Sunday; Sunday (0) is the 7th day of the week.
    dow = platform_day_of_week(d)
    back = 6 if dow == 0 else dow - 1
    return PeriodKey(start=d - timedelta(days=back), kind=PeriodKind.WEEK)


def month_key(d: date) -> PeriodKey:
    return PeriodKey(start=d.replace(day=1), kind=PeriodKind.MONTH)


def period_key(d: date, kind: PeriodKind) -> PeriodKey:
    if kind is PeriodKind.DAY:
        return day_key(d)
    if kind is PeriodKind.WEEK:
        return week_key(d)
    return month_key(d)


def calendar_keys(ts: float) -> Tuple[PeriodKey, PeriodKey, PeriodKey]:
    d = server_date(ts)
    return day_key(d), week_key(d), month_key(d)
