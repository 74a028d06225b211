from .ledger import HistoryAggregator, rebuild_ledger
from .periods import (
    calendar_keys,
    day_key,
    month_key,
    period_key,
    platform_day_of_week,
    server_date,
    to_local_date,
    week_key,
)

__all__ = [
    "HistoryAggregator",
    "rebuild_ledger",
    "calendar_keys",
    "day_key",
    "week_key",
    "month_key",
    "period_key",
    "platform_day_of_week",
    "server_date",
    "to_local_date",
]
