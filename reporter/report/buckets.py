from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from ..models import ClosedTrade, PeriodKey, PeriodKind


@dataclass(slots=True)
class CalendarBucket:
    key: Optional[PeriodKey]  # None = all-time
    trades: int = 0
    wins: int = 0
    gross_profit: Decimal = Decimal(0)
    swap: Decimal = Decimal(0)
    commission: Decimal = Decimal(0)
    net_profit: Decimal = Decimal(0)
    balance_before: Decimal = Decimal(0)  # of the bucket's first trade

    @property
    def label(self) -> str:
        return self.key.label if self.key is not None else "All time"

    def add(self, trade: ClosedTrade) -> None:
        if self.trades == 0:
            self.balance_before = trade.balance_before
        self.trades += 1
        if trade.net_profit > 0:
            self.wins += 1
        self.gross_profit += trade.profit
        self.swap += trade.swap
        self.commission += trade.commission
        self.net_profit += trade.net_profit

    @property
    def return_pct(self) -> Optional[float]:
        if self.trades == 0 or self.balance_before == 0:
            return None
        return float(self.net_profit / self.balance_before * 100)

    @property
    def win_rate(self) -> Optional[float]:
        if self.trades == 0:
            return None
        return self.wins / self.trades * 100.0


def bucketize(trades: Iterable[ClosedTrade], kind: PeriodKind) -> List[CalendarBucket]:
    """Group trades by calendar period, keeping first-encountered order."""
    buckets: Dict[PeriodKey, CalendarBucket] = {}
    for trade in trades:
        key = trade.key(kind)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = CalendarBucket(key=key)
            buckets[key] = bucket
        bucket.add(trade)
    return list(buckets.values())


def latest(buckets: Sequence[CalendarBucket], n: int) -> List[CalendarBucket]:
    if n <= 0:
        return []
    return list(buckets[-n:])


def bucket_for(trades: Iterable[ClosedTrade], key: PeriodKey) -> CalendarBucket:
    bucket = CalendarBucket(key=key)
    for trade in trades:
        if trade.key(key.kind) == key:
            bucket.add(trade)
    return bucket


def total_bucket(trades: Iterable[ClosedTrade]) -> CalendarBucket:
    bucket = CalendarBucket(key=None)
    for trade in trades:
        bucket.add(trade)
    return bucket
