from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Tuple


# MetaTrader deal type codes
DEAL_BUY = 0
DEAL_SELL = 1
DEAL_BALANCE = 2
DEAL_CREDIT = 3
DEAL_CHARGE = 4
DEAL_CORRECTION = 5
DEAL_BONUS = 6

TRADE_DEAL_TYPES = frozenset({DEAL_BUY, DEAL_SELL})
CASH_FLOW_DEAL_TYPES = frozenset({DEAL_BALANCE, DEAL_CHARGE, DEAL_CORRECTION, DEAL_BONUS})

DEAL_TYPE_NAMES = {
    DEAL_BUY: "BUY",
    DEAL_SELL: "SELL",
    DEAL_BALANCE: "BALANCE",
    DEAL_CREDIT: "CREDIT",
    DEAL_CHARGE: "CHARGE",
    DEAL_CORRECTION: "CORRECTION",
    DEAL_BONUS: "BONUS",
}


def deal_type_name(code: int) -> str:
    return DEAL_TYPE_NAMES.get(int(code), "OTHER")


def to_money(value: float) -> Decimal:
    # via str() so 0.1 stays 0.1 rather than its binary expansion
    return Decimal(str(value))


@dataclass(slots=True)
class Deal:
    ticket: int
    time: int  # platform server time, epoch seconds
    type: int
    symbol: str = ""
    volume: float = 0.0
    price: float = 0.0
    profit: float = 0.0
    swap: float = 0.0
    commission: float = 0.0

    @property
    def net_profit(self) -> float:
        return self.profit + self.swap + self.commission

    @property
    def is_trade(self) -> bool:
        return self.type in TRADE_DEAL_TYPES

    @property
    def is_cash_flow(self) -> bool:
        return self.type in CASH_FLOW_DEAL_TYPES


class PeriodKind(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


@dataclass(frozen=True, slots=True, order=True)
class PeriodKey:
    start: date
    kind: PeriodKind

    @property
    def end(self) -> date:
        """Last calendar day covered by the period (inclusive)."""
        if self.kind is PeriodKind.DAY:
            return self.start
        if self.kind is PeriodKind.WEEK:
            return self.start + timedelta(days=6)
        if self.start.month == 12:
            first_next = date(self.start.year + 1, 1, 1)
        else:
            first_next = date(self.start.year, self.start.month + 1, 1)
        return first_next - timedelta(days=1)

    @property
    def label(self) -> str:
        if self.kind is PeriodKind.DAY:
            return self.start.isoformat()
        return f"{self.start.isoformat()} - {self.end.isoformat()}"


@dataclass(frozen=True, slots=True)
class ClosedTrade:
    time: int
    ticket: int
    symbol: str
    side: str  # BUY/SELL
    volume: float
    price: float
    profit: Decimal
    swap: Decimal
    commission: Decimal
    net_profit: Decimal
    balance_before: Decimal
    balance_after: Decimal
    equity_before: Decimal
    equity_after: Decimal
    day: PeriodKey
    week: PeriodKey
    month: PeriodKey

    @property
    def date_str(self) -> str:
        return self.day.label

    @property
    def week_range(self) -> str:
        return self.week.label

    @property
    def month_range(self) -> str:
        return self.month.label

    def key(self, kind: PeriodKind) -> PeriodKey:
        if kind is PeriodKind.DAY:
            return self.day
        if kind is PeriodKind.WEEK:
            return self.week
        return self.month


@dataclass(frozen=True, slots=True)
class PerformanceLedger:
    trades: Tuple[ClosedTrade, ...] = ()
    built_at: float = 0.0
    start_balance: Decimal = Decimal(0)
    start_equity: Decimal = Decimal(0)
    cash_flow_total: Decimal = Decimal(0)

    @property
    def count(self) -> int:
        return len(self.trades)

    @property
    def net_profit(self) -> Decimal:
        return sum((t.net_profit for t in self.trades), Decimal(0))


@dataclass(slots=True)
class OpenPosition:
    ticket: int
    symbol: str
    side: str  # BUY/SELL
    volume: float
    open_price: float
    current_price: float
    profit: float
    swap: float = 0.0


@dataclass(slots=True)
class AccountSnapshot:
    balance: float
    equity: float
    credit: float = 0.0
    margin: float = 0.0
    free_margin: float = 0.0
    margin_level: float = 0.0
    login: Optional[int] = None
    name: str = ""
    company: str = ""
    server: str = ""
    currency: str = ""
    leverage: int = 0
    positions: List[OpenPosition] = field(default_factory=list)
    taken_at: float = 0.0

    @property
    def floating_pnl(self) -> float:
        return sum(p.profit for p in self.positions)


@dataclass(frozen=True, slots=True)
class DrawdownState:
    started_at: float
    start_equity: float
    peak_equity: float
    current_dd_pct: float = 0.0
    max_current_dd_pct: float = 0.0
    max_dd_abs: float = 0.0
    updated_at: float = 0.0
