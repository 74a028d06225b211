from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, List, Protocol, Tuple

from ..models import AccountSnapshot, ClosedTrade, Deal, PerformanceLedger, deal_type_name, to_money
from .periods import calendar_keys


logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class DealHistory(Protocol):
    async def history_deals(self, start: datetime, end: datetime) -> List[Deal]:
        ...


def _chronological(deals: Iterable[Deal]) -> List[Deal]:
    return sorted(deals, key=lambda d: (d.time, d.ticket))


def _net(deal: Deal) -> Decimal:
    return to_money(deal.profit) + to_money(deal.swap) + to_money(deal.commission)


def rebuild_ledger(
    deals: Iterable[Deal],
    current_balance: float,
    current_equity: float,
    built_at: float = 0.0,
) -> PerformanceLedger:
    """
    Replay the deal log into a chronological ledger of closed trades.

    The terminal only exposes the current balance/equity, so the log is first
    walked newest -> oldest to recover the baseline before the oldest deal,
    then walked oldest -> newest to stamp every trade with the running
    balance/equity around it. Cash-flow deals move the running totals but are
    not emitted. Money is carried as Decimal so that
    balance_after - balance_before == net_profit holds exactly.
    """
    ordered = _chronological(deals)

    balance = to_money(current_balance)
    equity = to_money(current_equity)
    for deal in reversed(ordered):
        if deal.is_trade or deal.is_cash_flow:
            net = _net(deal)
            balance -= net
            equity -= net
    start_balance, start_equity = balance, equity

    trades: List[ClosedTrade] = []
    cash_flow_total = Decimal(0)
    for deal in ordered:
        if deal.is_cash_flow:
            net = _net(deal)
            balance += net
            equity += net
            cash_flow_total += net
            continue
        if not deal.is_trade:
            continue
        net = _net(deal)
        day, week, month = calendar_keys(deal.time)
        trade = ClosedTrade(
            time=int(deal.time),
            ticket=int(deal.ticket),
            symbol=deal.symbol,
            side=deal_type_name(deal.type),
            volume=deal.volume,
            price=deal.price,
            profit=to_money(deal.profit),
            swap=to_money(deal.swap),
            commission=to_money(deal.commission),
            net_profit=net,
            balance_before=balance,
            balance_after=balance + net,
            equity_before=equity,
            equity_after=equity + net,
            day=day,
            week=week,
            month=month,
        )
        trades.append(trade)
        balance = trade.balance_after
        equity = trade.equity_after

    return PerformanceLedger(
        trades=tuple(trades),
        built_at=built_at,
        start_balance=start_balance,
        start_equity=start_equity,
        cash_flow_total=cash_flow_total,
    )


class HistoryAggregator:
    """Owns the current ledger and rebuilds it from the terminal when stale."""

    def __init__(
        self,
        refresh_seconds: int = 300,
        lookback_days: int = 0,
    ) -> None:
        self._refresh_seconds = refresh_seconds
        self._lookback_days = lookback_days
        self._ledger = PerformanceLedger()
        self._built = False
        self.rebuild_count = 0

    @property
    def ledger(self) -> PerformanceLedger:
        return self._ledger

    def is_stale(self, now: float) -> bool:
        if not self._built:
            return True
        return (now - self._ledger.built_at) >= self._refresh_seconds

    def history_window(self, now: float) -> Tuple[datetime, datetime]:
        # server time usually runs ahead of UTC; pad the upper bound by a day
        end = datetime.fromtimestamp(now, tz=timezone.utc) + timedelta(days=1)
        if self._lookback_days <= 0:
            return _EPOCH, end
        return end - timedelta(days=self._lookback_days + 1), end

    async def refresh(
        self,
        source: DealHistory,
        account: AccountSnapshot,
        now: float,
        force: bool = False,
    ) -> PerformanceLedger:
        if not force and not self.is_stale(now):
            return self._ledger
        start, end = self.history_window(now)
        # HistoryUnavailableError propagates; the previous ledger stays in place
        deals = await source.history_deals(start, end)
        ledger = rebuild_ledger(
            deals,
            current_balance=account.balance,
            current_equity=account.equity,
            built_at=now,
        )
        self._ledger = ledger
        self._built = True
        self.rebuild_count += 1
        logger.info(
            "Ledger rebuilt: deals=%d trades=%d start_balance=%s cash_flow=%s",
            len(deals),
            ledger.count,
            ledger.start_balance,
            ledger.cash_flow_total,
        )
        return ledger
