from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from reporter.errors import HistoryUnavailableError
from reporter.history import HistoryAggregator, rebuild_ledger
from reporter.models import (
    DEAL_BALANCE,
    DEAL_BONUS,
    DEAL_CHARGE,
    DEAL_CREDIT,
    DEAL_SELL,
    AccountSnapshot,
)


def test_august_trades_are_chained_from_recovered_baseline(august_deals):
    ledger = rebuild_ledger(august_deals, current_balance=1279.19, current_equity=1279.19)

    assert ledger.count == 2
    first, second = ledger.trades
    assert first.date_str == "2025-08-01"
    assert second.date_str == "2025-08-04"
    assert first.balance_before == Decimal("1000")
    assert second.balance_before == Decimal("1054.29")
    assert second.balance_after == Decimal("1279.19")
    assert ledger.start_balance == 0
    assert ledger.cash_flow_total == Decimal("1000")
    assert ledger.net_profit == Decimal("279.19")


def test_trades_are_sorted_and_chained(make_deal, ts):
    deals = [
        make_deal(ts(2025, 3, 5), -12.5, swap=-0.4),
        make_deal(ts(2025, 3, 1), 30.0, commission=-1.2),
        make_deal(ts(2025, 3, 3), 8.0, type=DEAL_SELL),
    ]
    ledger = rebuild_ledger(deals, current_balance=500.0, current_equity=480.0)

    times = [t.time for t in ledger.trades]
    assert times == sorted(times)
    for trade in ledger.trades:
        assert trade.balance_after - trade.balance_before == trade.net_profit
        assert trade.equity_after - trade.equity_before == trade.net_profit
    for prev, nxt in zip(ledger.trades, ledger.trades[1:]):
        assert nxt.balance_before == prev.balance_after
        assert nxt.equity_before == prev.equity_after
    assert ledger.trades[-1].balance_after == Decimal("500")
    assert ledger.trades[-1].equity_after == Decimal("480")


def test_before_after_difference_is_exact_for_decimal_fractions(make_deal, ts):
    deals = [
        make_deal(ts(2025, 3, 1), 0.1),
        make_deal(ts(2025, 3, 2), 0.2),
        make_deal(ts(2025, 3, 3), -0.3, swap=0.07, commission=-0.01),
    ]
    ledger = rebuild_ledger(deals, current_balance=1000.3, current_equity=1000.3)

    assert [t.net_profit for t in ledger.trades] == [Decimal("0.1"), Decimal("0.2"), Decimal("-0.24")]
    for trade in ledger.trades:
        assert trade.balance_after - trade.balance_before == trade.net_profit
    assert ledger.trades[1].balance_before == Decimal("1000.34")
    assert ledger.trades[1].balance_after - ledger.trades[1].balance_before == Decimal("0.2")


def test_net_profit_includes_swap_and_commission(make_deal, ts):
    ledger = rebuild_ledger(
        [make_deal(ts(2025, 5, 2), 100.0, swap=-2.0, commission=-3.5)],
        current_balance=1094.5,
        current_equity=1094.5,
    )
    trade = ledger.trades[0]
    assert trade.net_profit == Decimal("94.5")
    assert trade.balance_before == Decimal("1000")
    assert trade.side == "BUY"


def test_empty_log_yields_empty_ledger():
    ledger = rebuild_ledger([], current_balance=1000.0, current_equity=990.0)
    assert ledger.count == 0
    assert ledger.start_balance == Decimal("1000")
    assert ledger.start_equity == Decimal("990")
    assert ledger.net_profit == 0


def test_cash_flows_move_baseline_between_trades(make_deal, ts):
    deals = [
        make_deal(ts(2025, 1, 2), 500.0, type=DEAL_BALANCE),
        make_deal(ts(2025, 1, 3), 50.0),
        make_deal(ts(2025, 1, 4), 1000.0, type=DEAL_BALANCE),
        make_deal(ts(2025, 1, 5), -5.0, type=DEAL_CHARGE),
        make_deal(ts(2025, 1, 6), 20.0, type=DEAL_BONUS),
        make_deal(ts(2025, 1, 7), 15.5),
    ]
    ledger = rebuild_ledger(deals, current_balance=1580.5, current_equity=1580.5)

    first, second = ledger.trades
    assert first.balance_before == Decimal("500")
    assert first.balance_after == Decimal("550")
    assert second.balance_before == Decimal("1565")
    assert ledger.cash_flow_total == Decimal("1515")


def test_credit_deals_do_not_touch_balance(make_deal, ts):
    deals = [
        make_deal(ts(2025, 2, 1), 200.0, type=DEAL_CREDIT),
        make_deal(ts(2025, 2, 2), 10.0),
    ]
    ledger = rebuild_ledger(deals, current_balance=110.0, current_equity=110.0)
    assert ledger.count == 1
    assert ledger.trades[0].balance_before == Decimal("100")
    assert ledger.cash_flow_total == 0


def test_zero_profit_trade_is_kept(make_deal, ts):
    ledger = rebuild_ledger([make_deal(ts(2025, 6, 9), 0.0)], current_balance=250.0, current_equity=250.0)
    trade = ledger.trades[0]
    assert ledger.count == 1
    assert trade.balance_before == trade.balance_after == Decimal("250")


def test_same_second_deals_ordered_by_ticket(make_deal, ts):
    t = ts(2025, 6, 9, 8)
    deals = [make_deal(t, 2.0, ticket=11), make_deal(t, 1.0, ticket=10)]
    ledger = rebuild_ledger(deals, current_balance=103.0, current_equity=103.0)
    assert [tr.ticket for tr in ledger.trades] == [10, 11]
    assert ledger.trades[0].balance_before == Decimal("100")


def test_deal_times_are_keyed_as_server_wall_clock(make_deal, ts):
    late_evening = make_deal(ts(2025, 8, 4, 22, 30), 5.0)
    sunday_night = make_deal(ts(2025, 8, 3, 23, 30), 5.0)
    ledger = rebuild_ledger([late_evening, sunday_night], current_balance=10.0, current_equity=10.0)
    sunday, monday = ledger.trades

    assert sunday.date_str == "2025-08-03"
    assert sunday.week.start == date(2025, 7, 28)
    assert monday.date_str == "2025-08-04"
    assert monday.week_range == "2025-08-04 - 2025-08-10"
    assert monday.month_range == "2025-08-01 - 2025-08-31"


class FakeHistory:
    def __init__(self, deals):
        self.deals = list(deals)
        self.calls = []
        self.fail = False

    async def history_deals(self, start, end):
        self.calls.append((start, end))
        if self.fail:
            raise HistoryUnavailableError("terminal offline")
        return list(self.deals)


@pytest.mark.asyncio
async def test_aggregator_refreshes_only_when_stale(august_deals, august_account):
    history = FakeHistory(august_deals)
    agg = HistoryAggregator(refresh_seconds=300)
    assert agg.is_stale(1000.0)

    await agg.refresh(history, august_account, now=1000.0)
    await agg.refresh(history, august_account, now=1200.0)
    assert len(history.calls) == 1
    assert agg.ledger.count == 2

    await agg.refresh(history, august_account, now=1300.0)
    assert len(history.calls) == 2
    assert agg.rebuild_count == 2
    assert agg.ledger.built_at == 1300.0


@pytest.mark.asyncio
async def test_aggregator_force_bypasses_staleness(august_deals, august_account):
    history = FakeHistory(august_deals)
    agg = HistoryAggregator(refresh_seconds=300)
    await agg.refresh(history, august_account, now=10.0)
    await agg.refresh(history, august_account, now=11.0, force=True)
    assert len(history.calls) == 2


@pytest.mark.asyncio
async def test_aggregator_keeps_previous_ledger_on_failure(august_deals, august_account):
    history = FakeHistory(august_deals)
    agg = HistoryAggregator(refresh_seconds=60)
    before = await agg.refresh(history, august_account, now=100.0)

    history.fail = True
    with pytest.raises(HistoryUnavailableError):
        await agg.refresh(history, august_account, now=500.0)
    assert agg.ledger is before
    assert agg.rebuild_count == 1


@pytest.mark.asyncio
async def test_aggregator_replaces_ledger_wholesale(make_deal, ts):
    history = FakeHistory([make_deal(ts(2025, 1, 2), 10.0)])
    agg = HistoryAggregator(refresh_seconds=0)
    account = AccountSnapshot(balance=110.0, equity=110.0)
    first = await agg.refresh(history, account, now=1.0)

    history.deals.append(make_deal(ts(2025, 1, 3), 5.0))
    account = AccountSnapshot(balance=115.0, equity=115.0)
    second = await agg.refresh(history, account, now=2.0)

    assert first.count == 1
    assert second.count == 2
    assert second.trades[0].balance_before == Decimal("100")


def test_history_window_whole_account_or_lookback():
    now = datetime(2025, 8, 4, 12, tzinfo=timezone.utc).timestamp()

    start, end = HistoryAggregator(lookback_days=0).history_window(now)
    assert start == datetime(1970, 1, 1, tzinfo=timezone.utc)
    assert end == datetime(2025, 8, 5, 12, tzinfo=timezone.utc)

    start, end = HistoryAggregator(lookback_days=30).history_window(now)
    assert (end - start).days == 31
