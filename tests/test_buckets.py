from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from reporter.history import rebuild_ledger
from reporter.history.periods import day_key, week_key
from reporter.models import PeriodKind
from reporter.report import CalendarBucket, bucket_for, bucketize, latest, total_bucket


@pytest.fixture
def august_ledger(august_deals):
    return rebuild_ledger(august_deals, current_balance=1279.19, current_equity=1279.19)


def test_daily_buckets_use_first_trade_balance(august_ledger):
    days = bucketize(august_ledger.trades, PeriodKind.DAY)
    assert [b.label for b in days] == ["2025-08-01", "2025-08-04"]
    assert days[0].return_pct == pytest.approx(5.429)
    assert days[1].return_pct == pytest.approx(224.90 / 1054.29 * 100.0)


def test_friday_and_monday_fall_in_different_weeks(august_ledger):
    weeks = bucketize(august_ledger.trades, PeriodKind.WEEK)
    assert [b.label for b in weeks] == [
        "2025-07-28 - 2025-08-03",
        "2025-08-04 - 2025-08-10",
    ]
    assert [b.trades for b in weeks] == [1, 1]


def test_month_bucket_sums_both_trades(august_ledger):
    (month,) = bucketize(august_ledger.trades, PeriodKind.MONTH)
    assert month.label == "2025-08-01 - 2025-08-31"
    assert month.trades == 2
    assert month.net_profit == Decimal("279.19")
    assert month.balance_before == Decimal("1000")
    assert month.return_pct == pytest.approx(27.919)


@pytest.mark.parametrize("kind", list(PeriodKind))
def test_buckets_partition_the_trades(make_deal, ts, kind):
    deals = [make_deal(ts(2025, m, d), float(m * d) - 40.0) for m in (5, 6, 7) for d in (1, 9, 15, 28)]
    ledger = rebuild_ledger(deals, current_balance=2000.0, current_equity=2000.0)

    buckets = bucketize(ledger.trades, kind)
    assert sum(b.trades for b in buckets) == ledger.count
    assert sum((b.net_profit for b in buckets), Decimal(0)) == ledger.net_profit
    assert len({b.key for b in buckets}) == len(buckets)
    assert [b.key for b in buckets] == sorted(b.key for b in buckets)


def test_latest_returns_most_recent_window(make_deal, ts):
    deals = [make_deal(ts(2025, 3, d), 1.0) for d in range(1, 13)]
    ledger = rebuild_ledger(deals, current_balance=112.0, current_equity=112.0)
    days = bucketize(ledger.trades, PeriodKind.DAY)

    window = latest(days, 10)
    assert len(window) == 10
    assert window[0].key == day_key(date(2025, 3, 3))
    assert window[-1].key == day_key(date(2025, 3, 12))
    assert latest(days, 0) == []
    assert len(latest(days, 50)) == 12


def test_bucket_for_period_without_trades_is_empty(august_ledger):
    b = bucket_for(august_ledger.trades, week_key(date(2025, 9, 10)))
    assert b.trades == 0
    assert b.return_pct is None
    assert b.win_rate is None


def test_return_pct_undefined_for_zero_starting_balance(make_deal, ts):
    ledger = rebuild_ledger([make_deal(ts(2025, 1, 1), 10.0)], current_balance=10.0, current_equity=10.0)
    b = total_bucket(ledger.trades)
    assert b.balance_before == 0
    assert b.return_pct is None


def test_costs_and_win_rate(make_deal, ts):
    deals = [
        make_deal(ts(2025, 4, 1), 20.0, swap=-1.0, commission=-2.0),
        make_deal(ts(2025, 4, 2), -10.0, commission=-2.0),
        make_deal(ts(2025, 4, 3), 0.0),
        make_deal(ts(2025, 4, 4), 6.0),
    ]
    ledger = rebuild_ledger(deals, current_balance=1011.0, current_equity=1011.0)
    b = total_bucket(ledger.trades)

    assert b.label == "All time"
    assert b.trades == 4
    assert b.wins == 2
    assert b.win_rate == pytest.approx(50.0)
    assert b.gross_profit == Decimal("16")
    assert b.swap == Decimal("-1")
    assert b.commission == Decimal("-4")
    assert b.net_profit == Decimal("11")


def test_empty_bucket_defaults():
    b = CalendarBucket(key=None)
    assert b.trades == 0
    assert b.return_pct is None
