from __future__ import annotations

import itertools
from datetime import datetime, timezone

import pytest

from reporter.models import DEAL_BALANCE, DEAL_BUY, DEAL_SELL, AccountSnapshot, Deal


def utc_ts(y: int, m: int, d: int, hh: int = 12, mm: int = 0) -> int:
    return int(datetime(y, m, d, hh, mm, tzinfo=timezone.utc).timestamp())


@pytest.fixture
def ts():
    return utc_ts


@pytest.fixture
def make_deal():
    tickets = itertools.count(1000)

    def _make(
        time: int,
        profit: float = 0.0,
        type: int = DEAL_BUY,
        swap: float = 0.0,
        commission: float = 0.0,
        symbol: str = "XAUUSD",
        ticket: int | None = None,
    ) -> Deal:
        return Deal(
            ticket=next(tickets) if ticket is None else ticket,
            time=time,
            type=type,
            symbol=symbol if type in (DEAL_BUY, DEAL_SELL) else "",
            volume=0.10 if type in (DEAL_BUY, DEAL_SELL) else 0.0,
            price=2400.0 if type in (DEAL_BUY, DEAL_SELL) else 0.0,
            profit=profit,
            swap=swap,
            commission=commission,
        )

    return _make


@pytest.fixture
def august_deals(make_deal):
    """Deposit of 1000 followed by two trades: +54.29 on Fri 2025-08-01, +224.90 on Mon 2025-08-04."""
    return [
        make_deal(utc_ts(2025, 8, 4, 15), 224.90, type=DEAL_SELL),
        make_deal(utc_ts(2025, 7, 31, 9), 1000.0, type=DEAL_BALANCE),
        make_deal(utc_ts(2025, 8, 1, 10), 54.29),
    ]


@pytest.fixture
def august_account():
    return AccountSnapshot(
        balance=1279.19,
        equity=1279.19,
        free_margin=1279.19,
        login=5001234,
        name="Demo",
        company="Example Markets Ltd",
        currency="USD",
        leverage=100,
    )
