from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from ..models import DrawdownState


def current_drawdown_pct(floating_pnl: float, balance: float) -> float:
    # floating P/L relative to balance, not equity relative to peak
    if balance > 0:
        return floating_pnl / balance * 100.0
    return 0.0


def update_drawdown(
    state: DrawdownState,
    current_equity: float,
    current_balance: float,
    floating_pnl: float,
    now: float = 0.0,
) -> DrawdownState:
    peak = max(state.peak_equity, float(current_equity))
    dd_pct = current_drawdown_pct(float(floating_pnl), float(current_balance))
    return replace(
        state,
        peak_equity=peak,
        current_dd_pct=dd_pct,
        max_current_dd_pct=min(state.max_current_dd_pct, dd_pct),
        max_dd_abs=max(state.max_dd_abs, peak - float(current_equity)),
        updated_at=now,
    )


class DrawdownTracker:
    def __init__(self) -> None:
        self._state: Optional[DrawdownState] = None
        self._logger = logging.getLogger(__name__)

    @property
    def started(self) -> bool:
        return self._state is not None

    @property
    def state(self) -> DrawdownState:
        if self._state is None:
            raise RuntimeError("DrawdownTracker.start() has not been called")
        return self._state

    def start(self, equity: float, now: float) -> DrawdownState:
        self._state = DrawdownState(
            started_at=now,
            start_equity=float(equity),
            peak_equity=float(equity),
            updated_at=now,
        )
        self._logger.info("Drawdown tracking started at equity=%.2f", equity)
        return self._state

    def update(
        self,
        current_equity: float,
        current_balance: float,
        floating_pnl: float,
        now: float = 0.0,
    ) -> DrawdownState:
        if self._state is None:
            self.start(current_equity, now)
        prev = self.state
        self._state = update_drawdown(prev, current_equity, current_balance, floating_pnl, now)
        if self._state.max_current_dd_pct < prev.max_current_dd_pct:
            self._logger.debug("New worst drawdown: %.2f%%", self._state.max_current_dd_pct)
        return self._state
