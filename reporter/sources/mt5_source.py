from __future__ import annotations

import importlib
import logging
import time
from datetime import datetime
from typing import Any, List, Optional

from ..errors import HistoryUnavailableError, PlatformUnavailableError
from ..models import DEAL_SELL, AccountSnapshot, Deal, OpenPosition
from .base import to_float, to_int


logger = logging.getLogger(__name__)


def _value(obj: Any, key: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


class Mt5Source:
    """
    Reads account state and deal history straight from a MetaTrader 5 terminal.

    The MetaTrader5 package only ships for Windows; it is imported on connect()
    unless an API object is passed in explicitly.
    """

    def __init__(
        self,
        terminal_path: Optional[str] = None,
        login: Optional[int] = None,
        password: Optional[str] = None,
        server: Optional[str] = None,
        api: Any = None,
    ) -> None:
        self._terminal_path = terminal_path
        self._login = login
        self._password = password
        self._server = server
        self._api = api
        self._connected = False

    def _load_api(self) -> Any:
        if self._api is None:
            try:
                self._api = importlib.import_module("MetaTrader5")
            except ImportError as exc:
                raise PlatformUnavailableError(
                    "MetaTrader5 package is missing; install with `pip install MetaTrader5` (Windows only)"
                ) from exc
        return self._api

    async def connect(self) -> None:
        if self._connected:
            return
        api = self._load_api()
        kwargs = {}
        if self._login:
            kwargs["login"] = int(self._login)
        if self._password:
            kwargs["password"] = self._password
        if self._server:
            kwargs["server"] = self._server
        ok = api.initialize(self._terminal_path, **kwargs) if self._terminal_path else api.initialize(**kwargs)
        if not ok:
            raise PlatformUnavailableError(f"mt5.initialize() failed: {api.last_error()}")
        self._connected = True
        logger.info("MT5 terminal connected")

    def _mark_disconnected(self) -> None:
        # terminal restarted or lost its session; initialize() again on next call
        if self._connected:
            logger.warning("MT5 terminal stopped answering; reconnecting on next poll")
        self._connected = False

    async def close(self) -> None:
        if not self._connected:
            return
        self._api.shutdown()
        self._connected = False
        logger.info("MT5 terminal disconnected")

    async def account_snapshot(self) -> AccountSnapshot:
        await self.connect()
        api = self._api
        info = api.account_info()
        if info is None:
            self._mark_disconnected()
            raise PlatformUnavailableError(f"mt5.account_info() failed: {api.last_error()}")
        raw_positions = api.positions_get() or ()
        positions = [
            OpenPosition(
                ticket=to_int(_value(p, "ticket")),
                symbol=str(_value(p, "symbol", "")),
                side="SELL" if to_int(_value(p, "type")) == DEAL_SELL else "BUY",
                volume=to_float(_value(p, "volume")),
                open_price=to_float(_value(p, "price_open")),
                current_price=to_float(_value(p, "price_current")),
                profit=to_float(_value(p, "profit")),
                swap=to_float(_value(p, "swap")),
            )
            for p in raw_positions
        ]
        margin = to_float(_value(info, "margin"))
        return AccountSnapshot(
            balance=to_float(_value(info, "balance")),
            equity=to_float(_value(info, "equity")),
            credit=to_float(_value(info, "credit")),
            margin=margin,
            free_margin=to_float(_value(info, "margin_free")),
            margin_level=to_float(_value(info, "margin_level")) if margin > 0 else 0.0,
            login=to_int(_value(info, "login")) or None,
            name=str(_value(info, "name", "") or ""),
            company=str(_value(info, "company", "") or ""),
            server=str(_value(info, "server", "") or ""),
            currency=str(_value(info, "currency", "") or ""),
            leverage=to_int(_value(info, "leverage")),
            positions=positions,
            taken_at=time.time(),
        )

    async def history_deals(self, start: datetime, end: datetime) -> List[Deal]:
        try:
            await self.connect()
        except PlatformUnavailableError as exc:
            raise HistoryUnavailableError(str(exc)) from exc
        deals = self._api.history_deals_get(start, end)
        if deals is None:
            self._mark_disconnected()
            raise HistoryUnavailableError(f"mt5.history_deals_get() failed: {self._api.last_error()}")
        return [
            Deal(
                ticket=to_int(_value(d, "ticket")),
                time=to_int(_value(d, "time")),
                type=to_int(_value(d, "type"), default=-1),
                symbol=str(_value(d, "symbol", "") or ""),
                volume=to_float(_value(d, "volume")),
                price=to_float(_value(d, "price")),
                profit=to_float(_value(d, "profit")),
                swap=to_float(_value(d, "swap")),
                commission=to_float(_value(d, "commission")),
            )
            for d in deals
        ]
