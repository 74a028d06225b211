from __future__ import annotations

from datetime import datetime
from typing import Any, List, Protocol, runtime_checkable

from ..config import SourceConfig
from ..models import AccountSnapshot, Deal


@runtime_checkable
class PlatformSource(Protocol):
    """Read-only view of the trading terminal the reporter is attached to."""

    async def connect(self) -> None:
        ...

    async def close(self) -> None:
        ...

    async def account_snapshot(self) -> AccountSnapshot:
        """Current account scalars plus open positions. Raises PlatformUnavailableError."""
        ...

    async def history_deals(self, start: datetime, end: datetime) -> List[Deal]:
        """Deals with start <= time < end. Raises HistoryUnavailableError."""
        ...


def to_float(value: Any, default: float = 0.0) -> float:
    try:
        if value is None:
            return default
        return float(value)
    except (TypeError, ValueError):
        return default


def to_int(value: Any, default: int = 0) -> int:
    try:
        if value is None:
            return default
        return int(value)
    except (TypeError, ValueError):
        return default


def build_source(config: SourceConfig) -> PlatformSource:
    if config.type == "mt5":
        from .mt5_source import Mt5Source

        return Mt5Source(
            terminal_path=config.terminal_path,
            login=config.login,
            password=config.password,
            server=config.server,
        )
    from .sqlite_source import SqliteHistorySource

    return SqliteHistorySource(config.sqlite_path)
