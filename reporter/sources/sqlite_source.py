from __future__ import annotations

import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import aiosqlite

from ..errors import HistoryUnavailableError, PlatformUnavailableError
from ..models import DEAL_SELL, AccountSnapshot, Deal, OpenPosition
from .base import to_float, to_int


logger = logging.getLogger(__name__)


class SqliteHistorySource:
    """Terminal mirror kept in SQLite by an exporter running beside the terminal."""

    def __init__(self, sqlite_path: str) -> None:
        self._sqlite_path = sqlite_path
        self._conn: Optional[aiosqlite.Connection] = None

    async def connect(self) -> None:
        if self._conn is not None:
            return
        try:
            Path(self._sqlite_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)
            self._conn = await aiosqlite.connect(self._sqlite_path)
            self._conn.row_factory = aiosqlite.Row
            await self._init_schema()
        except (aiosqlite.Error, OSError) as exc:
            self._conn = None
            raise PlatformUnavailableError(f"cannot open terminal mirror {self._sqlite_path}: {exc}") from exc
        logger.info("Terminal mirror connected: %s", self._sqlite_path)

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None
        logger.info("Terminal mirror closed")

    async def _init_schema(self) -> None:
        schema_path = Path(__file__).resolve().parents[1] / "schema.sql"
        sql = schema_path.read_text(encoding="utf-8")
        await self._conn.executescript(sql)
        await self._conn.commit()

    async def _fetchall(self, sql: str, params: Sequence[Any] | Dict[str, Any] = ()) -> List[aiosqlite.Row]:
        await self.connect()
        async with self._conn.execute(sql, params) as cursor:
            return await cursor.fetchall()

    async def _fetchone(self, sql: str, params: Sequence[Any] | Dict[str, Any] = ()) -> Optional[aiosqlite.Row]:
        await self.connect()
        async with self._conn.execute(sql, params) as cursor:
            return await cursor.fetchone()

    async def account_snapshot(self) -> AccountSnapshot:
        try:
            row = await self._fetchone("SELECT * FROM account WHERE id=1")
            pos_rows = await self._fetchall("SELECT * FROM positions ORDER BY ticket")
        except aiosqlite.Error as exc:
            raise PlatformUnavailableError(f"account query failed: {exc}") from exc
        if row is None:
            raise PlatformUnavailableError("terminal mirror has no account row yet")

        positions = [
            OpenPosition(
                ticket=int(r["ticket"]),
                symbol=r["symbol"],
                side="SELL" if int(r["type"]) == DEAL_SELL else "BUY",
                volume=to_float(r["volume"]),
                open_price=to_float(r["price_open"]),
                current_price=to_float(r["price_current"]),
                profit=to_float(r["profit"]),
                swap=to_float(r["swap"]),
            )
            for r in pos_rows
        ]
        return AccountSnapshot(
            balance=to_float(row["balance"]),
            equity=to_float(row["equity"]),
            credit=to_float(row["credit"]),
            margin=to_float(row["margin"]),
            free_margin=to_float(row["margin_free"]),
            margin_level=to_float(row["margin_level"]),
            login=to_int(row["login"]) or None,
            name=row["name"] or "",
            company=row["company"] or "",
            server=row["server"] or "",
            currency=row["currency"] or "",
            leverage=to_int(row["leverage"]),
            positions=positions,
            taken_at=time.time(),
        )

    async def history_deals(self, start: datetime, end: datetime) -> List[Deal]:
        sql = """
        SELECT ticket, time, type, symbol, volume, price, profit, swap, commission
        FROM deals
        WHERE time >= ? AND time < ?
        ORDER BY time, ticket
        """
        try:
            rows = await self._fetchall(sql, (int(start.timestamp()), int(end.timestamp())))
        except (aiosqlite.Error, PlatformUnavailableError) as exc:
            raise HistoryUnavailableError(f"deal history query failed: {exc}") from exc
        return [
            Deal(
                ticket=int(r["ticket"]),
                time=int(r["time"]),
                type=int(r["type"]),
                symbol=r["symbol"] or "",
                volume=to_float(r["volume"]),
                price=to_float(r["price"]),
                profit=to_float(r["profit"]),
                swap=to_float(r["swap"]),
                commission=to_float(r["commission"]),
            )
            for r in rows
        ]

    async def latest_deal_time(self) -> Optional[int]:
        row = await self._fetchone("SELECT MAX(time) AS t FROM deals")
        if row is None or row["t"] is None:
            return None
        return int(row["t"])

    # ---- exporter side ----

    async def write_account(self, a: AccountSnapshot) -> None:
        sql = """
        INSERT INTO account (
          id, login, name, company, server, currency, leverage, balance, equity,
          credit, margin, margin_free, margin_level, updated_at
        ) VALUES (1, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
          login=excluded.login,
          name=excluded.name,
          company=excluded.company,
          server=excluded.server,
          currency=excluded.currency,
          leverage=excluded.leverage,
          balance=excluded.balance,
          equity=excluded.equity,
          credit=excluded.credit,
          margin=excluded.margin,
          margin_free=excluded.margin_free,
          margin_level=excluded.margin_level,
          updated_at=excluded.updated_at
        """
        params = (
            a.login,
            a.name,
            a.company,
            a.server,
            a.currency,
            a.leverage,
            a.balance,
            a.equity,
            a.credit,
            a.margin,
            a.free_margin,
            a.margin_level,
            int(a.taken_at or time.time()),
        )
        await self.connect()
        await self._conn.execute("DELETE FROM positions")
        await self._conn.execute(sql, params)
        await self._conn.executemany(
            """
            INSERT INTO positions (ticket, symbol, type, volume, price_open, price_current, profit, swap)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    p.ticket,
                    p.symbol,
                    DEAL_SELL if p.side == "SELL" else 0,
                    p.volume,
                    p.open_price,
                    p.current_price,
                    p.profit,
                    p.swap,
                )
                for p in a.positions
            ],
        )
        await self._conn.commit()

    async def write_deals(self, deals: Iterable[Deal]) -> int:
        sql = """
        INSERT INTO deals (ticket, time, type, symbol, volume, price, profit, swap, commission)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(ticket) DO NOTHING
        """
        await self.connect()
        cursor = await self._conn.executemany(
            sql,
            [
                (d.ticket, d.time, d.type, d.symbol, d.volume, d.price, d.profit, d.swap, d.commission)
                for d in deals
            ],
        )
        await self._conn.commit()
        # rows skipped by ON CONFLICT are not counted
        return max(cursor.rowcount, 0)
