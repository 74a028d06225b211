from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable

from .errors import HistoryUnavailableError, PlatformUnavailableError
from .sources.base import PlatformSource
from .sources.sqlite_source import SqliteHistorySource


logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class MirrorExporter:
    """
    Copies account state and deal history from the live terminal into the
    SQLite mirror that `source.type: sqlite` reads.

    The first pass copies the whole history; later passes re-read only from
    `overlap_days` before the newest mirrored deal. Existing tickets are kept.
    """

    def __init__(
        self,
        terminal: PlatformSource,
        mirror: SqliteHistorySource,
        overlap_days: int = 1,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._terminal = terminal
        self._mirror = mirror
        self._overlap = timedelta(days=overlap_days)
        self._clock = clock
        self.pass_count = 0

    async def export_once(self) -> int:
        account = await self._terminal.account_snapshot()
        await self._mirror.write_account(account)

        newest = await self._mirror.latest_deal_time()
        start = _EPOCH if newest is None else max(_EPOCH, datetime.fromtimestamp(newest, tz=timezone.utc) - self._overlap)
        end = datetime.fromtimestamp(self._clock(), tz=timezone.utc) + timedelta(days=1)
        deals = await self._terminal.history_deals(start, end)
        written = await self._mirror.write_deals(deals)

        self.pass_count += 1
        if written:
            logger.info("Mirror updated: %d new deals (fetched %d), balance=%.2f", written, len(deals), account.balance)
        else:
            logger.debug("Mirror refreshed: no new deals, equity=%.2f", account.equity)
        return written

    async def run(self, stop_event: asyncio.Event, interval_seconds: float) -> None:
        try:
            # the terminal connects lazily on each pass, so a closed terminal is retried
            await self._mirror.connect()
            while not stop_event.is_set():
                try:
                    await self.export_once()
                except asyncio.CancelledError:
                    raise
                except (PlatformUnavailableError, HistoryUnavailableError) as exc:
                    logger.error("Export pass skipped: %s", exc)
                except Exception:
                    logger.exception("Export pass failed")
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
                except asyncio.TimeoutError:
                    pass
        finally:
            await self.close()

    async def close(self) -> None:
        for name, src in (("terminal", self._terminal), ("mirror", self._mirror)):
            try:
                await src.close()
            except Exception:
                logger.exception("Closing %s failed", name)
        logger.info("Exporter stopped after %d passes", self.pass_count)
