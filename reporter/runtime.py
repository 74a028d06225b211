from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional
from zoneinfo import ZoneInfo

from .config import Settings
from .errors import HistoryUnavailableError, PlatformUnavailableError
from .history import HistoryAggregator
from .models import AccountSnapshot, DrawdownState, PerformanceLedger
from .notifier import DeliveryFailure, DeliveryResult, TelegramNotifier
from .report import ReportComposer, ReportKind
from .services.drawdown_service import DrawdownTracker
from .services.report_schedule import ReportSchedule
from .sources.base import PlatformSource


logger = logging.getLogger(__name__)


class ReporterAgent:
    def __init__(
        self,
        settings: Settings,
        source: PlatformSource,
        notifier: Optional[TelegramNotifier] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings
        self._source = source
        self._notifier = notifier or TelegramNotifier(settings.telegram)
        self._clock = clock

        self._history = HistoryAggregator(
            refresh_seconds=settings.ledger.refresh_seconds,
            lookback_days=settings.ledger.lookback_days,
        )
        self._drawdown = DrawdownTracker()
        self._composer = ReportComposer(settings.report, tz=ZoneInfo(settings.app.server_timezone))

        rc = settings.report
        self._schedules: Dict[ReportKind, ReportSchedule] = {
            ReportKind.DETAILED: ReportSchedule(
                kind=ReportKind.DETAILED.value,
                interval_seconds=rc.detailed_interval_minutes * 60,
                retry_seconds=rc.retry_seconds,
                advance_on_failure=rc.advance_on_failure,
            ),
            ReportKind.SUMMARY: ReportSchedule(
                kind=ReportKind.SUMMARY.value,
                interval_seconds=rc.summary_interval_minutes * 60,
                retry_seconds=rc.retry_seconds,
                advance_on_failure=rc.advance_on_failure,
            ),
        }
        self._account: Optional[AccountSnapshot] = None
        self._started = False

    # ---------------------- accessors ----------------------

    @property
    def ledger(self) -> PerformanceLedger:
        return self._history.ledger

    @property
    def drawdown(self) -> Optional[DrawdownState]:
        return self._drawdown.state if self._drawdown.started else None

    @property
    def account(self) -> Optional[AccountSnapshot]:
        return self._account

    @property
    def notifier(self) -> TelegramNotifier:
        return self._notifier

    def schedule(self, kind: ReportKind) -> ReportSchedule:
        return self._schedules[kind]

    # ---------------------- lifecycle ----------------------

    async def start(self) -> None:
        now = self._clock()
        self._notifier.check_credentials()
        for schedule in self._schedules.values():
            schedule.reset(now)

        try:
            await self._source.connect()
        except PlatformUnavailableError:
            logger.exception("Platform source unavailable at start; will retry on tick")

        account = await self._poll_account()
        if account is not None:
            self._drawdown.start(account.equity, now)
            await self._refresh_ledger(account, now, force=True)
        self._started = True
        logger.info(
            "Reporter started: detailed=%dmin summary=%dmin trades=%d",
            self._settings.report.detailed_interval_minutes,
            self._settings.report.summary_interval_minutes,
            self.ledger.count,
        )

        if self._settings.report.notify_on_start and account is not None:
            text = self._composer.compose_startup(account, self._drawdown.state, self.ledger, now)
            await self._deliver(text)

    async def stop(self, reason: str = "shutdown") -> None:
        now = self._clock()
        if self._started and self._settings.report.notify_on_stop and self._notifier.configured:
            try:
                text = self._composer.compose_shutdown(self._account, self.drawdown, now, reason)
                await self._deliver(text)
            except Exception:
                logger.exception("Final notification failed")
        try:
            await self._source.close()
        except Exception:
            logger.exception("Closing platform source failed")
        self._started = False
        logger.info("Reporter stopped (%s)", reason)

    async def run(self, stop_event: asyncio.Event) -> None:
        try:
            await self.start()
            while not stop_event.is_set():
                try:
                    await self.tick()
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("Tick failed")
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self._settings.scheduler.tick_seconds)
                except asyncio.TimeoutError:
                    pass
        finally:
            await self.stop("shutdown signal" if stop_event.is_set() else "loop exited")

    # ---------------------- tick ----------------------

    async def tick(self) -> None:
        now = self._clock()
        account = await self._poll_account()
        if account is None:
            return
        await self._refresh_ledger(account, now)
        self._drawdown.update(account.equity, account.balance, account.floating_pnl, now)

        if not self._notifier.configured:
            return
        for kind, schedule in self._schedules.items():
            if not schedule.due(now):
                continue
            result = await self.send_report(kind, now)
            schedule.record(now, result.ok)
            if result.ok:
                logger.info("%s report sent (#%d)", kind.value, schedule.sent_count)
            elif schedule.advance_on_failure:
                logger.warning("%s report not delivered (%s); skipped until next interval", kind.value, _failure_name(result))
            else:
                logger.warning(
                    "%s report not delivered (%s); retry in %ds",
                    kind.value,
                    _failure_name(result),
                    schedule.retry_seconds,
                )

    async def send_report(self, kind: ReportKind, now: Optional[float] = None) -> DeliveryResult:
        now = self._clock() if now is None else now
        if self._account is None:
            return DeliveryResult(ok=False, failure=DeliveryFailure.SKIPPED, description="no account snapshot")
        if not self._drawdown.started:
            self._drawdown.start(self._account.equity, now)
        text = self._composer.compose(kind, self.ledger, self._drawdown.state, self._account, now)
        return await self._deliver(text)

    # ---------------------- helpers ----------------------

    async def _poll_account(self) -> Optional[AccountSnapshot]:
        try:
            account = await self._source.account_snapshot()
        except PlatformUnavailableError as exc:
            logger.error("Account snapshot unavailable: %s", exc)
            return None
        self._account = account
        return account

    async def _refresh_ledger(self, account: AccountSnapshot, now: float, force: bool = False) -> None:
        try:
            await self._history.refresh(self._source, account, now, force=force)
        except HistoryUnavailableError as exc:
            logger.error(
                "Deal history unavailable, keeping previous ledger (%d trades): %s",
                self.ledger.count,
                exc,
            )

    async def _deliver(self, text: str) -> DeliveryResult:
        if not self._notifier.configured:
            return DeliveryResult(ok=False, failure=DeliveryFailure.SKIPPED)
        return await self._notifier.send(text)

    def runtime_state(self) -> Dict[str, Any]:
        dd = self.drawdown
        acc = self._account
        return {
            "account": {
                "balance": acc.balance if acc else None,
                "equity": acc.equity if acc else None,
                "floating_pnl": acc.floating_pnl if acc else None,
                "open_positions": len(acc.positions) if acc else None,
            },
            "ledger": {
                "trades": self.ledger.count,
                "built_at": self.ledger.built_at,
                "rebuilds": self._history.rebuild_count,
            },
            "drawdown": {
                "peak_equity": dd.peak_equity if dd else None,
                "current_dd_pct": dd.current_dd_pct if dd else None,
                "max_current_dd_pct": dd.max_current_dd_pct if dd else None,
                "max_dd_abs": dd.max_dd_abs if dd else None,
            },
            "reports": {
                kind.value: {
                    "sent": s.sent_count,
                    "failed": s.failed_count,
                    "last_sent": s.last_sent,
                }
                for kind, s in self._schedules.items()
            },
            "notifier": {
                "configured": self._notifier.configured,
                "sent": self._notifier.sent_count,
                "failed": self._notifier.failed_count,
            },
        }


def _failure_name(result: DeliveryResult) -> str:
    return result.failure.value if result.failure is not None else "unknown"
