from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Sequence, Union

from ..config import ReportConfig
from ..history.periods import day_key, month_key, to_local_date, week_key
from ..models import AccountSnapshot, DrawdownState, PerformanceLedger, PeriodKind
from .buckets import CalendarBucket, bucket_for, bucketize, latest, total_bucket


class ReportKind(str, Enum):
    DETAILED = "detailed"
    SUMMARY = "summary"


Number = Union[float, Decimal]

_MD_SPECIAL = ("_", "*", "`", "[")


def escape_md(text: str) -> str:
    """Escape free text for Telegram legacy Markdown.

    Only valid outside entities, so escaped text never goes inside *...*.
    """
    out = str(text)
    for ch in _MD_SPECIAL:
        out = out.replace(ch, "\\" + ch)
    return out


def _fmt(v: Optional[Number], nd: int = 2) -> str:
    return f"{v:,.{nd}f}" if v is not None else "n/a"


def _fmt_signed(v: Optional[Number], nd: int = 2) -> str:
    return f"{v:+,.{nd}f}" if v is not None else "n/a"


def _fmt_pct(v: Optional[float], nd: int = 2) -> str:
    return f"{v:+.{nd}f}%" if v is not None else "n/a"


def _fmt_rate(v: Optional[float]) -> str:
    return f"{v:.1f}%" if v is not None else "n/a"


def _table(title: str, buckets: Sequence[CalendarBucket], period_header: str) -> List[str]:
    lines = [f"*{title}*"]
    if not buckets:
        lines.append("_No closed trades yet_")
        return lines
    width = max(len(period_header), max(len(b.label) for b in buckets))
    rows = [f"{period_header:<{width}} {'Trades':>6} {'Net':>11} {'%':>9}"]
    for b in buckets:
        rows.append(
            f"{b.label:<{width}} {b.trades:>6d} {_fmt_signed(b.net_profit):>11} {_fmt_pct(b.return_pct, 3):>9}"
        )
    lines.append("```")
    lines.extend(rows)
    lines.append("```")
    return lines


class ReportComposer:
    def __init__(self, config: ReportConfig, tz: tzinfo = timezone.utc) -> None:
        self._config = config
        self._tz = tz

    def _stamp(self, now: float) -> str:
        return datetime.fromtimestamp(now, tz=self._tz).strftime("%Y-%m-%d %H:%M %Z")

    def _header(self, title: str, account: AccountSnapshot, now: float) -> List[str]:
        lines = [f"*{title}*: {escape_md(self._config.account_label)}"]
        ident = [p for p in (account.company, f"#{account.login}" if account.login else "", account.currency) if p]
        if ident:
            lines.append(escape_md(" | ".join(ident)))
        lines.append(self._stamp(now))
        return lines

    def compose(
        self,
        kind: ReportKind,
        ledger: PerformanceLedger,
        drawdown: DrawdownState,
        account: AccountSnapshot,
        now: float,
    ) -> str:
        if ReportKind(kind) is ReportKind.DETAILED:
            return self.compose_detailed(ledger, drawdown, account, now)
        return self.compose_summary(ledger, account, now)

    def compose_detailed(
        self,
        ledger: PerformanceLedger,
        drawdown: DrawdownState,
        account: AccountSnapshot,
        now: float,
    ) -> str:
        cur = account.currency
        margin_level = account.margin_level if account.margin > 0 else None
        totals = total_bucket(ledger.trades)

        lines = self._header("Detailed report", account, now)
        lines += [
            "",
            "*Account*",
            f"Balance: {_fmt(account.balance)} {cur}".rstrip(),
            f"Equity: {_fmt(account.equity)} {cur}".rstrip(),
            f"Credit: {_fmt(account.credit)}",
            f"Margin: {_fmt(account.margin)}",
            f"Free margin: {_fmt(account.free_margin)}",
            f"Margin level: {_fmt(margin_level)}{'%' if margin_level is not None else ''}",
            f"Floating P/L: {_fmt_signed(account.floating_pnl)} ({len(account.positions)} open)",
            f"Current DD: {_fmt_pct(drawdown.current_dd_pct)}",
            f"Worst DD: {_fmt_pct(drawdown.max_current_dd_pct)}",
            f"Max DD: {_fmt(drawdown.max_dd_abs)} (peak equity {_fmt(drawdown.peak_equity)})",
            "",
            "*Costs (all trades)*",
            f"Trades: {totals.trades}",
            f"Gross profit: {_fmt_signed(totals.gross_profit)}",
            f"Swap: {_fmt_signed(totals.swap)}",
            f"Commission: {_fmt_signed(totals.commission)}",
            f"Net profit: {_fmt_signed(totals.net_profit)}",
            "",
        ]
        cfg = self._config
        lines += _table(
            f"Daily (last {cfg.day_window})",
            latest(bucketize(ledger.trades, PeriodKind.DAY), cfg.day_window),
            "Date",
        )
        lines.append("")
        lines += _table(
            f"Weekly (last {cfg.week_window})",
            latest(bucketize(ledger.trades, PeriodKind.WEEK), cfg.week_window),
            "Week",
        )
        lines.append("")
        lines += _table(
            f"Monthly (last {cfg.month_window})",
            latest(bucketize(ledger.trades, PeriodKind.MONTH), cfg.month_window),
            "Month",
        )
        return "\n".join(lines)

    def compose_summary(self, ledger: PerformanceLedger, account: AccountSnapshot, now: float) -> str:
        today = to_local_date(now, self._tz)
        rows = [
            ("Today", bucket_for(ledger.trades, day_key(today))),
            ("This week", bucket_for(ledger.trades, week_key(today))),
            ("This month", bucket_for(ledger.trades, month_key(today))),
            ("All time", total_bucket(ledger.trades)),
        ]
        cur = account.currency
        lines = self._header("Summary", account, now)
        lines += [
            "",
            f"Balance: {_fmt(account.balance)} {cur}".rstrip(),
            f"Equity: {_fmt(account.equity)} {cur}".rstrip(),
            f"Floating P/L: {_fmt_signed(account.floating_pnl)}",
            "",
        ]
        for title, b in rows:
            lines.append(
                f"*{title}*: {b.trades} trades | {_fmt_signed(b.net_profit)} "
                f"({_fmt_pct(b.return_pct, 3)}) | win {_fmt_rate(b.win_rate)}"
            )
        return "\n".join(lines)

    def compose_startup(
        self,
        account: AccountSnapshot,
        drawdown: DrawdownState,
        ledger: PerformanceLedger,
        now: float,
    ) -> str:
        lines = self._header("Reporter started", account, now)
        lines += [
            "",
            f"Balance: {_fmt(account.balance)}",
            f"Equity: {_fmt(account.equity)}",
            f"Floating P/L: {_fmt_signed(account.floating_pnl)} ({_fmt_pct(drawdown.current_dd_pct)})",
            f"Trades in history: {ledger.count}",
            f"Detailed every {self._config.detailed_interval_minutes} min, "
            f"summary every {self._config.summary_interval_minutes} min",
        ]
        return "\n".join(lines)

    def compose_shutdown(
        self,
        account: Optional[AccountSnapshot],
        drawdown: Optional[DrawdownState],
        now: float,
        reason: str = "",
    ) -> str:
        lines = [f"*Reporter stopped*: {escape_md(self._config.account_label)}", self._stamp(now)]
        if reason:
            lines.append(f"Reason: {escape_md(reason)}")
        if account is not None:
            lines.append(f"Equity: {_fmt(account.equity)}")
        if drawdown is not None:
            if account is not None:
                lines.append(f"Change since start: {_fmt_signed(account.equity - drawdown.start_equity)}")
            uptime_h = max(0.0, now - drawdown.started_at) / 3600.0
            lines.append(f"Worst DD: {_fmt_pct(drawdown.max_current_dd_pct)}")
            lines.append(f"Uptime: {uptime_h:.1f} h")
        return "\n".join(lines)
