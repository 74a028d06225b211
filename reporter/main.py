from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import List, Optional

from .config import AppConfig, Settings, load_settings
from .errors import ConfigError, HistoryUnavailableError, PlatformUnavailableError
from .exporter import MirrorExporter
from .report import ReportKind
from .runtime import ReporterAgent
from .sources import Mt5Source, SqliteHistorySource, build_source


logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(app: AppConfig) -> None:
    if not app.logging_enabled:
        logging.disable(logging.CRITICAL)
        return
    logging.disable(logging.NOTSET)
    logging.basicConfig(level=app.log_level, format=LOG_FORMAT, force=True)
    # httpx request lines include the bot token in the URL
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def run_once(settings: Settings, kind: ReportKind) -> bool:
    agent = ReporterAgent(settings, build_source(settings.source))
    try:
        await agent.start()
        await agent.tick()
        result = await agent.send_report(kind)
        logger.info("State: %s", json.dumps(agent.runtime_state(), default=str))
        return result.ok
    finally:
        await agent.stop("one-shot run")


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops: Ctrl+C cancels the task instead
            pass


async def run_forever(settings: Settings) -> None:
    agent = ReporterAgent(settings, build_source(settings.source))
    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)
    await agent.run(stop_event)


def build_exporter(settings: Settings) -> MirrorExporter:
    src = settings.source
    terminal = Mt5Source(
        terminal_path=src.terminal_path,
        login=src.login,
        password=src.password,
        server=src.server,
    )
    return MirrorExporter(terminal, SqliteHistorySource(src.sqlite_path), overlap_days=settings.export.overlap_days)


async def run_export(settings: Settings, once: bool = False) -> bool:
    exporter = build_exporter(settings)
    if once:
        try:
            await exporter.export_once()
            return True
        except (PlatformUnavailableError, HistoryUnavailableError) as exc:
            logger.error("Export failed: %s", exc)
            return False
        finally:
            await exporter.close()
    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)
    await exporter.run(stop_event, settings.export.interval_seconds)
    return True


def cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="reporter", description="Periodic trading-account reports to Telegram")
    parser.add_argument("--config", default=None, help="path to config.yaml (default ./configs/config.yaml)")
    parser.add_argument("--once", action="store_true", help="send a single report (or export pass) and exit")
    parser.add_argument(
        "--export",
        action="store_true",
        help="copy the MT5 terminal into source.sqlite_path instead of reporting",
    )
    parser.add_argument(
        "--kind",
        choices=[k.value for k in ReportKind],
        default=ReportKind.DETAILED.value,
        help="report kind for --once",
    )
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    configure_logging(settings.app)

    if args.export:
        try:
            ok = asyncio.run(run_export(settings, once=args.once))
        except KeyboardInterrupt:
            ok = True
        return 0 if ok else 1

    if args.once:
        if settings.report.notify_on_start or settings.report.notify_on_stop:
            settings = settings.model_copy(
                update={
                    "report": settings.report.model_copy(update={"notify_on_start": False, "notify_on_stop": False})
                }
            )
        ok = asyncio.run(run_once(settings, ReportKind(args.kind)))
        return 0 if ok else 1

    try:
        asyncio.run(run_forever(settings))
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(cli())
