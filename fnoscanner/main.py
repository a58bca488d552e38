"""FnO Scanner entry point."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

from loguru import logger

from fnoscanner.config.settings import Settings, get_settings
from fnoscanner.core.scheduler import AutoRefreshScheduler
from fnoscanner.exchange.kite_client import KiteClient
from fnoscanner.exchange.session import SettingsSessionProvider
from fnoscanner.models.scan_result import ScanResult
from fnoscanner.scanner.filters import ScanStats
from fnoscanner.scanner.orchestrator import ScanFailedError, ScanOrchestrator
from fnoscanner.utils.helpers import format_inr, format_percent
from fnoscanner.utils.logger import setup_logger


def log_results(results: list[ScanResult], limit: int) -> None:
    """Log headline counts and the top *limit* results."""
    stats = ScanStats.from_results(results)
    logger.info(
        "Scanned {} | flagged={} confluence={} volume={} near_ema={} breakouts={}",
        stats.total,
        stats.flagged,
        stats.confluence,
        stats.volume_spikes,
        stats.near_ema,
        stats.breakouts,
    )
    for result in results[:limit]:
        if result.score <= 0:
            break
        logger.info(
            "{:<12} score={} {} ({}) vol={:.1f}x | EMA: {} | BO: {} | CP: {}",
            result.symbol,
            result.score,
            format_inr(result.quote.last_price),
            format_percent(result.price_change_percent),
            result.volume.multiplier,
            result.near_ema_summary,
            result.breakout_summary,
            result.confluence.summary,
        )


async def main(settings: Settings, loop_forever: bool) -> int:
    """Run one scan, or the auto-refresh loop, with graceful shutdown."""
    session = SettingsSessionProvider(settings)
    async with KiteClient(settings, session) as client:
        orchestrator = ScanOrchestrator(client, settings)

        if not loop_forever:
            try:
                results = await orchestrator.scan()
            except ScanFailedError as exc:
                logger.error("Scan failed: {}", exc)
                return 1
            log_results(results, settings.TOP_RESULTS_TO_LOG)
            return 0

        scheduler = AutoRefreshScheduler(
            orchestrator,
            settings,
            on_results=lambda results: log_results(results, settings.TOP_RESULTS_TO_LOG),
        )
        loop = asyncio.get_running_loop()
        if sys.platform != "win32":
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, scheduler.stop_nowait)
        await scheduler.run()
        return 0


def run() -> None:
    """Synchronous wrapper suitable for ``python -m`` or console_scripts."""
    parser = argparse.ArgumentParser(description="NSE F&O technical scanner")
    parser.add_argument(
        "--loop",
        action="store_true",
        help="keep rescanning every AUTO_REFRESH_MINUTES during market hours",
    )
    args = parser.parse_args()

    settings = get_settings()
    setup_logger(settings.LOG_LEVEL, settings.LOG_FILE)
    try:
        code = asyncio.run(main(settings, args.loop or settings.AUTO_REFRESH_ENABLED))
    except KeyboardInterrupt:
        print("\nFnO Scanner interrupted — shutting down.")
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    run()
