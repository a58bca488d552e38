"""Auto-refresh loop — rescans the universe while the market is open."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Callable

from loguru import logger

from fnoscanner.config.settings import Settings
from fnoscanner.models.scan_result import ScanResult
from fnoscanner.scanner.orchestrator import (
    ScanFailedError,
    ScanInProgressError,
    ScanOrchestrator,
)


def is_market_open(now: datetime, settings: Settings) -> bool:
    """True on weekdays between market open and close (inclusive), exchange time."""
    local = now.astimezone(settings.market_tz) if now.tzinfo else now
    if local.weekday() >= 5:  # Sat / Sun
        return False
    current = local.time().replace(second=0, microsecond=0)
    return settings.MARKET_OPEN_TIME <= current <= settings.MARKET_CLOSE_TIME


class AutoRefreshScheduler:
    """Runs a scan every ``AUTO_REFRESH_MINUTES`` during market hours.

    Ticks that land outside market hours, or while a scan is still in
    flight, are skipped. A failed scan is logged and retried on the next
    tick; the loop itself never dies on a scan error.
    """

    def __init__(
        self,
        orchestrator: ScanOrchestrator,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
        on_results: Callable[[list[ScanResult]], None] | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._settings = settings
        self._clock = clock or (lambda: datetime.now(settings.market_tz))
        self._on_results = on_results
        self._stop_event = asyncio.Event()
        self.ticks = 0
        self.scans_run = 0

    @property
    def interval_seconds(self) -> float:
        return self._settings.AUTO_REFRESH_MINUTES * 60

    async def run(self) -> None:
        """Loop until :meth:`stop` is called."""
        logger.info(
            "Auto-refresh starting | every {} min | session {}-{} {}",
            self._settings.AUTO_REFRESH_MINUTES,
            self._settings.MARKET_OPEN_TIME.strftime("%H:%M"),
            self._settings.MARKET_CLOSE_TIME.strftime("%H:%M"),
            self._settings.MARKET_TIMEZONE,
        )

        while not self._stop_event.is_set():
            await self.tick()

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
                break  # stop event was set
            except asyncio.TimeoutError:
                pass  # time for the next tick

        logger.info("Auto-refresh stopped")

    async def tick(self) -> list[ScanResult] | None:
        """Run one scan if the market is open; return its results."""
        self.ticks += 1
        if not is_market_open(self._clock(), self._settings):
            logger.debug("Market closed — skipping refresh")
            return None
        try:
            results = await self._orchestrator.scan()
        except ScanInProgressError:
            logger.debug("Previous scan still running — skipping refresh")
            return None
        except ScanFailedError as exc:
            logger.error("Scheduled scan failed: {}", exc)
            return None

        self.scans_run += 1
        if self._on_results is not None:
            self._on_results(results)
        return results

    def stop_nowait(self) -> None:
        """Signal the loop to stop after the current tick (safe from signal handlers)."""
        logger.info("Auto-refresh stop requested")
        self._stop_event.set()

    async def stop(self) -> None:
        self.stop_nowait()
