"""Scan orchestrator — one end-to-end pass over the F&O universe.

Stages run strictly in order, one scan at a time:

``IDLE → RESOLVING_UNIVERSE → FETCHING_QUOTES → FETCHING_HISTORY (i/N)
→ ANALYZING → DONE``, or ``ERROR`` from any stage.

Universe and quote failures are fatal. Per-symbol history failures only
shrink the result set, except ``NotAuthenticated`` which aborts the scan.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Callable

from loguru import logger

from fnoscanner.config.settings import ScanConfig, Settings
from fnoscanner.data.market_data import ScanCache
from fnoscanner.exchange.base_client import BaseBrokerClient
from fnoscanner.exchange.kite_client import KiteClientError, NotAuthenticated, RateLimited
from fnoscanner.models.instrument import Candle, Instrument, Quote
from fnoscanner.models.scan_result import ScanResult
from fnoscanner.scanner.analysis import analyze, rank
from fnoscanner.scanner.resolver import InstrumentResolver
from fnoscanner.utils.retry import retry

PROGRESS_QUEUE_SIZE = 512


class ScanStage(str, Enum):
    """Where the orchestrator is in a scan."""

    IDLE = "idle"
    RESOLVING_UNIVERSE = "resolving_universe"
    FETCHING_QUOTES = "fetching_quotes"
    FETCHING_HISTORY = "fetching_history"
    ANALYZING = "analyzing"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class ScanProgress:
    """One discrete progress event."""

    stage: ScanStage
    current: int | None = None
    total: int | None = None
    message: str = ""

    @property
    def fraction(self) -> float:
        if self.stage == ScanStage.DONE:
            return 1.0
        if self.stage == ScanStage.FETCHING_HISTORY and self.total:
            return (self.current or 0) / self.total
        return 0.0


class ProgressQueue:
    """Bounded queue of progress events for whatever presentation layer is listening.

    When nobody consumes it the oldest events are discarded; ``latest``
    always holds the most recent one.
    """

    def __init__(self, maxsize: int = PROGRESS_QUEUE_SIZE) -> None:
        self._queue: asyncio.Queue[ScanProgress] = asyncio.Queue(maxsize=maxsize)
        self.latest = ScanProgress(ScanStage.IDLE)

    def put_nowait(self, event: ScanProgress) -> None:
        self.latest = event
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(event)

    async def get(self, timeout: float = 0.1) -> ScanProgress | None:
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def drain(self) -> list[ScanProgress]:
        """Return and clear all queued events."""
        events: list[ScanProgress] = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events

    def qsize(self) -> int:
        return self._queue.qsize()


class ScannerError(Exception):
    """Base class for orchestrator failures."""


class ScanInProgressError(ScannerError):
    """A scan was requested while another one is still running."""


class ScanFailedError(ScannerError):
    """A scan hit an unrecoverable failure."""

    def __init__(self, message: str, original: Exception | None = None):
        super().__init__(message)
        self.original = original


class ScanOrchestrator:
    """Sequences resolver, client, cache and analysis into a single scan."""

    def __init__(
        self,
        client: BaseBrokerClient,
        settings: Settings,
        cache: ScanCache | None = None,
        config_provider: Callable[[], ScanConfig] | None = None,
    ) -> None:
        self._client = client
        self._settings = settings
        self.cache = cache or ScanCache(tz=settings.market_tz)
        self._config_provider = config_provider or settings.scan_config
        self._resolver = InstrumentResolver(client)
        self._lock = asyncio.Lock()
        self.progress = ProgressQueue()
        self.last_results: list[ScanResult] = []
        self.last_scan_at: datetime | None = None

    @property
    def is_scanning(self) -> bool:
        return self._lock.locked()

    @property
    def state(self) -> ScanProgress:
        return self.progress.latest

    def clear_cache(self) -> None:
        """Force the next scan to refetch everything."""
        self.cache.clear()

    def _publish(
        self,
        stage: ScanStage,
        message: str = "",
        current: int | None = None,
        total: int | None = None,
    ) -> None:
        self.progress.put_nowait(ScanProgress(stage, current, total, message))

    # ── Scan ──────────────────────────────────────────────────────────────────

    async def scan(self) -> list[ScanResult]:
        """Run one full scan and return results sorted by score.

        Raises:
            ScanInProgressError: another scan is already running.
            ScanFailedError: the universe, quotes or session failed, or an
                unexpected error stopped the scan.
        """
        if self._lock.locked():
            raise ScanInProgressError("A scan is already in progress")

        async with self._lock:
            config = self._config_provider()
            try:
                universe = await self._resolve_universe()

                self._publish(
                    ScanStage.FETCHING_QUOTES,
                    f"Fetching live quotes for {len(universe)} stocks...",
                )
                quotes = await self._client.fetch_quotes(list(universe))

                histories = await self._fetch_histories(universe, quotes)

                self._publish(ScanStage.ANALYZING, f"Analyzing {len(histories)} stocks...")
                results = rank(
                    [
                        analyze(universe[symbol], candles, quotes[symbol], config)
                        for symbol, candles in histories.items()
                    ]
                )
            except KiteClientError as exc:
                message = str(exc)
                logger.error("Scan failed at {}: {}", self.state.stage.value, message)
                self._publish(ScanStage.ERROR, message)
                raise ScanFailedError(message, original=exc) from exc
            except Exception as exc:
                message = f"Unexpected error: {exc}"
                logger.exception("Scan failed at {}", self.state.stage.value)
                self._publish(ScanStage.ERROR, message)
                raise ScanFailedError(message, original=exc) from exc

            self.last_results = results
            self.last_scan_at = self.cache.now()
            flagged = sum(1 for r in results if r.score > 0)
            self._publish(ScanStage.DONE, f"Scan complete. {flagged} stocks flagged.")
            logger.info("Scan complete | results={} | flagged={}", len(results), flagged)
            return results

    async def _resolve_universe(self) -> dict[str, Instrument]:
        cached = self.cache.get_universe()
        if cached is not None:
            self._publish(
                ScanStage.RESOLVING_UNIVERSE, f"Using cached universe ({len(cached)} stocks)"
            )
            return cached

        self._publish(ScanStage.RESOLVING_UNIVERSE, "Fetching FnO stock list...")
        universe = await self._resolver.resolve()
        self.cache.set_universe(universe)
        return universe

    async def _fetch_histories(
        self, universe: dict[str, Instrument], quotes: dict[str, Quote]
    ) -> dict[str, tuple[Candle, ...]]:
        """Fetch (or reuse) daily history for every quoted symbol, in order."""
        symbols = [symbol for symbol in universe if symbol in quotes]
        missing = len(universe) - len(symbols)
        if missing:
            logger.warning("{} symbols returned no quote and are skipped", missing)

        to_date = self.cache.today()
        from_date = to_date - timedelta(days=self._settings.HISTORY_DAYS)
        total = len(symbols)
        histories: dict[str, tuple[Candle, ...]] = {}

        for idx, symbol in enumerate(symbols, start=1):
            self._publish(
                ScanStage.FETCHING_HISTORY,
                f"Fetching history: {symbol} ({idx}/{total})",
                current=idx,
                total=total,
            )
            cached = self.cache.get_history(symbol)
            if cached is not None:
                histories[symbol] = cached
                continue

            try:
                candles = await self._fetch_symbol_history(universe[symbol], from_date, to_date)
            except NotAuthenticated:
                raise
            except RateLimited:
                logger.warning("Dropping {}: still rate limited after retry", symbol)
                continue
            except KiteClientError as exc:
                logger.warning("Dropping {}: {}", symbol, exc)
                continue

            self.cache.put_history(symbol, candles)
            histories[symbol] = tuple(candles)

        return histories

    async def _fetch_symbol_history(
        self, instrument: Instrument, from_date: date, to_date: date
    ) -> list[Candle]:
        @retry(
            max_attempts=2,
            delay=self._settings.RATE_LIMIT_BACKOFF_SECONDS,
            backoff=1.0,
            exceptions=(RateLimited,),
        )
        async def fetch_history() -> list[Candle]:
            return await self._client.fetch_daily_history(
                instrument.instrument_token, from_date, to_date
            )

        return await fetch_history()
