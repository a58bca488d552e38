"""Same-day market data cache for the FnO Scanner."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable
from zoneinfo import ZoneInfo

import pandas as pd
from loguru import logger

from fnoscanner.models.instrument import Candle, Instrument

OHLCV_COLUMNS = ["date", "open", "high", "low", "close", "volume"]


def candles_to_frame(candles: list[Candle] | tuple[Candle, ...]) -> pd.DataFrame:
    """Convert candles into an OHLCV DataFrame (ascending, positional index)."""
    rows = [
        {
            "date": c.date,
            "open": c.open,
            "high": c.high,
            "low": c.low,
            "close": c.close,
            "volume": c.volume,
        }
        for c in candles
    ]
    return pd.DataFrame(rows, columns=OHLCV_COLUMNS)


@dataclass(frozen=True)
class CacheEntry:
    """Candles for one symbol plus when they were fetched."""

    candles: tuple[Candle, ...]
    fetched_at: datetime


class ScanCache:
    """In-memory cache whose epoch is the current calendar day.

    Holds the resolved universe and each symbol's daily history. Anything
    stamped on an earlier day is treated as absent. Entries are only ever
    replaced whole.
    """

    def __init__(
        self,
        tz: ZoneInfo | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._tz = tz or ZoneInfo("Asia/Kolkata")
        self._clock = clock or (lambda: datetime.now(self._tz))
        self._universe: dict[str, Instrument] = {}
        self._universe_date: date | None = None
        self._history: dict[str, CacheEntry] = {}

    def now(self) -> datetime:
        return self._clock()

    def today(self) -> date:
        now = self._clock()
        if now.tzinfo is not None:
            now = now.astimezone(self._tz)
        return now.date()

    def _is_today(self, stamp: datetime) -> bool:
        if stamp.tzinfo is not None:
            stamp = stamp.astimezone(self._tz)
        return stamp.date() == self.today()

    # ── Universe ──────────────────────────────────────────────────────────────

    def universe_valid(self) -> bool:
        """True when the universe was resolved today and is non-empty."""
        return bool(self._universe) and self._universe_date == self.today()

    def get_universe(self) -> dict[str, Instrument] | None:
        if not self.universe_valid():
            return None
        return dict(self._universe)

    def set_universe(self, instruments: dict[str, Instrument]) -> None:
        self._universe = dict(instruments)
        self._universe_date = self.today()
        logger.debug("Universe cached: {} instruments", len(self._universe))

    # ── History ───────────────────────────────────────────────────────────────

    def get_history(self, symbol: str) -> tuple[Candle, ...] | None:
        """Return today's cached candles for *symbol*, or ``None`` if stale/absent."""
        entry = self._history.get(symbol)
        if entry is None or not self._is_today(entry.fetched_at):
            return None
        return entry.candles

    def put_history(self, symbol: str, candles: list[Candle]) -> None:
        self._history[symbol] = CacheEntry(candles=tuple(candles), fetched_at=self._clock())

    def history_count(self) -> int:
        return len(self._history)

    def clear(self) -> None:
        """Drop all cached state unconditionally."""
        self._universe = {}
        self._universe_date = None
        self._history.clear()
        logger.info("Scan cache cleared")
