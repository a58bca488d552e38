"""Shared pytest fixtures for FnO Scanner tests."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest

from fnoscanner.config.settings import ScanConfig, Settings
from fnoscanner.exchange.base_client import BaseBrokerClient
from fnoscanner.models.instrument import Candle, Instrument, Quote

IST = ZoneInfo("Asia/Kolkata")


def _make_candles(
    closes: list[float],
    highs: list[float] | None = None,
    volume: int = 100_000,
    start: date = date(2024, 1, 1),
) -> list[Candle]:
    """Build ascending daily candles from closes (high defaults to close + 1)."""
    highs = highs or [c + 1 for c in closes]
    return [
        Candle(
            date=start + timedelta(days=i),
            open=close,
            high=high,
            low=close - 1,
            close=close,
            volume=volume,
        )
        for i, (close, high) in enumerate(zip(closes, highs))
    ]


def _breakout_pullback_candles() -> list[Candle]:
    """300 days rising 0.5/day, a spike high 10% above the prior high 15 bars ago.

    Closes are linear (100 → 249.5), so every SMA-seeded EMA sits exactly
    ``0.5 * (period - 1) / 2`` below the last close: EMA-20 = 244.75.
    """
    closes = [100 + 0.5 * i for i in range(300)]
    highs = [c + 1 for c in closes]
    highs[285] = round(highs[284] * 1.10, 2)  # 243.0 -> 267.3
    return _make_candles(closes, highs)


class Clock:
    """Mutable clock for simulating calendar days."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def mock_settings() -> Settings:
    """Return a Settings object with safe test defaults."""
    return Settings(
        _env_file=None,
        KITE_API_KEY="test-key",
        KITE_ACCESS_TOKEN="test-token",
        KITE_ACCESS_TOKEN_DATE=date(2024, 6, 3),
        KITE_BASE_URL="https://kite.test",
        MIN_REQUEST_INTERVAL_SECONDS=0.35,
        RATE_LIMIT_BACKOFF_SECONDS=1.0,
        HISTORY_DAYS=400,
        LOG_LEVEL="DEBUG",
        LOG_FILE="",
    )


@pytest.fixture
def scan_config() -> ScanConfig:
    return ScanConfig()


@pytest.fixture
def clock() -> Clock:
    # Monday 2024-06-03, 10:00 IST
    return Clock(datetime(2024, 6, 3, 10, 0, tzinfo=IST))


@pytest.fixture
def instruments() -> dict[str, Instrument]:
    return {
        "INFY": Instrument(instrument_token=408065, tradingsymbol="INFY", name="INFY", exchange="NSE"),
        "RELIANCE": Instrument(
            instrument_token=738561, tradingsymbol="RELIANCE", name="RELIANCE", exchange="NSE"
        ),
        "TCS": Instrument(instrument_token=2953217, tradingsymbol="TCS", name="TCS", exchange="NSE"),
    }


@pytest.fixture
def mock_client(instruments: dict[str, Instrument]) -> AsyncMock:
    """Return an AsyncMock of BaseBrokerClient serving three symbols."""
    client = AsyncMock(spec=BaseBrokerClient)

    client.list_universe_instruments.return_value = [
        Instrument(instrument_token=i, tradingsymbol=f"{sym}24JUNFUT", name=sym, exchange="NFO")
        for i, sym in enumerate(instruments, start=1)
    ]
    client.list_exchange_instruments.return_value = dict(instruments)
    client.fetch_quotes.return_value = {
        sym: Quote(last_price=150.0, volume=100_000, open=149.0, high=151.0, low=148.0,
                   previous_close=148.5)
        for sym in instruments
    }
    client.fetch_daily_history.return_value = _make_candles([150.0] * 260)
    return client


@pytest.fixture
def make_candles():
    """Factory fixture: ``make_candles(closes, highs=None, volume=100_000)``."""
    return _make_candles


@pytest.fixture
def breakout_candles() -> list[Candle]:
    return _breakout_pullback_candles()
