"""Per-instrument analysis: indicators → detectors → ScanResult."""

from __future__ import annotations

from fnoscanner.config.settings import ScanConfig
from fnoscanner.data import indicators
from fnoscanner.data.market_data import candles_to_frame
from fnoscanner.models.instrument import Candle, Instrument, Quote
from fnoscanner.models.scan_result import DerivedSeries, ScanResult
from fnoscanner.scanner import patterns


def analyze(
    instrument: Instrument,
    candles: list[Candle] | tuple[Candle, ...],
    quote: Quote,
    config: ScanConfig,
) -> ScanResult:
    """Run the full indicator and detector stack for one instrument."""
    df = candles_to_frame(candles)
    price = quote.last_price

    series = DerivedSeries(
        ema20=indicators.ema(df, 20),
        ema50=indicators.ema(df, 50),
        ema100=indicators.ema(df, 100),
        ema200=indicators.ema(df, 200),
        avg_volume20=indicators.avg_volume(df),
        high_52week=indicators.high_52week(df),
        low_52week=indicators.low_52week(df),
        high_20day=indicators.high_20day(df),
    )

    return ScanResult(
        instrument=instrument,
        quote=quote,
        series=series,
        volume=patterns.detect_volume_spike(quote.volume, series.avg_volume20, config),
        ema_proximities=patterns.ema_proximities(price, series, config),
        breakout_52week=patterns.detect_52week_breakout(price, series.high_52week, config),
        breakout_20day=patterns.detect_20day_breakout(price, series.high_20day),
        confluence=patterns.detect_confluence_pullback(
            df, price, series.ema20, series.ema50, config
        ),
    )


def rank(results: list[ScanResult]) -> list[ScanResult]:
    """Sort by score, highest first; equal scores keep their input order."""
    return sorted(results, key=lambda r: r.score, reverse=True)
