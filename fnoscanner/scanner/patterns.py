"""Rule-based setup detectors.

Each detector is a pure function of the current price, the instrument's
derived series and a :class:`ScanConfig`. Missing inputs produce a neutral
result; nothing here raises for "not detected".
"""

from __future__ import annotations

import pandas as pd

from fnoscanner.config.settings import ScanConfig
from fnoscanner.data import indicators
from fnoscanner.models.scan_result import (
    BreakoutCheck,
    ConfluencePullback,
    DerivedSeries,
    EMAProximity,
    VolumeSpike,
)

BREAKOUT_20DAY_PERCENT = 2.0
CONFLUENCE_MIN_HISTORY = 252
BREAKOUT_CONFIRMATION = 1.005  # recent high must clear the level by 0.5%
EMA_RISING_SLOPE_PERCENT = 0.3
EMA_SLOPE_POINTS = 10
LEVEL_TYPE_TOLERANCE = 0.02


def detect_volume_spike(
    current_volume: int, avg_volume20: float | None, config: ScanConfig
) -> VolumeSpike:
    """Today's volume as a multiple of the 20-day average."""
    if avg_volume20 is None or avg_volume20 <= 0:
        return VolumeSpike(multiplier=0.0, is_spike=False)
    multiplier = current_volume / avg_volume20
    return VolumeSpike(multiplier=multiplier, is_spike=multiplier >= config.volume_multiplier)


def check_ema_proximity(
    price: float, ema_value: float, period: int, config: ScanConfig
) -> EMAProximity:
    """Signed percent distance of *price* from one EMA."""
    if ema_value <= 0:
        return EMAProximity(period=period, ema_value=0.0, distance_percent=0.0, is_near=False)
    distance = (price - ema_value) / ema_value * 100
    return EMAProximity(
        period=period,
        ema_value=ema_value,
        distance_percent=distance,
        is_near=abs(distance) <= config.ema_proximity_percent,
    )


def ema_proximities(
    price: float, series: DerivedSeries, config: ScanConfig
) -> tuple[EMAProximity, ...]:
    """Proximity readings for every EMA that could be computed."""
    readings = []
    for period, value in (
        (20, series.ema20),
        (50, series.ema50),
        (100, series.ema100),
        (200, series.ema200),
    ):
        if value is not None:
            readings.append(check_ema_proximity(price, value, period, config))
    return tuple(readings)


def check_breakout(price: float, level: float | None, band_percent: float) -> BreakoutCheck:
    """Compare *price* against a rolling high.

    "Near" means within *band_percent* below the level (inclusive) and not
    above it; "above" means strictly above.
    """
    if level is None or level <= 0:
        return BreakoutCheck(level=level)
    distance = (level - price) / level * 100
    return BreakoutCheck(
        level=level,
        distance_percent=distance,
        is_near=0 <= distance <= band_percent,
        is_above=price > level,
    )


def detect_52week_breakout(
    price: float, high_52week: float | None, config: ScanConfig
) -> BreakoutCheck:
    return check_breakout(price, high_52week, config.breakout_52week_percent)


def detect_20day_breakout(price: float, high_20day: float | None) -> BreakoutCheck:
    return check_breakout(price, high_20day, BREAKOUT_20DAY_PERCENT)


def _pullback_ema(
    price: float, ema20: float | None, ema50: float | None, threshold: float
) -> int | None:
    """Which EMA the price is resting on; EMA-20 wins when both qualify."""
    for period, value in ((20, ema20), (50, ema50)):
        if value is None or value <= 0:
            continue
        if abs((price - value) / value) * 100 <= threshold:
            return period
    return None


def detect_confluence_pullback(
    df: pd.DataFrame,
    price: float,
    ema20: float | None,
    ema50: float | None,
    config: ScanConfig,
) -> ConfluencePullback:
    """Detect a breakout above a major level followed by a pullback onto a rising EMA.

    Steps:
    1. Need a full year of history.
    2. Split into *prior* candles and the last ``confluence_lookback_days``.
    3. The breakout level is the higher of the prior high and the high of
       the 252 candles just before the lookback window.
    4. The lookback window must have cleared that level by 0.5%.
    5. Price must sit between the min and max pullback from the recent high.
    6. Price must be resting on EMA-20 or EMA-50.
    7-9. Slope of that EMA, distance from the old level and the level type
       are reported for ranking the setup's quality.
    """
    not_detected = ConfluencePullback()

    total = len(df)
    lookback = config.confluence_lookback_days
    if total < CONFLUENCE_MIN_HISTORY or lookback <= 0 or lookback >= total:
        return not_detected

    highs = df["high"].astype(float).reset_index(drop=True)
    prior = highs.iloc[: total - lookback]
    recent = highs.iloc[total - lookback:]

    prior_high = float(prior.max())
    if prior_high <= 0:
        return not_detected
    prior_52week_high = float(prior.iloc[-CONFLUENCE_MIN_HISTORY:].max())
    breakout_level = max(prior_high, prior_52week_high)

    recent_high = float(recent.max())
    if not recent_high > breakout_level * BREAKOUT_CONFIRMATION:
        return not_detected

    # Bars since the most recent bar that printed the recent high
    last_high_pos = int(recent[recent == recent_high].index[-1])
    days_since_breakout = total - 1 - last_high_pos

    pullback = (recent_high - price) * 100 / recent_high
    if not (
        config.confluence_min_pullback_percent
        <= pullback
        <= config.confluence_max_pullback_percent
    ):
        return not_detected

    ema_period = _pullback_ema(price, ema20, ema50, config.ema_proximity_percent)
    if ema_period is None:
        return not_detected

    slope = indicators.ema_slope(indicators.ema_tail(df, ema_period, EMA_SLOPE_POINTS))
    level_distance = (price - breakout_level) / breakout_level * 100
    if (
        prior_52week_high > 0
        and abs(breakout_level - prior_52week_high) / prior_52week_high < LEVEL_TYPE_TOLERANCE
    ):
        level_type = "52W High"
    else:
        level_type = "Prior Swing High"

    return ConfluencePullback(
        detected=True,
        breakout_level=breakout_level,
        breakout_level_type=level_type,
        recent_high=recent_high,
        pullback_to_ema=ema_period,
        pullback_percent=pullback,
        ema_rising=slope > EMA_RISING_SLOPE_PERCENT,
        ema_slope_percent=slope,
        breakout_level_distance=level_distance,
        days_since_breakout=days_since_breakout,
    )
