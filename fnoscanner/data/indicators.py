"""Technical indicators for the FnO Scanner.

All functions take an OHLCV DataFrame (ascending by date) and return
``None`` instead of raising when the history is too short, so callers can
carry "absent" through to the result.
"""

from __future__ import annotations

import pandas as pd

TRADING_DAYS_PER_YEAR = 252


def _validate_df(df: pd.DataFrame, required_col: str) -> None:
    """Validate that the DataFrame has the required column."""
    if required_col not in df.columns:
        raise ValueError(
            f"DataFrame must contain a '{required_col}' column. "
            f"Available columns: {list(df.columns)}"
        )


def ema_series(df: pd.DataFrame, period: int = 20) -> pd.Series:
    """Calculate the Exponential Moving Average series, SMA-seeded.

    The first value is the simple average of the first *period* closes;
    every later close is folded in with ``k = 2 / (period + 1)``.

    Args:
        df: OHLCV DataFrame with a 'close' column.
        period: Look-back period.

    Returns:
        Series with one value per close from index ``period - 1`` onwards;
        empty when there are fewer than *period* closes.
    """
    _validate_df(df, "close")
    closes = df["close"].astype(float).reset_index(drop=True)
    if period <= 0 or len(closes) < period:
        return pd.Series(dtype=float)
    seed = closes.iloc[:period].mean()
    seeded = pd.concat(
        [pd.Series([seed]), closes.iloc[period:]], ignore_index=True
    )
    # adjust=False gives the plain recursive form y = k*x + (1-k)*y_prev
    return seeded.ewm(span=period, adjust=False).mean()


def ema(df: pd.DataFrame, period: int = 20) -> float | None:
    """Return the latest EMA value, or ``None`` with fewer than *period* closes."""
    series = ema_series(df, period)
    if series.empty:
        return None
    return float(series.iloc[-1])


def ema_tail(df: pd.DataFrame, period: int, last_n: int = 10) -> list[float]:
    """Return the last *last_n* EMA values used for slope checks.

    Empty unless there are at least ``period + last_n`` closes, so every
    returned point lies past the SMA seed.
    """
    _validate_df(df, "close")
    if len(df) < period + last_n:
        return []
    return [float(v) for v in ema_series(df, period).iloc[-last_n:]]


def ema_slope(series: list[float]) -> float:
    """Percent change from the first to the last point of an EMA tail."""
    if len(series) < 2 or series[0] <= 0:
        return 0.0
    first, last = series[0], series[-1]
    return (last - first) / first * 100


def avg_volume(df: pd.DataFrame, period: int = 20, min_periods: int = 10) -> float | None:
    """Mean volume of the last *period* candles.

    Undefined below *min_periods* candles, which is stricter than the
    window itself to keep the average from being noisy.
    """
    _validate_df(df, "volume")
    recent = df["volume"].iloc[-period:]
    if len(recent) < min_periods:
        return None
    return float(recent.astype(float).mean())


def rolling_high(df: pd.DataFrame, period: int) -> float | None:
    """Max high over the last *period* candles (fewer if that's all there is)."""
    _validate_df(df, "high")
    recent = df["high"].iloc[-period:]
    if recent.empty:
        return None
    return float(recent.max())


def rolling_low(df: pd.DataFrame, period: int) -> float | None:
    """Min low over the last *period* candles."""
    _validate_df(df, "low")
    recent = df["low"].iloc[-period:]
    if recent.empty:
        return None
    return float(recent.min())


def high_52week(df: pd.DataFrame) -> float | None:
    return rolling_high(df, TRADING_DAYS_PER_YEAR)


def low_52week(df: pd.DataFrame) -> float | None:
    return rolling_low(df, TRADING_DAYS_PER_YEAR)


def high_20day(df: pd.DataFrame) -> float | None:
    return rolling_high(df, 20)
