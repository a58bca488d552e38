"""Scan result models for the FnO Scanner."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from fnoscanner.models.instrument import Instrument, Quote

DOUBLE_SUPPORT_PERCENT = 3.0


class DerivedSeries(BaseModel):
    """Indicators recomputed from history on every scan.

    Every field is ``None`` when the history is too short for it.
    """

    model_config = ConfigDict(frozen=True)

    ema20: float | None = None
    ema50: float | None = None
    ema100: float | None = None
    ema200: float | None = None
    avg_volume20: float | None = None
    high_52week: float | None = None
    low_52week: float | None = None
    high_20day: float | None = None


class EMAProximity(BaseModel):
    """Distance of the current price from one EMA."""

    model_config = ConfigDict(frozen=True)

    period: int
    ema_value: float
    distance_percent: float  # positive = price above the EMA
    is_near: bool


class VolumeSpike(BaseModel):
    model_config = ConfigDict(frozen=True)

    multiplier: float = 0.0
    is_spike: bool = False


class BreakoutCheck(BaseModel):
    """Proximity to (or break above) a rolling high."""

    model_config = ConfigDict(frozen=True)

    level: float | None = None
    distance_percent: float = 0.0  # negative once price is above the level
    is_near: bool = False
    is_above: bool = False

    @property
    def flagged(self) -> bool:
        return self.is_near or self.is_above


class ConfluencePullback(BaseModel):
    """Breakout above a major level followed by a pullback onto a rising EMA."""

    model_config = ConfigDict(frozen=True)

    detected: bool = False
    breakout_level: float = 0.0
    breakout_level_type: str = ""  # "52W High" or "Prior Swing High"
    recent_high: float = 0.0
    pullback_to_ema: int | None = None  # 20 or 50
    pullback_percent: float = 0.0
    ema_rising: bool = False
    ema_slope_percent: float = 0.0
    breakout_level_distance: float = 0.0  # % of price from the breakout level
    days_since_breakout: int = 0

    @property
    def double_support(self) -> bool:
        """Old resistance sits close enough to act as support too."""
        return self.detected and abs(self.breakout_level_distance) <= DOUBLE_SUPPORT_PERCENT

    @property
    def confluence_count(self) -> int:
        """Number of aligned factors (0-4). Display only; not scored."""
        count = 0
        if self.detected:
            count += 1
        if self.pullback_to_ema is not None:
            count += 1
        if self.ema_rising:
            count += 1
        if self.double_support:
            count += 1
        return count

    @property
    def summary(self) -> str:
        if not self.detected:
            return "-"
        parts = [f"Broke {self.breakout_level_type}"]
        if self.pullback_to_ema is not None:
            parts.append(f"→ EMA{self.pullback_to_ema}")
        if self.double_support:
            parts.append("+ Support")
        if self.ema_rising:
            parts.append("(Rising)")
        return " ".join(parts)


class ScanResult(BaseModel):
    """Everything the scanner knows about one instrument after a scan."""

    model_config = ConfigDict(frozen=True)

    instrument: Instrument
    quote: Quote
    series: DerivedSeries
    volume: VolumeSpike
    ema_proximities: tuple[EMAProximity, ...] = ()
    breakout_52week: BreakoutCheck
    breakout_20day: BreakoutCheck
    confluence: ConfluencePullback

    @property
    def symbol(self) -> str:
        return self.instrument.tradingsymbol

    @property
    def near_ema_count(self) -> int:
        return sum(1 for p in self.ema_proximities if p.is_near)

    @property
    def score(self) -> int:
        """Composite relevance score used to rank the scan.

        Only the boolean confluence detection is scored; its strength count
        is for display.
        """
        score = 0
        if self.volume.is_spike:
            score += 1
        score += self.near_ema_count
        if self.breakout_52week.flagged:
            score += 2
        if self.breakout_52week.is_above:
            score += 1
        if self.breakout_20day.flagged:
            score += 1
        if self.breakout_20day.is_above:
            score += 1
        if self.confluence.detected:
            score += 3
        return score

    @property
    def price_change_percent(self) -> float:
        prev = self.quote.previous_close
        if prev <= 0:
            return 0.0
        return (self.quote.last_price - prev) / prev * 100

    @property
    def near_ema_summary(self) -> str:
        near = [p for p in self.ema_proximities if p.is_near]
        if not near:
            return "-"
        return ", ".join(f"EMA{p.period}({p.distance_percent:.1f}%)" for p in near)

    @property
    def breakout_summary(self) -> str:
        parts: list[str] = []
        if self.breakout_52week.is_above:
            parts.append("52W HIGH!")
        elif self.breakout_52week.is_near:
            parts.append(f"Near 52W({self.breakout_52week.distance_percent:.1f}%)")
        if self.breakout_20day.is_above:
            parts.append("20D Break")
        elif self.breakout_20day.is_near:
            parts.append("Near 20D")
        return ", ".join(parts) if parts else "-"
