"""Filtering, searching and sorting of scan results for presentation layers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from fnoscanner.models.scan_result import ScanResult


class ScanFilter(str, Enum):
    ALL = "All"
    CONFLUENCE_PULLBACK = "Confluence Pullback"
    VOLUME_SPIKES = "Volume Spikes"
    NEAR_EMA = "Near EMA"
    BREAKOUTS = "Breakouts"
    FLAGGED = "Flagged (Score > 0)"


class SortOrder(str, Enum):
    SCORE = "Score"
    SYMBOL = "Symbol"
    PRICE = "Price"
    VOLUME_MULTIPLIER = "Volume"
    PRICE_CHANGE = "Change %"


def _matches(result: ScanResult, scan_filter: ScanFilter) -> bool:
    if scan_filter == ScanFilter.CONFLUENCE_PULLBACK:
        return result.confluence.detected
    if scan_filter == ScanFilter.VOLUME_SPIKES:
        return result.volume.is_spike
    if scan_filter == ScanFilter.NEAR_EMA:
        return result.near_ema_count > 0
    if scan_filter == ScanFilter.BREAKOUTS:
        return result.breakout_52week.flagged
    if scan_filter == ScanFilter.FLAGGED:
        return result.score > 0
    return True


def apply_filters(
    results: list[ScanResult],
    scan_filter: ScanFilter = ScanFilter.ALL,
    search: str = "",
    sort: SortOrder = SortOrder.SCORE,
) -> list[ScanResult]:
    """Filter, search (symbol or name, case-insensitive) and sort results.

    Sorts are stable. Symbol sorts ascending, everything else descending.
    """
    filtered = [r for r in results if _matches(r, scan_filter)]

    query = search.strip().lower()
    if query:
        filtered = [
            r
            for r in filtered
            if query in r.instrument.tradingsymbol.lower() or query in r.instrument.name.lower()
        ]

    if sort == SortOrder.SYMBOL:
        return sorted(filtered, key=lambda r: r.instrument.tradingsymbol)
    if sort == SortOrder.PRICE:
        return sorted(filtered, key=lambda r: r.quote.last_price, reverse=True)
    if sort == SortOrder.VOLUME_MULTIPLIER:
        return sorted(filtered, key=lambda r: r.volume.multiplier, reverse=True)
    if sort == SortOrder.PRICE_CHANGE:
        return sorted(filtered, key=lambda r: r.price_change_percent, reverse=True)
    return sorted(filtered, key=lambda r: r.score, reverse=True)


@dataclass(frozen=True)
class ScanStats:
    """Headline counts for a finished scan."""

    total: int = 0
    confluence: int = 0
    volume_spikes: int = 0
    near_ema: int = 0
    breakouts: int = 0
    flagged: int = 0

    @classmethod
    def from_results(cls, results: list[ScanResult]) -> "ScanStats":
        return cls(
            total=len(results),
            confluence=sum(1 for r in results if r.confluence.detected),
            volume_spikes=sum(1 for r in results if r.volume.is_spike),
            near_ema=sum(1 for r in results if r.near_ema_count > 0),
            breakouts=sum(1 for r in results if r.breakout_52week.flagged),
            flagged=sum(1 for r in results if r.score > 0),
        )
