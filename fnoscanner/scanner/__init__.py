"""Scan pipeline package for the FnO Scanner.

Provides:
- ``ScanOrchestrator`` — end-to-end scan with progress events
- ``InstrumentResolver`` — F&O universe → cash-market tokens
- ``apply_filters`` / ``ScanStats`` — result views for presentation layers
"""

from fnoscanner.scanner.filters import ScanFilter, ScanStats, SortOrder, apply_filters
from fnoscanner.scanner.orchestrator import (
    ScanFailedError,
    ScanInProgressError,
    ScanOrchestrator,
    ScanProgress,
    ScanStage,
)
from fnoscanner.scanner.resolver import InstrumentResolver

__all__ = [
    "InstrumentResolver",
    "ScanFailedError",
    "ScanFilter",
    "ScanInProgressError",
    "ScanOrchestrator",
    "ScanProgress",
    "ScanStage",
    "ScanStats",
    "SortOrder",
    "apply_filters",
]
