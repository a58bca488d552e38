"""Abstract broker client interface for the FnO Scanner."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date

from fnoscanner.models.instrument import Candle, Instrument, Quote


class BaseBrokerClient(ABC):
    """Abstract base class for the market-data side of a broker API."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the underlying HTTP session."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Gracefully close the HTTP session."""
        ...

    @abstractmethod
    async def list_universe_instruments(self) -> list[Instrument]:
        """Return one instrument per underlying from the derivatives catalog."""
        ...

    @abstractmethod
    async def list_exchange_instruments(self, symbols: set[str]) -> dict[str, Instrument]:
        """Map requested symbols to their cash-market instruments.

        Symbols that are not listed are simply absent from the result.
        """
        ...

    @abstractmethod
    async def fetch_quotes(self, symbols: list[str]) -> dict[str, Quote]:
        """Return a live quote per symbol."""
        ...

    @abstractmethod
    async def fetch_daily_history(
        self, instrument_token: int, from_date: date, to_date: date
    ) -> list[Candle]:
        """Return daily candles for the range, oldest first."""
        ...
