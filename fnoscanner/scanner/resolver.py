"""F&O universe resolution."""

from __future__ import annotations

from loguru import logger

from fnoscanner.exchange.base_client import BaseBrokerClient
from fnoscanner.models.instrument import Instrument


class InstrumentResolver:
    """Builds the scan universe from the derivatives and cash catalogs.

    A symbol is in the universe when it has a futures contract *and* maps to
    a cash-market token; the token is what the historical API wants.
    """

    def __init__(self, client: BaseBrokerClient) -> None:
        self._client = client

    async def resolve(self) -> dict[str, Instrument]:
        """Return ``symbol -> cash instrument``, ordered by symbol."""
        futures = await self._client.list_universe_instruments()
        underlyings = sorted({inst.name for inst in futures})
        mapped = await self._client.list_exchange_instruments(set(underlyings))

        unmapped = [symbol for symbol in underlyings if symbol not in mapped]
        if unmapped:
            logger.warning(
                "{} F&O underlyings have no cash-market token and are skipped: {}",
                len(unmapped),
                ", ".join(unmapped),
            )

        universe = {symbol: mapped[symbol] for symbol in underlyings if symbol in mapped}
        logger.info("Resolved universe: {} instruments", len(universe))
        return universe
