"""Instrument, candle and quote models for the FnO Scanner."""

from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, ConfigDict


class Candle(BaseModel):
    """One trading day's OHLCV bar."""

    model_config = ConfigDict(frozen=True)

    date: dt.date
    open: float
    high: float
    low: float
    close: float
    volume: int


class Instrument(BaseModel):
    """An exchange-listed instrument resolved from a Kite catalog."""

    model_config = ConfigDict(frozen=True)

    instrument_token: int
    tradingsymbol: str
    name: str
    exchange: str


class Quote(BaseModel):
    """Live snapshot for one symbol, captured once per scan.

    Kite's ``ohlc.close`` in the quote payload is the *previous* session's
    close, so it is carried as ``previous_close``; there is no day close
    until the session ends.
    """

    model_config = ConfigDict(frozen=True)

    last_price: float
    volume: int = 0
    open: float = 0.0
    high: float = 0.0
    low: float = 0.0
    previous_close: float = 0.0
