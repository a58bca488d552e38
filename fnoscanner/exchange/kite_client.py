"""Kite Connect REST client for the FnO Scanner — **market data only**.

Covers the four calls the scanner needs:
- ``/instruments/NFO`` — derivatives catalog, used to find the F&O universe
- ``/instruments/NSE`` — cash-market catalog, used for instrument tokens
- ``/quote`` — batched live snapshots (≤ 500 instruments per call)
- ``/instruments/historical/{token}/day`` — daily candles

Every request funnels through one lock-guarded throttle so the whole
process stays under Kite's ~3 req/sec limit no matter who is calling.
The client never logs in; the access token comes from a
:class:`~fnoscanner.exchange.session.SessionProvider`.
"""

from __future__ import annotations

import asyncio
import io
import json
import time
from datetime import date
from typing import Any, Callable

import aiohttp
import pandas as pd
from loguru import logger

from fnoscanner.config.settings import Settings
from fnoscanner.exchange.base_client import BaseBrokerClient
from fnoscanner.exchange.session import SessionProvider
from fnoscanner.models.instrument import Candle, Instrument, Quote
from fnoscanner.utils.helpers import chunked, parse_kite_date

INSTRUMENT_COLUMNS = ("instrument_token", "tradingsymbol", "name", "exchange", "instrument_type")


class KiteClientError(Exception):
    """Raised when a Kite API call fails."""

    def __init__(self, message: str, original: Exception | None = None):
        super().__init__(message)
        self.original = original


class NotAuthenticated(KiteClientError):
    """No valid access token is available."""

    def __init__(self, message: str = "Not authenticated. Please login.") -> None:
        super().__init__(message)


class RateLimited(KiteClientError):
    """Kite answered HTTP 429."""

    def __init__(self, message: str = "Rate limited. Try again shortly.") -> None:
        super().__init__(message)


class HTTPError(KiteClientError):
    """Any other non-2xx response."""

    def __init__(self, status: int, body: str) -> None:
        super().__init__(f"HTTP {status}: {body[:200]}")
        self.status = status
        self.body = body


class ParseError(KiteClientError):
    """The payload could not be understood."""

    def __init__(self, message: str, original: Exception | None = None) -> None:
        super().__init__(f"Parse error: {message}", original=original)


class _Throttle:
    """Serialized minimum-interval gate shared by every request.

    Callers queue on the lock; each one waits until *min_interval* has
    passed since the previous caller was released, then stamps the time.
    """

    def __init__(
        self, min_interval: float, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._min_interval = min_interval
        self._clock = clock
        self._lock = asyncio.Lock()
        self._last_request = float("-inf")

    async def wait(self) -> None:
        async with self._lock:
            elapsed = self._clock() - self._last_request
            if elapsed < self._min_interval:
                sleep_for = self._min_interval - elapsed
                logger.trace("Throttle: sleeping {:.3f}s", sleep_for)
                await asyncio.sleep(sleep_for)
            self._last_request = self._clock()


class KiteClient(BaseBrokerClient):
    """Kite Connect market-data adapter."""

    def __init__(self, settings: Settings, session_provider: SessionProvider) -> None:
        self._settings = settings
        self._session_provider = session_provider
        self._base_url = settings.KITE_BASE_URL.rstrip("/")
        self._http: aiohttp.ClientSession | None = None
        self._throttle = _Throttle(settings.MIN_REQUEST_INTERVAL_SECONDS)

    # ── Connection ────────────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Create the shared aiohttp session."""
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._settings.HTTP_TIMEOUT_SECONDS)
            )
            logger.info("Kite client session opened ({})", self._base_url)

    async def disconnect(self) -> None:
        """Close the aiohttp session."""
        if self._http is not None:
            await self._http.close()
            self._http = None
            logger.info("Kite client session closed")

    async def __aenter__(self) -> "KiteClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    # ── Transport ─────────────────────────────────────────────────────────────

    def _auth_headers(self) -> dict[str, str]:
        token = self._session_provider.current_token()
        if not token or not self._session_provider.is_valid():
            raise NotAuthenticated()
        return {
            "X-Kite-Version": "3",
            "Authorization": f"token {self._settings.KITE_API_KEY}:{token}",
        }

    async def _send(
        self, path: str, params: list[tuple[str, str]], headers: dict[str, str]
    ) -> tuple[int, str]:
        """Perform one GET and return ``(status, body)``."""
        await self.connect()
        assert self._http is not None
        url = f"{self._base_url}{path}"
        try:
            async with self._http.get(url, params=params, headers=headers) as resp:
                return resp.status, await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise KiteClientError(f"Request to {path} failed: {exc}", original=exc) from exc
        except UnicodeDecodeError as exc:
            raise ParseError(f"Response from {path} is not valid UTF-8", original=exc) from exc

    async def _get(self, path: str, params: list[tuple[str, str]] | None = None) -> str:
        """Authenticate, wait for the throttle, send, and classify the status."""
        headers = self._auth_headers()
        await self._throttle.wait()
        logger.debug("GET {} ({} params)", path, len(params or []))
        status, body = await self._send(path, params or [], headers)
        if status == 429:
            raise RateLimited()
        if not 200 <= status < 300:
            if status == 403 and "TokenException" in body:
                raise NotAuthenticated("Access token rejected by Kite. Please login again.")
            raise HTTPError(status, body)
        return body

    # ── Instruments ───────────────────────────────────────────────────────────

    async def list_universe_instruments(self) -> list[Instrument]:
        """Return one futures contract per underlying from the NFO catalog."""
        body = await self._get(f"/instruments/{self._settings.UNIVERSE_SEGMENT}")
        df = _parse_instrument_csv(body, self._settings.UNIVERSE_SEGMENT)
        futures = df[df["instrument_type"] == self._settings.UNIVERSE_INSTRUMENT_TYPE]
        futures = futures[futures["name"] != ""].drop_duplicates(subset="name", keep="first")

        instruments: list[Instrument] = []
        for row in futures.itertuples(index=False):
            token = _parse_token(row.instrument_token)
            if token is None:
                continue
            instruments.append(
                Instrument(
                    instrument_token=token,
                    tradingsymbol=row.tradingsymbol,
                    name=row.name,
                    exchange=self._settings.UNIVERSE_SEGMENT,
                )
            )
        logger.info(
            "{} catalog: {} rows, {} unique underlyings",
            self._settings.UNIVERSE_SEGMENT,
            len(df),
            len(instruments),
        )
        return instruments

    async def list_exchange_instruments(self, symbols: set[str]) -> dict[str, Instrument]:
        """Map *symbols* to cash-market equity instruments."""
        body = await self._get(f"/instruments/{self._settings.EXCHANGE_SEGMENT}")
        df = _parse_instrument_csv(body, self._settings.EXCHANGE_SEGMENT)
        equities = df[
            (df["instrument_type"] == self._settings.EXCHANGE_INSTRUMENT_TYPE)
            & (df["tradingsymbol"].isin(symbols))
        ]

        result: dict[str, Instrument] = {}
        for row in equities.itertuples(index=False):
            token = _parse_token(row.instrument_token)
            if token is None:
                continue
            result[row.tradingsymbol] = Instrument(
                instrument_token=token,
                tradingsymbol=row.tradingsymbol,
                name=row.name,
                exchange=row.exchange,
            )
        logger.info(
            "{} catalog matched {} of {} symbols",
            self._settings.EXCHANGE_SEGMENT,
            len(result),
            len(symbols),
        )
        return result

    # ── Quotes ────────────────────────────────────────────────────────────────

    async def fetch_quotes(self, symbols: list[str]) -> dict[str, Quote]:
        """Fetch live quotes in batches of ``QUOTE_BATCH_SIZE``."""
        exchange = self._settings.EXCHANGE_SEGMENT
        prefix = f"{exchange}:"
        quotes: dict[str, Quote] = {}

        for batch in chunked(symbols, self._settings.QUOTE_BATCH_SIZE):
            params = [("i", f"{prefix}{symbol}") for symbol in batch]
            body = await self._get("/quote", params)
            data = _load_json(body).get("data")
            if not isinstance(data, dict):
                raise ParseError("No data in quotes response")

            for key, info in data.items():
                if not isinstance(info, dict):
                    continue
                symbol = key[len(prefix):] if key.startswith(prefix) else key
                ohlc = info.get("ohlc") or {}
                try:
                    quotes[symbol] = Quote(
                        last_price=float(info.get("last_price") or 0),
                        volume=int(info.get("volume") or 0),
                        open=float(ohlc.get("open") or 0),
                        high=float(ohlc.get("high") or 0),
                        low=float(ohlc.get("low") or 0),
                        # ohlc.close is the previous session's close on Kite
                        previous_close=float(ohlc.get("close") or 0),
                    )
                except (TypeError, ValueError) as exc:
                    raise ParseError(f"Bad quote for {key}", original=exc) from exc

        logger.debug("Fetched {} quotes for {} symbols", len(quotes), len(symbols))
        return quotes

    # ── History ───────────────────────────────────────────────────────────────

    async def fetch_daily_history(
        self, instrument_token: int, from_date: date, to_date: date
    ) -> list[Candle]:
        """Fetch daily candles for *instrument_token* between the two dates."""
        body = await self._get(
            f"/instruments/historical/{instrument_token}/day",
            [("from", from_date.isoformat()), ("to", to_date.isoformat())],
        )
        data = _load_json(body).get("data")
        raw = data.get("candles") if isinstance(data, dict) else None
        if not isinstance(raw, list):
            raise ParseError("Invalid historical data format")

        candles: list[Candle] = []
        for row in raw:
            candle = _parse_candle(row)
            if candle is not None:
                candles.append(candle)
        candles.sort(key=lambda c: c.date)
        return candles


# ── Parsing helpers ───────────────────────────────────────────────────────────


def _load_json(body: str) -> dict[str, Any]:
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as exc:
        raise ParseError("Response is not valid JSON", original=exc) from exc
    if not isinstance(payload, dict):
        raise ParseError("Response is not a JSON object")
    return payload


def _parse_instrument_csv(body: str, segment: str) -> pd.DataFrame:
    """Read an instruments dump, keeping every field as a string."""
    try:
        df = pd.read_csv(io.StringIO(body), dtype=str, keep_default_na=False)
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as exc:
        raise ParseError(f"Could not read {segment} instruments CSV", original=exc) from exc

    missing = [col for col in INSTRUMENT_COLUMNS if col not in df.columns]
    if missing:
        raise ParseError(f"{segment} instruments CSV is missing columns {missing}")
    return df


def _parse_token(value: str) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse_candle(row: Any) -> Candle | None:
    """Turn ``[timestamp, open, high, low, close, volume]`` into a Candle.

    Malformed rows are dropped rather than failing the whole series.
    """
    if not isinstance(row, (list, tuple)) or len(row) < 6:
        return None
    try:
        return Candle(
            date=parse_kite_date(str(row[0])),
            open=float(row[1]),
            high=float(row[2]),
            low=float(row[3]),
            close=float(row[4]),
            volume=int(row[5]),
        )
    except (TypeError, ValueError):
        logger.debug("Skipping malformed candle row: {}", row)
        return None
