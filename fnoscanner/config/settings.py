"""Pydantic-based settings management for the FnO Scanner."""

from __future__ import annotations

from datetime import date, time
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ScanConfig(BaseModel):
    """Detector thresholds captured once at the start of a scan.

    Passed explicitly into every detector so the detectors stay pure; a new
    value may be built between scans but never swapped mid-scan.
    """

    model_config = ConfigDict(frozen=True)

    ema_proximity_percent: float = 1.5
    volume_multiplier: float = 2.0
    breakout_52week_percent: float = 5.0
    confluence_lookback_days: int = 60
    confluence_min_pullback_percent: float = 2.0
    confluence_max_pullback_percent: float = 20.0


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file.

    The scanner pulls daily history for the NSE F&O universe from Kite
    Connect, runs the indicator/pattern stack and ranks the results.
    """

    # ── Kite Connect ──────────────────────────────────────────────────────────
    KITE_API_KEY: str = ""
    KITE_ACCESS_TOKEN: str = ""  # Issued by the login flow, valid for one day
    KITE_ACCESS_TOKEN_DATE: date | None = None  # Day the token was issued
    KITE_BASE_URL: str = "https://api.kite.trade"

    # ── Universe ──────────────────────────────────────────────────────────────
    UNIVERSE_SEGMENT: str = "NFO"
    UNIVERSE_INSTRUMENT_TYPE: str = "FUT"  # One continuous future per underlying
    EXCHANGE_SEGMENT: str = "NSE"
    EXCHANGE_INSTRUMENT_TYPE: str = "EQ"

    # ── Transport / throttling ────────────────────────────────────────────────
    MIN_REQUEST_INTERVAL_SECONDS: float = 0.35  # ~3 req/sec across all endpoints
    QUOTE_BATCH_SIZE: int = 500  # Kite hard limit per /quote call
    HTTP_TIMEOUT_SECONDS: float = 10.0
    HISTORY_DAYS: int = 400  # Calendar days of daily candles per symbol
    RATE_LIMIT_BACKOFF_SECONDS: float = 1.0

    # ── Market ────────────────────────────────────────────────────────────────
    MARKET_TIMEZONE: str = "Asia/Kolkata"
    MARKET_OPEN_TIME: time = time(9, 15)
    MARKET_CLOSE_TIME: time = time(15, 30)

    # ── Scan thresholds ───────────────────────────────────────────────────────
    EMA_PROXIMITY_PERCENT: float = 1.5
    VOLUME_MULTIPLIER: float = 2.0
    BREAKOUT_52WEEK_PERCENT: float = 5.0
    CONFLUENCE_LOOKBACK_DAYS: int = 60
    CONFLUENCE_MIN_PULLBACK_PERCENT: float = 2.0
    CONFLUENCE_MAX_PULLBACK_PERCENT: float = 20.0

    # ── Auto refresh ──────────────────────────────────────────────────────────
    AUTO_REFRESH_ENABLED: bool = False
    AUTO_REFRESH_MINUTES: int = 15
    TOP_RESULTS_TO_LOG: int = 20

    # ── Logging ───────────────────────────────────────────────────────────────
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "logs/fnoscanner.log"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}, got '{v}'")
        return v.upper()

    @field_validator("MARKET_TIMEZONE")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Ensure the timezone name resolves."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown MARKET_TIMEZONE '{v}'") from exc
        return v

    @field_validator("QUOTE_BATCH_SIZE")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        """Kite rejects quote calls with more than 500 instruments."""
        if not 1 <= v <= 500:
            raise ValueError(f"QUOTE_BATCH_SIZE must be between 1 and 500, got {v}")
        return v

    @model_validator(mode="after")
    def validate_pullback_band(self) -> "Settings":
        """The confluence pullback band must not be inverted."""
        if self.CONFLUENCE_MIN_PULLBACK_PERCENT > self.CONFLUENCE_MAX_PULLBACK_PERCENT:
            raise ValueError(
                "CONFLUENCE_MIN_PULLBACK_PERCENT must not exceed "
                "CONFLUENCE_MAX_PULLBACK_PERCENT"
            )
        return self

    @model_validator(mode="after")
    def validate_market_session(self) -> "Settings":
        """Market open must come before market close."""
        if self.MARKET_OPEN_TIME >= self.MARKET_CLOSE_TIME:
            raise ValueError("MARKET_OPEN_TIME must be earlier than MARKET_CLOSE_TIME")
        return self

    @property
    def market_tz(self) -> ZoneInfo:
        return ZoneInfo(self.MARKET_TIMEZONE)

    def scan_config(self) -> ScanConfig:
        """Snapshot the detector thresholds for one scan."""
        return ScanConfig(
            ema_proximity_percent=self.EMA_PROXIMITY_PERCENT,
            volume_multiplier=self.VOLUME_MULTIPLIER,
            breakout_52week_percent=self.BREAKOUT_52WEEK_PERCENT,
            confluence_lookback_days=self.CONFLUENCE_LOOKBACK_DAYS,
            confluence_min_pullback_percent=self.CONFLUENCE_MIN_PULLBACK_PERCENT,
            confluence_max_pullback_percent=self.CONFLUENCE_MAX_PULLBACK_PERCENT,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton Settings instance."""
    return Settings()
