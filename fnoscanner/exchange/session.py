"""Broker session collaborators.

The scanner never logs in. Whatever performs the Kite login (browser
redirect, headless TOTP automation, ...) hands over an access token through
an object satisfying :class:`SessionProvider`.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Callable, Protocol, runtime_checkable

from fnoscanner.config.settings import Settings


@runtime_checkable
class SessionProvider(Protocol):
    """Source of the access token used in the ``Authorization`` header."""

    def current_token(self) -> str | None:
        ...

    def is_valid(self) -> bool:
        ...


class SettingsSessionProvider:
    """Reads the access token from settings.

    Kite access tokens expire at the start of the next trading day, so the
    token only counts as valid on the day it was issued.
    """

    def __init__(self, settings: Settings, today: Callable[[], date] | None = None) -> None:
        self._settings = settings
        self._today = today or (lambda: datetime.now(settings.market_tz).date())

    def current_token(self) -> str | None:
        return self._settings.KITE_ACCESS_TOKEN or None

    def is_valid(self) -> bool:
        issued = self._settings.KITE_ACCESS_TOKEN_DATE
        if not self._settings.KITE_ACCESS_TOKEN or issued is None:
            return False
        return issued == self._today()
