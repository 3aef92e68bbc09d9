"""Access token lookup for the expense API."""

from __future__ import annotations

import logging
from typing import Protocol

from config import settings

logger = logging.getLogger(__name__)


class TokenProvider(Protocol):
    """Protocol for supplying a valid API token."""

    def get_valid_token(self) -> str | None:
        """Return a usable token, or None when none is available."""
        ...


class SettingsTokenProvider:
    """Serve the configured API token after a format check.

    A token is accepted when it carries the configured prefix and meets the
    minimum length. Invalid tokens are reported as absent.
    """

    def __init__(
        self,
        token: str | None = None,
        *,
        prefix: str | None = None,
        min_length: int | None = None,
    ) -> None:
        expenses_config = settings.expenses
        self._token = token if token is not None else expenses_config.api_token
        self._prefix = prefix if prefix is not None else expenses_config.token_prefix
        self._min_length = min_length if min_length is not None else expenses_config.token_min_length

    def get_valid_token(self) -> str | None:
        token = (self._token or "").strip()
        if not token:
            return None
        if not self.is_valid(token):
            logger.warning("Configured expense API token failed validation.")
            return None
        return token

    def is_valid(self, token: str) -> bool:
        """Return whether the token matches the expected prefix and length."""
        if self._prefix and not token.startswith(f"{self._prefix} "):
            return False
        return len(token) >= self._min_length
