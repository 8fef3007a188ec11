"""
SimplyBook.me token acquisition with an optional short-lived cache.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from ..domain.exceptions import AuthenticationError, UpstreamError
from .simplybook_client import SimplyBookClient

logger = logging.getLogger(__name__)

PUBLIC = "public"
ADMIN = "admin"


@dataclass
class _CachedToken:
    value: str
    expires_at: float


class SimplyBookAuthenticator:
    """
    Hands out public (``getToken``) and admin (``getUserToken``) tokens.

    Upstream tokens stay valid for roughly an hour. With ``ttl_seconds`` > 0 a
    token is reused until it expires; with 0 every call fetches a new one.
    """

    def __init__(
        self,
        client: SimplyBookClient,
        api_key: str,
        admin_username: str,
        admin_password: str,
        ttl_seconds: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the authenticator.

        Args:
            client: JSON-RPC client used for the login endpoint
            api_key: Public API key
            admin_username: Admin user login
            admin_password: Admin user password
            ttl_seconds: How long a fetched token may be reused (0 disables caching)
            clock: Monotonic clock, replaceable in tests
        """
        self.client = client
        self.api_key = api_key
        self.admin_username = admin_username
        self.admin_password = admin_password
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: Dict[str, _CachedToken] = {}

    @property
    def caching_enabled(self) -> bool:
        return self.ttl_seconds > 0

    def get_public_token(self, force_refresh: bool = False) -> str:
        """
        Get a public API token, from cache when still valid.

        Raises:
            AuthenticationError: If the token cannot be obtained
        """
        return self._get_token(
            PUBLIC,
            lambda: self.client.get_token(self.api_key),
            "public access token",
            force_refresh,
        )

    def get_admin_token(self, force_refresh: bool = False) -> str:
        """
        Get an admin API token, from cache when still valid.

        Raises:
            AuthenticationError: If the token cannot be obtained
        """
        return self._get_token(
            ADMIN,
            lambda: self.client.get_user_token(self.admin_username, self.admin_password),
            "admin access token",
            force_refresh,
        )

    def _get_token(
        self,
        kind: str,
        fetch: Callable[[], str],
        label: str,
        force_refresh: bool,
    ) -> str:
        if not force_refresh:
            cached = self._cached(kind)
            if cached is not None:
                return cached

        try:
            token = fetch()
        except UpstreamError as exc:
            logger.error("Failed to get %s: %s", label, exc)
            raise AuthenticationError(f"Failed to get {label}") from exc

        if not token:
            raise AuthenticationError(f"Failed to get {label}")

        logger.info("%s retrieved", label.capitalize())
        if self.caching_enabled:
            self._cache[kind] = _CachedToken(value=token, expires_at=self._clock() + self.ttl_seconds)
        return token

    def _cached(self, kind: str) -> Optional[str]:
        entry = self._cache.get(kind)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._cache[kind]
            return None
        return entry.value

    def clear_cache(self) -> None:
        """Drop cached tokens (forces new logins next time)."""
        self._cache.clear()
