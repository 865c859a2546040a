"""
OAuth2 Client Credentials

Token source for providers that authenticate with the client credentials
grant. Tokens are cached per transport and refreshed shortly before expiry.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field

import httpx
from pydantic import BaseModel, ValidationError

from paysync.config import settings
from paysync.errors import OAuthError

logger = logging.getLogger(__name__)


@dataclass
class OAuthConfig:
    """Client credentials grant parameters."""

    token_url: str
    client_id: str
    client_secret: str
    scopes: list[str] = field(default_factory=list)
    expiry_margin: float = field(default_factory=lambda: settings.oauth_expiry_margin)


class TokenResponse(BaseModel):
    """Token endpoint response (RFC 6749 section 5.1)."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: float | None = None


class TokenSource:
    """
    Lock-guarded access token cache.

    Concurrent callers on one transport share a single refresh: the lock is
    held across the token request, so only the first caller hits the token
    endpoint and the others reuse its result.
    """

    def __init__(
        self,
        config: OAuthConfig,
        client: httpx.Client,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self._client = client
        self._clock = clock
        self._lock = threading.Lock()
        self._token: str | None = None
        self._expires_at: float | None = None

    def token(self) -> str:
        """
        Return a usable access token, fetching a new one when needed.

        Raises:
            OAuthError: If the token endpoint fails or returns garbage
        """
        with self._lock:
            if not self._needs_refresh():
                return self._token  # type: ignore[return-value]
            return self._refresh()

    def invalidate(self) -> None:
        """Drop the cached token so the next call fetches a new one."""
        with self._lock:
            self._token = None
            self._expires_at = None

    def _needs_refresh(self) -> bool:
        if self._token is None:
            return True
        if self._expires_at is None:
            return False
        return self._clock() >= self._expires_at - self.config.expiry_margin

    def _refresh(self) -> str:
        data = {
            "grant_type": "client_credentials",
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
        }
        if self.config.scopes:
            data["scope"] = " ".join(self.config.scopes)

        requested_at = self._clock()
        try:
            response = self._client.post(
                self.config.token_url,
                data=data,
                headers={"Accept": "application/json"},
            )
        except httpx.TransportError as exc:
            raise OAuthError(f"token request failed: {exc}") from exc

        if response.status_code >= 400:
            raise OAuthError(f"token endpoint returned {response.status_code}")

        try:
            token = TokenResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise OAuthError("token endpoint returned an invalid body") from exc

        self._token = token.access_token
        self._expires_at = (
            requested_at + token.expires_in if token.expires_in is not None else None
        )
        logger.debug("Fetched access token for client %s", self.config.client_id)
        return self._token
