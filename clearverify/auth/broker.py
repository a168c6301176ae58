"""Credential broker: acquires and caches provider credentials.

The broker is the only owner of secret material. Tokens live in an
in-process dict for the lifetime of the broker and are never logged or
persisted.

Concurrency: the token cache is a plain dict with single-key reads and
writes and no lock. Two threads refreshing the same provider at once both
fetch a token and the last write wins, which is harmless because refresh is
idempotent.
"""

from __future__ import annotations

import base64
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Callable, Mapping

import httpx

from .. import config
from ..errors import TransportUnavailable
from ..models import AuthScheme, ProviderProfile, TokenAuthMethod
from .oauth2 import (
    DEFAULT_SCOPE,
    ClientCredentials,
    OAuth2Error,
    OAuth2TransportError,
    fetch_token,
)

logger = logging.getLogger(__name__)

# Token lifetime assumed when the endpoint omits expires_in
DEFAULT_TOKEN_LIFETIME = 3600


@dataclass
class CredentialToken:
    """Secret material for one provider."""

    provider_id: str
    scheme: AuthScheme
    secret: str = field(repr=False)
    username: str | None = None
    expires_at: float | None = None  # None = no expiry

    def is_fresh(self, now: float, margin: float) -> bool:
        if self.expires_at is None:
            return True
        return now < self.expires_at - margin

    def auth_headers(self, provider: ProviderProfile) -> dict[str, str]:
        """HTTP headers that present this credential to the provider."""
        if self.scheme == AuthScheme.OAUTH2:
            return {"Authorization": f"Bearer {self.secret}"}

        if self.scheme == AuthScheme.APIKEY:
            header_name = provider.api_key_header
            if header_name.lower() == "authorization":
                return {header_name: f"Bearer {self.secret}"}
            return {header_name: self.secret}

        if self.scheme == AuthScheme.BASIC:
            credentials = base64.b64encode(
                f"{self.username or ''}:{self.secret}".encode()
            ).decode()
            return {"Authorization": f"Basic {credentials}"}

        return {}


class CredentialBroker:
    """Per-provider credential acquisition with an expiring token cache.

    Secrets are read from a mapping (``os.environ`` by default) under
    ``{PROVIDER_ID}_CLIENT_ID``, ``_CLIENT_SECRET``, ``_API_KEY``,
    ``_USERNAME`` and ``_PASSWORD``.
    """

    def __init__(
        self,
        secrets: Mapping[str, str] | None = None,
        client: httpx.Client | None = None,
        safety_margin: float = config.TOKEN_SAFETY_MARGIN,
        timeout: float = config.REQUEST_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the broker.

        Args:
            secrets: Where to read provider secrets from
            client: HTTP client used for token requests
            safety_margin: Seconds before expiry at which a token is refreshed
            timeout: Token request timeout in seconds
            clock: Wall-clock source, injectable for tests
        """
        self._secrets = secrets if secrets is not None else os.environ
        self._client = client
        self._safety_margin = safety_margin
        self._timeout = timeout
        self._clock = clock
        self._tokens: dict[str, CredentialToken] = {}

    def acquire(self, provider: ProviderProfile) -> CredentialToken | None:
        """Return a usable credential for the provider, or None.

        None means the provider's secrets are missing or were rejected by
        its token endpoint.

        Raises:
            TransportUnavailable: If the token endpoint cannot be reached
        """
        scheme = provider.auth_scheme

        if scheme == AuthScheme.NONE:
            return None

        if scheme == AuthScheme.BASIC:
            return self._basic_credentials(provider)

        cached = self._tokens.get(provider.id)
        if cached is not None and cached.is_fresh(self._clock(), self._safety_margin):
            return cached

        if scheme == AuthScheme.APIKEY:
            token = self._api_key(provider)
        else:
            token = self._oauth2_token(provider)

        if token is not None:
            self._tokens[provider.id] = token
        return token

    def invalidate(self, provider_id: str) -> None:
        """Drop the cached credential so the next acquire fetches a new one."""
        if self._tokens.pop(provider_id, None) is not None:
            logger.debug(f"Invalidated cached credential for {provider_id}")

    def clear(self) -> None:
        """Forget every cached credential (process shutdown)."""
        self._tokens.clear()

    def has_cached(self, provider_id: str) -> bool:
        return provider_id in self._tokens

    def _secret(self, provider: ProviderProfile, suffix: str) -> str | None:
        value = self._secrets.get(f"{provider.id.upper()}_{suffix}")
        return value or None

    def _basic_credentials(self, provider: ProviderProfile) -> CredentialToken | None:
        username = self._secret(provider, "USERNAME")
        password = self._secret(provider, "PASSWORD")
        if not username or not password:
            logger.error(f"Missing basic-auth credentials for {provider.name}")
            return None
        return CredentialToken(
            provider_id=provider.id,
            scheme=AuthScheme.BASIC,
            secret=password,
            username=username,
        )

    def _api_key(self, provider: ProviderProfile) -> CredentialToken | None:
        api_key = self._secret(provider, "API_KEY")
        if not api_key:
            logger.error(f"Missing API key for {provider.name}")
            return None
        return CredentialToken(
            provider_id=provider.id,
            scheme=AuthScheme.APIKEY,
            secret=api_key,
        )

    def _oauth2_token(self, provider: ProviderProfile) -> CredentialToken | None:
        client_id = self._secret(provider, "CLIENT_ID")
        client_secret = self._secret(provider, "CLIENT_SECRET")
        if not client_id or not client_secret:
            logger.error(f"Missing OAuth credentials for {provider.name}")
            return None

        credentials = ClientCredentials(
            token_url=provider.token_url,
            client_id=client_id,
            client_secret=client_secret,
            scope=provider.oauth_scope or DEFAULT_SCOPE,
            secret_in_body=provider.token_auth == TokenAuthMethod.BODY,
        )

        try:
            token_data = fetch_token(credentials, client=self._client, timeout=self._timeout)
        except OAuth2TransportError as e:
            raise TransportUnavailable(
                f"Token endpoint unavailable for {provider.name}: {e}", provider.id
            ) from e
        except OAuth2Error as e:
            logger.error(
                f"OAuth2 token request rejected for {provider.name}",
                extra={"provider_id": provider.id, "error_code": e.error_code},
            )
            return None

        try:
            expires_in = float(token_data.get("expires_in", DEFAULT_TOKEN_LIFETIME))
        except (TypeError, ValueError):
            expires_in = DEFAULT_TOKEN_LIFETIME

        return CredentialToken(
            provider_id=provider.id,
            scheme=AuthScheme.OAUTH2,
            secret=token_data["access_token"],
            expires_at=self._clock() + expires_in,
        )
