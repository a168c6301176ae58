"""Base protocol adapter.

Provides common functionality for every eligibility adapter:
- Shared httpx client with a bounded timeout
- Authentication header injection from the credential broker
- One credential refresh and retry on HTTP 401
- Translation of transport failures and HTTP statuses into
  verification errors
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from .. import config
from ..auth import CredentialBroker
from ..errors import (
    AuthenticationFailure,
    MalformedResponse,
    ProviderRequestError,
    TransportUnavailable,
    UnsupportedProvider,
)
from ..models import (
    AuthScheme,
    EligibilityQuery,
    ProtocolVariant,
    ProviderProfile,
    RawProviderResponse,
)
from ..utils import sanitize_log_value

logger = logging.getLogger(__name__)

# Statuses meaning "try another route" rather than "the request is wrong"
UNAVAILABLE_STATUSES = {404, 408, 429}


class BaseAdapter(ABC):
    """Base class for protocol adapters.

    Subclasses implement ``query_eligibility`` and use ``_request`` for
    every outbound call so that auth and status handling stay uniform.
    """

    protocol: ProtocolVariant

    def __init__(
        self,
        broker: CredentialBroker,
        client: httpx.Client | None = None,
        timeout: float = config.REQUEST_TIMEOUT,
    ) -> None:
        """Initialize the adapter.

        Args:
            broker: Credential broker shared by all adapters
            client: Shared HTTP client; one is created on first use if omitted
            timeout: Per-request timeout in seconds
        """
        self.broker = broker
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=httpx.Timeout(self._timeout, connect=10.0),
                follow_redirects=True,
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client if this adapter created it."""
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    @abstractmethod
    def query_eligibility(
        self, provider: ProviderProfile, query: EligibilityQuery
    ) -> RawProviderResponse:
        """Ask the provider about one member and procedure.

        Raises:
            VerificationError: Any subclass, depending on the failure
        """
        ...

    def _raw(self, provider: ProviderProfile, payload: Any) -> RawProviderResponse:
        return RawProviderResponse(
            protocol=self.protocol,
            provider_id=provider.id,
            payload=payload,
            shape=provider.shape,
        )

    def _endpoint(self, provider: ProviderProfile, name: str) -> str:
        url = provider.endpoint_url(name)
        if url is None:
            raise UnsupportedProvider(
                f"{provider.name} has no '{name}' endpoint configured", provider.id
            )
        return url

    def _auth_headers(self, provider: ProviderProfile) -> dict[str, str]:
        """Get authentication headers for the provider.

        Raises:
            AuthenticationFailure: If the provider needs credentials and none
                are available
        """
        if provider.auth_scheme == AuthScheme.NONE:
            return {}
        token = self.broker.acquire(provider)
        if token is None:
            raise AuthenticationFailure(
                f"No usable credentials for {provider.name}", provider.id
            )
        return token.auth_headers(provider)

    def _request(
        self,
        provider: ProviderProfile,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
        content: str | bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Make an authenticated HTTP request.

        A 401 invalidates the cached credential and the request is retried
        exactly once with a fresh one.

        Returns:
            HTTP response with a 2xx/3xx status

        Raises:
            TransportUnavailable: Connect error, timeout, 404, 408, 429 or 5xx
            AuthenticationFailure: Missing credentials or a second 401
            ProviderRequestError: Any other 4xx
        """
        for attempt in range(2):
            request_headers = self._auth_headers(provider)
            if headers:
                request_headers.update(headers)

            try:
                response = self.client.request(
                    method,
                    url,
                    params=params,
                    json=json_data,
                    content=content,
                    headers=request_headers,
                    timeout=self._timeout,
                )
            except httpx.TimeoutException as e:
                raise TransportUnavailable(
                    f"Request to {provider.name} timed out", provider.id
                ) from e
            except httpx.TransportError as e:
                raise TransportUnavailable(
                    f"Failed to connect to {provider.name}: {sanitize_log_value(e)}",
                    provider.id,
                ) from e

            if response.status_code == 401:
                if attempt == 0 and provider.auth_scheme != AuthScheme.NONE:
                    self._log(provider, "warning", "Got 401, refreshing credentials")
                    self.broker.invalidate(provider.id)
                    continue
                raise AuthenticationFailure(
                    f"{provider.name} rejected credentials", provider.id
                )

            self._raise_for_status(provider, response)
            return response

        # Unreachable: the second iteration always returns or raises
        raise AuthenticationFailure(f"{provider.name} rejected credentials", provider.id)

    def _raise_for_status(self, provider: ProviderProfile, response: httpx.Response) -> None:
        status = response.status_code

        if status >= 500 or status in UNAVAILABLE_STATUSES:
            self._log(provider, "warning", f"Provider unavailable: {status}", status_code=status)
            raise TransportUnavailable(
                f"{provider.name} unavailable: {status}", provider.id, status_code=status
            )

        if status >= 400:
            self._log(
                provider,
                "error",
                f"Provider rejected request: {status} - {sanitize_log_value(response.text)}",
                status_code=status,
            )
            raise ProviderRequestError(
                f"{provider.name} rejected the request: {status}",
                provider.id,
                status_code=status,
            )

    def _json(self, provider: ProviderProfile, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponse(
                f"{provider.name} returned a non-JSON body", provider.id
            ) from e

    def _log(self, provider: ProviderProfile, level: str, message: str, **context: Any) -> None:
        """Log a message with provider context.

        Args:
            provider: Provider being called
            level: Log level (debug, info, warning, error)
            message: Log message
            **context: Additional context to include
        """
        log_fn = getattr(logger, level.lower(), logger.info)
        log_fn(
            f"[{provider.name}] {message}",
            extra={"provider_id": provider.id, "protocol": self.protocol.value, **context},
        )
