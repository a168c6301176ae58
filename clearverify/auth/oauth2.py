"""OAuth2 client-credentials grant for payer APIs.

Payers issue machine-to-machine tokens from a token endpoint; client
credentials are sent either with HTTP Basic auth or in the form body.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "patient/*.read coverage/*.read"


class OAuth2Error(Exception):
    """Raised when the token endpoint rejects the request."""

    def __init__(self, message: str, error_code: str | None = None):
        super().__init__(message)
        self.error_code = error_code


class OAuth2TransportError(OAuth2Error):
    """Raised when the token endpoint cannot be reached."""


@dataclass
class ClientCredentials:
    """Client registration at a payer's token endpoint."""

    token_url: str
    client_id: str
    client_secret: str = field(repr=False)
    scope: str | None = DEFAULT_SCOPE
    secret_in_body: bool = False

    def form(self) -> dict[str, str]:
        data = {"grant_type": "client_credentials"}
        if self.scope:
            data["scope"] = self.scope
        if self.secret_in_body:
            data["client_id"] = self.client_id
            data["client_secret"] = self.client_secret
        return data

    def basic_auth(self) -> httpx.BasicAuth | None:
        if self.secret_in_body:
            return None
        return httpx.BasicAuth(self.client_id, self.client_secret)


def _rejection(response: httpx.Response) -> OAuth2Error:
    try:
        body = response.json()
        code = body.get("error")
        description = body.get("error_description") or f"HTTP {response.status_code}"
    except (ValueError, AttributeError):
        return OAuth2Error(f"Token request failed with HTTP {response.status_code}")
    return OAuth2Error(f"{code or 'unknown'}: {description}", code)


def fetch_token(
    credentials: ClientCredentials,
    client: httpx.Client | None = None,
    timeout: float = 30.0,
) -> dict[str, Any]:
    """Run the client-credentials grant and return the token response.

    Args:
        credentials: Token endpoint and client registration
        client: Shared HTTP client; a short-lived one is created if omitted
        timeout: Request timeout in seconds

    Returns:
        Token response body; ``access_token`` is guaranteed present

    Raises:
        OAuth2Error: The endpoint rejected the request or answered garbage
        OAuth2TransportError: The endpoint is unreachable, timed out or
            answered with a server error
    """
    if not (credentials.token_url and credentials.client_id and credentials.client_secret):
        raise OAuth2Error("token_url, client_id and client_secret are required")

    request_args: dict[str, Any] = {
        "data": credentials.form(),
        "headers": {"Accept": "application/json"},
        "auth": credentials.basic_auth(),
        "timeout": timeout,
    }

    try:
        if client is not None:
            response = client.post(credentials.token_url, **request_args)
        else:
            with httpx.Client() as scratch:
                response = scratch.post(credentials.token_url, **request_args)
    except httpx.TimeoutException as e:
        raise OAuth2TransportError(f"Token request timed out: {e}") from e
    except httpx.TransportError as e:
        raise OAuth2TransportError(f"Token endpoint unreachable: {e}") from e

    if response.status_code >= 500:
        raise OAuth2TransportError(f"Token endpoint unavailable: HTTP {response.status_code}")
    if response.status_code != 200:
        raise _rejection(response)

    try:
        token = response.json()
    except ValueError as e:
        raise OAuth2Error("Token endpoint returned a non-JSON body") from e
    if not isinstance(token, dict) or "access_token" not in token:
        raise OAuth2Error("Token response has no access_token")

    logger.info(f"OAuth2 token obtained, expires in {token.get('expires_in', 'unknown')}s")
    return token
