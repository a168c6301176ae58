"""Credential acquisition for payer APIs.

Supports:
- OAuth2 client credentials (cached until shortly before expiry)
- API keys (read-only, no expiry)
- HTTP Basic (built per call)
"""

from .broker import CredentialBroker, CredentialToken
from .oauth2 import ClientCredentials, OAuth2Error, OAuth2TransportError, fetch_token

__all__ = [
    "CredentialBroker",
    "ClientCredentials",
    "CredentialToken",
    "OAuth2Error",
    "OAuth2TransportError",
    "fetch_token",
]
