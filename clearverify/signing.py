"""Integrity signatures for verification outcomes.

Signature format: ``<base64url(JSON envelope)>.<hex HMAC-SHA256>`` where
the envelope is ``{"data": ..., "timestamp": ..., "nonce": ...}``
serialized with sorted keys.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
import secrets
from datetime import datetime, timezone
from typing import Any, Protocol

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac

from . import config

logger = logging.getLogger(__name__)


class Signer(Protocol):
    def sign(self, payload: dict[str, Any]) -> str: ...


class HMACSigner:
    """HMAC-SHA256 signer keyed from the environment."""

    def __init__(self, key: str | bytes) -> None:
        """Initialize the signer.

        Args:
            key: Secret signing key

        Raises:
            ValueError: If the key is empty
        """
        if not key:
            raise ValueError(f"Signing key not configured. Set {config.SIGNING_KEY_ENV}.")
        self._key = key.encode() if isinstance(key, str) else key

    @classmethod
    def from_env(cls, env_var: str = config.SIGNING_KEY_ENV) -> "HMACSigner":
        """Create a signer from an environment variable.

        Raises:
            ValueError: If the variable is unset or empty
        """
        key = os.getenv(env_var)
        if not key:
            raise ValueError(f"Signing key not configured. Set {env_var}.")
        return cls(key)

    def _mac(self) -> hmac.HMAC:
        return hmac.HMAC(self._key, hashes.SHA256())

    def sign(self, payload: dict[str, Any]) -> str:
        """Sign a JSON-serializable payload with a fresh nonce and timestamp."""
        envelope = {
            "data": payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "nonce": secrets.token_hex(16),
        }
        body = json.dumps(envelope, sort_keys=True, separators=(",", ":"), default=str).encode()

        mac = self._mac()
        mac.update(body)
        return f"{base64.urlsafe_b64encode(body).decode()}.{mac.finalize().hex()}"

    def verify(self, signature: str) -> dict[str, Any] | None:
        """Check a signature in constant time.

        Returns:
            The signed data if the signature is valid, otherwise None
        """
        encoded, _, digest = signature.rpartition(".")
        if not encoded or not digest:
            return None

        try:
            body = base64.urlsafe_b64decode(encoded.encode())
            expected = bytes.fromhex(digest)
        except (binascii.Error, ValueError):
            return None

        mac = self._mac()
        mac.update(body)
        try:
            mac.verify(expected)
        except InvalidSignature:
            logger.warning("Rejected outcome signature with invalid MAC")
            return None

        return json.loads(body)["data"]
