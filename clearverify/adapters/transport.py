"""Delivery channels for X12 interchanges."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

import httpx

from ..errors import TransportUnavailable
from ..models import ProviderProfile

X12_HEADERS = {
    "Content-Type": "application/edi-x12",
    "Accept": "application/edi-x12",
}


class EDITransport(ABC):
    """Sends a 270 interchange and returns the payer's 271."""

    @abstractmethod
    def exchange(self, provider: ProviderProfile, message: str) -> str:
        """Deliver one interchange.

        Raises:
            TransportUnavailable: If the payer cannot be reached
        """
        ...


class HTTPEDITransport(EDITransport):
    """Real-time X12 over HTTPS to the provider's ``x12`` endpoint.

    Providers reachable only through batch channels (AS2, SFTP) have no
    ``x12`` endpoint and are reported unavailable so the caller can fall
    back to a clearinghouse.
    """

    def __init__(self, request: Callable[..., httpx.Response]) -> None:
        """Initialize the transport.

        Args:
            request: Authenticated request function, normally
                ``BaseAdapter._request``
        """
        self._request = request

    def exchange(self, provider: ProviderProfile, message: str) -> str:
        url = provider.endpoint_url("x12")
        if url is None:
            raise TransportUnavailable(
                f"No real-time EDI channel configured for {provider.name}", provider.id
            )
        response = self._request(
            provider, "POST", url, content=message, headers=X12_HEADERS
        )
        return response.text
