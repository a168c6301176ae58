"""ANSI X12 270/271 eligibility adapter."""

from __future__ import annotations

import httpx

from .. import config
from ..auth import CredentialBroker
from ..edi import EDI270Builder, EDI271Parser
from ..models import EligibilityQuery, ProtocolVariant, ProviderProfile, RawProviderResponse
from .base import BaseAdapter
from .transport import EDITransport, HTTPEDITransport


class X12Adapter(BaseAdapter):
    """Builds a 270, exchanges it over an EDITransport, parses the 271.

    The payload handed to the normalizer is an ``X12EligibilityResponse``.
    """

    protocol = ProtocolVariant.X12

    def __init__(
        self,
        broker: CredentialBroker,
        client: httpx.Client | None = None,
        timeout: float = config.REQUEST_TIMEOUT,
        transport: EDITransport | None = None,
        builder: EDI270Builder | None = None,
        parser: EDI271Parser | None = None,
    ) -> None:
        super().__init__(broker, client, timeout)
        self.transport = transport or HTTPEDITransport(self._request)
        self.builder = builder or EDI270Builder()
        self.parser = parser or EDI271Parser()

    def query_eligibility(
        self, provider: ProviderProfile, query: EligibilityQuery
    ) -> RawProviderResponse:
        inquiry = self.builder.build(query.payer_id, query)
        self._log(provider, "debug", "Sending 270 inquiry")

        reply = self.transport.exchange(provider, inquiry)

        response = self.parser.parse(reply, provider_id=provider.id)
        response.raise_for_rejections(provider.id)
        return self._raw(provider, response)
