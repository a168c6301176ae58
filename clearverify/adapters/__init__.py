"""Protocol adapters for payer eligibility APIs.

One adapter per protocol variant:
- FHIR: HL7 FHIR R4 Patient/Coverage reads
- X12: 270 inquiry / 271 response over an EDITransport
- SOAP: XML envelope with WS-Security
- REST_JSON: vendor-specific JSON request/response shapes
"""

from __future__ import annotations

import httpx

from .. import config
from ..auth import CredentialBroker
from ..models import ProtocolVariant
from .base import BaseAdapter
from .fhir import FHIRAdapter
from .rest import REQUEST_BUILDERS, RESTAdapter
from .soap import SOAPAdapter
from .transport import EDITransport, HTTPEDITransport
from .x12 import X12Adapter


def build_adapters(
    broker: CredentialBroker,
    client: httpx.Client | None = None,
    timeout: float = config.REQUEST_TIMEOUT,
    edi_transport: EDITransport | None = None,
) -> dict[ProtocolVariant, BaseAdapter]:
    """Create one adapter per protocol sharing a broker and HTTP client."""
    return {
        ProtocolVariant.FHIR: FHIRAdapter(broker, client, timeout),
        ProtocolVariant.X12: X12Adapter(broker, client, timeout, transport=edi_transport),
        ProtocolVariant.SOAP: SOAPAdapter(broker, client, timeout),
        ProtocolVariant.REST_JSON: RESTAdapter(broker, client, timeout),
    }


__all__ = [
    "BaseAdapter",
    "EDITransport",
    "FHIRAdapter",
    "HTTPEDITransport",
    "REQUEST_BUILDERS",
    "RESTAdapter",
    "SOAPAdapter",
    "X12Adapter",
    "build_adapters",
]
