"""SOAP/XML real-time eligibility adapter (Availity RTX style).

Request: SOAP 1.1 envelope with a WS-Security UsernameToken header and a
RealTimeTransaction body. Response: a single EligibilityResponse element
somewhere under the SOAP body.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Any

from ..edi import service_type_for
from ..errors import AuthenticationFailure, MalformedResponse
from ..models import EligibilityQuery, ProtocolVariant, ProviderProfile, RawProviderResponse
from ..utils import sanitize_log_value
from .base import BaseAdapter

SOAP_NS = "http://schemas.xmlsoap.org/soap/envelope/"
WSSE_NS = "http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-wssecurity-secext-1.0.xsd"
RTX_NS = "http://availity.com/rtx"

# Child elements of EligibilityResponse handed to the normalizer
RESPONSE_FIELDS = (
    "Status",
    "EffectiveDate",
    "TerminationDate",
    "ServiceType",
    "CoveragePercent",
    "Copay",
    "AnnualDeductible",
    "RemainingDeductible",
    "AnnualOOPMax",
    "RemainingOOPMax",
)
REQUIRED_FIELDS = ("Status", "EffectiveDate")

ET.register_namespace("soap", SOAP_NS)
ET.register_namespace("wsse", WSSE_NS)
ET.register_namespace("rtx", RTX_NS)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


class SOAPAdapter(BaseAdapter):
    """Adapter for XML/SOAP clearinghouse endpoints.

    Payload handed to the normalizer: a dict of the EligibilityResponse
    child element texts, keyed by element name.
    """

    protocol = ProtocolVariant.SOAP

    def query_eligibility(
        self, provider: ProviderProfile, query: EligibilityQuery
    ) -> RawProviderResponse:
        token = self.broker.acquire(provider)
        if token is None:
            raise AuthenticationFailure(
                f"No usable credentials for {provider.name}", provider.id
            )

        envelope = self.build_envelope(query, token.username or "", token.secret)
        headers = {
            "Content-Type": "text/xml; charset=utf-8",
            "SOAPAction": provider.soap_action or "",
        }
        response = self._request(
            provider,
            "POST",
            self._endpoint(provider, "eligibility"),
            content=envelope,
            headers=headers,
        )
        return self._raw(provider, self.parse_response(provider, response.content))

    def build_envelope(self, query: EligibilityQuery, username: str, password: str) -> bytes:
        """Serialize the request envelope.

        The UsernameToken carries the password in plain text (PasswordText);
        confidentiality relies on the TLS channel.
        """
        envelope = ET.Element(f"{{{SOAP_NS}}}Envelope")

        header = ET.SubElement(envelope, f"{{{SOAP_NS}}}Header")
        security = ET.SubElement(header, f"{{{WSSE_NS}}}Security")
        username_token = ET.SubElement(security, f"{{{WSSE_NS}}}UsernameToken")
        ET.SubElement(username_token, f"{{{WSSE_NS}}}Username").text = username
        ET.SubElement(username_token, f"{{{WSSE_NS}}}Password").text = password

        body = ET.SubElement(envelope, f"{{{SOAP_NS}}}Body")
        transaction = ET.SubElement(body, f"{{{RTX_NS}}}RealTimeTransaction")
        fields = {
            "PayerID": query.payer_id,
            "ProviderID": query.requesting_provider_id or "",
            "PatientFirstName": query.patient.first_name,
            "PatientLastName": query.patient.last_name,
            "PatientDOB": query.patient.dob.isoformat(),
            "MemberID": query.member_id,
            "ServiceType": service_type_for(query.procedure_code),
        }
        for name, value in fields.items():
            ET.SubElement(transaction, f"{{{RTX_NS}}}{name}").text = value

        return ET.tostring(envelope, encoding="utf-8", xml_declaration=True)

    def parse_response(self, provider: ProviderProfile, content: bytes | str) -> dict[str, Any]:
        """Extract the EligibilityResponse fields.

        Raises:
            MalformedResponse: Unparsable XML, a SOAP Fault, no
                EligibilityResponse element, or missing required fields
        """
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            raise MalformedResponse(
                f"{provider.name} returned unparsable XML: {e}", provider.id
            ) from e

        eligibility = None
        for element in root.iter():
            name = _local_name(element.tag)
            if name == "Fault":
                fault = {_local_name(child.tag): (child.text or "").strip() for child in element}
                raise MalformedResponse(
                    f"{provider.name} returned a SOAP fault: "
                    f"{sanitize_log_value(fault.get('faultstring', 'unknown'))}",
                    provider.id,
                )
            if name == "EligibilityResponse" and eligibility is None:
                eligibility = element

        if eligibility is None:
            raise MalformedResponse(
                f"{provider.name} response has no EligibilityResponse element", provider.id
            )

        values: dict[str, Any] = {}
        for child in eligibility:
            name = _local_name(child.tag)
            if name in RESPONSE_FIELDS and child.text and child.text.strip():
                values[name] = child.text.strip()

        missing = [name for name in REQUIRED_FIELDS if name not in values]
        if missing:
            raise MalformedResponse(
                f"{provider.name} EligibilityResponse is missing {', '.join(missing)}",
                provider.id,
            )

        return values
