"""HL7 FHIR R4 eligibility adapter.

Two reads against the payer's FHIR server:
1. Patient search by member identifier, exact name and birth date
2. Coverage search for the patient, restricted to active coverage
"""

from __future__ import annotations

from typing import Any

from ..errors import MalformedResponse, NoActiveCoverage, PatientNotFound
from ..models import EligibilityQuery, ProtocolVariant, ProviderProfile, RawProviderResponse
from ..utils import mask_identifier
from .base import BaseAdapter

FHIR_HEADERS = {"Accept": "application/fhir+json"}


class FHIRAdapter(BaseAdapter):
    """Adapter for payers exposing a FHIR R4 Patient/Coverage API.

    Payload handed to the normalizer::

        {"patient": <Patient resource>, "coverage": <Coverage resource>}
    """

    protocol = ProtocolVariant.FHIR

    def query_eligibility(
        self, provider: ProviderProfile, query: EligibilityQuery
    ) -> RawProviderResponse:
        patient = self._find_patient(provider, query)
        coverage = self._find_active_coverage(provider, patient["id"])
        self._log(
            provider,
            "info",
            f"Found active coverage for member {mask_identifier(query.member_id)}",
        )
        return self._raw(provider, {"patient": patient, "coverage": coverage})

    def _find_patient(
        self, provider: ProviderProfile, query: EligibilityQuery
    ) -> dict[str, Any]:
        params = {
            "identifier": query.member_id,
            "given:exact": query.patient.first_name,
            "family:exact": query.patient.last_name,
            "birthdate": query.patient.dob.isoformat(),
        }
        response = self._request(
            provider,
            "GET",
            self._endpoint(provider, "patient"),
            params=params,
            headers=FHIR_HEADERS,
        )
        entries = self._bundle_entries(provider, self._json(provider, response))

        if not entries:
            raise PatientNotFound(
                f"Patient not found at {provider.name}", provider.id
            )

        # First match wins
        patient = entries[0]
        if not patient.get("id"):
            raise PatientNotFound(
                f"Patient record at {provider.name} has no id", provider.id
            )
        return patient

    def _find_active_coverage(
        self, provider: ProviderProfile, patient_id: str
    ) -> dict[str, Any]:
        params = {
            "beneficiary": f"Patient/{patient_id}",
            "status": "active",
        }
        response = self._request(
            provider,
            "GET",
            self._endpoint(provider, "coverage"),
            params=params,
            headers=FHIR_HEADERS,
        )
        entries = self._bundle_entries(provider, self._json(provider, response))

        for coverage in entries:
            if coverage.get("status") == "active":
                return coverage

        raise NoActiveCoverage(
            f"No active coverage found at {provider.name}", provider.id
        )

    def _bundle_entries(
        self, provider: ProviderProfile, bundle: Any
    ) -> list[dict[str, Any]]:
        """Resources from a searchset Bundle."""
        if not isinstance(bundle, dict) or bundle.get("resourceType") not in (None, "Bundle"):
            raise MalformedResponse(
                f"{provider.name} did not return a FHIR Bundle", provider.id
            )
        resources = []
        for entry in bundle.get("entry") or []:
            resource = entry.get("resource") if isinstance(entry, dict) else None
            if resource:
                resources.append(resource)
        return resources
