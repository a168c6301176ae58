"""Vendor REST/JSON eligibility adapter.

Every vendor expects its own request body. Request builders are keyed by
the provider's shape (``rest_shape`` or its id); the matching response
mappers live in the normalizer.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Callable

from .. import config
from ..edi import service_type_for
from ..edi.edi_270 import generate_control_number
from ..errors import UnsupportedProvider
from ..models import EligibilityQuery, ProtocolVariant, ProviderProfile, RawProviderResponse
from .base import BaseAdapter

# General dentist taxonomy code sent to Waystar
DENTIST_TAXONOMY = "1223G0001X"

# Internal payer id -> Eligible trading partner id
ELIGIBLE_TRADING_PARTNERS = {
    "bcbs_florida": "florida_blue",
    "bcbs_ca": "blue_shield_ca",
    "cigna": "cigna",
    "united_optum": "united_healthcare",
    "aetna": "aetna",
    "humana": "humana",
    "anthem": "anthem",
    "kaiser": "kaiser",
    "delta_dental": "delta_dental",
}


def _provider_npi(query: EligibilityQuery) -> str:
    return query.requesting_provider_id or config.SUBMITTER_NPI


def _bcbs_request(query: EligibilityQuery) -> dict[str, Any]:
    return {
        "memberIdentifier": query.member_id,
        "serviceCode": query.procedure_code,
        "patientInfo": {
            "firstName": query.patient.first_name,
            "lastName": query.patient.last_name,
            "dateOfBirth": query.patient.dob.isoformat(),
        },
    }


def _united_request(query: EligibilityQuery) -> dict[str, Any]:
    return {
        "subscriberId": query.member_id,
        "cptCode": query.procedure_code,
        "member": {
            "first": query.patient.first_name,
            "last": query.patient.last_name,
            "dob": query.patient.dob.isoformat(),
        },
    }


def _change_healthcare_request(query: EligibilityQuery) -> dict[str, Any]:
    return {
        "controlNumber": generate_control_number(),
        "tradingPartnerServiceId": query.payer_id,
        "provider": {
            "organizationName": config.SUBMITTER_ID,
            "npi": _provider_npi(query),
        },
        "subscriber": {
            "memberId": query.member_id,
            "firstName": query.patient.first_name,
            "lastName": query.patient.last_name,
            "birthDate": query.patient.dob.strftime("%Y%m%d"),
        },
        "encounter": {
            "serviceTypeCodes": [service_type_for(query.procedure_code)],
        },
    }


def _waystar_request(query: EligibilityQuery) -> dict[str, Any]:
    return {
        "transaction": {
            "controlNumber": generate_control_number(),
            "submitterId": config.SUBMITTER_ID,
            "receiverId": query.payer_id,
            "transactionType": "270",
        },
        "provider": {
            "npi": _provider_npi(query),
            "taxonomy": DENTIST_TAXONOMY,
        },
        "subscriber": {
            "memberNumber": query.member_id,
            "firstName": query.patient.first_name,
            "lastName": query.patient.last_name,
            "dateOfBirth": query.patient.dob.isoformat(),
        },
        "benefitInquiry": {
            "serviceTypes": [service_type_for(query.procedure_code)],
            "dateOfService": date.today().isoformat(),
        },
    }


def _eligible_request(query: EligibilityQuery) -> dict[str, Any]:
    return {
        "service_types": ["30"],
        "member": {
            "first_name": query.patient.first_name,
            "last_name": query.patient.last_name,
            "dob": query.patient.dob.isoformat(),
            "id": query.member_id,
        },
        "provider": {"npi": _provider_npi(query)},
        "trading_partner_id": ELIGIBLE_TRADING_PARTNERS.get(query.payer_id, query.payer_id),
    }


REQUEST_BUILDERS: dict[str, Callable[[EligibilityQuery], dict[str, Any]]] = {
    "bcbs": _bcbs_request,
    "united": _united_request,
    "change_healthcare": _change_healthcare_request,
    "waystar": _waystar_request,
    "eligible": _eligible_request,
}


class RESTAdapter(BaseAdapter):
    """Adapter for proprietary REST/JSON eligibility APIs.

    Payload handed to the normalizer: the decoded JSON body, tagged with
    the provider's shape.
    """

    protocol = ProtocolVariant.REST_JSON

    def query_eligibility(
        self, provider: ProviderProfile, query: EligibilityQuery
    ) -> RawProviderResponse:
        build_request = REQUEST_BUILDERS.get(provider.shape)
        if build_request is None:
            raise UnsupportedProvider(
                f"No request format for REST shape '{provider.shape}'", provider.id
            )

        response = self._request(
            provider,
            "POST",
            self._endpoint(provider, "eligibility"),
            json_data=build_request(query),
            headers={"Accept": "application/json"},
        )
        payload = self._json(provider, response)
        self._log(provider, "debug", f"Received {provider.shape} eligibility response")
        return self._raw(provider, payload)
