"""Data models for the eligibility verification core.

Validated records (provider profiles, queries, canonical results and
outcomes) are pydantic models. Transient payloads that never leave the
process are dataclasses.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Provider ids double as environment variable prefixes
PROVIDER_ID_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")


class ProtocolVariant(str, Enum):
    """Data-exchange protocols the adapters speak."""

    FHIR = "fhir"
    X12 = "x12"
    SOAP = "soap"
    REST_JSON = "rest_json"


class AuthScheme(str, Enum):
    """How a provider authenticates outbound calls."""

    OAUTH2 = "oauth2"
    APIKEY = "apikey"
    BASIC = "basic"
    NONE = "none"


class TokenAuthMethod(str, Enum):
    """Where OAuth2 client credentials go on the token request."""

    BASIC = "basic"
    BODY = "body"


class ProviderCategory(str, Enum):
    NATIONAL = "national"
    REGIONAL = "regional"
    CLEARINGHOUSE = "clearinghouse"


class OutcomeStatus(str, Enum):
    """Final status of a verification."""

    VERIFIED = "verified"
    NOT_ELIGIBLE = "not_eligible"
    DEGRADED = "degraded"
    FAILED = "failed"


class EligibilityStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    UNKNOWN = "unknown"


# --- Provider directory ---


class ProviderProfile(BaseModel):
    """Connection profile for one payer or clearinghouse."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=200)
    category: ProviderCategory
    protocol: ProtocolVariant
    alternate_protocol: ProtocolVariant | None = None
    auth_scheme: AuthScheme
    base_url: str = Field(..., min_length=1)
    token_url: str | None = None
    token_auth: TokenAuthMethod = TokenAuthMethod.BASIC
    endpoints: dict[str, str] = Field(default_factory=dict)
    capabilities: frozenset[ProtocolVariant] = frozenset()
    fhir_version: str | None = None
    sandbox_available: bool = False
    production_requirements: tuple[str, ...] = ()
    clearinghouse: str | None = None
    rest_shape: str | None = None
    api_key_header: str = "X-API-Key"
    oauth_scope: str | None = None
    soap_action: str | None = None

    @model_validator(mode="before")
    @classmethod
    def include_declared_protocols(cls, data: Any) -> Any:
        """Declared protocols are always part of the capability set."""
        if not isinstance(data, dict):
            return data
        capabilities = set(data.get("capabilities") or [])
        for key in ("protocol", "alternate_protocol"):
            if data.get(key):
                capabilities.add(data[key])
        data = dict(data)
        data["capabilities"] = capabilities
        return data

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        if not PROVIDER_ID_PATTERN.match(v):
            raise ValueError(
                f"Invalid provider id: '{v}'. "
                "Use lowercase letters, digits and underscores."
            )
        return v

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @model_validator(mode="after")
    def check_auth_settings(self) -> "ProviderProfile":
        if self.auth_scheme == AuthScheme.OAUTH2 and not self.token_url:
            raise ValueError(f"Provider '{self.id}' uses oauth2 but has no token_url")
        return self

    def supports(self, protocol: ProtocolVariant) -> bool:
        return protocol in self.capabilities

    def preferred_protocol(self) -> ProtocolVariant:
        """FHIR if supported, else EDI, else the provider's own protocol."""
        if self.supports(ProtocolVariant.FHIR):
            return ProtocolVariant.FHIR
        if self.supports(ProtocolVariant.X12):
            return ProtocolVariant.X12
        return self.protocol

    def fallback_protocol(self) -> ProtocolVariant | None:
        """A declared protocol other than the preferred one, if any."""
        preferred = self.preferred_protocol()
        for protocol in (self.alternate_protocol, self.protocol):
            if protocol is not None and protocol != preferred:
                return protocol
        return None

    @property
    def shape(self) -> str:
        """Key into the REST/JSON request/response shape tables."""
        return self.rest_shape or self.id

    def endpoint_url(self, name: str) -> str | None:
        """Absolute URL for a named endpoint, or None if not configured."""
        path = self.endpoints.get(name)
        if path is None:
            return None
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"


# --- Verification request ---


class PatientInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    first_name: str = Field(..., min_length=1, max_length=60)
    last_name: str = Field(..., min_length=1, max_length=60)
    dob: date


class EligibilityQuery(BaseModel):
    """One verification request. Immutable."""

    model_config = ConfigDict(frozen=True)

    payer_id: str = Field(..., min_length=1)
    member_id: str = Field(..., min_length=1, max_length=80)
    procedure_code: str = Field(..., min_length=1, max_length=10)
    patient: PatientInfo
    requesting_provider_id: str | None = None
    # Overrides the payer's allowed amount when the caller knows the fee
    procedure_cost: float | None = Field(default=None, ge=0)

    @field_validator("procedure_code")
    @classmethod
    def normalize_procedure_code(cls, v: str) -> str:
        return v.strip().upper()


@dataclass
class RawProviderResponse:
    """Vendor-shaped payload tagged with the protocol that produced it."""

    protocol: ProtocolVariant
    provider_id: str
    payload: Any
    shape: str | None = None


# --- Canonical eligibility model ---


class Benefit(BaseModel):
    """Coverage terms for one procedure."""

    procedure_code: str
    coverage_percentage: float = Field(..., ge=0, le=100)
    copay: float = Field(default=0.0, ge=0)
    allowed_amount: float = Field(default=0.0, ge=0)
    service_type_code: str | None = None
    source: str = "payer"  # payer, default


class Accumulator(BaseModel):
    """Annual amount and what is left of it this period."""

    annual: float = Field(..., ge=0)
    remaining: float = Field(..., ge=0)

    @model_validator(mode="after")
    def remaining_within_annual(self) -> "Accumulator":
        if self.remaining > self.annual:
            raise ValueError(
                f"remaining ({self.remaining}) exceeds annual ({self.annual})"
            )
        return self


class EligibilityResult(BaseModel):
    """Canonical eligibility and benefit picture for one member."""

    active: bool
    effective_date: date | None = None
    termination_date: date | None = None
    benefits: list[Benefit] = Field(default_factory=list)
    deductible: Accumulator
    out_of_pocket_max: Accumulator
    subscriber_name: str | None = None

    def benefit_for(self, procedure_code: str) -> Benefit | None:
        for benefit in self.benefits:
            if benefit.procedure_code == procedure_code:
                return benefit
        return None


class CoverageDecision(BaseModel):
    """Patient financial responsibility for one procedure."""

    model_config = ConfigDict(frozen=True)

    is_procedure_covered: bool
    coverage_percentage: float = Field(..., ge=0, le=100)
    copay: float = Field(..., ge=0)
    procedure_cost: float = Field(..., ge=0)
    deductible_applied: float = Field(default=0.0, ge=0)
    coinsurance_amount: float = Field(default=0.0, ge=0)
    estimated_patient_cost: float = Field(..., ge=0)


# --- Outcome ---


class ErrorDetail(BaseModel):
    kind: str
    message: str


class AttemptRecord(BaseModel):
    """One hop of the fallback chain, kept for the audit trail."""

    hop: int
    state: str
    provider_id: str | None = None
    protocol: ProtocolVariant | None = None
    status: str  # success, unavailable, fatal, not_eligible, cache_hit, estimated
    error_kind: str | None = None
    duration_ms: float | None = None


class VerificationOutcome(BaseModel):
    """Standardized, signed answer to an EligibilityQuery."""

    verification_id: str
    status: OutcomeStatus
    eligibility_status: EligibilityStatus
    payer_id: str
    provider_id: str | None = None
    protocol: ProtocolVariant | None = None
    eligibility: EligibilityResult | None = None
    coverage: CoverageDecision | None = None
    degraded: bool = False
    cached: bool = False
    error: ErrorDetail | None = None
    attempts: list[AttemptRecord] = Field(default_factory=list)
    signature: str | None = None
    verified_at: datetime

    def signing_payload(self) -> dict[str, Any]:
        """Fields covered by the signature (everything but attempts and the signature)."""
        return self.model_dump(mode="json", exclude={"signature", "attempts"})
