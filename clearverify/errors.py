"""Exception taxonomy for eligibility verification.

Every failure an adapter, parser or the directory can raise derives from
VerificationError. The orchestrator is the only place these are caught;
it turns them into structured outcomes.
"""

from __future__ import annotations


class VerificationError(Exception):
    """Base exception for verification errors."""

    kind = "verification_error"
    retryable = False

    def __init__(self, message: str, provider_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.provider_id = provider_id


class UnsupportedProvider(VerificationError):
    """Payer or vendor shape the core has no route for."""

    kind = "unsupported_provider"


class ProviderNotFound(UnsupportedProvider):
    """Payer id absent from the provider directory."""

    kind = "provider_not_found"


class ProviderConfigError(Exception):
    """Raised when the provider table fails validation."""

    def __init__(self, message: str, errors: list[dict] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class AuthenticationFailure(VerificationError):
    """Credentials missing or rejected twice. Signals misconfiguration."""

    kind = "authentication_failure"


class NotEligible(VerificationError):
    """Policy-level answer: the payer has no eligible coverage to report."""

    kind = "not_eligible"


class PatientNotFound(NotEligible):
    kind = "patient_not_found"


class NoActiveCoverage(NotEligible):
    kind = "no_active_coverage"


class MalformedResponse(VerificationError):
    """Payer answered but the payload is missing expected structure."""

    kind = "malformed_response"


class StructuralParseFailure(MalformedResponse):
    """X12 envelope failed structural validation."""

    kind = "structural_parse_failure"

    def __init__(
        self,
        message: str,
        errors: list[str] | None = None,
        provider_id: str | None = None,
    ) -> None:
        super().__init__(message, provider_id)
        self.errors = errors or []


class ProviderRequestError(VerificationError):
    """Payer rejected the request itself (non-auth 4xx)."""

    kind = "provider_request_error"

    def __init__(
        self,
        message: str,
        provider_id: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, provider_id)
        self.status_code = status_code


class TransportUnavailable(VerificationError):
    """Connection refused, timeout, not-found or service-unavailable."""

    kind = "transport_unavailable"
    retryable = True

    def __init__(
        self,
        message: str,
        provider_id: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, provider_id)
        self.status_code = status_code


class ServiceUnavailable(VerificationError):
    """Every route in the fallback chain was unavailable."""

    kind = "service_unavailable"
