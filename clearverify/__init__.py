"""ClearVerify multi-protocol insurance eligibility verification core."""

from .errors import (
    AuthenticationFailure,
    MalformedResponse,
    NoActiveCoverage,
    PatientNotFound,
    ProviderNotFound,
    ServiceUnavailable,
    StructuralParseFailure,
    TransportUnavailable,
    UnsupportedProvider,
    VerificationError,
)
from .models import (
    EligibilityQuery,
    EligibilityResult,
    EligibilityStatus,
    OutcomeStatus,
    PatientInfo,
    ProtocolVariant,
    ProviderProfile,
    VerificationOutcome,
)
from .orchestrator import FallbackOrchestrator
from .service import Verifier, build_verifier

__version__ = "0.1.0"

__all__ = [
    "AuthenticationFailure",
    "EligibilityQuery",
    "EligibilityResult",
    "EligibilityStatus",
    "FallbackOrchestrator",
    "MalformedResponse",
    "NoActiveCoverage",
    "OutcomeStatus",
    "PatientInfo",
    "PatientNotFound",
    "ProtocolVariant",
    "ProviderNotFound",
    "ProviderProfile",
    "ServiceUnavailable",
    "StructuralParseFailure",
    "TransportUnavailable",
    "UnsupportedProvider",
    "VerificationError",
    "VerificationOutcome",
    "Verifier",
    "build_verifier",
]
