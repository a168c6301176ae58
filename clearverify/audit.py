"""Audit trail for eligibility verifications.

One record per verification is written to the ``clearverify.audit``
logger. Records carry identifiers, status, protocol hops and durations
only; member ids are masked and no demographics or secrets are included.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .models import EligibilityQuery, OutcomeStatus, VerificationOutcome
from .utils import mask_identifier

audit_logger = logging.getLogger("clearverify.audit")


class AuditAction(str, Enum):
    """Types of auditable verification events."""

    VERIFY_COMPLETE = "verification.complete"
    VERIFY_CACHED = "verification.cached"
    VERIFY_NOT_ELIGIBLE = "verification.not_eligible"
    VERIFY_DEGRADED = "verification.degraded"
    VERIFY_FAILED = "verification.failed"


def action_for(outcome: VerificationOutcome) -> AuditAction:
    if outcome.cached:
        return AuditAction.VERIFY_CACHED
    return {
        OutcomeStatus.VERIFIED: AuditAction.VERIFY_COMPLETE,
        OutcomeStatus.NOT_ELIGIBLE: AuditAction.VERIFY_NOT_ELIGIBLE,
        OutcomeStatus.DEGRADED: AuditAction.VERIFY_DEGRADED,
        OutcomeStatus.FAILED: AuditAction.VERIFY_FAILED,
    }[outcome.status]


def log_verification_event(
    query: EligibilityQuery,
    outcome: VerificationOutcome,
    duration_ms: float | None = None,
) -> dict[str, Any]:
    """Emit the audit record for one verification.

    Returns the record that was logged.
    """
    action = action_for(outcome)
    record: dict[str, Any] = {
        "audit_id": str(uuid.uuid4()),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "action": action.value,
        "verification_id": outcome.verification_id,
        "payer_id": query.payer_id,
        "member_id": mask_identifier(query.member_id),
        "procedure_code": query.procedure_code,
        "status": outcome.status.value,
        "eligibility_status": outcome.eligibility_status.value,
        "provider_id": outcome.provider_id,
        "protocol": outcome.protocol.value if outcome.protocol else None,
        "degraded": outcome.degraded,
        "cached": outcome.cached,
        "error_kind": outcome.error.kind if outcome.error else None,
        "hops": [
            {
                "state": attempt.state,
                "provider_id": attempt.provider_id,
                "protocol": attempt.protocol.value if attempt.protocol else None,
                "status": attempt.status,
                "error_kind": attempt.error_kind,
                "duration_ms": attempt.duration_ms,
            }
            for attempt in outcome.attempts
        ],
        "duration_ms": round(duration_ms, 2) if duration_ms is not None else None,
    }

    level = logging.WARNING if outcome.status == OutcomeStatus.FAILED else logging.INFO
    audit_logger.log(
        level,
        f"{action.value} {outcome.verification_id} payer={query.payer_id} "
        f"status={outcome.status.value}",
        extra={"audit": record},
    )
    return record
