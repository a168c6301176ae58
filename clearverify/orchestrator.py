"""Fallback orchestration for eligibility verification.

State machine::

    CacheCheck --hit--> Done
    CacheCheck --miss--> PrimaryAttempt
    PrimaryAttempt --unavailable--> SecondaryAttempt
    SecondaryAttempt --unavailable--> Degraded
    Degraded --> Done (estimate) | Failed (degraded answers disabled)
    any attempt --fatal--> Failed
    any attempt --not eligible--> Done (not_eligible)

Outbound calls within one verification are strictly sequential and never
exceed three hops (primary, secondary, degraded).
"""

from __future__ import annotations

import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Mapping, Sequence

from . import config
from .adapters import BaseAdapter
from .audit import log_verification_event
from .cache import ResultCache, fingerprint
from .coverage import CoverageCalculator
from .errors import (
    NotEligible,
    ServiceUnavailable,
    TransportUnavailable,
    UnsupportedProvider,
    VerificationError,
)
from .models import (
    AttemptRecord,
    EligibilityQuery,
    EligibilityResult,
    EligibilityStatus,
    ErrorDetail,
    OutcomeStatus,
    ProtocolVariant,
    ProviderProfile,
    VerificationOutcome,
)
from .normalizer import estimated_result, normalize
from .providers import ProviderDirectory
from .signing import Signer
from .utils import mask_identifier

logger = logging.getLogger(__name__)

MAX_HOPS = 3


class OrchestratorState(str, Enum):
    CACHE_CHECK = "cache_check"
    PRIMARY_ATTEMPT = "primary_attempt"
    SECONDARY_ATTEMPT = "secondary_attempt"
    DEGRADED = "degraded"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class Route:
    """A provider reached over one protocol."""

    provider: ProviderProfile
    protocol: ProtocolVariant


class FallbackOrchestrator:
    """Sequences eligibility attempts across protocols and providers."""

    def __init__(
        self,
        directory: ProviderDirectory,
        adapters: Mapping[ProtocolVariant, BaseAdapter],
        cache: ResultCache | None = None,
        signer: Signer | None = None,
        calculator: CoverageCalculator | None = None,
        allow_degraded: bool = config.ALLOW_DEGRADED,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            directory: Provider profiles; also resolves each provider's
                secondary route
            adapters: One adapter per protocol
            cache: Result cache (None disables caching)
            signer: Integrity signer (None leaves outcomes unsigned)
            calculator: Coverage calculator
            allow_degraded: Return flagged estimates when every route is down
        """
        self.directory = directory
        self.adapters = dict(adapters)
        self.cache = cache
        self.signer = signer
        self.calculator = calculator or CoverageCalculator()
        self.allow_degraded = allow_degraded

    # --- Public API ---

    def verify(self, query: EligibilityQuery) -> VerificationOutcome:
        """Verify eligibility and coverage for one query.

        Never raises for verification failures: every call returns an
        outcome and emits one audit record.
        """
        started = time.perf_counter()
        outcome = self._run(query, str(uuid.uuid4()))
        log_verification_event(query, outcome, (time.perf_counter() - started) * 1000)
        return outcome

    def verify_batch(
        self,
        queries: Sequence[EligibilityQuery],
        max_workers: int = config.BATCH_WORKERS,
    ) -> list[VerificationOutcome]:
        """Verify independent queries concurrently.

        Returns:
            Outcomes in the same order as the queries
        """
        if not queries:
            return []
        workers = max(1, min(max_workers, len(queries)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            return list(executor.map(self.verify, queries))

    # --- State machine ---

    def _run(self, query: EligibilityQuery, verification_id: str) -> VerificationOutcome:
        attempts: list[AttemptRecord] = []

        # CacheCheck
        key = fingerprint(query)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return self._from_cache(cached, verification_id)

        try:
            provider = self.directory.lookup(query.payer_id)
        except UnsupportedProvider as e:
            return self._failed(query, verification_id, e, attempts)

        # PrimaryAttempt, then SecondaryAttempt
        primary = Route(provider, provider.preferred_protocol())
        secondary = Route(*self.directory.secondary_route(provider))
        routes = [
            (OrchestratorState.PRIMARY_ATTEMPT, primary),
            (OrchestratorState.SECONDARY_ATTEMPT, secondary),
        ]

        unavailable: list[str] = []
        for hop, (state, route) in enumerate(routes, start=1):
            attempt_started = time.perf_counter()
            try:
                eligibility = self._attempt(route, query)
            except TransportUnavailable as e:
                attempts.append(self._record(hop, state, route, "unavailable", attempt_started, e))
                logger.warning(
                    f"{state.value} via {route.provider.id}/{route.protocol.value} unavailable: {e}",
                    extra={"verification_id": verification_id, "hop": hop},
                )
                unavailable.append(f"{route.provider.id}/{route.protocol.value}: {e.message}")
                continue
            except NotEligible as e:
                attempts.append(self._record(hop, state, route, "not_eligible", attempt_started, e))
                return self._not_eligible(query, verification_id, route, e, attempts)
            except VerificationError as e:
                attempts.append(self._record(hop, state, route, "fatal", attempt_started, e))
                return self._failed(query, verification_id, e, attempts, route)

            attempts.append(self._record(hop, state, route, "success", attempt_started))
            outcome = self._verified(query, verification_id, route, eligibility, attempts)
            if self.cache is not None:
                self.cache.set(key, outcome)
            return outcome

        # Degraded: the chain is exhausted
        hop = len(routes) + 1
        error = ServiceUnavailable(
            f"All routes for {provider.name} are unavailable ({'; '.join(unavailable)})",
            provider.id,
        )
        if not self.allow_degraded:
            attempts.append(
                AttemptRecord(
                    hop=hop,
                    state=OrchestratorState.DEGRADED.value,
                    status="fatal",
                    error_kind=error.kind,
                )
            )
            return self._failed(query, verification_id, error, attempts)

        return self._degraded(query, verification_id, provider, attempts, hop, error)

    def _attempt(self, route: Route, query: EligibilityQuery) -> EligibilityResult:
        adapter = self.adapters.get(route.protocol)
        if adapter is None:
            raise UnsupportedProvider(
                f"No adapter registered for protocol {route.protocol.value}",
                route.provider.id,
            )
        raw = adapter.query_eligibility(route.provider, query)
        return normalize(raw, query.procedure_code)

    # --- Outcome builders ---

    def _record(
        self,
        hop: int,
        state: OrchestratorState,
        route: Route,
        status: str,
        started: float,
        error: VerificationError | None = None,
    ) -> AttemptRecord:
        return AttemptRecord(
            hop=hop,
            state=state.value,
            provider_id=route.provider.id,
            protocol=route.protocol,
            status=status,
            error_kind=error.kind if error else None,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )

    def _sign(self, outcome: VerificationOutcome) -> VerificationOutcome:
        if self.signer is None:
            return outcome
        signature = self.signer.sign(outcome.signing_payload())
        return outcome.model_copy(update={"signature": signature})

    def _from_cache(
        self, cached: VerificationOutcome, verification_id: str
    ) -> VerificationOutcome:
        outcome = cached.model_copy(
            update={
                "verification_id": verification_id,
                "cached": True,
                "signature": None,
                "attempts": [
                    AttemptRecord(
                        hop=0,
                        state=OrchestratorState.CACHE_CHECK.value,
                        provider_id=cached.provider_id,
                        protocol=cached.protocol,
                        status="cache_hit",
                    )
                ],
            }
        )
        return self._sign(outcome)

    def _verified(
        self,
        query: EligibilityQuery,
        verification_id: str,
        route: Route,
        eligibility: EligibilityResult,
        attempts: list[AttemptRecord],
    ) -> VerificationOutcome:
        coverage = self.calculator.calculate(
            eligibility, query.procedure_code, query.procedure_cost
        )
        outcome = VerificationOutcome(
            verification_id=verification_id,
            status=OutcomeStatus.VERIFIED,
            eligibility_status=(
                EligibilityStatus.ACTIVE if eligibility.active else EligibilityStatus.INACTIVE
            ),
            payer_id=query.payer_id,
            provider_id=route.provider.id,
            protocol=route.protocol,
            eligibility=eligibility,
            coverage=coverage,
            attempts=attempts,
            verified_at=datetime.now(timezone.utc),
        )
        logger.info(
            f"Verified member {mask_identifier(query.member_id)} with {query.payer_id} "
            f"via {route.provider.id}/{route.protocol.value}",
            extra={"verification_id": verification_id},
        )
        return self._sign(outcome)

    def _degraded(
        self,
        query: EligibilityQuery,
        verification_id: str,
        provider: ProviderProfile,
        attempts: list[AttemptRecord],
        hop: int,
        error: ServiceUnavailable,
    ) -> VerificationOutcome:
        estimate = estimated_result(query.procedure_code)
        coverage = self.calculator.calculate(
            estimate, query.procedure_code, query.procedure_cost
        )
        attempts.append(
            AttemptRecord(
                hop=hop,
                state=OrchestratorState.DEGRADED.value,
                provider_id=provider.id,
                status="estimated",
            )
        )
        outcome = VerificationOutcome(
            verification_id=verification_id,
            status=OutcomeStatus.DEGRADED,
            eligibility_status=EligibilityStatus.UNKNOWN,
            payer_id=query.payer_id,
            provider_id=provider.id,
            coverage=coverage,
            degraded=True,
            error=ErrorDetail(kind=error.kind, message=error.message),
            attempts=attempts,
            verified_at=datetime.now(timezone.utc),
        )
        logger.warning(
            f"Returning degraded estimate for {query.payer_id}, all routes unavailable",
            extra={"verification_id": verification_id},
        )
        return self._sign(outcome)

    def _not_eligible(
        self,
        query: EligibilityQuery,
        verification_id: str,
        route: Route,
        error: NotEligible,
        attempts: list[AttemptRecord],
    ) -> VerificationOutcome:
        return VerificationOutcome(
            verification_id=verification_id,
            status=OutcomeStatus.NOT_ELIGIBLE,
            eligibility_status=EligibilityStatus.INACTIVE,
            payer_id=query.payer_id,
            provider_id=route.provider.id,
            protocol=route.protocol,
            error=ErrorDetail(kind=error.kind, message=error.message),
            attempts=attempts,
            verified_at=datetime.now(timezone.utc),
        )

    def _failed(
        self,
        query: EligibilityQuery,
        verification_id: str,
        error: VerificationError,
        attempts: list[AttemptRecord],
        route: Route | None = None,
    ) -> VerificationOutcome:
        logger.error(
            f"Verification failed for {query.payer_id}: {error.kind}",
            extra={"verification_id": verification_id, "provider_id": error.provider_id},
        )
        return VerificationOutcome(
            verification_id=verification_id,
            status=OutcomeStatus.FAILED,
            eligibility_status=EligibilityStatus.UNKNOWN,
            payer_id=query.payer_id,
            provider_id=route.provider.id if route else error.provider_id,
            protocol=route.protocol if route else None,
            error=ErrorDetail(kind=error.kind, message=error.message),
            attempts=attempts,
            verified_at=datetime.now(timezone.utc),
        )
