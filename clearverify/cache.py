"""In-memory result cache for verified outcomes.

Entries expire lazily on read and are also swept periodically by an
APScheduler background interval job. The cache is a plain dict with
single-key operations; concurrent writers for the same fingerprint are
last-write-wins.
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler

from . import config
from .models import EligibilityQuery, VerificationOutcome

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "clearverify-cache-sweep"


def fingerprint(query: EligibilityQuery) -> str:
    """Cache key for a query.

    Only payer, member and procedure identify a verification; patient
    demographics do not change the answer for the same member.
    """
    raw = f"{query.payer_id}|{query.member_id}|{query.procedure_code.upper()}"
    return hashlib.sha256(raw.encode()).hexdigest()


@dataclass
class CachedVerification:
    outcome: VerificationOutcome
    expires_at: float


class ResultCache:
    """TTL cache of verification outcomes keyed by query fingerprint."""

    def __init__(
        self,
        ttl: float = config.CACHE_TTL_SECONDS,
        sweep_interval: float = config.CACHE_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            ttl: Default entry lifetime in seconds
            sweep_interval: Seconds between background sweeps
            clock: Monotonic clock, injectable for tests
        """
        self.ttl = ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: dict[str, CachedVerification] = {}
        self._scheduler: BackgroundScheduler | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> VerificationOutcome | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            self._entries.pop(key, None)
            return None
        return entry.outcome

    def set(self, key: str, outcome: VerificationOutcome, ttl: float | None = None) -> None:
        lifetime = self.ttl if ttl is None else ttl
        self._entries[key] = CachedVerification(
            outcome=outcome,
            expires_at=self._clock() + lifetime,
        )

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def sweep(self) -> int:
        """Remove every expired entry.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [key for key, entry in list(self._entries.items()) if now >= entry.expires_at]
        for key in expired:
            self._entries.pop(key, None)
        if expired:
            logger.debug(f"Cache sweep removed {len(expired)} expired entries")
        return len(expired)

    def start(self) -> None:
        """Start the background sweep job."""
        if self._scheduler is not None:
            logger.warning("Cache sweeper already started")
            return

        scheduler = BackgroundScheduler(
            job_defaults={"coalesce": True, "max_instances": 1},
            timezone="UTC",
        )
        scheduler.add_job(
            self.sweep,
            trigger="interval",
            seconds=self.sweep_interval,
            id=SWEEP_JOB_ID,
            replace_existing=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info(f"Cache sweeper started, interval {self.sweep_interval}s")

    def shutdown(self, wait: bool = False) -> None:
        """Stop the background sweep job."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=wait)
            self._scheduler = None
            logger.info("Cache sweeper shutdown")

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None
