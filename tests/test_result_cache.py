"""Tests for the verification result cache."""

from datetime import datetime, timezone

from clearverify.cache import SWEEP_JOB_ID, ResultCache, fingerprint
from clearverify.models import EligibilityStatus, OutcomeStatus, VerificationOutcome


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def _outcome(verification_id: str = "v-1") -> VerificationOutcome:
    return VerificationOutcome(
        verification_id=verification_id,
        status=OutcomeStatus.VERIFIED,
        eligibility_status=EligibilityStatus.ACTIVE,
        payer_id="bcbs_florida",
        verified_at=datetime(2024, 1, 15, tzinfo=timezone.utc),
    )


class TestFingerprint:
    """Cache keys identify payer, member and procedure only."""

    def test_stable(self, sample_query) -> None:
        assert fingerprint(sample_query) == fingerprint(sample_query)
        assert len(fingerprint(sample_query)) == 64

    def test_procedure_case_insensitive(self, make_query) -> None:
        assert fingerprint(make_query("cigna", "d2391")) == fingerprint(make_query("cigna", "D2391"))

    def test_distinct_queries(self, make_query) -> None:
        base = fingerprint(make_query("cigna"))
        assert fingerprint(make_query("aetna")) != base
        assert fingerprint(make_query("cigna", "D0120")) != base
        assert fingerprint(make_query("cigna", member_id="X999")) != base

    def test_member_id_not_in_key(self, sample_query) -> None:
        assert "W123456789" not in fingerprint(sample_query)


class TestResultCache:
    """Tests for TTL expiry and sweeping."""

    def test_set_and_get(self) -> None:
        cache = ResultCache(ttl=60, clock=FakeClock())
        outcome = _outcome()
        cache.set("key", outcome)

        assert cache.get("key") is outcome
        assert cache.has("key")
        assert len(cache) == 1

    def test_miss(self) -> None:
        assert ResultCache().get("missing") is None

    def test_expires_lazily(self) -> None:
        clock = FakeClock()
        cache = ResultCache(ttl=60, clock=clock)
        cache.set("key", _outcome())

        clock.now += 59
        assert cache.get("key") is not None
        clock.now += 1
        assert cache.get("key") is None
        assert len(cache) == 0

    def test_per_entry_ttl(self) -> None:
        clock = FakeClock()
        cache = ResultCache(ttl=3600, clock=clock)
        cache.set("short", _outcome(), ttl=10)

        clock.now += 11
        assert not cache.has("short")

    def test_overwrite(self) -> None:
        cache = ResultCache(clock=FakeClock())
        cache.set("key", _outcome("v-1"))
        cache.set("key", _outcome("v-2"))

        assert cache.get("key").verification_id == "v-2"

    def test_delete_and_clear(self) -> None:
        cache = ResultCache(clock=FakeClock())
        cache.set("a", _outcome())
        cache.set("b", _outcome())

        assert cache.delete("a") is True
        assert cache.delete("a") is False
        cache.clear()
        assert len(cache) == 0

    def test_sweep_removes_only_expired(self) -> None:
        clock = FakeClock()
        cache = ResultCache(ttl=60, clock=clock)
        cache.set("old", _outcome())
        clock.now += 30
        cache.set("new", _outcome())
        clock.now += 40

        assert cache.sweep() == 1
        assert not cache.has("old")
        assert cache.has("new")


class TestSweeper:
    """Tests for the background sweep job."""

    def test_start_and_shutdown(self) -> None:
        cache = ResultCache(sweep_interval=3600)
        cache.start()
        try:
            assert cache.is_running
            assert cache._scheduler.get_job(SWEEP_JOB_ID) is not None
        finally:
            cache.shutdown()

        assert not cache.is_running

    def test_start_twice(self) -> None:
        cache = ResultCache(sweep_interval=3600)
        cache.start()
        scheduler = cache._scheduler
        try:
            cache.start()
            assert cache._scheduler is scheduler
        finally:
            cache.shutdown()

    def test_shutdown_without_start(self) -> None:
        ResultCache().shutdown()
