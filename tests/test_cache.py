"""Tests for the consultation cache."""

import asyncio

import pytest

from consilium.cache.store import ConsultationCache
from consilium.exceptions import CacheWriteConflict
from consilium.models import (
    Case,
    ConsultationSession,
    MilestoneReport,
    ProgressStatus,
    RoutingDecision,
    SessionStatus,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def make_session(query="knee pain", opinions=()):
    case = Case(raw_query=query)
    session = ConsultationSession(
        case=case,
        fingerprint=case.fingerprint(),
        routing=RoutingDecision(selected_specialists=["pain_whisperer"]),
    )
    for opinion in opinions:
        session.record_opinion(opinion)
    return session


class TestReadsAndWrites:

    @pytest.mark.asyncio
    async def test_miss(self):
        cache = ConsultationCache()
        assert await cache.get("consultation:absent") is None
        assert cache.stats.misses == 1

    @pytest.mark.asyncio
    async def test_write_then_get_returns_copy(self):
        cache = ConsultationCache()
        session = make_session()
        await cache.write(session.fingerprint, session)

        stored = await cache.get(session.fingerprint)
        stored.transition(SessionStatus.FAILED)

        again = await cache.get(session.fingerprint)
        assert again.status == SessionStatus.TRIAGED
        assert cache.stats.hits == 2

    @pytest.mark.asyncio
    async def test_writer_mutation_does_not_leak(self):
        cache = ConsultationCache()
        session = make_session()
        await cache.write(session.fingerprint, session)
        session.error = "changed after write"
        assert (await cache.get(session.fingerprint)).error is None

    @pytest.mark.asyncio
    async def test_versions_increment(self):
        cache = ConsultationCache()
        session = make_session()
        assert await cache.write(session.fingerprint, session) == 1
        assert await cache.write(session.fingerprint, session) == 2
        _, version = await cache.get_versioned(session.fingerprint)
        assert version == 2

    @pytest.mark.asyncio
    async def test_stale_commit_conflicts(self):
        cache = ConsultationCache()
        session = make_session()
        await cache.commit(session.fingerprint, session, expected_version=0)

        with pytest.raises(CacheWriteConflict) as exc_info:
            await cache.commit(session.fingerprint, session, expected_version=0)
        assert exc_info.value.actual_version == 1
        assert cache.stats.conflicts == 1

    @pytest.mark.asyncio
    async def test_concurrent_writes_all_land(self):
        cache = ConsultationCache(write_attempts=50)
        session = make_session()
        versions = await asyncio.gather(*[
            cache.write(session.fingerprint, session) for _ in range(10)
        ])
        assert sorted(versions) == list(range(1, 11))

    @pytest.mark.asyncio
    async def test_lookup_by_session_id(self):
        cache = ConsultationCache()
        session = make_session()
        await cache.write(session.fingerprint, session)
        found = await cache.get_by_session_id(session.session_id)
        assert found.fingerprint == session.fingerprint
        assert await cache.get_by_session_id("unknown") is None

    @pytest.mark.asyncio
    async def test_invalidate(self):
        cache = ConsultationCache()
        session = make_session()
        await cache.write(session.fingerprint, session)
        await cache.invalidate(session.fingerprint)
        assert session.fingerprint not in cache
        assert await cache.get_by_session_id(session.session_id) is None


class TestExpiryAndEviction:

    @pytest.mark.asyncio
    async def test_ttl_expiry(self):
        clock = FakeClock()
        cache = ConsultationCache(ttl_seconds=60, clock=clock)
        session = make_session()
        await cache.write(session.fingerprint, session)

        clock.now += 59
        assert session.fingerprint in cache
        clock.now += 1
        assert await cache.get(session.fingerprint) is None
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_lru_eviction(self):
        cache = ConsultationCache(max_entries=2)
        first, second, third = make_session("a"), make_session("b"), make_session("c")
        await cache.write(first.fingerprint, first)
        await cache.write(second.fingerprint, second)
        await cache.get(first.fingerprint)  # first is now most recently used
        await cache.write(third.fingerprint, third)

        assert first.fingerprint in cache
        assert second.fingerprint not in cache
        assert await cache.get_by_session_id(second.session_id) is None
        assert cache.stats.evictions == 1

    def test_stats_dict(self):
        stats = ConsultationCache().stats
        stats.hits, stats.misses = 3, 1
        assert stats.as_dict()["hit_rate"] == 0.75


class TestHistory:

    @pytest.mark.asyncio
    async def test_history_for(self, make_opinion):
        cache = ConsultationCache()
        session = make_session(opinions=[make_opinion("pain_whisperer")])
        for day, status in ((14, ProgressStatus.ON_TRACK), (28, ProgressStatus.CONCERNING)):
            session.append_milestone(MilestoneReport(
                session_id=session.session_id,
                checkpoint_day=day,
                adherence=0.8,
                progress_status=status,
                reassessment_triggered=False,
                next_checkpoint_day=day + 14,
            ))
        await cache.write(session.fingerprint, session)

        history = cache.history_for("pain_whisperer")
        assert history.assessments == 1
        assert history.outcomes_recorded == 2
        assert history.success_rate == 0.5
        assert cache.history_for("mind_mender").assessments == 0


BACK_PAIN = {
    "symptoms": ["lower back pain", "stiffness in the morning"],
    "primary_complaint": "back pain",
    "location": "lower back",
    "age": 42,
    "duration": "6 weeks",
}


def planned_session(status=SessionStatus.SYNTHESIZED, **fields):
    case = Case(structured_fields={**BACK_PAIN, **fields})
    session = ConsultationSession(
        case=case,
        fingerprint=case.fingerprint(),
        routing=RoutingDecision(selected_specialists=["pain_whisperer"]),
    )
    session.transition(status)
    return session


class TestFindSimilar:

    @pytest.mark.asyncio
    async def test_similar_case_found(self):
        cache = ConsultationCache()
        stored = planned_session()
        await cache.write(stored.fingerprint, stored)

        match = await cache.find_similar(Case(structured_fields={**BACK_PAIN, "age": 45, "duration": "7 weeks"}))

        assert match.session.session_id == stored.session_id
        assert match.similarity == pytest.approx(0.957)
        assert match.breakdown.location_match and match.breakdown.complaint_match
        assert cache.stats.similar_hits == 1

    @pytest.mark.asyncio
    async def test_best_match_wins(self):
        cache = ConsultationCache()
        close, far = planned_session(age=44), planned_session(age=70, symptoms=["lower back pain"])
        for session in (far, close):
            await cache.write(session.fingerprint, session)

        match = await cache.find_similar(Case(structured_fields={**BACK_PAIN, "age": 43}))
        assert match.session.session_id == close.session_id

    @pytest.mark.asyncio
    async def test_own_fingerprint_skipped(self):
        cache = ConsultationCache()
        stored = planned_session()
        await cache.write(stored.fingerprint, stored)
        assert await cache.find_similar(stored.case) is None

    @pytest.mark.asyncio
    async def test_unplanned_sessions_skipped(self):
        cache = ConsultationCache()
        stored = planned_session(status=SessionStatus.DISPATCHED)
        await cache.write(stored.fingerprint, stored)
        assert await cache.find_similar(Case(structured_fields={**BACK_PAIN, "age": 45})) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("fields", [
        {"severity": "critical"},
        {"red_flags": ["saddle numbness"]},
    ])
    async def test_different_urgency_never_matches(self, fields):
        cache = ConsultationCache()
        stored = planned_session()
        await cache.write(stored.fingerprint, stored)
        assert await cache.find_similar(Case(structured_fields={**BACK_PAIN, "age": 45, **fields})) is None

    @pytest.mark.asyncio
    async def test_different_complaint_and_location(self):
        cache = ConsultationCache()
        stored = planned_session()
        await cache.write(stored.fingerprint, stored)
        other = Case(structured_fields={**BACK_PAIN, "location": "knee", "primary_complaint": "swelling"})
        assert await cache.find_similar(other) is None

    @pytest.mark.asyncio
    async def test_below_threshold(self):
        cache = ConsultationCache()
        stored = planned_session()
        await cache.write(stored.fingerprint, stored)
        other = Case(structured_fields={**BACK_PAIN, "symptoms": ["sciatica"], "age": 80, "duration": "2 years"})
        assert await cache.find_similar(other) is None
        assert cache.stats.similar_hits == 0


class TestKeyLocks:

    @pytest.mark.asyncio
    async def test_locks_dropped_after_writes(self):
        cache = ConsultationCache(write_attempts=50)
        session = make_session()
        await asyncio.gather(*[cache.write(session.fingerprint, session) for _ in range(5)])
        await cache.invalidate(session.fingerprint)
        assert len(cache._key_locks) == 0

    @pytest.mark.asyncio
    async def test_locks_dropped_after_expiry_and_eviction(self):
        clock = FakeClock()
        cache = ConsultationCache(max_entries=1, ttl_seconds=60, clock=clock)
        for query in ("a", "b", "c"):
            session = make_session(query)
            await cache.write(session.fingerprint, session)
        clock.now += 60
        await cache.clear()
        assert len(cache._key_locks) == 0
