"""Tests for concurrent dispatch and fault isolation."""

import asyncio

import pytest

from consilium.cache.store import ConsultationCache
from consilium.conference.coordination import CoordinationConference
from consilium.config import ConsultationSettings
from consilium.dispatch.dispatcher import Dispatcher, consult_isolated
from consilium.exceptions import ConsultationFailed
from consilium.models import DispatchMode, OpinionStatus, SessionStatus
from consilium.routing.router import Router
from consilium.specialists.static import StaticSpecialist
from consilium.synthesis.engine import SynthesisEngine


def build_dispatcher(specialists, settings, cache=None, on_complete=None):
    return Dispatcher(
        specialists,
        CoordinationConference(),
        SynthesisEngine(),
        cache if cache is not None else ConsultationCache(),
        settings,
        on_complete=on_complete,
    )


async def triaged(specialists, case, settings, mode=DispatchMode.NORMAL, requested=None):
    return await Router(specialists, settings).triage(case, mode, requested)


# =============================================================================
# ISOLATED CALLS
# =============================================================================


class TestConsultIsolated:
    """Tests for consult_isolated fault conversion."""

    @pytest.mark.asyncio
    async def test_success_sets_latency(self, make_opinion, sample_case):
        port = StaticSpecialist(make_opinion("pain_whisperer"), delay=0.01)
        opinion = await consult_isolated("pain_whisperer", port, sample_case, {}, 1.0)
        assert opinion.succeeded
        assert opinion.latency_ms >= 5

    @pytest.mark.asyncio
    async def test_timeout_becomes_record(self, make_opinion, sample_case):
        port = StaticSpecialist(make_opinion("pain_whisperer"), delay=1.0)
        opinion = await consult_isolated("pain_whisperer", port, sample_case, {}, 0.05, "pain_management")
        assert opinion.status == OpinionStatus.TIMEOUT
        assert opinion.domain == "pain_management"
        assert opinion.primary_findings == []

    @pytest.mark.asyncio
    async def test_exception_becomes_failed(self, make_opinion, sample_case):
        port = StaticSpecialist(make_opinion("pain_whisperer"), error=ValueError("bad output"))
        opinion = await consult_isolated("pain_whisperer", port, sample_case, {}, 1.0)
        assert opinion.status == OpinionStatus.FAILED
        assert "bad output" in opinion.error

    @pytest.mark.asyncio
    async def test_unregistered_is_unavailable(self, sample_case):
        opinion = await consult_isolated("ghost", None, sample_case, {}, 1.0)
        assert opinion.status == OpinionStatus.UNAVAILABLE

    @pytest.mark.asyncio
    async def test_wrong_signature_is_failed(self, make_opinion, sample_case):
        port = StaticSpecialist(make_opinion("mind_mender"))
        opinion = await consult_isolated("pain_whisperer", port, sample_case, {}, 1.0)
        assert opinion.status == OpinionStatus.FAILED
        assert opinion.specialist_id == "pain_whisperer"


# =============================================================================
# NORMAL MODE
# =============================================================================


class TestNormalDispatch:
    """Tests for blocking dispatch."""

    @pytest.mark.asyncio
    async def test_completes_to_synthesis(self, static_specialists, sample_case, fast_settings):
        session = await triaged(static_specialists, sample_case, fast_settings)
        result = await build_dispatcher(static_specialists, fast_settings).dispatch(session)

        assert result.status == SessionStatus.SYNTHESIZED
        assert set(result.opinions) == {"triage", "mind_mender", "pain_whisperer"}
        assert result.conference is not None
        assert result.plan is not None
        assert [h.to_status for h in result.history] == [
            "triaged", "dispatched", "conferenced", "synthesized",
        ]

    @pytest.mark.asyncio
    async def test_timeout_does_not_cancel_siblings(self, static_specialists, make_opinion, sample_case, fast_settings):
        static_specialists["mind_mender"] = StaticSpecialist(make_opinion("mind_mender"), delay=5.0)
        session = await triaged(static_specialists, sample_case, fast_settings)
        result = await build_dispatcher(static_specialists, fast_settings).dispatch(session)

        assert result.opinions["mind_mender"].status == OpinionStatus.TIMEOUT
        assert result.opinions["pain_whisperer"].succeeded
        assert result.plan.non_contributing_specialists == {"mind_mender": "timeout"}
        assert result.plan.contributing_specialists == ["pain_whisperer", "triage"]

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self, static_specialists, make_opinion, sample_case, fast_settings):
        static_specialists["pain_whisperer"] = StaticSpecialist(
            make_opinion("pain_whisperer"), error=RuntimeError("rate limited")
        )
        session = await triaged(static_specialists, sample_case, fast_settings)
        result = await build_dispatcher(static_specialists, fast_settings).dispatch(session)

        assert result.status == SessionStatus.SYNTHESIZED
        assert result.opinions["pain_whisperer"].status == OpinionStatus.FAILED
        assert result.opinions["mind_mender"].succeeded

    @pytest.mark.asyncio
    async def test_unregistered_specialist_recorded(self, static_specialists, sample_case, fast_settings):
        session = await triaged(static_specialists, sample_case, fast_settings, requested=["ghost"])
        result = await build_dispatcher(static_specialists, fast_settings).dispatch(session)
        assert result.opinions["ghost"].status == OpinionStatus.UNAVAILABLE
        assert result.plan.non_contributing_specialists["ghost"] == "unavailable"

    @pytest.mark.asyncio
    async def test_prior_answers_snapshot_holds_triage(self, static_specialists, sample_case, fast_settings):
        session = await triaged(static_specialists, sample_case, fast_settings)
        await build_dispatcher(static_specialists, fast_settings).dispatch(session)

        for sid in ("mind_mender", "pain_whisperer"):
            prior = static_specialists[sid].calls[0]["prior_answers"]
            assert list(prior) == ["triage"]
            with pytest.raises(TypeError):
                prior["intruder"] = None

    @pytest.mark.asyncio
    async def test_zero_successes_fails_session(self, triage_opinion, make_opinion, sample_case, fast_settings):
        failing = {
            "triage": StaticSpecialist(triage_opinion, error=RuntimeError("down")),
            "strength_sage": StaticSpecialist(make_opinion("strength_sage"), error=RuntimeError("down")),
        }
        cache = ConsultationCache()
        completed = []
        session = await triaged(failing, sample_case, fast_settings)
        dispatcher = build_dispatcher(failing, fast_settings, cache, on_complete=completed.append)

        with pytest.raises(ConsultationFailed) as exc_info:
            await dispatcher.dispatch(session)

        assert exc_info.value.responded_specialists == ["strength_sage", "triage"]
        assert exc_info.value.session.status == SessionStatus.FAILED
        cached = await cache.get(session.fingerprint)
        assert cached.status == SessionStatus.FAILED
        assert completed and completed[0].status == SessionStatus.FAILED

    @pytest.mark.asyncio
    async def test_session_deadline_records_timeouts(self, static_specialists, make_opinion, sample_case):
        settings = ConsultationSettings(specialist_timeout_seconds=5.0, session_deadline_seconds=0.1)
        static_specialists["mind_mender"] = StaticSpecialist(make_opinion("mind_mender"), delay=2.0)
        session = await triaged(static_specialists, sample_case, settings)
        result = await build_dispatcher(static_specialists, settings).dispatch(session)

        assert result.opinions["mind_mender"].status == OpinionStatus.TIMEOUT
        assert result.opinions["mind_mender"].error == "session deadline elapsed"
        assert result.status == SessionStatus.SYNTHESIZED


# =============================================================================
# FAST MODE
# =============================================================================


class TestFastDispatch:
    """Tests for fast mode and background completion."""

    @pytest.mark.asyncio
    async def test_returns_partial_then_completes(self, static_specialists, make_opinion, sample_case, fast_settings):
        static_specialists["pain_whisperer"] = StaticSpecialist(make_opinion("pain_whisperer"), delay=0.1)
        cache = ConsultationCache()
        dispatcher = build_dispatcher(static_specialists, fast_settings, cache)
        session = await triaged(static_specialists, sample_case, fast_settings, DispatchMode.FAST)

        partial = await dispatcher.dispatch(session, DispatchMode.FAST)
        assert partial.status == SessionStatus.DISPATCHED
        assert list(partial.opinions) == ["triage"]
        assert dispatcher.in_flight(sample_case.fingerprint()) is not None

        await dispatcher.drain()
        cached = await cache.get(sample_case.fingerprint())
        assert cached.status == SessionStatus.SYNTHESIZED
        assert cached.session_id == partial.session_id
        assert partial.status == SessionStatus.DISPATCHED
        assert dispatcher.in_flight(sample_case.fingerprint()) is None
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_background_failure_is_cached(self, triage_opinion, make_opinion, sample_case, fast_settings):
        specialists = {
            "triage": StaticSpecialist(triage_opinion, error=RuntimeError("down")),
            "strength_sage": StaticSpecialist(make_opinion("strength_sage"), delay=5.0),
        }
        cache = ConsultationCache()
        dispatcher = build_dispatcher(specialists, fast_settings, cache)
        session = await triaged(specialists, sample_case, fast_settings, DispatchMode.FAST)

        await dispatcher.dispatch(session, DispatchMode.FAST)
        await dispatcher.drain()

        cached = await cache.get(sample_case.fingerprint())
        assert cached.status == SessionStatus.FAILED
        assert cached.opinions["strength_sage"].status == OpinionStatus.TIMEOUT

    @pytest.mark.asyncio
    async def test_cancel_keeps_recorded_opinions(self, static_specialists, make_opinion, sample_case):
        settings = ConsultationSettings(specialist_timeout_seconds=10.0, session_deadline_seconds=10.0)
        static_specialists["mind_mender"] = StaticSpecialist(make_opinion("mind_mender"), delay=5.0)
        cache = ConsultationCache()
        dispatcher = build_dispatcher(static_specialists, settings, cache)
        session = await triaged(static_specialists, sample_case, settings, DispatchMode.FAST)

        await dispatcher.dispatch(session, DispatchMode.FAST)
        await asyncio.sleep(0.05)
        assert dispatcher.cancel(sample_case.fingerprint())
        await dispatcher.drain()

        cached = await cache.get(sample_case.fingerprint())
        assert cached.opinions["pain_whisperer"].succeeded
        assert "mind_mender" not in cached.opinions
        assert cached.status == SessionStatus.DISPATCHED
        assert not dispatcher.cancel(sample_case.fingerprint())
