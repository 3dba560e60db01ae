"""
Consultation Orchestrator.

Wires the pipeline together from a static specialist table given at
construction:

    Router -> Dispatcher -> CoordinationConference -> SynthesisEngine

and owns the entry points callers use: ``consult`` for a new case and
``record_milestone`` for later progress reports. A fingerprint is only
ever consulted once at a time; concurrent requests for the same case join
the consultation already in flight.
"""

import asyncio
import logging
from typing import Mapping, Optional

from consilium.cache.store import ConsultationCache, SimilarCase
from consilium.conference.coordination import CoordinationConference
from consilium.confidence import ConfidenceModel
from consilium.config import ConsultationSettings
from consilium.dispatch.dispatcher import Dispatcher
from consilium.exceptions import ConsultationFailed, SessionNotFound
from consilium.models.case import Case
from consilium.models.enums import DispatchMode, SessionStatus
from consilium.models.milestone import (
    FinalOutcome,
    MilestoneReport,
    ProgressReport,
    RecoveryOutcome,
    RecoveryStatistics,
)
from consilium.models.session import ConsultationSession
from consilium.monitoring.milestones import MilestoneTracker
from consilium.outcomes import OutcomeEmitter
from consilium.routing.router import Router
from consilium.specialists.catalog import DEFAULT_CATALOG, SpecialistProfile
from consilium.specialists.llm_specialist import LLMSpecialist
from consilium.synthesis.engine import SynthesisEngine
from consilium.utils.locks import KeyedLocks
from consilium.utils.protocols import LLMClientProtocol, RewardSink, SpecialistPort


logger = logging.getLogger(__name__)


COMPLETED = (SessionStatus.SYNTHESIZED, SessionStatus.MONITORING)


class ConsultationOrchestrator:
    """Runs consultations and milestone evaluations."""

    def __init__(
        self,
        specialists: Mapping[str, SpecialistPort],
        settings: Optional[ConsultationSettings] = None,
        catalog: Mapping[str, SpecialistProfile] = DEFAULT_CATALOG,
        cache: Optional[ConsultationCache] = None,
        reward_sink: Optional[RewardSink] = None,
    ):
        self.settings = settings or ConsultationSettings()
        self.catalog = catalog
        self.cache = cache or ConsultationCache(
            max_entries=self.settings.cache_max_entries,
            ttl_seconds=self.settings.cache_ttl_seconds,
            write_attempts=self.settings.cache_write_attempts,
        )
        self.confidence_model = ConfidenceModel()
        self.outcomes = OutcomeEmitter(reward_sink)

        self.router = Router(specialists, self.settings, catalog)
        self.conference = CoordinationConference(catalog)
        self.synthesis = SynthesisEngine(self.confidence_model, catalog)
        self.dispatcher = Dispatcher(
            specialists,
            self.conference,
            self.synthesis,
            self.cache,
            self.settings,
            catalog,
            on_complete=self.outcomes.consultation_finished,
        )
        self.tracker = MilestoneTracker(reassessor=self._reassess, settings=self.settings)

        self._in_flight: dict[str, asyncio.Task] = {}
        self._session_locks = KeyedLocks()

    @classmethod
    def with_llm_specialists(
        cls,
        llm_client: LLMClientProtocol,
        settings: Optional[ConsultationSettings] = None,
        catalog: Mapping[str, SpecialistProfile] = DEFAULT_CATALOG,
        reward_sink: Optional[RewardSink] = None,
    ) -> "ConsultationOrchestrator":
        """Build an orchestrator with one LLM-backed specialist per catalog entry."""
        settings = settings or ConsultationSettings()
        cache = ConsultationCache(
            max_entries=settings.cache_max_entries,
            ttl_seconds=settings.cache_ttl_seconds,
            write_attempts=settings.cache_write_attempts,
        )
        colleagues = sorted(catalog)
        specialists = {
            specialist_id: LLMSpecialist(
                profile,
                llm_client,
                colleagues=colleagues,
                settings=settings,
                history_provider=cache.history_for,
            )
            for specialist_id, profile in catalog.items()
        }
        return cls(specialists, settings, catalog, cache, reward_sink)

    # =========================================================================
    # CONSULTATION
    # =========================================================================

    async def consult(
        self,
        case: Case,
        mode: DispatchMode = DispatchMode.NORMAL,
        requested_specialists: Optional[list[str]] = None,
        use_cache: bool = True,
    ) -> ConsultationSession:
        """
        Consult on a case.

        Args:
            case: The submitted case
            mode: ``fast`` returns the triaged session at once, ``normal``
                  returns the synthesized session
            requested_specialists: Specialists to include regardless of routing
            use_cache: Return a completed cached session for the same case

        Returns:
            The session (partial in fast mode)

        Raises:
            ConsultationFailed: no specialist produced a usable opinion
        """
        mode = DispatchMode(mode)
        fingerprint = case.fingerprint()

        if use_cache:
            cached = await self.cache.get(fingerprint)
            if cached is not None and cached.status in COMPLETED:
                logger.info("Cache hit for %s (session %s)", fingerprint, cached.session_id)
                return cached

        background = self.dispatcher.in_flight(fingerprint)
        if background is not None:
            return await self._join_background(fingerprint, background, mode)

        # Registered before triage so a second request for the same case
        # joins this one whatever the modes involved
        task = self._in_flight.get(fingerprint)
        if task is None:
            task = asyncio.create_task(
                self._start(case, mode, requested_specialists),
                name=f"start:{fingerprint}",
            )
            self._in_flight[fingerprint] = task
            task.add_done_callback(lambda done: self._forget_start(fingerprint, done))
        else:
            logger.info("Joining consultation already starting for %s", fingerprint)

        session = await asyncio.shield(task)
        if mode == DispatchMode.NORMAL and session.status == SessionStatus.DISPATCHED:
            # Joined a fast-mode start: wait for its background completion
            return await self._await_completion(fingerprint, session)
        return session.snapshot()

    async def _start(
        self,
        case: Case,
        mode: DispatchMode,
        requested_specialists: Optional[list[str]],
    ) -> ConsultationSession:
        """Triage and dispatch. Fast mode resolves with the partial session."""
        triage_timeout = None
        if mode == DispatchMode.FAST:
            triage_timeout = min(
                self.settings.fast_path_deadline_seconds,
                self.settings.triage_timeout_seconds,
            )
        session = await self.router.triage(
            case,
            mode,
            requested_specialists,
            triage_timeout=triage_timeout,
        )
        return await self.dispatcher.dispatch(session, mode)

    def _forget_start(self, fingerprint: str, done: asyncio.Task) -> None:
        if self._in_flight.get(fingerprint) is done:
            del self._in_flight[fingerprint]

    async def _join_background(
        self,
        fingerprint: str,
        background: asyncio.Task,
        mode: DispatchMode,
    ) -> ConsultationSession:
        """Attach to a fast-mode consultation already running for this case."""
        if mode == DispatchMode.FAST:
            partial = await self.cache.get(fingerprint)
            if partial is not None:
                return partial

        logger.info("Joining in-flight consultation for %s", fingerprint)
        session = await asyncio.shield(background)
        return self._completed(session)

    async def _await_completion(
        self,
        fingerprint: str,
        partial: ConsultationSession,
    ) -> ConsultationSession:
        background = self.dispatcher.in_flight(fingerprint)
        if background is not None:
            return await self._join_background(fingerprint, background, DispatchMode.NORMAL)
        # Background already finished and wrote its result back
        cached = await self.cache.get(fingerprint)
        return self._completed(cached or partial)

    @staticmethod
    def _completed(session: ConsultationSession) -> ConsultationSession:
        if session.status == SessionStatus.FAILED:
            raise ConsultationFailed(
                session.error or "consultation failed",
                session=session.snapshot(),
                responded_specialists=session.responded_specialists(),
            )
        return session.snapshot()

    async def get_session(self, session_id: str) -> ConsultationSession:
        """Look up a session by id."""
        session = await self.cache.get_by_session_id(session_id)
        if session is None:
            raise SessionNotFound(f"Session {session_id} not found")
        return session

    async def get_by_fingerprint(self, fingerprint: str) -> Optional[ConsultationSession]:
        return await self.cache.get(fingerprint)

    async def find_similar(
        self,
        case: Case,
        threshold: Optional[float] = None,
    ) -> Optional[SimilarCase]:
        """
        Completed session of a similar earlier case, for reference.

        Never substituted for a consultation: ``consult`` only reuses
        sessions of the exact same case.
        """
        if threshold is None:
            threshold = self.settings.similarity_threshold
        return await self.cache.find_similar(case, threshold)

    def cancel(self, fingerprint: str) -> bool:
        """Stop background work for a case. Recorded opinions are kept."""
        return self.dispatcher.cancel(fingerprint)

    async def drain(self) -> None:
        """Wait for every background consultation to finish."""
        await self.dispatcher.drain()

    # =========================================================================
    # MONITORING
    # =========================================================================

    async def record_milestone(self, report: ProgressReport) -> MilestoneReport:
        """
        Evaluate a progress report against its session's plan.

        Raises:
            SessionNotFound: unknown session id
            SessionNotReady: session has no plan yet
        """
        async with self._session_locks.hold(report.session_id):
            session = await self.get_session(report.session_id)
            milestone = await self.tracker.evaluate(session, report)
            await self.cache.write(session.fingerprint, session)

        self.outcomes.milestone_evaluated(session, milestone)
        return milestone

    async def _reassess(self, case: Case, parent: ConsultationSession) -> ConsultationSession:
        """Re-route a follow-on case as a new session linked to ``parent``."""
        logger.info("Reassessing session %s as a follow-on consultation", parent.session_id)
        session = await self.router.triage(
            case,
            DispatchMode.NORMAL,
            requested_specialists=parent.routing.selected_specialists,
            parent_session_id=parent.session_id,
        )
        return await self.dispatcher.dispatch(session, DispatchMode.NORMAL)

    async def complete_recovery(self, outcome: FinalOutcome) -> RecoveryOutcome:
        """
        Record a session's final outcome and close its recovery tracking.

        Raises:
            SessionNotFound: unknown session id
            SessionNotReady: session has no plan yet
            RecoveryAlreadyCompleted: the session already has a final outcome
        """
        async with self._session_locks.hold(outcome.session_id):
            session = await self.get_session(outcome.session_id)
            result = self.tracker.complete(session, outcome)
            await self.cache.write(session.fingerprint, session)

        self.outcomes.recovery_completed(session, result)
        return result

    def recovery_statistics(self) -> RecoveryStatistics:
        return self.tracker.statistics()
