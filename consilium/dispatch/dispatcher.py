"""
Specialist Dispatcher - concurrent fan-out/fan-in over the selected specialists.

Every call runs as its own task with its own deadline. A timeout or error
in one call is recorded on that specialist's opinion and never cancels its
siblings. Only a session where nobody succeeded fails as a whole.

Two delivery modes:
- normal: fan out, wait for every call or the session deadline, then run
  the coordination conference and synthesis before returning.
- fast: return the triaged session immediately and finish the rest in a
  background task that writes the completed session back to the cache
  under the same fingerprint.
"""

import asyncio
import logging
from types import MappingProxyType
from typing import Callable, Mapping, Optional

from consilium.cache.store import ConsultationCache
from consilium.conference.coordination import CoordinationConference
from consilium.config import ConsultationSettings
from consilium.exceptions import (
    ConsiliumError,
    ConsultationFailed,
    SpecialistError,
    SpecialistTimeout,
    SpecialistUnavailable,
)
from consilium.models.case import Case
from consilium.models.enums import DispatchMode, SessionStatus
from consilium.models.opinion import SpecialistOpinion
from consilium.models.session import ConsultationSession
from consilium.specialists.catalog import DEFAULT_CATALOG, SpecialistProfile, domain_of
from consilium.synthesis.engine import SynthesisEngine
from consilium.utils.protocols import SpecialistPort


logger = logging.getLogger(__name__)


CompletionCallback = Callable[[ConsultationSession], None]


# =============================================================================
# ISOLATED CALL
# =============================================================================


async def _invoke(
    specialist_id: str,
    port: Optional[SpecialistPort],
    case: Case,
    prior_answers: Mapping[str, SpecialistOpinion],
    timeout: float,
) -> SpecialistOpinion:
    """Call one specialist, raising the specialist error taxonomy on failure."""
    if port is None:
        raise SpecialistUnavailable(specialist_id)

    deadline = asyncio.get_running_loop().time() + timeout
    try:
        opinion = await asyncio.wait_for(
            port.consult(case, prior_answers, deadline),
            timeout=timeout,
        )
    except asyncio.TimeoutError as exc:
        raise SpecialistTimeout(specialist_id, timeout) from exc
    except ConsiliumError:
        raise
    except Exception as exc:
        raise SpecialistError(specialist_id, f"{type(exc).__name__}: {exc}") from exc

    if not isinstance(opinion, SpecialistOpinion):
        raise SpecialistError(specialist_id, f"returned {type(opinion).__name__}, not an opinion")
    if opinion.specialist_id != specialist_id:
        raise SpecialistError(
            specialist_id, f"opinion is signed by '{opinion.specialist_id}'"
        )
    return opinion


async def consult_isolated(
    specialist_id: str,
    port: Optional[SpecialistPort],
    case: Case,
    prior_answers: Mapping[str, SpecialistOpinion],
    timeout: float,
    domain: str = "unknown",
) -> SpecialistOpinion:
    """
    Call one specialist and turn any fault into a status opinion.

    Args:
        specialist_id: Id the opinion must be recorded under
        port: The registered implementation, or None if not registered
        case: Case under consultation
        prior_answers: Read-only snapshot of earlier opinions
        timeout: Per-call deadline in seconds
        domain: Domain recorded on non-success opinions

    Returns:
        The specialist's own opinion, or a ``timeout``/``failed``/
        ``unavailable`` record with empty findings. Only cancellation
        propagates.
    """
    loop = asyncio.get_running_loop()
    started = loop.time()

    def elapsed_ms() -> int:
        return int((loop.time() - started) * 1000)

    try:
        opinion = await _invoke(specialist_id, port, case, prior_answers, timeout)
    except SpecialistUnavailable as exc:
        logger.warning(str(exc))
        return SpecialistOpinion.unavailable(specialist_id, domain)
    except SpecialistTimeout as exc:
        logger.warning(str(exc))
        return SpecialistOpinion.timed_out(specialist_id, domain, elapsed_ms(), str(exc))
    except SpecialistError as exc:
        logger.warning(str(exc), exc_info=exc.__cause__ is not None)
        return SpecialistOpinion.failed(specialist_id, domain, str(exc), elapsed_ms())

    if opinion.latency_ms == 0:
        opinion = opinion.model_copy(update={"latency_ms": elapsed_ms()})
    return opinion


# =============================================================================
# DISPATCHER
# =============================================================================


class Dispatcher:
    """Fans a triaged session out to its specialists and drives it to a plan."""

    def __init__(
        self,
        specialists: Mapping[str, SpecialistPort],
        conference: CoordinationConference,
        synthesis: SynthesisEngine,
        cache: ConsultationCache,
        settings: Optional[ConsultationSettings] = None,
        catalog: Mapping[str, SpecialistProfile] = DEFAULT_CATALOG,
        on_complete: Optional[CompletionCallback] = None,
    ):
        self.specialists = MappingProxyType(dict(specialists))
        self.conference = conference
        self.synthesis = synthesis
        self.cache = cache
        self.settings = settings or ConsultationSettings()
        self.catalog = catalog
        self.on_complete = on_complete
        self._background: dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def dispatch(
        self,
        session: ConsultationSession,
        mode: DispatchMode = DispatchMode.NORMAL,
    ) -> ConsultationSession:
        """
        Dispatch a triaged session.

        Args:
            session: Session produced by the Router (status ``triaged``)
            mode: ``fast`` returns right away, ``normal`` blocks until synthesis

        Returns:
            The completed session. In fast mode, a snapshot of the partial
            session (status ``dispatched``, triage opinion only) while the
            original keeps being completed in the background.

        Raises:
            ConsultationFailed: normal mode only, when no opinion succeeded
        """
        mode = DispatchMode(mode)
        session.mode = mode.value

        if mode == DispatchMode.FAST:
            session.transition(SessionStatus.DISPATCHED, "fast mode: returning triage result")
            await self.cache.write(session.fingerprint, session)
            partial = session.snapshot()
            self._start_background(session)
            return partial

        session.transition(SessionStatus.DISPATCHED, f"fan-out to {len(session.pending_specialists())} specialists")
        await self._complete(session)
        return session

    def in_flight(self, fingerprint: str) -> Optional[asyncio.Task]:
        """Background completion task for a fingerprint, if one is running."""
        task = self._background.get(fingerprint)
        if task is None or task.done():
            return None
        return task

    def cancel(self, fingerprint: str) -> bool:
        """Stop background work for a fingerprint. Recorded opinions are kept."""
        task = self.in_flight(fingerprint)
        if task is None:
            return False
        task.cancel()
        return True

    async def drain(self) -> None:
        """Wait for all background completions to finish."""
        tasks = [t for t in self._background.values() if not t.done()]
        if not tasks:
            return
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error("Background consultation crashed: %s", result, exc_info=result)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _start_background(self, session: ConsultationSession) -> None:
        fingerprint = session.fingerprint
        task = asyncio.create_task(
            self._complete_in_background(session),
            name=f"consultation:{session.session_id}",
        )
        self._background[fingerprint] = task

        def _forget(done: asyncio.Task) -> None:
            if self._background.get(fingerprint) is done:
                del self._background[fingerprint]

        task.add_done_callback(_forget)

    async def _complete_in_background(self, session: ConsultationSession) -> ConsultationSession:
        try:
            await self._complete(session)
        except ConsultationFailed as exc:
            # Already written to the cache as a failed session for pollers
            logger.error("Background consultation %s failed: %s", session.session_id, exc)
        except asyncio.CancelledError:
            logger.info(
                "Background consultation %s cancelled with %d opinion(s) recorded",
                session.session_id,
                len(session.opinions),
            )
            await self.cache.write(session.fingerprint, session)
            raise
        return session

    async def _complete(self, session: ConsultationSession) -> None:
        """Fan out, then conference and synthesis; fails the session if nobody succeeded."""
        await self._fan_out(session)

        successes = session.successful_opinions()
        logger.info(
            "Session %s fan-in: %d/%d successful opinion(s)",
            session.session_id,
            len(successes),
            len(session.opinions),
        )
        if not successes:
            raise await self._mark_failed(session)

        conference = self.conference.run(session.opinions.values())
        session.conference = conference
        session.transition(SessionStatus.CONFERENCED, str(conference.summary()))

        session.plan = self.synthesis.synthesize(session, conference)
        session.transition(
            SessionStatus.SYNTHESIZED,
            f"overall confidence {session.plan.confidence_factors.overall:.2f}",
        )
        await self.cache.write(session.fingerprint, session)

        if self.on_complete:
            self.on_complete(session)

    async def _mark_failed(self, session: ConsultationSession) -> ConsultationFailed:
        responded = session.responded_specialists()
        message = (
            f"No specialist produced a usable opinion for case {session.case_id} "
            f"({', '.join(f'{sid}={o.status}' for sid, o in sorted(session.opinions.items()))})"
        )
        session.error = message
        session.transition(SessionStatus.FAILED, message)
        await self.cache.write(session.fingerprint, session)
        logger.error(message)

        if self.on_complete:
            self.on_complete(session)
        return ConsultationFailed(message, session=session, responded_specialists=responded)

    async def _fan_out(self, session: ConsultationSession) -> None:
        pending = session.pending_specialists()
        if not pending:
            return

        # Taken once before fan-out and never updated while calls are in flight
        prior_answers = MappingProxyType(dict(session.opinions))
        timeout = self.settings.specialist_timeout_seconds

        tasks: dict[str, asyncio.Task] = {
            specialist_id: asyncio.create_task(
                consult_isolated(
                    specialist_id,
                    self.specialists.get(specialist_id),
                    session.case,
                    prior_answers,
                    timeout,
                    domain_of(specialist_id, self.catalog),
                ),
                name=f"consult:{specialist_id}",
            )
            for specialist_id in pending
        }

        try:
            done, _ = await asyncio.wait(
                tasks.values(),
                timeout=self.settings.session_deadline_seconds,
            )
        except asyncio.CancelledError:
            # Keep whatever already answered; stop the rest
            for specialist_id in sorted(tasks):
                task = tasks[specialist_id]
                if task.done() and not task.cancelled():
                    session.record_opinion(task.result())
                else:
                    task.cancel()
            raise

        for specialist_id in sorted(tasks):
            task = tasks[specialist_id]
            if task in done and not task.cancelled():
                opinion = task.result()
            else:
                task.cancel()
                logger.warning(
                    "Specialist '%s' still running at the session deadline; recorded as timeout",
                    specialist_id,
                )
                opinion = SpecialistOpinion.timed_out(
                    specialist_id,
                    domain_of(specialist_id, self.catalog),
                    int(self.settings.session_deadline_seconds * 1000),
                    "session deadline elapsed",
                )
            session.record_opinion(opinion)
