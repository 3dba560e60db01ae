"""
Outcome emission.

The engine tells a RewardSink how consultations and milestones turned out,
one event per contributing specialist. Emission is fire-and-forget: a
failing sink is logged and never affects the consultation.
"""

import logging
from typing import Optional

from consilium.models.enums import ProgressStatus, SessionStatus
from consilium.models.milestone import MilestoneReport, RecoveryOutcome
from consilium.models.outcome import OutcomeSignal
from consilium.models.session import ConsultationSession
from consilium.utils.protocols import RewardSink


logger = logging.getLogger(__name__)


class LoggingRewardSink:
    """Default sink: records outcomes in the log and keeps them in memory."""

    def __init__(self):
        self.events: list[tuple[str, OutcomeSignal]] = []

    def emit_outcome(self, specialist_id: str, outcome_signal: OutcomeSignal) -> None:
        self.events.append((specialist_id, outcome_signal))
        logger.info(
            "Outcome %s for %s (session %s, success=%s)",
            outcome_signal.kind,
            specialist_id,
            outcome_signal.session_id,
            outcome_signal.success,
        )


class OutcomeEmitter:
    """Turns session events into per-specialist outcome signals."""

    def __init__(self, sink: Optional[RewardSink] = None):
        self.sink = sink or LoggingRewardSink()

    def consultation_finished(self, session: ConsultationSession) -> None:
        succeeded = session.status != SessionStatus.FAILED
        kind = "consultation_completed" if succeeded else "consultation_failed"
        for specialist_id, opinion in sorted(session.opinions.items()):
            self._emit(specialist_id, OutcomeSignal(
                kind=kind,
                session_id=session.session_id,
                success=opinion.succeeded,
                specialist_confidence=opinion.confidence if opinion.succeeded else None,
                detail={"opinion_status": opinion.status, "session_status": session.status},
            ))

    def milestone_evaluated(self, session: ConsultationSession, report: MilestoneReport) -> None:
        on_track = report.progress_status == ProgressStatus.ON_TRACK
        for specialist_id in session.plan.contributing_specialists if session.plan else []:
            self._emit(specialist_id, OutcomeSignal(
                kind="milestone_evaluated",
                session_id=session.session_id,
                success=on_track,
                detail={
                    "checkpoint_day": report.checkpoint_day,
                    "progress_status": report.progress_status,
                    "adherence": report.adherence,
                },
            ))

    def recovery_completed(self, session: ConsultationSession, outcome: RecoveryOutcome) -> None:
        for specialist_id in session.plan.contributing_specialists if session.plan else []:
            self._emit(specialist_id, OutcomeSignal(
                kind="recovery_completed",
                session_id=session.session_id,
                success=outcome.overall_success,
                detail={
                    "recovery_day": outcome.recovery_day,
                    "goals": dict(outcome.goals),
                    "benchmarks": dict(outcome.benchmarks),
                },
            ))

    def _emit(self, specialist_id: str, signal: OutcomeSignal) -> None:
        try:
            self.sink.emit_outcome(specialist_id, signal)
        except Exception:
            logger.exception("Reward sink rejected %s outcome for %s", signal.kind, specialist_id)
