"""
Milestone Tracker - re-evaluates a synthesized plan at each checkpoint.

Progress is the percentage improvement of each tracked metric over the
baseline captured when the session was created. Adherence is checked
first: a protocol that was not followed says nothing about whether it
works.

    adherence < 0.7                      -> needs_attention
    every evaluated metric >= threshold  -> on_track
    otherwise                            -> concerning

Anything other than on_track, and any new symptom or concern flag,
triggers a reassessment: the case is re-routed as a new session linked
to the original, whose plan is never modified.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional

from consilium.config import ConsultationSettings
from consilium.exceptions import ConsultationFailed, RecoveryAlreadyCompleted, SessionNotReady
from consilium.models.case import Case
from consilium.models.enums import BenchmarkTier, ProgressStatus, SessionStatus
from consilium.models.milestone import (
    FinalOutcome,
    MetricImprovement,
    MilestoneReport,
    ProgressReport,
    RecoveryOutcome,
    RecoveryStatistics,
)
from consilium.models.session import ConsultationSession


logger = logging.getLogger(__name__)


# =============================================================================
# METRICS
# =============================================================================


@dataclass(frozen=True)
class MetricSpec:
    """How to read improvement on one metric."""

    name: str
    threshold_pct: float
    lower_is_better: bool
    ceiling: Optional[float] = None


METRIC_SPECS: dict[str, MetricSpec] = {
    "pain_level": MetricSpec("pain_level", threshold_pct=25.0, lower_is_better=True),
    "anxiety_level": MetricSpec("anxiety_level", threshold_pct=20.0, lower_is_better=True),
    "functional_score": MetricSpec(
        "functional_score", threshold_pct=20.0, lower_is_better=False, ceiling=100.0
    ),
    "range_of_motion": MetricSpec(
        "range_of_motion", threshold_pct=15.0, lower_is_better=False, ceiling=100.0
    ),
}


def baseline_from_case(case: Case) -> dict[str, float]:
    """Capture the numeric tracked metrics present on a case."""
    baseline: dict[str, float] = {}
    for name in METRIC_SPECS:
        value = case.field(name)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            baseline[name] = float(value)
    return baseline


def improvement_pct(spec: MetricSpec, baseline: float, current: float) -> Optional[float]:
    """
    Percentage improvement of ``current`` over ``baseline``.

    Lower-is-better metrics improve relative to the baseline itself;
    higher-is-better metrics improve relative to the headroom left below
    their ceiling. Returns None when there is nothing to improve on.
    """
    if spec.lower_is_better:
        if baseline <= 0:
            return None
        return (baseline - current) / baseline * 100
    if spec.ceiling is None:
        if baseline <= 0:
            return None
        return (current - baseline) / baseline * 100
    headroom = spec.ceiling - baseline
    if headroom <= 0:
        return None
    return (current - baseline) / headroom * 100


# =============================================================================
# RECOVERY OUTCOME
# =============================================================================

# Pain reduction goal (%) by case severity
PAIN_GOAL_BY_SEVERITY = {"mild": 70.0, "moderate": 60.0, "severe": 50.0}
DEFAULT_PAIN_GOAL_PCT = 60.0
FUNCTIONAL_GOAL_PCT = 75.0
SATISFACTION_GOAL = 7.0

# Share of evaluable criteria that must be met for a successful recovery
SUCCESS_SHARE = 0.6

# (excellent, good, fair) cutoffs; anything lower is poor
BENCHMARKS: dict[str, tuple[float, float, float]] = {
    "pain_reduction": (75.0, 50.0, 25.0),
    "functional_improvement": (85.0, 70.0, 50.0),
    "satisfaction": (9.0, 7.0, 5.0),
}


def benchmark_tier(value: float, cutoffs: tuple[float, float, float]) -> BenchmarkTier:
    excellent, good, fair = cutoffs
    if value >= excellent:
        return BenchmarkTier.EXCELLENT
    if value >= good:
        return BenchmarkTier.GOOD
    if value >= fair:
        return BenchmarkTier.FAIR
    return BenchmarkTier.POOR


def pain_goal_pct(case: Case) -> float:
    severity = case.field("severity")
    if isinstance(severity, str):
        return PAIN_GOAL_BY_SEVERITY.get(severity.lower(), DEFAULT_PAIN_GOAL_PCT)
    return DEFAULT_PAIN_GOAL_PCT


def _mean(values: list[float]) -> Optional[float]:
    return round(sum(values) / len(values), 2) if values else None


# =============================================================================
# TRACKER
# =============================================================================

# Re-runs routing and dispatch for a follow-on case; returns the new session
Reassessor = Callable[[Case, ConsultationSession], Awaitable[ConsultationSession]]


class MilestoneTracker:
    """Evaluates progress reports against a session's plan."""

    def __init__(
        self,
        reassessor: Optional[Reassessor] = None,
        settings: Optional[ConsultationSettings] = None,
    ):
        self.reassessor = reassessor
        self.settings = settings or ConsultationSettings()
        self._completed: dict[str, RecoveryOutcome] = {}

    async def evaluate(
        self,
        session: ConsultationSession,
        report: ProgressReport,
    ) -> MilestoneReport:
        """
        Evaluate one progress report.

        Args:
            session: A synthesized (or already monitored) session
            report: Progress data for one checkpoint

        Returns:
            A new MilestoneReport, also appended to the session

        Raises:
            SessionNotReady: if the session has no plan yet
        """
        if session.plan is None:
            raise SessionNotReady(
                f"Session {session.session_id} has no plan (status {session.status})"
            )
        if report.session_id != session.session_id:
            raise ValueError(
                f"Report for session {report.session_id} given to session {session.session_id}"
            )

        improvements = self.measure(session.baseline_metrics, report.progress_metrics)
        status, reasons = self.classify(improvements, report)
        triggered = status != ProgressStatus.ON_TRACK or bool(report.new_symptoms or report.concern_flags)

        adjusted: list[str] = []
        follow_up_id: Optional[str] = None
        interval = session.plan.next_checkpoint_days

        if triggered:
            follow_up = await self._reassess(session, report, reasons)
            if follow_up is not None and follow_up.plan is not None:
                adjusted = follow_up.plan.all_interventions()
                follow_up_id = follow_up.session_id
                interval = follow_up.plan.next_checkpoint_days
                session.follow_up_session_ids.append(follow_up.session_id)
            else:
                adjusted = self.rule_based_adjustments(status, report)

        milestone = MilestoneReport(
            session_id=session.session_id,
            checkpoint_day=report.checkpoint_day,
            progress_metrics=report.progress_metrics,
            improvements=improvements,
            adherence=report.adherence,
            progress_status=status,
            reassessment_triggered=triggered,
            reassessment_reasons=reasons,
            adjusted_recommendations=adjusted,
            next_checkpoint_day=report.checkpoint_day + interval,
            follow_up_session_id=follow_up_id,
        )

        session.append_milestone(milestone)
        if session.status == SessionStatus.SYNTHESIZED:
            session.transition(SessionStatus.MONITORING, f"first checkpoint on day {report.checkpoint_day}")

        logger.info(
            "Milestone day %d for session %s: %s (reassessment=%s)",
            report.checkpoint_day,
            session.session_id,
            milestone.progress_status,
            triggered,
        )
        return milestone

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def complete(self, session: ConsultationSession, outcome: FinalOutcome) -> RecoveryOutcome:
        """
        Close recovery tracking for a session with its final outcome.

        Pain and functional change are measured against the session
        baseline. Success means meeting at least 60% of the criteria that
        could be evaluated: pain goal, functional goal, satisfaction of 7+,
        return to activity and no complications.

        Raises:
            SessionNotReady: if the session has no plan yet
            RecoveryAlreadyCompleted: if a final outcome was already recorded
        """
        if session.plan is None:
            raise SessionNotReady(
                f"Session {session.session_id} has no plan (status {session.status})"
            )
        if outcome.session_id != session.session_id:
            raise ValueError(
                f"Outcome for session {outcome.session_id} given to session {session.session_id}"
            )
        if session.recovery_outcome is not None:
            raise RecoveryAlreadyCompleted(f"Session {session.session_id} recovery already completed")

        changes = {
            i.metric: i.improvement_pct
            for i in self.measure(session.baseline_metrics, outcome.final_metrics)
        }
        pain = changes.get("pain_level")
        functional = changes.get("functional_score")
        satisfaction = outcome.patient_satisfaction

        goals: dict[str, bool] = {}
        benchmarks: dict[str, BenchmarkTier] = {}
        if pain is not None:
            goals["pain_reduction"] = pain >= pain_goal_pct(session.case)
            benchmarks["pain_reduction"] = benchmark_tier(pain, BENCHMARKS["pain_reduction"])
        if functional is not None:
            goals["functional_improvement"] = functional >= FUNCTIONAL_GOAL_PCT
            benchmarks["functional_improvement"] = benchmark_tier(
                functional, BENCHMARKS["functional_improvement"]
            )
        if satisfaction is not None:
            goals["satisfaction"] = satisfaction >= SATISFACTION_GOAL
            benchmarks["satisfaction"] = benchmark_tier(satisfaction, BENCHMARKS["satisfaction"])
        goals["returned_to_activity"] = outcome.returned_to_activity
        goals["complication_free"] = not outcome.complications

        result = RecoveryOutcome(
            session_id=session.session_id,
            recovery_day=outcome.recovery_day,
            pain_reduction_pct=pain,
            functional_improvement_pct=functional,
            patient_satisfaction=satisfaction,
            returned_to_activity=outcome.returned_to_activity,
            complication_count=len(outcome.complications),
            adherence=outcome.adherence,
            goals=goals,
            benchmarks=benchmarks,
            overall_success=sum(goals.values()) / len(goals) >= SUCCESS_SHARE,
        )
        session.recovery_outcome = result
        self._completed[session.session_id] = result

        logger.info(
            "Recovery for session %s completed on day %d: success=%s (%d/%d goals)",
            session.session_id,
            outcome.recovery_day,
            result.overall_success,
            sum(goals.values()),
            len(goals),
        )
        return result

    def statistics(self, outcomes: Optional[Iterable[RecoveryOutcome]] = None) -> RecoveryStatistics:
        """Aggregate figures over ``outcomes`` (default: every recovery completed here)."""
        completed = list(self._completed.values() if outcomes is None else outcomes)
        if not completed:
            return RecoveryStatistics()

        count = len(completed)
        return RecoveryStatistics(
            completed=count,
            success_rate=round(sum(o.overall_success for o in completed) / count, 4),
            average_pain_reduction_pct=_mean(
                [o.pain_reduction_pct for o in completed if o.pain_reduction_pct is not None]
            ),
            average_functional_improvement_pct=_mean(
                [o.functional_improvement_pct for o in completed if o.functional_improvement_pct is not None]
            ),
            average_recovery_days=_mean([float(o.recovery_day) for o in completed]),
            complication_rate=round(sum(o.complication_count > 0 for o in completed) / count, 4),
            average_satisfaction=_mean(
                [o.patient_satisfaction for o in completed if o.patient_satisfaction is not None]
            ),
            return_to_activity_rate=round(sum(o.returned_to_activity for o in completed) / count, 4),
        )

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    @staticmethod
    def measure(
        baseline: dict[str, float],
        current: dict[str, float],
    ) -> list[MetricImprovement]:
        """Improvement for every reported metric that has a baseline and a spec."""
        improvements: list[MetricImprovement] = []
        for name in sorted(current):
            spec = METRIC_SPECS.get(name)
            if spec is None or name not in baseline:
                continue
            pct = improvement_pct(spec, baseline[name], current[name])
            if pct is None:
                continue
            improvements.append(MetricImprovement(
                metric=name,
                baseline=baseline[name],
                current=current[name],
                improvement_pct=round(pct, 2),
                threshold_pct=spec.threshold_pct,
                met=pct >= spec.threshold_pct,
            ))
        return improvements

    def classify(
        self,
        improvements: list[MetricImprovement],
        report: ProgressReport,
    ) -> tuple[ProgressStatus, list[str]]:
        """Progress status plus every reason a reassessment would be needed."""
        reasons: list[str] = []
        threshold = self.settings.adherence_threshold

        if report.adherence < threshold:
            status = ProgressStatus.NEEDS_ATTENTION
            reasons.append(f"Adherence {report.adherence:.0%} is below {threshold:.0%}")
        elif not improvements:
            status = ProgressStatus.CONCERNING
            reasons.append("No tracked metric could be compared with its baseline")
        elif all(i.met for i in improvements):
            status = ProgressStatus.ON_TRACK
        else:
            status = ProgressStatus.CONCERNING
            for i in improvements:
                if not i.met:
                    reasons.append(
                        f"{i.metric} improved {i.improvement_pct:.0f}% "
                        f"(needs {i.threshold_pct:.0f}%)"
                    )

        if report.new_symptoms:
            reasons.append(f"New symptoms: {', '.join(report.new_symptoms)}")
        if report.concern_flags:
            reasons.append(f"Concern flags: {', '.join(report.concern_flags)}")
        return status, reasons

    # ------------------------------------------------------------------
    # Reassessment
    # ------------------------------------------------------------------

    @staticmethod
    def follow_up_case(
        session: ConsultationSession,
        report: ProgressReport,
        reasons: list[str],
    ) -> Case:
        """The original case updated with the current state of the patient."""
        updates = dict(report.progress_metrics)
        updates.update(
            reassessment_reason="; ".join(reasons),
            current_symptoms=list(report.new_symptoms),
            concern_flags=list(report.concern_flags),
            adherence=report.adherence,
            is_reassessment=True,
            prior_consultation_id=session.session_id,
            reassessment_day=report.checkpoint_day,
        )
        return session.case.with_updates(**updates)

    async def _reassess(
        self,
        session: ConsultationSession,
        report: ProgressReport,
        reasons: list[str],
    ) -> Optional[ConsultationSession]:
        if self.reassessor is None:
            return None
        case = self.follow_up_case(session, report, reasons)
        try:
            return await self.reassessor(case, session)
        except ConsultationFailed as exc:
            logger.warning(
                "Reassessment of session %s failed (%s); using rule-based adjustments",
                session.session_id,
                exc,
            )
            return None

    @staticmethod
    def rule_based_adjustments(status: ProgressStatus, report: ProgressReport) -> list[str]:
        """Adjustments used when a re-consultation is unavailable."""
        adjustments: list[str] = []
        if status == ProgressStatus.NEEDS_ATTENTION:
            adjustments.append(
                "Address adherence barriers: simplify the home programme and review obstacles"
            )
        if status == ProgressStatus.CONCERNING:
            adjustments.append("Schedule a follow-up assessment to review the treatment approach")
        for symptom in report.new_symptoms:
            adjustments.append(f"Evaluate new symptom: {symptom}")
        if report.concern_flags:
            adjustments.append(f"Review concern flags: {', '.join(report.concern_flags)}")
        return adjustments
