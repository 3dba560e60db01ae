"""
Synthesis Engine - reduces a conferenced session to one phased plan.

Phase assignment:
- Phase 1 takes every intervention that addresses a red flag or a
  high-severity disagreement, whoever proposed it.
- The remaining interventions are ordered by their originating
  specialist's confidence (highest first) and split between Phase 2
  (first half, rounded up) and Phase 3.

Confidence:
    overall = 0.3 * data_completeness + 0.3 * agreement + 0.4 * evidence

Synthesis never raises on a partial opinion set; missing specialists lower
the evidence score and are listed on the plan.
"""

import logging
import math
from typing import Mapping, Optional

from consilium.confidence import ConfidenceModel
from consilium.models.conference import ConferenceRecord
from consilium.models.enums import OpinionStatus, Severity, Urgency
from consilium.models.plan import (
    ClinicalFlags,
    ConfidenceFactors,
    RedFlag,
    SynthesizedPlan,
    TreatmentPhase,
)
from consilium.models.session import ConsultationSession
from consilium.specialists.catalog import DEFAULT_CATALOG, SpecialistProfile
from consilium.utils.text import keywords, normalize


logger = logging.getLogger(__name__)


# =============================================================================
# WEIGHTS AND SCHEDULES
# =============================================================================

COMPLETENESS_WEIGHT = 0.3
AGREEMENT_WEIGHT = 0.3
EVIDENCE_WEIGHT = 0.4

DISAGREEMENT_PENALTY: dict[str, float] = {
    Severity.LOW.value: 0.1,
    Severity.MODERATE.value: 0.25,
    Severity.HIGH.value: 0.5,
}

CHECKPOINT_DAYS: dict[str, int] = {
    Urgency.EMERGENCY.value: 3,
    Urgency.URGENT.value: 7,
    Urgency.SEMI_URGENT.value: 10,
    Urgency.ROUTINE.value: 14,
}

# (name, timeframe) for phases 1-3 by urgency
PHASE_SCHEDULES: dict[str, list[tuple[str, str]]] = {
    Urgency.EMERGENCY.value: [
        ("Immediate Stabilization", "0-72 hours"),
        ("Early Recovery", "Days 3-14"),
        ("Rehabilitation", "Weeks 2-8"),
    ],
    Urgency.URGENT.value: [
        ("Acute Management", "Week 1"),
        ("Progressive Recovery", "Weeks 2-4"),
        ("Return to Function", "Weeks 4-12"),
    ],
    Urgency.SEMI_URGENT.value: [
        ("Initial Care", "Weeks 1-2"),
        ("Active Rehabilitation", "Weeks 2-6"),
        ("Maintenance", "Weeks 6-12"),
    ],
    Urgency.ROUTINE.value: [
        ("Foundation", "Weeks 1-2"),
        ("Progression", "Weeks 3-6"),
        ("Maintenance & Prevention", "Weeks 6-12"),
    ],
}

BASE_TRACKING_METRICS: dict[str, list[str]] = {
    Urgency.EMERGENCY.value: ["pain_level", "red_flag_symptoms", "functional_score"],
    Urgency.URGENT.value: ["pain_level", "functional_score"],
    Urgency.SEMI_URGENT.value: ["pain_level", "functional_score"],
    Urgency.ROUTINE.value: ["functional_score", "pain_level"],
}

# Disagreement topics too generic to match interventions on
GENERIC_TOPIC_WORDS = frozenset({"overall", "risk", "urgency"})


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class SynthesisEngine:
    """Builds a SynthesizedPlan from a session and its conference record."""

    def __init__(
        self,
        confidence_model: Optional[ConfidenceModel] = None,
        catalog: Mapping[str, SpecialistProfile] = DEFAULT_CATALOG,
    ):
        self.confidence_model = confidence_model or ConfidenceModel()
        self.catalog = catalog

    def synthesize(
        self,
        session: ConsultationSession,
        conference: ConferenceRecord,
    ) -> SynthesizedPlan:
        """
        Synthesize the plan.

        Args:
            session: Session with its opinions recorded
            conference: Conference record over those opinions

        Returns:
            SynthesizedPlan with exactly three phases
        """
        urgency = Urgency(session.routing.urgency)
        successful = sorted(
            session.successful_opinions(),
            key=lambda o: (-o.confidence, o.specialist_id),
        )

        red_flags = self._red_flags(successful)
        phases = self._build_phases(urgency, successful, red_flags, conference)
        factors = self._confidence_factors(session, conference, len(successful))

        clinical_flags = ClinicalFlags(
            red_flags=red_flags,
            requires_immediate_escalation=(
                urgency == Urgency.EMERGENCY
                or any(f.severity == Severity.HIGH for f in red_flags)
            ),
            urgency_level=urgency,
        )

        contributing = sorted(o.specialist_id for o in successful)
        plan = SynthesizedPlan(
            phases=phases,
            clinical_flags=clinical_flags,
            confidence_factors=factors,
            tracking_metrics=self._tracking_metrics(urgency, contributing),
            next_checkpoint_days=CHECKPOINT_DAYS[urgency.value],
            contributing_specialists=contributing,
            non_contributing_specialists=self._non_contributing(session),
        )
        logger.info(
            "Synthesized plan for session %s: overall=%.2f red_flags=%d escalate=%s",
            session.session_id,
            factors.overall,
            len(red_flags),
            clinical_flags.requires_immediate_escalation,
        )
        return plan

    # =========================================================================
    # SAFETY
    # =========================================================================

    @staticmethod
    def _red_flags(successful) -> list[RedFlag]:
        flags: list[RedFlag] = []
        seen: set[tuple[str, str]] = set()
        for opinion in sorted(successful, key=lambda o: o.specialist_id):
            for finding in opinion.key_findings:
                if not finding.requires_escalation:
                    continue
                key = (normalize(finding.finding), opinion.specialist_id)
                if key in seen:
                    continue
                seen.add(key)
                flags.append(RedFlag(
                    flag=finding.finding,
                    severity=finding.clinical_relevance,
                    source_specialist=opinion.specialist_id,
                ))
        return flags

    # =========================================================================
    # PHASES
    # =========================================================================

    def _build_phases(
        self,
        urgency: Urgency,
        successful,
        red_flags: list[RedFlag],
        conference: ConferenceRecord,
    ) -> list[TreatmentPhase]:
        high = conference.disagreements_at(Severity.HIGH)
        priority_terms: set[str] = set()
        for flag in red_flags:
            priority_terms |= keywords(flag.flag)
        for disagreement in high:
            priority_terms |= keywords(disagreement.topic.replace("_", " ")) - GENERIC_TOPIC_WORDS
        high_topics = {normalize(d.topic) for d in high}

        # Merged and deduplicated; order is originating confidence, then priority
        interventions: list[str] = []
        seen: set[str] = set()
        for opinion in successful:
            for rec in sorted(opinion.recommendations, key=lambda r: -r.priority):
                key = normalize(rec.intervention)
                if key and key not in seen:
                    seen.add(key)
                    interventions.append(rec.intervention)

        phase_one: list[str] = []
        remaining: list[str] = []
        for intervention in interventions:
            addresses_priority = bool(keywords(intervention) & priority_terms)
            if addresses_priority or normalize(intervention) in high_topics:
                phase_one.append(intervention)
            else:
                remaining.append(intervention)

        split = math.ceil(len(remaining) / 2)
        assigned = [phase_one, remaining[:split], remaining[split:]]

        goals = self._phase_goals(red_flags, high, conference)
        schedule = PHASE_SCHEDULES[urgency.value]
        return [
            TreatmentPhase(
                phase=index + 1,
                name=schedule[index][0],
                timeframe=schedule[index][1],
                goals=goals[index],
                interventions=assigned[index],
            )
            for index in range(3)
        ]

    @staticmethod
    def _phase_goals(red_flags, high_disagreements, conference: ConferenceRecord) -> list[list[str]]:
        phase_one = [f"Clear red flag: {flag.flag}" for flag in red_flags]
        phase_one += [
            f"Resolve disagreement on {d.topic.replace('_', ' ')}" for d in high_disagreements
        ]
        if not phase_one:
            phase_one = ["Reduce symptoms and protect the affected area"]

        phase_two = ["Restore movement and daily function"]
        phase_two += [
            f"Follow up on cross-specialist finding: {e.finding}"
            for e in conference.emergent_findings
        ]
        phase_three = ["Return to full activity", "Prevent recurrence"]
        return [phase_one, phase_two, phase_three]

    # =========================================================================
    # CONFIDENCE
    # =========================================================================

    def _confidence_factors(
        self,
        session: ConsultationSession,
        conference: ConferenceRecord,
        success_count: int,
    ) -> ConfidenceFactors:
        completeness = clamp(session.routing.data_completeness)

        penalty = sum(DISAGREEMENT_PENALTY[d.severity] for d in conference.disagreements)
        agreement = clamp(1.0 - penalty / max(1, success_count - 1))

        evidence = clamp(self.confidence_model.evidence_quality(session.opinions.values()))

        overall = clamp(
            COMPLETENESS_WEIGHT * completeness
            + AGREEMENT_WEIGHT * agreement
            + EVIDENCE_WEIGHT * evidence
        )
        return ConfidenceFactors(
            data_completeness=round(completeness, 4),
            inter_agent_agreement=round(agreement, 4),
            evidence_quality=round(evidence, 4),
            overall=round(overall, 4),
        )

    # =========================================================================
    # MONITORING HOOKS
    # =========================================================================

    def _tracking_metrics(self, urgency: Urgency, contributing: list[str]) -> list[str]:
        metrics = list(BASE_TRACKING_METRICS[urgency.value])
        for specialist_id in contributing:
            profile = self.catalog.get(specialist_id)
            if not profile:
                continue
            for metric in profile.tracking_metrics:
                if metric not in metrics:
                    metrics.append(metric)
        return metrics

    @staticmethod
    def _non_contributing(session: ConsultationSession) -> dict[str, str]:
        missing = {
            sid: str(opinion.status)
            for sid, opinion in sorted(session.opinions.items())
            if opinion.status != OpinionStatus.SUCCESS
        }
        for sid in session.pending_specialists():
            missing.setdefault(sid, "not_dispatched")
        return missing
