"""
Coordination Conference - post-hoc pass over the gathered opinions.

Three things come out of it:
- dialogue: every question a specialist asked another, paired with the
  parts of the target's opinion that speak to it;
- disagreements: case dimensions where specialists are materially apart
  (risk, urgency, and conflicting recommendations);
- emergent findings: findings corroborated by specialists from different
  domains.

The pass is pure. Specialists are visited in sorted order and nothing
depends on time or randomness, so the same opinions always give the same
record.
"""

import logging
from collections import defaultdict
from typing import Iterable, Mapping, Optional

from consilium.models.conference import (
    ConferenceRecord,
    DialogueEntry,
    Disagreement,
    EmergentFinding,
    UnroutedQuestion,
    resolution_for,
)
from consilium.models.enums import (
    Impact,
    Novelty,
    OpinionStatus,
    Priority,
    RiskLevel,
    Severity,
    Urgency,
)
from consilium.models.opinion import InterAgentQuestion, SpecialistOpinion
from consilium.specialists.catalog import DEFAULT_CATALOG, SpecialistProfile, domains_related
from consilium.utils.text import is_negated, keywords, normalize


logger = logging.getLogger(__name__)


# =============================================================================
# SCORING CONSTANTS
# =============================================================================

# Ordinal gap at which two positions count as materially different
MIN_DISAGREEMENT_GAP = 2

ESCALATION_POINTS = 2
BOTH_SIDES_POINTS = 1
WIDE_GAP_POINTS = 1
WIDE_GAP = 3

PRIORITY_CONFLICT_GAP = 3

MAX_ANSWER_EXCERPTS = 3

_SEVERITY_ORDER = {Severity.HIGH.value: 0, Severity.MODERATE.value: 1, Severity.LOW.value: 2}
_KIND_ORDER = {"risk": 0, "urgency": 1, "priority": 2, "timeline": 3}


def severity_from_points(points: int) -> Severity:
    if points >= 2:
        return Severity.HIGH
    if points == 1:
        return Severity.MODERATE
    return Severity.LOW


class CoordinationConference:
    """Builds a ConferenceRecord from a set of specialist opinions."""

    def __init__(self, catalog: Mapping[str, SpecialistProfile] = DEFAULT_CATALOG):
        self.catalog = catalog

    def run(self, opinions: Iterable[SpecialistOpinion]) -> ConferenceRecord:
        """
        Run the conference.

        Args:
            opinions: All opinions recorded for a session (any status)

        Returns:
            A complete ConferenceRecord, recomputed from scratch
        """
        by_id = {o.specialist_id: o for o in sorted(opinions, key=lambda o: o.specialist_id)}
        successful = {
            sid: o for sid, o in by_id.items() if o.status == OpinionStatus.SUCCESS
        }

        dialogue, unrouted = self._build_dialogue(successful, by_id)
        disagreements = self._detect_disagreements(successful)
        emergent = self._detect_emergent_findings(successful)

        record = ConferenceRecord(
            dialogue=dialogue,
            disagreements=disagreements,
            emergent_findings=emergent,
            unrouted_questions=unrouted,
            participants=list(successful),
        )
        logger.info("Conference over %d opinion(s): %s", len(successful), record.summary())
        return record

    # =========================================================================
    # DIALOGUE
    # =========================================================================

    def _build_dialogue(
        self,
        successful: dict[str, SpecialistOpinion],
        by_id: dict[str, SpecialistOpinion],
    ) -> tuple[list[DialogueEntry], list[UnroutedQuestion]]:
        asked: list[tuple[str, InterAgentQuestion]] = [
            (sid, q) for sid, opinion in successful.items() for q in opinion.questions_for_others
        ]
        asked.sort(key=lambda item: (
            Priority(item[1].priority).rank,
            item[0],
            item[1].target_specialist_id,
            item[1].question,
        ))

        dialogue: list[DialogueEntry] = []
        unrouted: list[UnroutedQuestion] = []
        for asker, question in asked:
            target = question.target_specialist_id
            reason = self._unrouted_reason(asker, target, successful, by_id)
            if reason:
                unrouted.append(UnroutedQuestion(
                    from_specialist=asker,
                    to_specialist=target,
                    question=question.question,
                    reason=reason,
                ))
                continue

            answer, impact = self._answer(question.question, successful[target])
            dialogue.append(DialogueEntry(
                from_specialist=asker,
                to_specialist=target,
                question=question.question,
                answer=answer,
                impact_on_assessment=impact,
                priority=question.priority,
            ))
        return dialogue, unrouted

    @staticmethod
    def _unrouted_reason(
        asker: str,
        target: str,
        successful: dict[str, SpecialistOpinion],
        by_id: dict[str, SpecialistOpinion],
    ) -> Optional[str]:
        if target == asker:
            return "question addressed to its own author"
        if target in successful:
            return None
        if target in by_id:
            return f"target opinion status is {by_id[target].status}"
        return "target was not consulted"

    @staticmethod
    def _answer(question: str, target: SpecialistOpinion) -> tuple[str, Impact]:
        """
        Pair a question with the target's relevant excerpts.

        Impact is ``none`` when nothing in the target's opinion shares the
        question's keywords, ``reverses`` when a relevant excerpt negates,
        and ``refines`` otherwise.
        """
        asked = keywords(question)
        excerpts = [
            *target.primary_findings,
            *(f.finding for f in target.key_findings),
            *(r.intervention for r in target.recommendations),
        ]

        relevant: list[str] = []
        for excerpt in excerpts:
            if excerpt not in relevant and asked & keywords(excerpt):
                relevant.append(excerpt)

        if not relevant:
            fallback = target.primary_findings[0] if target.primary_findings else ""
            return fallback, Impact.NONE

        relevant = relevant[:MAX_ANSWER_EXCERPTS]
        impact = Impact.REVERSES if any(is_negated(e) for e in relevant) else Impact.REFINES
        return "; ".join(relevant), impact

    # =========================================================================
    # DISAGREEMENT
    # =========================================================================

    def _detect_disagreements(self, successful: dict[str, SpecialistOpinion]) -> list[Disagreement]:
        disagreements: list[Disagreement] = []

        for topic, kind, positions, ranks in self._ordinal_dimensions(successful):
            found = self._ordinal_disagreement(topic, kind, positions, ranks, successful)
            if found:
                disagreements.append(found)

        disagreements.extend(self._recommendation_conflicts(successful))
        disagreements.sort(key=lambda d: (
            _KIND_ORDER.get(d.kind, len(_KIND_ORDER)),
            _SEVERITY_ORDER[d.severity],
            d.topic,
        ))
        return disagreements

    @staticmethod
    def _ordinal_dimensions(successful: dict[str, SpecialistOpinion]):
        """Yield (topic, kind, positions, ranks) for every shared case dimension."""
        overall: dict[str, str] = {}
        urgency: dict[str, str] = {}
        by_topic: dict[str, dict[str, str]] = defaultdict(dict)

        for sid, opinion in successful.items():
            if opinion.risk_level:
                overall[sid] = RiskLevel(opinion.risk_level).value
            if opinion.urgency:
                urgency[sid] = Urgency(opinion.urgency).value
            for topic, level in opinion.risk_by_topic.items():
                by_topic[normalize(topic).replace(" ", "_")][sid] = RiskLevel(level).value

        yield "overall_risk", "risk", overall, {
            sid: RiskLevel(v).rank for sid, v in overall.items()
        }
        yield "urgency", "urgency", urgency, {
            sid: Urgency(v).rank for sid, v in urgency.items()
        }
        for topic in sorted(by_topic):
            positions = by_topic[topic]
            yield topic, "risk", positions, {
                sid: RiskLevel(v).rank for sid, v in positions.items()
            }

    @staticmethod
    def _ordinal_disagreement(
        topic: str,
        kind: str,
        positions: dict[str, str],
        ranks: dict[str, int],
        successful: dict[str, SpecialistOpinion],
    ) -> Optional[Disagreement]:
        """
        Score one dimension.

        Severity points: escalation flagged on either side (+2), both sides
        held by at least two specialists (+1), ordinal gap of 3 or more (+1).
        """
        if len(ranks) < 2:
            return None
        low, high = min(ranks.values()), max(ranks.values())
        gap = high - low
        if gap < MIN_DISAGREEMENT_GAP:
            return None

        midpoint = (low + high) / 2
        high_side = sorted(sid for sid, r in ranks.items() if r > midpoint)
        low_side = sorted(sid for sid, r in ranks.items() if r < midpoint)

        points = 0
        if any(successful[sid].escalates for sid in high_side + low_side):
            points += ESCALATION_POINTS
        if len(high_side) >= 2 and len(low_side) >= 2:
            points += BOTH_SIDES_POINTS
        if gap >= WIDE_GAP:
            points += WIDE_GAP_POINTS
        severity = severity_from_points(points)

        return Disagreement(
            topic=topic,
            kind=kind,
            specialist_ids=sorted(positions),
            positions=dict(sorted(positions.items())),
            severity=severity,
            resolution_note=resolution_for(severity, topic),
        )

    @staticmethod
    def _recommendation_conflicts(successful: dict[str, SpecialistOpinion]) -> list[Disagreement]:
        """Same intervention, different priority (gap >= 3) or different timeline."""
        grouped: dict[str, dict[str, tuple[int, Optional[str]]]] = defaultdict(dict)
        for sid, opinion in successful.items():
            for rec in opinion.recommendations:
                key = normalize(rec.intervention)
                if key and sid not in grouped[key]:
                    grouped[key][sid] = (rec.priority, rec.timeline)

        conflicts: list[Disagreement] = []
        for intervention in sorted(grouped):
            by_specialist = grouped[intervention]
            if len(by_specialist) < 2:
                continue

            priorities = {sid: p for sid, (p, _) in by_specialist.items()}
            if max(priorities.values()) - min(priorities.values()) >= PRIORITY_CONFLICT_GAP:
                conflicts.append(Disagreement(
                    topic=intervention,
                    kind="priority",
                    specialist_ids=sorted(priorities),
                    positions={sid: f"priority {p}" for sid, p in sorted(priorities.items())},
                    severity=Severity.MODERATE,
                    resolution_note=resolution_for(Severity.MODERATE, intervention),
                ))

            timelines = {
                sid: normalize(t) for sid, (_, t) in by_specialist.items() if t
            }
            if len(set(timelines.values())) > 1:
                conflicts.append(Disagreement(
                    topic=intervention,
                    kind="timeline",
                    specialist_ids=sorted(timelines),
                    positions=dict(sorted(timelines.items())),
                    severity=Severity.LOW,
                    resolution_note=resolution_for(Severity.LOW, intervention),
                ))
        return conflicts

    # =========================================================================
    # EMERGENT FINDINGS
    # =========================================================================

    def _detect_emergent_findings(
        self,
        successful: dict[str, SpecialistOpinion],
    ) -> list[EmergentFinding]:
        """
        Promote findings reported by two or more specialists across domains.

        Phrases are compared by their content keywords, so word order,
        punctuation and stopwords do not matter.
        """
        groups: dict[frozenset[str], dict[str, tuple[str, str, float]]] = defaultdict(dict)
        for sid, opinion in successful.items():
            for finding in opinion.key_findings:
                key = keywords(finding.finding)
                if key and sid not in groups[key]:
                    groups[key][sid] = (normalize(finding.finding), opinion.domain, finding.confidence)

        emergent: list[EmergentFinding] = []
        for reports in groups.values():
            if len(reports) < 2:
                continue
            domains = sorted({domain for _, domain, _ in reports.values()})
            if len(domains) < 2:
                continue  # Same-domain repetition is not corroboration

            unrelated = any(
                not domains_related(a, b, self.catalog)
                for i, a in enumerate(domains)
                for b in domains[i + 1:]
            )
            first = min(reports)
            emergent.append(EmergentFinding(
                finding=reports[first][0],
                discovered_by=sorted(reports),
                domains=domains,
                novelty=Novelty.HIGH if unrelated else Novelty.MODERATE,
                confidence=round(sum(c for _, _, c in reports.values()) / len(reports), 4),
            ))

        emergent.sort(key=lambda e: e.finding)
        return emergent
