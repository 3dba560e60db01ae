"""Tests for the coordination conference."""

import pytest

from consilium.conference.coordination import CoordinationConference
from consilium.models import (
    Impact,
    InterAgentQuestion,
    KeyFinding,
    Novelty,
    Recommendation,
    Severity,
    SpecialistOpinion,
)


@pytest.fixture
def conference():
    return CoordinationConference()


def ask(target, question, priority="medium"):
    return InterAgentQuestion(target_specialist_id=target, question=question, priority=priority)


# =============================================================================
# DIALOGUE
# =============================================================================


class TestDialogue:
    """Tests for question routing and answers."""

    def test_question_answered_from_target_opinion(self, conference, specialist_opinions):
        record = conference.run(specialist_opinions.values())

        assert len(record.dialogue) == 1
        entry = record.dialogue[0]
        assert entry.from_specialist == "pain_whisperer"
        assert entry.to_specialist == "mind_mender"
        assert "Fear of movement" in entry.answer
        assert entry.impact_on_assessment == Impact.REFINES

    def test_negated_answer_reverses(self, conference, make_opinion):
        opinions = [
            make_opinion("pain_whisperer", questions_for_others=[ask("movement_detective", "Any radiculopathy?")]),
            make_opinion("movement_detective", primary_findings=["Radiculopathy ruled out"]),
        ]
        entry = conference.run(opinions).dialogue[0]
        assert entry.impact_on_assessment == Impact.REVERSES

    def test_unrelated_answer_has_no_impact(self, conference, make_opinion):
        opinions = [
            make_opinion("pain_whisperer", questions_for_others=[ask("movement_detective", "Sleep quality?")]),
            make_opinion("movement_detective", primary_findings=["Hip hinge pattern is poor"]),
        ]
        entry = conference.run(opinions).dialogue[0]
        assert entry.impact_on_assessment == Impact.NONE
        assert entry.answer == "Hip hinge pattern is poor"

    def test_unrouted_questions(self, conference, make_opinion):
        opinions = [
            make_opinion(
                "pain_whisperer",
                questions_for_others=[
                    ask("pain_whisperer", "Am I right?"),
                    ask("mind_mender", "Is there fear avoidance?"),
                    ask("strength_sage", "Is the core weak?"),
                ],
            ),
            SpecialistOpinion.failed("mind_mender", "psychology", "boom"),
        ]
        record = conference.run(opinions)

        assert record.dialogue == []
        reasons = {q.to_specialist: q.reason for q in record.unrouted_questions}
        assert reasons["pain_whisperer"] == "question addressed to its own author"
        assert reasons["mind_mender"] == "target opinion status is failed"
        assert reasons["strength_sage"] == "target was not consulted"

    def test_dialogue_ordered_by_priority(self, conference, make_opinion):
        opinions = [
            make_opinion("mind_mender", questions_for_others=[ask("pain_whisperer", "Low one?", "low")]),
            make_opinion("strength_sage", questions_for_others=[ask("pain_whisperer", "High one?", "high")]),
            make_opinion("pain_whisperer"),
        ]
        record = conference.run(opinions)
        assert [e.question for e in record.dialogue] == ["High one?", "Low one?"]

    def test_failed_specialists_do_not_ask(self, conference, make_opinion):
        failed = SpecialistOpinion.failed("mind_mender", "psychology", "boom")
        record = conference.run([failed, make_opinion("pain_whisperer")])
        assert record.participants == ["pain_whisperer"]
        assert record.dialogue == []


# =============================================================================
# DISAGREEMENTS
# =============================================================================


class TestDisagreements:
    """Tests for disagreement detection and severity."""

    def test_gap_of_one_is_not_a_disagreement(self, conference, make_opinion):
        opinions = [
            make_opinion("pain_whisperer", risk_level="low"),
            make_opinion("mind_mender", risk_level="moderate"),
        ]
        assert conference.run(opinions).disagreements == []

    def test_gap_of_two_is_low(self, conference, make_opinion):
        opinions = [
            make_opinion("pain_whisperer", risk_level="low"),
            make_opinion("mind_mender", risk_level="high"),
        ]
        [disagreement] = conference.run(opinions).disagreements
        assert disagreement.topic == "overall_risk"
        assert disagreement.kind == "risk"
        assert disagreement.severity == Severity.LOW
        assert disagreement.positions == {"mind_mender": "high", "pain_whisperer": "low"}

    def test_escalation_makes_it_high(self, conference, make_opinion):
        opinions = [
            make_opinion("pain_whisperer", risk_level="low"),
            make_opinion(
                "mind_mender",
                risk_level="high",
                key_findings=[KeyFinding(finding="suicidal ideation", requires_escalation=True)],
            ),
        ]
        [disagreement] = conference.run(opinions).disagreements
        assert disagreement.severity == Severity.HIGH
        assert "escalate" in disagreement.resolution_note

    def test_split_camps(self, conference, make_opinion):
        opinions = [
            make_opinion("pain_whisperer", risk_level="low"),
            make_opinion("movement_detective", risk_level="low"),
            make_opinion("mind_mender", risk_level="high"),
            make_opinion("strength_sage", risk_level="high"),
        ]
        [disagreement] = conference.run(opinions).disagreements
        assert disagreement.severity == Severity.MODERATE

    def test_split_camps_with_wide_gap(self, conference, make_opinion):
        opinions = [
            make_opinion("pain_whisperer", risk_level="minimal"),
            make_opinion("movement_detective", risk_level="minimal"),
            make_opinion("mind_mender", risk_level="high"),
            make_opinion("strength_sage", risk_level="high"),
        ]
        [disagreement] = conference.run(opinions).disagreements
        assert disagreement.severity == Severity.HIGH

    def test_topic_risk_is_normalized(self, conference, make_opinion):
        opinions = [
            make_opinion("pain_whisperer", risk_by_topic={"Nerve Involvement": "minimal"}),
            make_opinion("movement_detective", risk_by_topic={"nerve_involvement": "critical"}),
        ]
        [disagreement] = conference.run(opinions).disagreements
        assert disagreement.topic == "nerve_involvement"
        assert disagreement.severity == Severity.MODERATE

    def test_urgency_disagreement(self, conference, make_opinion):
        opinions = [
            make_opinion("triage", urgency="routine"),
            make_opinion("pain_whisperer", urgency="urgent"),
        ]
        [disagreement] = conference.run(opinions).disagreements
        assert disagreement.kind == "urgency"

    def test_recommendation_conflicts(self, conference, make_opinion):
        opinions = [
            make_opinion("pain_whisperer", recommendations=[
                Recommendation(intervention="Graded walking programme", priority=8, timeline="Weeks 1-4"),
            ]),
            make_opinion("strength_sage", recommendations=[
                Recommendation(intervention="graded walking programme", priority=4, timeline="Week 2"),
            ]),
        ]
        disagreements = conference.run(opinions).disagreements
        assert [(d.kind, d.severity) for d in disagreements] == [
            ("priority", Severity.MODERATE),
            ("timeline", Severity.LOW),
        ]
        assert disagreements[0].topic == "graded walking programme"

    def test_sorted_by_kind_then_severity(self, conference, make_opinion):
        opinions = [
            make_opinion("pain_whisperer", risk_level="minimal", urgency="routine",
                         risk_by_topic={"prognosis": "low"}),
            make_opinion("mind_mender", risk_level="high", urgency="urgent",
                         risk_by_topic={"prognosis": "critical"}),
        ]
        record = conference.run(opinions)
        assert [(d.kind, d.topic) for d in record.disagreements] == [
            ("risk", "overall_risk"),
            ("risk", "prognosis"),
            ("urgency", "urgency"),
        ]


# =============================================================================
# EMERGENT FINDINGS
# =============================================================================


class TestEmergentFindings:
    """Tests for cross-domain corroboration."""

    def test_cross_family_finding_is_high_novelty(self, conference, specialist_opinions):
        [finding] = conference.run(specialist_opinions.values()).emergent_findings
        assert finding.finding == "central sensitization likely"
        assert finding.discovered_by == ["mind_mender", "pain_whisperer"]
        assert finding.domains == ["pain_management", "psychology"]
        assert finding.novelty == Novelty.HIGH
        assert finding.confidence == pytest.approx(0.65)

    def test_related_domains_are_moderate(self, conference, make_opinion):
        opinions = [
            make_opinion("pain_whisperer", key_findings=[KeyFinding(finding="Guarded lumbar movement")]),
            make_opinion("movement_detective", key_findings=[KeyFinding(finding="lumbar movement guarded")]),
        ]
        [finding] = conference.run(opinions).emergent_findings
        assert finding.novelty == Novelty.MODERATE

    def test_same_domain_is_not_emergent(self, conference, make_opinion):
        opinions = [
            make_opinion("a", domain="pain_management", key_findings=[KeyFinding(finding="Disc bulge")]),
            make_opinion("b", domain="pain_management", key_findings=[KeyFinding(finding="disc bulge")]),
        ]
        assert conference.run(opinions).emergent_findings == []

    def test_single_specialist_is_not_emergent(self, conference, make_opinion):
        opinions = [make_opinion("pain_whisperer", key_findings=[KeyFinding(finding="Disc bulge")])]
        assert conference.run(opinions).emergent_findings == []


def test_conference_is_deterministic(conference, specialist_opinions):
    forward = conference.run(specialist_opinions.values())
    backward = conference.run(reversed(list(specialist_opinions.values())))
    assert forward == backward
