"""
Pytest configuration and shared fixtures for the test suite.
"""

import pytest

from consilium.config import ConsultationSettings
from consilium.models import (
    Case,
    InterAgentQuestion,
    KeyFinding,
    Recommendation,
    SpecialistOpinion,
)
from consilium.orchestrator import ConsultationOrchestrator
from consilium.outcomes import LoggingRewardSink
from consilium.specialists.catalog import DEFAULT_CATALOG
from consilium.specialists.static import StaticSpecialist


# ============================================================================
# Settings
# ============================================================================

@pytest.fixture
def fast_settings():
    """Settings with short deadlines so timeout tests finish quickly."""
    return ConsultationSettings(
        triage_timeout_seconds=0.5,
        specialist_timeout_seconds=0.3,
        session_deadline_seconds=1.0,
        fast_path_deadline_seconds=0.5,
    )


# ============================================================================
# Cases
# ============================================================================

@pytest.fixture
def sample_case():
    """A routine low back pain case with tracked baselines."""
    return Case(
        structured_fields={
            "symptoms": ["lower back pain", "stiffness in the morning"],
            "primary_complaint": "back pain",
            "pain_level": 8,
            "duration": "6 weeks",
            "age": 42,
            "location": "lower back",
            "functional_score": 40,
            "anxiety_level": 6,
        },
        raw_query="Lower back pain for six weeks, worried it will get worse",
    )


# ============================================================================
# Opinions
# ============================================================================

@pytest.fixture
def make_opinion():
    """Factory for successful opinions."""
    def _create(specialist_id: str, **kwargs) -> SpecialistOpinion:
        profile = DEFAULT_CATALOG.get(specialist_id)
        kwargs.setdefault("domain", profile.domain if profile else "unknown")
        kwargs.setdefault("confidence", 0.8)
        kwargs.setdefault("primary_findings", [f"{specialist_id} assessment complete"])
        return SpecialistOpinion(specialist_id=specialist_id, **kwargs)
    return _create


@pytest.fixture
def triage_opinion(make_opinion):
    """Triage opinion routing to pain_whisperer and mind_mender."""
    return make_opinion(
        "triage",
        confidence=0.82,
        primary_findings=["Persistent low back pain, anxious about re-injury"],
        urgency="routine",
    )


@pytest.fixture
def specialist_opinions(make_opinion, triage_opinion):
    """One opinion per default specialist."""
    return {
        "triage": triage_opinion,
        "pain_whisperer": make_opinion(
            "pain_whisperer",
            confidence=0.82,
            primary_findings=["Mechanical low back pain with central sensitization"],
            key_findings=[KeyFinding(finding="Central sensitization likely", confidence=0.7)],
            recommendations=[
                Recommendation(intervention="Graded walking programme", priority=7, timeline="Weeks 1-4"),
                Recommendation(intervention="Heat therapy", priority=4),
            ],
            questions_for_others=[
                InterAgentQuestion(
                    target_specialist_id="mind_mender",
                    question="Is fear of movement driving the sensitization?",
                    priority="high",
                ),
            ],
            risk_level="moderate",
        ),
        "mind_mender": make_opinion(
            "mind_mender",
            confidence=0.7,
            primary_findings=["Fear of movement is maintaining the pain"],
            key_findings=[KeyFinding(finding="central sensitization likely", confidence=0.6)],
            recommendations=[
                Recommendation(intervention="Pain neuroscience education", priority=6),
            ],
            risk_level="moderate",
        ),
        "movement_detective": make_opinion(
            "movement_detective",
            recommendations=[Recommendation(intervention="Hip hinge retraining", priority=5)],
        ),
        "strength_sage": make_opinion(
            "strength_sage",
            recommendations=[Recommendation(intervention="Progressive core loading", priority=5)],
        ),
    }


@pytest.fixture
def static_specialists(specialist_opinions):
    """StaticSpecialist per default specialist, keyed by id."""
    return {sid: StaticSpecialist(opinion) for sid, opinion in specialist_opinions.items()}


# ============================================================================
# Orchestrator
# ============================================================================

@pytest.fixture
def reward_sink():
    return LoggingRewardSink()


@pytest.fixture
def orchestrator(static_specialists, fast_settings, reward_sink):
    """Orchestrator over static specialists with short deadlines."""
    return ConsultationOrchestrator(
        static_specialists,
        settings=fast_settings,
        reward_sink=reward_sink,
    )
