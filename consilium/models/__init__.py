"""Data models for the consultation engine."""

from consilium.models.case import Case
from consilium.models.conference import (
    ConferenceRecord,
    DialogueEntry,
    Disagreement,
    EmergentFinding,
    UnroutedQuestion,
)
from consilium.models.enums import (
    BenchmarkTier,
    DispatchMode,
    Impact,
    Novelty,
    OpinionStatus,
    Priority,
    ProgressStatus,
    RiskLevel,
    SessionStatus,
    Severity,
    Urgency,
)
from consilium.models.llm import LLMResponse
from consilium.models.milestone import (
    FinalOutcome,
    MetricImprovement,
    MilestoneReport,
    ProgressReport,
    RecoveryOutcome,
    RecoveryStatistics,
)
from consilium.models.opinion import (
    InterAgentQuestion,
    KeyFinding,
    Recommendation,
    SpecialistOpinion,
)
from consilium.models.outcome import OutcomeSignal
from consilium.models.plan import (
    ClinicalFlags,
    ConfidenceFactors,
    RedFlag,
    SynthesizedPlan,
    TreatmentPhase,
)
from consilium.models.routing import RoutingDecision
from consilium.models.session import ConsultationSession, StatusTransition

__all__ = [
    "BenchmarkTier",
    "Case",
    "ClinicalFlags",
    "ConferenceRecord",
    "ConfidenceFactors",
    "ConsultationSession",
    "DialogueEntry",
    "Disagreement",
    "DispatchMode",
    "EmergentFinding",
    "FinalOutcome",
    "Impact",
    "InterAgentQuestion",
    "KeyFinding",
    "LLMResponse",
    "MetricImprovement",
    "MilestoneReport",
    "Novelty",
    "OpinionStatus",
    "OutcomeSignal",
    "Priority",
    "ProgressReport",
    "ProgressStatus",
    "RecoveryOutcome",
    "RecoveryStatistics",
    "Recommendation",
    "RedFlag",
    "RiskLevel",
    "RoutingDecision",
    "SessionStatus",
    "Severity",
    "SpecialistOpinion",
    "StatusTransition",
    "SynthesizedPlan",
    "TreatmentPhase",
    "UnroutedQuestion",
    "Urgency",
]
