"""
Consultation Engine - Specialist Opinion Schemas

The structured contract every specialist returns. Urgency, risk and
referrals are tagged fields on the opinion itself, so the orchestrator
never has to mine free text for them.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from consilium.models.enums import (
    OpinionStatus,
    Priority,
    RiskLevel,
    Severity,
    Urgency,
)


class KeyFinding(BaseModel):
    """A single finding a specialist is willing to stand behind."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    finding: str
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    clinical_relevance: Severity = Field(
        default=Severity.MODERATE,
        description="Doubles as the red-flag severity when escalation is required",
    )
    requires_escalation: bool = False


class Recommendation(BaseModel):
    """One proposed intervention."""

    model_config = ConfigDict(frozen=True)

    intervention: str
    priority: int = Field(default=5, ge=1, le=10, description="10 = most important")
    timeline: Optional[str] = None
    rationale: str = ""


class InterAgentQuestion(BaseModel):
    """A question one specialist wants another to answer."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    target_specialist_id: str
    question: str
    priority: Priority = Priority.MEDIUM


class SpecialistOpinion(BaseModel):
    """
    Everything one specialist contributed to one session.

    Produced exactly once per specialist per session and never modified.
    Non-success opinions carry empty findings and an ``error`` message.
    """

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    specialist_id: str
    domain: str
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    primary_findings: list[str] = Field(default_factory=list)
    key_findings: list[KeyFinding] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    questions_for_others: list[InterAgentQuestion] = Field(default_factory=list)
    follow_up_questions_for_case: list[str] = Field(default_factory=list)
    raw_text: str = ""
    latency_ms: int = Field(default=0, ge=0)
    status: OpinionStatus = OpinionStatus.SUCCESS
    error: Optional[str] = None

    # Tagged classification fields
    urgency: Optional[Urgency] = None
    risk_level: Optional[RiskLevel] = Field(
        default=None, description="Overall risk this specialist assigns to the case"
    )
    risk_by_topic: dict[str, RiskLevel] = Field(
        default_factory=dict,
        description="Risk per named case dimension, e.g. {'prognosis': 'low'}",
    )
    referrals: list[str] = Field(
        default_factory=list,
        description="Specialist ids this specialist recommends consulting",
    )

    @property
    def succeeded(self) -> bool:
        return self.status == OpinionStatus.SUCCESS

    @property
    def escalates(self) -> bool:
        """True when any key finding requires escalation."""
        return any(f.requires_escalation for f in self.key_findings)

    # ------------------------------------------------------------------
    # Non-success records
    # ------------------------------------------------------------------

    @classmethod
    def _empty(
        cls,
        specialist_id: str,
        domain: str,
        status: OpinionStatus,
        error: str,
        latency_ms: int,
    ) -> "SpecialistOpinion":
        return cls(
            specialist_id=specialist_id,
            domain=domain,
            confidence=0.0,
            status=status,
            error=error,
            latency_ms=max(0, latency_ms),
        )

    @classmethod
    def timed_out(cls, specialist_id: str, domain: str, latency_ms: int = 0, error: str = "timeout"):
        return cls._empty(specialist_id, domain, OpinionStatus.TIMEOUT, error, latency_ms)

    @classmethod
    def failed(cls, specialist_id: str, domain: str, error: str, latency_ms: int = 0):
        return cls._empty(specialist_id, domain, OpinionStatus.FAILED, error, latency_ms)

    @classmethod
    def unavailable(cls, specialist_id: str, domain: str = "unknown"):
        return cls._empty(
            specialist_id, domain, OpinionStatus.UNAVAILABLE, "specialist not registered", 0
        )
