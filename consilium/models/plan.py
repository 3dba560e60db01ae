"""
Consultation Engine - Synthesized Plan Schemas

The single decision artifact produced for a consultation.
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator

from consilium.models.enums import Severity, Urgency


class TreatmentPhase(BaseModel):
    """One of the three ordered phases of a plan."""

    phase: int = Field(ge=1, le=3)
    name: str
    timeframe: str
    goals: list[str] = Field(default_factory=list)
    interventions: list[str] = Field(default_factory=list)


class RedFlag(BaseModel):
    """An escalation-worthy finding raised by a specialist."""

    model_config = ConfigDict(use_enum_values=True)

    flag: str
    severity: Severity
    source_specialist: str


class ClinicalFlags(BaseModel):
    """Safety flags. Escalation is forced whenever a high red flag exists."""

    model_config = ConfigDict(use_enum_values=True)

    red_flags: list[RedFlag] = Field(default_factory=list)
    requires_immediate_escalation: bool = False
    urgency_level: Urgency = Urgency.ROUTINE

    @model_validator(mode="after")
    def _escalate_on_high_red_flag(self) -> "ClinicalFlags":
        if any(f.severity == Severity.HIGH for f in self.red_flags):
            self.requires_immediate_escalation = True
        return self


class ConfidenceFactors(BaseModel):
    """Breakdown of the plan's overall confidence."""

    data_completeness: float = Field(ge=0.0, le=1.0)
    inter_agent_agreement: float = Field(ge=0.0, le=1.0)
    evidence_quality: float = Field(ge=0.0, le=1.0)
    overall: float = Field(ge=0.0, le=1.0)


class SynthesizedPlan(BaseModel):
    """Phased plan, safety flags and confidence for one session."""

    phases: list[TreatmentPhase] = Field(min_length=3, max_length=3)
    clinical_flags: ClinicalFlags
    confidence_factors: ConfidenceFactors
    tracking_metrics: list[str] = Field(default_factory=list)
    next_checkpoint_days: int = Field(ge=1)
    contributing_specialists: list[str] = Field(default_factory=list)
    non_contributing_specialists: dict[str, str] = Field(
        default_factory=dict,
        description="specialist id -> status for specialists that added nothing",
    )

    def all_interventions(self) -> list[str]:
        return [i for phase in self.phases for i in phase.interventions]
