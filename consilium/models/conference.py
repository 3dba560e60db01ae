"""
Consultation Engine - Coordination Conference Schemas

The derived record of how specialist opinions relate to each other.
A ConferenceRecord is always recomputed from the full opinion set,
never patched in place.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from consilium.models.enums import Impact, Novelty, Priority, Severity


class DialogueEntry(BaseModel):
    """A question from one specialist paired with the target's answer."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    from_specialist: str
    to_specialist: str
    question: str
    answer: str = ""
    impact_on_assessment: Impact = Impact.NONE
    priority: Priority = Priority.MEDIUM


class UnroutedQuestion(BaseModel):
    """A question whose target did not produce a successful opinion."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    from_specialist: str
    to_specialist: str
    question: str
    reason: str


class Disagreement(BaseModel):
    """Specialists assigning materially different values to one case dimension."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    topic: str
    kind: str = Field(
        default="risk",
        description="risk | urgency | priority | timeline",
    )
    specialist_ids: list[str]
    positions: dict[str, str] = Field(
        default_factory=dict, description="specialist id -> stated position"
    )
    severity: Severity = Severity.LOW
    resolution_note: str = ""


class EmergentFinding(BaseModel):
    """A finding corroborated independently by specialists from different domains."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    finding: str
    discovered_by: list[str] = Field(description="Sorted specialist ids, at least two")
    domains: list[str] = Field(default_factory=list)
    novelty: Novelty = Novelty.MODERATE
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @field_validator("discovered_by")
    @classmethod
    def _corroborated(cls, value: list[str]) -> list[str]:
        if len(set(value)) < 2:
            raise ValueError("an emergent finding needs at least two distinct specialists")
        return sorted(set(value))


class ConferenceRecord(BaseModel):
    """Output of the coordination conference."""

    model_config = ConfigDict(frozen=True)

    dialogue: list[DialogueEntry] = Field(default_factory=list)
    disagreements: list[Disagreement] = Field(default_factory=list)
    emergent_findings: list[EmergentFinding] = Field(default_factory=list)
    unrouted_questions: list[UnroutedQuestion] = Field(default_factory=list)
    participants: list[str] = Field(
        default_factory=list, description="Specialists with successful opinions"
    )

    def disagreements_at(self, severity: Severity) -> list[Disagreement]:
        return [d for d in self.disagreements if d.severity == severity]

    @property
    def high_severity_topics(self) -> list[str]:
        return [d.topic for d in self.disagreements_at(Severity.HIGH)]

    def summary(self) -> dict[str, int]:
        """Counts for logging and API responses."""
        return {
            "dialogue": len(self.dialogue),
            "disagreements": len(self.disagreements),
            "high_severity": len(self.disagreements_at(Severity.HIGH)),
            "emergent_findings": len(self.emergent_findings),
            "unrouted_questions": len(self.unrouted_questions),
        }


def resolution_for(severity: Severity, topic: str) -> str:
    """Default resolution note attached to a disagreement of a given severity."""
    if severity == Severity.HIGH:
        return f"Address '{topic}' first; escalate if it cannot be reconciled."
    if severity == Severity.MODERATE:
        return f"Reconcile '{topic}' at the first checkpoint."
    return f"Monitor '{topic}'; no action required now."
