"""
Consultation Engine - Routing Schemas

Output of the triage-driven Router.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from consilium.models.enums import Urgency
from consilium.models.opinion import SpecialistOpinion


TRIAGE_UNAVAILABLE = "triage_unavailable"


class RoutingDecision(BaseModel):
    """Urgency and the specialists selected for a case."""

    model_config = ConfigDict(use_enum_values=True)

    urgency: Urgency = Urgency.ROUTINE
    selected_specialists: list[str] = Field(
        description="Specialist ids to consult, never empty"
    )
    data_completeness: float = Field(default=0.0, ge=0.0, le=1.0)
    triage_opinion: Optional[SpecialistOpinion] = None
    warnings: list[str] = Field(default_factory=list)
    signals_detected: list[str] = Field(default_factory=list)
    rationale: str = ""

    @field_validator("selected_specialists")
    @classmethod
    def _never_empty(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("routing must select at least one specialist")
        return value

    @property
    def triage_failed(self) -> bool:
        return TRIAGE_UNAVAILABLE in self.warnings
