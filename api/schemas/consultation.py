"""Consultation API schemas."""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from consilium.models import (
    Case,
    ConsultationSession,
    DispatchMode,
    FinalOutcome,
    ProgressReport,
    Urgency,
)


ResponseStatus = Literal["success", "processing", "failed"]


class CaseRequest(BaseModel):
    """A case as submitted over HTTP."""
    case_id: Optional[str] = None
    structured_fields: dict[str, Any] = Field(
        default_factory=dict,
        description="Intake data, e.g. symptoms, pain_level, age, location",
    )
    raw_query: Optional[str] = None
    urgency_hint: Optional[Urgency] = None

    def to_case(self) -> Case:
        data = self.model_dump(exclude_none=True)
        return Case(**data)


class ConsultationRequest(BaseModel):
    """Request to consult on a case."""
    case: CaseRequest
    mode: DispatchMode = DispatchMode.NORMAL
    requested_specialists: list[str] = Field(default_factory=list)
    no_cache: bool = False


class ConsultationResponse(BaseModel):
    """
    Result of a consultation request.

    ``processing`` means a fast-mode partial result whose completion can be
    polled by fingerprint. ``failed`` is only used when no specialist
    produced a usable opinion.
    """
    success: bool
    status: ResponseStatus
    fingerprint: Optional[str] = None
    session_id: Optional[str] = None
    session: Optional[ConsultationSession] = None
    responded_specialists: list[str] = Field(default_factory=list)
    error: Optional[str] = None


class MilestoneRequest(BaseModel):
    """Progress data for one checkpoint."""
    session_id: str
    checkpoint_day: int = Field(ge=0)
    progress_metrics: dict[str, float] = Field(default_factory=dict)
    adherence: float = Field(default=0.8, ge=0.0, le=1.0)
    new_symptoms: list[str] = Field(default_factory=list)
    concern_flags: list[str] = Field(default_factory=list)

    def to_report(self) -> ProgressReport:
        return ProgressReport(**self.model_dump())


class SimilarCaseRequest(BaseModel):
    """Look up the completed consultation of a similar earlier case."""
    case: CaseRequest
    threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class SimilarCaseResponse(BaseModel):
    found: bool
    similarity: Optional[float] = None
    match_details: dict[str, Any] = Field(default_factory=dict)
    session: Optional[ConsultationSession] = None


class RecoveryRequest(BaseModel):
    """Final outcome closing a session's recovery tracking."""
    session_id: str
    recovery_day: int = Field(ge=0)
    final_metrics: dict[str, float] = Field(default_factory=dict)
    patient_satisfaction: Optional[float] = Field(default=None, ge=0.0, le=10.0)
    returned_to_activity: bool = False
    complications: list[str] = Field(default_factory=list)
    adherence: float = Field(default=0.8, ge=0.0, le=1.0)

    def to_outcome(self) -> FinalOutcome:
        return FinalOutcome(**self.model_dump())
