"""API request/response schemas."""

from api.schemas.consultation import (
    CaseRequest,
    ConsultationRequest,
    ConsultationResponse,
    MilestoneRequest,
)

__all__ = [
    "CaseRequest",
    "ConsultationRequest",
    "ConsultationResponse",
    "MilestoneRequest",
]
