"""
Consultation Engine - Milestone Schemas

Progress reports submitted at checkpoints, and the evaluations made of them.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from consilium.models.enums import BenchmarkTier, ProgressStatus


class ProgressReport(BaseModel):
    """Progress data submitted for a session at a checkpoint."""

    session_id: str
    checkpoint_day: int = Field(ge=0)
    progress_metrics: dict[str, float] = Field(
        default_factory=dict,
        description="Current values, e.g. {'pain_level': 5, 'functional_score': 60}",
    )
    adherence: float = Field(default=0.8, ge=0.0, le=1.0)
    new_symptoms: list[str] = Field(default_factory=list)
    concern_flags: list[str] = Field(default_factory=list)


class MetricImprovement(BaseModel):
    """Improvement of one tracked metric relative to baseline."""

    metric: str
    baseline: float
    current: float
    improvement_pct: float
    threshold_pct: float
    met: bool


class MilestoneReport(BaseModel):
    """
    Evaluation of one progress report.

    A new report is created per checkpoint; earlier reports are never
    modified and the session's plan is never touched.
    """

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    report_id: str = Field(default_factory=lambda: str(uuid.uuid4())[:8])
    session_id: str
    checkpoint_day: int
    progress_metrics: dict[str, float] = Field(default_factory=dict)
    improvements: list[MetricImprovement] = Field(default_factory=list)
    adherence: float
    progress_status: ProgressStatus
    reassessment_triggered: bool
    reassessment_reasons: list[str] = Field(default_factory=list)
    adjusted_recommendations: list[str] = Field(default_factory=list)
    next_checkpoint_day: int
    follow_up_session_id: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class FinalOutcome(BaseModel):
    """Outcome data submitted when a session's recovery tracking ends."""

    session_id: str
    recovery_day: int = Field(ge=0, description="Days since the consultation")
    final_metrics: dict[str, float] = Field(
        default_factory=dict,
        description="Final values, e.g. {'pain_level': 2, 'functional_score': 85}",
    )
    patient_satisfaction: Optional[float] = Field(default=None, ge=0.0, le=10.0)
    returned_to_activity: bool = False
    complications: list[str] = Field(default_factory=list)
    adherence: float = Field(default=0.8, ge=0.0, le=1.0)


class RecoveryOutcome(BaseModel):
    """Evaluation of a completed recovery. One per session, never modified."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    session_id: str
    recovery_day: int
    pain_reduction_pct: Optional[float] = None
    functional_improvement_pct: Optional[float] = None
    patient_satisfaction: Optional[float] = None
    returned_to_activity: bool
    complication_count: int
    adherence: float
    goals: dict[str, bool] = Field(
        default_factory=dict,
        description="Each success criterion and whether it was met",
    )
    benchmarks: dict[str, BenchmarkTier] = Field(default_factory=dict)
    overall_success: bool
    completed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RecoveryStatistics(BaseModel):
    """Aggregate figures over completed recoveries."""

    completed: int = 0
    success_rate: float = 0.0
    average_pain_reduction_pct: Optional[float] = None
    average_functional_improvement_pct: Optional[float] = None
    average_recovery_days: Optional[float] = None
    complication_rate: float = 0.0
    average_satisfaction: Optional[float] = None
    return_to_activity_rate: float = 0.0
