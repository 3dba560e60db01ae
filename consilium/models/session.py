"""
Consultation Engine - Session Schema

A ConsultationSession is owned by the orchestrator. Specialists never see
or mutate it; status changes only through ``transition``, which appends
to the audit history.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from consilium.models.case import Case
from consilium.models.conference import ConferenceRecord
from consilium.models.enums import DispatchMode, OpinionStatus, SessionStatus
from consilium.models.milestone import MilestoneReport, RecoveryOutcome
from consilium.models.opinion import SpecialistOpinion
from consilium.models.plan import SynthesizedPlan
from consilium.models.routing import RoutingDecision


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StatusTransition(BaseModel):
    """One entry in the append-only session history."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    from_status: Optional[SessionStatus] = None
    to_status: SessionStatus
    at: datetime = Field(default_factory=_now)
    note: str = ""


class ConsultationSession(BaseModel):
    """State of one consultation from triage through monitoring."""

    model_config = ConfigDict(use_enum_values=True)

    session_id: str = Field(default_factory=lambda: str(uuid.uuid4())[:12])
    case: Case
    fingerprint: str
    status: SessionStatus = SessionStatus.TRIAGED
    mode: DispatchMode = DispatchMode.NORMAL
    routing: RoutingDecision
    participating_specialists: list[str] = Field(default_factory=list)
    opinions: dict[str, SpecialistOpinion] = Field(default_factory=dict)
    conference: Optional[ConferenceRecord] = None
    plan: Optional[SynthesizedPlan] = None
    baseline_metrics: dict[str, float] = Field(default_factory=dict)
    milestone_reports: list[MilestoneReport] = Field(default_factory=list)
    recovery_outcome: Optional[RecoveryOutcome] = None
    parent_session_id: Optional[str] = None
    follow_up_session_ids: list[str] = Field(default_factory=list)
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)
    history: list[StatusTransition] = Field(default_factory=list)

    @property
    def case_id(self) -> str:
        return self.case.case_id

    @property
    def is_terminal(self) -> bool:
        return self.status in (SessionStatus.SYNTHESIZED, SessionStatus.MONITORING, SessionStatus.FAILED)

    def transition(self, to_status: SessionStatus, note: str = "") -> None:
        """Move to ``to_status`` and record the change in the history."""
        self.history.append(
            StatusTransition(from_status=self.status if self.history else None, to_status=to_status, note=note)
        )
        self.status = SessionStatus(to_status).value

    def record_opinion(self, opinion: SpecialistOpinion) -> None:
        """Record a specialist's opinion. Each specialist answers at most once."""
        if opinion.specialist_id in self.opinions:
            raise ValueError(
                f"Opinion from '{opinion.specialist_id}' already recorded for session {self.session_id}"
            )
        self.opinions[opinion.specialist_id] = opinion

    def append_milestone(self, report: MilestoneReport) -> None:
        self.milestone_reports.append(report)

    def successful_opinions(self) -> list[SpecialistOpinion]:
        return [o for o in self.opinions.values() if o.status == OpinionStatus.SUCCESS]

    def responded_specialists(self) -> list[str]:
        """Specialists that returned an opinion, successful or not (excludes unavailable)."""
        return sorted(
            sid for sid, o in self.opinions.items()
            if o.status in (OpinionStatus.SUCCESS, OpinionStatus.FAILED)
        )

    def pending_specialists(self) -> list[str]:
        return [s for s in self.participating_specialists if s not in self.opinions]

    def snapshot(self) -> "ConsultationSession":
        """Deep copy for storage outside the owning orchestrator."""
        return self.model_copy(deep=True)
