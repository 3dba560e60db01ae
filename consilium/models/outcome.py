"""
Consultation Engine - Outcome Signals

Abstract outcome events handed to a RewardSink. The engine never reads
anything back from the sink.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field


class OutcomeSignal(BaseModel):
    """Something a specialist contributed to that turned out well or badly."""

    kind: str = Field(description="consultation_completed | consultation_failed | milestone_evaluated | recovery_completed")
    session_id: str
    success: bool
    specialist_confidence: Optional[float] = None
    detail: dict[str, Any] = Field(default_factory=dict)
    emitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
