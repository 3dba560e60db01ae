"""
Consultation Engine - Enumerations

Centralized enum definitions shared by every stage of a consultation.
"""

from enum import Enum


class Urgency(str, Enum):
    """Case urgency, most urgent first in RANK order."""

    EMERGENCY = "emergency"
    URGENT = "urgent"
    SEMI_URGENT = "semi_urgent"
    ROUTINE = "routine"

    @property
    def rank(self) -> int:
        """Higher is more urgent."""
        return _URGENCY_RANK[self]

    @classmethod
    def most_urgent(cls, *levels: "Urgency | str | None") -> "Urgency":
        """Return the most urgent of the given levels (ROUTINE if none)."""
        present = [cls(level) for level in levels if level]
        if not present:
            return cls.ROUTINE
        return max(present, key=lambda u: u.rank)


_URGENCY_RANK = {
    Urgency.ROUTINE: 0,
    Urgency.SEMI_URGENT: 1,
    Urgency.URGENT: 2,
    Urgency.EMERGENCY: 3,
}


class RiskLevel(str, Enum):
    """Ordinal risk a specialist assigns to a case dimension."""

    MINIMAL = "minimal"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return list(RiskLevel).index(self)


class OpinionStatus(str, Enum):
    """Outcome of a single specialist call."""

    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"


class SessionStatus(str, Enum):
    """Lifecycle state of a consultation session."""

    TRIAGED = "triaged"
    DISPATCHED = "dispatched"
    CONFERENCED = "conferenced"
    SYNTHESIZED = "synthesized"
    MONITORING = "monitoring"
    FAILED = "failed"  # Terminal: zero successful opinions


class DispatchMode(str, Enum):
    """How the caller wants the consultation delivered."""

    FAST = "fast"  # Triage now, the rest in the background
    NORMAL = "normal"  # Block until synthesis


class Severity(str, Enum):
    """Severity of a red flag, finding or disagreement."""

    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


class Priority(str, Enum):
    """Priority of an inter-specialist question."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Lower sorts first."""
        return {"high": 0, "medium": 1, "low": 2}[self.value]


class Impact(str, Enum):
    """How an answer in the conference dialogue bears on the question."""

    NONE = "none"
    REFINES = "refines"
    REVERSES = "reverses"


class Novelty(str, Enum):
    """How surprising a cross-specialist corroboration is."""

    MODERATE = "moderate"  # Related domains
    HIGH = "high"  # Unrelated domains


class ProgressStatus(str, Enum):
    """Verdict of a milestone evaluation."""

    ON_TRACK = "on_track"
    CONCERNING = "concerning"  # Protocol followed, not working
    NEEDS_ATTENTION = "needs_attention"  # Protocol not followed


class BenchmarkTier(str, Enum):
    """Where a final recovery outcome sits against population benchmarks."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
