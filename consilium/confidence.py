"""
Confidence model.

A pure scoring service: specialists use it for their self-reported
confidence and the synthesis stage uses it to rate evidence quality.
Experience is passed in as an immutable ``AssessmentHistory`` snapshot
rather than kept as counters on the specialists.
"""

from dataclasses import dataclass
from typing import Iterable

from consilium.models.enums import OpinionStatus
from consilium.models.opinion import SpecialistOpinion
from consilium.utils.text import contains_any


# =============================================================================
# CONSTANTS
# =============================================================================

OFF_DOMAIN_BASE = 0.48
IN_DOMAIN_BASE = 0.82
EXPERIENCE_PER_ASSESSMENT = 0.005
MAX_EXPERIENCE_BONUS = 0.2
MAX_ACCURACY_BONUS = 0.05
CONFIDENCE_CAP = 0.95

# Keyword hits needed for a full domain match
FULL_MATCH_HITS = 2

DISCOUNT_PER_MISSING_SPECIALIST = 0.1


@dataclass(frozen=True)
class AssessmentHistory:
    """
    Snapshot of a specialist's track record.

    Attributes:
        assessments: Successful opinions given so far
        outcomes_recorded: Milestone evaluations of plans it contributed to
        outcomes_on_track: How many of those evaluations were on track
    """

    assessments: int = 0
    outcomes_recorded: int = 0
    outcomes_on_track: int = 0

    @property
    def success_rate(self) -> float:
        if self.outcomes_recorded == 0:
            return 0.0
        return self.outcomes_on_track / self.outcomes_recorded


EMPTY_HISTORY = AssessmentHistory()


def domain_match(text: str, domain_keywords: Iterable[str]) -> float:
    """Degree (0..1) to which ``text`` falls inside a specialist's domain."""
    hits = len(contains_any(text, list(domain_keywords)))
    return min(1.0, hits / FULL_MATCH_HITS)


class ConfidenceModel:
    """Combines domain match, experience and historical accuracy into one score."""

    def score(self, match: float, history: AssessmentHistory = EMPTY_HISTORY) -> float:
        """
        Score a specialist's confidence for a case.

        Args:
            match: Domain match in [0, 1]
            history: Immutable track-record snapshot

        Returns:
            Confidence in [0, CONFIDENCE_CAP]
        """
        match = min(max(match, 0.0), 1.0)
        base = OFF_DOMAIN_BASE + (IN_DOMAIN_BASE - OFF_DOMAIN_BASE) * match
        experience = min(history.assessments * EXPERIENCE_PER_ASSESSMENT, MAX_EXPERIENCE_BONUS)
        accuracy = MAX_ACCURACY_BONUS * history.success_rate
        return round(min(base + experience + accuracy, CONFIDENCE_CAP), 4)

    def evidence_quality(self, opinions: Iterable[SpecialistOpinion]) -> float:
        """
        Mean confidence of successful opinions, discounted per missing answer.

        Every ``failed`` or ``timeout`` specialist takes 10% off the mean.
        Unregistered specialists are a routing gap, not missing evidence.
        """
        opinions = list(opinions)
        successes = [o.confidence for o in opinions if o.status == OpinionStatus.SUCCESS]
        if not successes:
            return 0.0
        missing = sum(
            1 for o in opinions
            if o.status in (OpinionStatus.FAILED, OpinionStatus.TIMEOUT)
        )
        mean = sum(successes) / len(successes)
        discount = max(0.0, 1.0 - DISCOUNT_PER_MISSING_SPECIALIST * missing)
        return round(mean * discount, 4)
