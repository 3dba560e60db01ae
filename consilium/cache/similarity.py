"""
Similar-case scoring.

Two cases can only be similar if they concern the same body location or
the same primary complaint, and carry the same urgency markers (severity,
red flags, urgency hint). Past that gate the score is

    0.3 location match + 0.2 complaint match
    + 0.3 symptom overlap (Jaccard)
    + 0.1 age closeness + 0.1 duration closeness
"""

import re
from dataclasses import dataclass
from typing import Any, Optional

from consilium.models.case import Case


LOCATION_WEIGHT = 0.3
COMPLAINT_WEIGHT = 0.2
SYMPTOM_WEIGHT = 0.3
AGE_WEIGHT = 0.1
DURATION_WEIGHT = 0.1

AGE_RANGE = 100.0

# (max day difference, closeness) from tightest to loosest
DURATION_BANDS = ((3, 1.0), (7, 0.8), (14, 0.6), (30, 0.4))
DURATION_FLOOR = 0.2

DAYS_PER_UNIT = {"day": 1, "week": 7, "month": 30, "year": 365}
_DURATION = re.compile(r"(\d+(?:\.\d+)?)\s*(day|week|month|year)s?")


@dataclass(frozen=True)
class SimilarityBreakdown:
    """Components of a similarity score."""

    location_match: bool
    complaint_match: bool
    symptom_similarity: float
    age_similarity: float
    duration_similarity: float

    @property
    def score(self) -> float:
        return round(
            (LOCATION_WEIGHT if self.location_match else 0.0)
            + (COMPLAINT_WEIGHT if self.complaint_match else 0.0)
            + SYMPTOM_WEIGHT * self.symptom_similarity
            + AGE_WEIGHT * self.age_similarity
            + DURATION_WEIGHT * self.duration_similarity,
            4,
        )

    def as_dict(self) -> dict:
        return {
            "location_match": self.location_match,
            "complaint_match": self.complaint_match,
            "symptom_similarity": round(self.symptom_similarity, 4),
            "age_similarity": round(self.age_similarity, 4),
            "duration_similarity": round(self.duration_similarity, 4),
        }


def _phrase(value: Any) -> str:
    return value.strip().lower() if isinstance(value, str) else ""


def phrases_match(a: str, b: str) -> bool:
    """Same phrase, or one contains the other. Empty never matches."""
    if not a or not b:
        return False
    return a == b or a in b or b in a


def symptom_set(case: Case) -> frozenset[str]:
    symptoms = case.field("symptoms") or []
    if isinstance(symptoms, str):
        symptoms = [symptoms]
    return frozenset(s.strip().lower() for s in symptoms if isinstance(s, str) and s.strip())


def urgency_markers(case: Case) -> tuple:
    """What the Router reads to set urgency, normalized for comparison."""
    red_flags = case.field("red_flags") or []
    if isinstance(red_flags, str):
        red_flags = [red_flags]
    return (
        _phrase(case.field("severity")),
        frozenset(_phrase(f) for f in red_flags if isinstance(f, str)),
        case.urgency_hint,
    )


def jaccard(a: frozenset[str], b: frozenset[str]) -> float:
    union = a | b
    return len(a & b) / len(union) if union else 0.0


def numeric_similarity(a: Any, b: Any, value_range: float) -> float:
    """1 for equal values, falling linearly to 0 at ``value_range`` apart."""
    if not isinstance(a, (int, float)) or not isinstance(b, (int, float)):
        return 0.0
    if isinstance(a, bool) or isinstance(b, bool) or not a or not b:
        return 0.0
    return max(0.0, 1.0 - abs(a - b) / value_range)


def duration_to_days(duration: Any) -> Optional[float]:
    """Read ``6 weeks``, ``3 days`` or a bare number of days."""
    if isinstance(duration, bool):
        return None
    if isinstance(duration, (int, float)):
        return float(duration) if duration > 0 else None
    if not isinstance(duration, str):
        return None
    match = _DURATION.search(duration.lower())
    if match is None:
        return None
    days = float(match.group(1)) * DAYS_PER_UNIT[match.group(2)]
    return days or None


def duration_similarity(a: Any, b: Any) -> float:
    days_a, days_b = duration_to_days(a), duration_to_days(b)
    if days_a is None or days_b is None:
        return 0.0
    diff = abs(days_a - days_b)
    for limit, closeness in DURATION_BANDS:
        if diff < limit:
            return closeness
    return DURATION_FLOOR


def compare_cases(case: Case, other: Case) -> Optional[SimilarityBreakdown]:
    """
    Score how alike two cases are.

    Returns:
        The breakdown, or None when the urgency markers differ or neither
        location nor complaint match
    """
    if urgency_markers(case) != urgency_markers(other):
        return None
    location_match = phrases_match(_phrase(case.field("location")), _phrase(other.field("location")))
    complaint_match = phrases_match(
        _phrase(case.field("primary_complaint")), _phrase(other.field("primary_complaint"))
    )
    if not (location_match or complaint_match):
        return None

    return SimilarityBreakdown(
        location_match=location_match,
        complaint_match=complaint_match,
        symptom_similarity=jaccard(symptom_set(case), symptom_set(other)),
        age_similarity=numeric_similarity(case.field("age"), other.field("age"), AGE_RANGE),
        duration_similarity=duration_similarity(case.field("duration"), other.field("duration")),
    )
