"""
Routing Signal Detection - Deterministic triggers for routing decisions.

Urgency keywords read from the triage opinion, explicit case severity
fields, and specialist domain keyword matching.
"""

import re
from typing import Mapping, Optional

from consilium.models.case import Case
from consilium.models.enums import Urgency
from consilium.specialists.catalog import SpecialistProfile
from consilium.utils.text import contains_any


# =============================================================================
# URGENCY KEYWORDS
# =============================================================================

# Emergency keywords always win, regardless of any other signal
EMERGENCY_KEYWORDS = [
    "emergency",
    "immediate",
    "call 911",
    "cauda equina",
    "loss of bladder",
    "loss of bowel",
]

URGENT_PATTERNS = [
    r"(?<!semi-)(?<!semi )\burgent\b",
    r"within 24 hours",
    r"same[- ]day",
]

SEMI_URGENT_PATTERNS = [
    r"semi[- ]urgent",
    r"48\s*-\s*72",
    r"within (a|one) week",
]

# Case severity field values and what they imply
SEVERITY_FIELD_MAP: dict[str, Urgency] = {
    "critical": Urgency.EMERGENCY,
    "emergency": Urgency.EMERGENCY,
    "severe": Urgency.URGENT,
    "high": Urgency.URGENT,
    "urgent": Urgency.URGENT,
    "moderate": Urgency.SEMI_URGENT,
    "semi_urgent": Urgency.SEMI_URGENT,
    "mild": Urgency.ROUTINE,
    "low": Urgency.ROUTINE,
    "routine": Urgency.ROUTINE,
}


# =============================================================================
# DETECTION
# =============================================================================


def detect_urgency_signals(text: str) -> tuple[Optional[Urgency], list[str]]:
    """
    Read urgency from free text.

    Args:
        text: Triage opinion text

    Returns:
        Tuple of (most urgent level found or None, signals that fired)
    """
    lowered = text.lower()

    emergency_hits = contains_any(lowered, EMERGENCY_KEYWORDS)
    if emergency_hits:
        return Urgency.EMERGENCY, [f"Emergency keyword: '{k}'" for k in emergency_hits]

    for pattern in URGENT_PATTERNS:
        if re.search(pattern, lowered):
            return Urgency.URGENT, [f"Urgent pattern: '{pattern}'"]

    for pattern in SEMI_URGENT_PATTERNS:
        if re.search(pattern, lowered):
            return Urgency.SEMI_URGENT, [f"Semi-urgent pattern: '{pattern}'"]

    return None, []


def urgency_from_case_fields(case: Case) -> tuple[Optional[Urgency], list[str]]:
    """Urgency implied by explicit severity fields on the case."""
    signals: list[str] = []
    levels: list[Urgency] = []

    severity = case.field("severity")
    if isinstance(severity, str) and severity.lower() in SEVERITY_FIELD_MAP:
        level = SEVERITY_FIELD_MAP[severity.lower()]
        levels.append(level)
        signals.append(f"Case severity field: '{severity}'")

    if case.has_field("red_flags"):
        levels.append(Urgency.URGENT)
        signals.append("Case lists red flags")

    if case.urgency_hint:
        levels.append(Urgency(case.urgency_hint))
        signals.append(f"Urgency hint: '{case.urgency_hint}'")

    if not levels:
        return None, signals
    return Urgency.most_urgent(*levels), signals


def match_specialists(
    text: str,
    catalog: Mapping[str, SpecialistProfile],
) -> dict[str, list[str]]:
    """
    Match domain keywords against text.

    Returns:
        Mapping of specialist id to the keywords that matched, for every
        specialist with at least one hit (sorted by specialist id)
    """
    matches: dict[str, list[str]] = {}
    for specialist_id in sorted(catalog):
        hits = contains_any(text, catalog[specialist_id].routing_keywords)
        if hits:
            matches[specialist_id] = hits
    return matches
