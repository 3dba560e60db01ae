"""
Static specialist capability table.

Every specialist the engine can consult is described here once: its
domain, the keywords that route a case to it, the intake fields it relies
on and the progress metrics it cares about. The table is injected into the
Router and the orchestrator at construction; nothing registers itself at
runtime.
"""

from dataclasses import dataclass
from typing import Mapping


TRIAGE_ID = "triage"


@dataclass(frozen=True)
class SpecialistProfile:
    """Static description of one specialist."""

    specialist_id: str
    display_name: str
    domain: str
    domain_family: str
    focus: str
    routing_keywords: tuple[str, ...] = ()
    intake_fields: tuple[str, ...] = ()
    tracking_metrics: tuple[str, ...] = ()


DEFAULT_CATALOG: dict[str, SpecialistProfile] = {
    TRIAGE_ID: SpecialistProfile(
        specialist_id=TRIAGE_ID,
        display_name="Triage",
        domain="triage",
        domain_family="general",
        focus=(
            "Assess urgency, screen for red flags and decide which specialists "
            "should see the case."
        ),
        intake_fields=(
            "symptoms",
            "primary_complaint",
            "pain_level",
            "duration",
            "age",
            "location",
            "history",
        ),
    ),
    "pain_whisperer": SpecialistProfile(
        specialist_id="pain_whisperer",
        display_name="Pain Whisperer",
        domain="pain_management",
        domain_family="musculoskeletal",
        focus="Characterize the pain, its mechanism and how to manage it.",
        routing_keywords=("pain", "analges", "ache", "burning", "throbbing", "sore"),
        intake_fields=(
            "pain_level",
            "pain_location",
            "pain_quality",
            "pain_triggers",
            "pain_relievers",
        ),
        tracking_metrics=("pain_level",),
    ),
    "movement_detective": SpecialistProfile(
        specialist_id="movement_detective",
        display_name="Movement Detective",
        domain="biomechanics",
        domain_family="musculoskeletal",
        focus="Find the movement and biomechanical patterns behind the problem.",
        routing_keywords=(
            "movement",
            "biomechan",
            "gait",
            "posture",
            "stiff",
            "range of motion",
            "limp",
        ),
        intake_fields=(
            "movement_dysfunction",
            "gait_problems",
            "movement_restrictions",
            "movement_patterns",
        ),
        tracking_metrics=("range_of_motion",),
    ),
    "strength_sage": SpecialistProfile(
        specialist_id="strength_sage",
        display_name="Strength Sage",
        domain="functional_rehabilitation",
        domain_family="musculoskeletal",
        focus="Restore strength and function through progressive rehabilitation.",
        routing_keywords=(
            "strength",
            "rehabilitation",
            "function",
            "weak",
            "lifting",
            "exercise",
        ),
        intake_fields=(
            "functional_limitations",
            "functional_goals",
            "strength_deficits",
            "functional_score",
        ),
        tracking_metrics=("functional_score",),
    ),
    "mind_mender": SpecialistProfile(
        specialist_id="mind_mender",
        display_name="Mind Mender",
        domain="psychology",
        domain_family="psychosocial",
        focus="Address fear, anxiety, mood and the psychological side of recovery.",
        routing_keywords=(
            "psycho",
            "mental",
            "anxiety",
            "anxious",
            "depression",
            "chronic",
            "sleep",
            "scared",
            "nervous",
            "fear",
            "stress",
            "athlete",
            "sport",
            "surgery",
            "post-op",
            "re-injury",
            "recurring",
        ),
        intake_fields=(
            "anxiety_level",
            "psychological_factors",
            "fear_avoidance",
            "coping_strategies",
        ),
        tracking_metrics=("anxiety_level",),
    ),
}


def domain_of(specialist_id: str, catalog: Mapping[str, SpecialistProfile] = DEFAULT_CATALOG) -> str:
    profile = catalog.get(specialist_id)
    return profile.domain if profile else "unknown"


def domains_related(
    domain_a: str,
    domain_b: str,
    catalog: Mapping[str, SpecialistProfile] = DEFAULT_CATALOG,
) -> bool:
    """Two domains are related when they belong to the same family."""
    families = {p.domain: p.domain_family for p in catalog.values()}
    return families.get(domain_a, domain_a) == families.get(domain_b, domain_b)
