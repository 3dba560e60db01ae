"""
Specialists: the static capability table and SpecialistPort implementations.
"""

from consilium.specialists.catalog import DEFAULT_CATALOG, TRIAGE_ID, SpecialistProfile
from consilium.specialists.llm_specialist import LLMSpecialist
from consilium.specialists.static import StaticSpecialist

__all__ = [
    "DEFAULT_CATALOG",
    "LLMSpecialist",
    "SpecialistProfile",
    "StaticSpecialist",
    "TRIAGE_ID",
]
