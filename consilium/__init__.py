"""
Consilium - multi-specialist consultation engine.

Routes a case through triage to several independent specialists, gathers
their opinions concurrently, reconciles them in a coordination conference
and synthesizes one phased plan that later progress reports are checked
against.
"""

from consilium.config import ConsultationSettings
from consilium.exceptions import ConsiliumError, ConsultationFailed
from consilium.models import Case, DispatchMode, ProgressReport
from consilium.orchestrator import ConsultationOrchestrator

__version__ = "1.0.0"

__all__ = [
    "Case",
    "ConsiliumError",
    "ConsultationFailed",
    "ConsultationOrchestrator",
    "ConsultationSettings",
    "DispatchMode",
    "ProgressReport",
]
