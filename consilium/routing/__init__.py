"""
Triage Router - urgency classification and specialist selection.
"""

from consilium.routing.router import Router
from consilium.routing.signals import detect_urgency_signals, match_specialists

__all__ = ["Router", "detect_urgency_signals", "match_specialists"]
