"""
Milestone monitoring.

Evaluates progress reports against a synthesized plan and triggers
reassessment when recovery is off track.
"""

from consilium.monitoring.milestones import METRIC_SPECS, MilestoneTracker, baseline_from_case

__all__ = ["METRIC_SPECS", "MilestoneTracker", "baseline_from_case"]
