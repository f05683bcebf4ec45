"""
Knowledge

Learned step patterns and blocked-step telemetry, both kept on disk so
every run improves the next one.
"""

from .learned_patterns import LearnedPattern, LearnedPatternStore
from .telemetry import BlockedStepTelemetry, TelemetryRecord, PatternGap

__all__ = [
    "LearnedPattern",
    "LearnedPatternStore",
    "BlockedStepTelemetry",
    "TelemetryRecord",
    "PatternGap",
]
