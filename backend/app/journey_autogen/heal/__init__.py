"""
Self-healing

Rule-driven fixes for classified failures, applied in a bounded loop.
"""

from .rules import HealingConfig, HealingRule, DEFAULT_HEALING_RULES
from .fixes import FixContext, FixResult, apply_fix
from .engine import HealingEngine, HealingResult, HealingStatus, heal_test_file, preview_fixes

__all__ = [
    "HealingConfig",
    "HealingRule",
    "DEFAULT_HEALING_RULES",
    "FixContext",
    "FixResult",
    "apply_fix",
    "HealingEngine",
    "HealingResult",
    "HealingStatus",
    "heal_test_file",
    "preview_fixes",
]
