"""
Healing Rules

Which fixes may be tried for which failure category, and in what order.
Fixes that hide failures instead of fixing them (sleeps, dropped or weakened
assertions, forced clicks, auth bypass) are never allowed.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set

from ..config import AutogenConfig
from ..verify.classifier import FailureCategory

logger = logging.getLogger(__name__)

FIX_TYPES = [
    "selector-refine",
    "add-exact",
    "missing-await",
    "web-first-assertion",
    "navigation-wait",
    "timeout-increase",
    "data-namespace",
]

FORBIDDEN_FIXES = {"add-sleep", "remove-assertion", "weaken-assertion", "force-click", "bypass-auth"}

HEALABLE_CATEGORIES = {
    FailureCategory.SELECTOR,
    FailureCategory.TIMEOUT,
    FailureCategory.NAVIGATION,
    FailureCategory.ASSERTION,
}

UNHEALABLE_CATEGORIES = {FailureCategory.COMPILE, FailureCategory.RUNTIME, FailureCategory.UNKNOWN}


@dataclass
class HealingConfig:
    enabled: bool = True
    max_attempts: int = 3
    allowed_fixes: List[str] = field(default_factory=lambda: list(FIX_TYPES))
    forbidden_fixes: Set[str] = field(default_factory=lambda: set(FORBIDDEN_FIXES))
    healable_categories: Set[FailureCategory] = field(default_factory=lambda: set(HEALABLE_CATEGORIES))

    @classmethod
    def from_config(cls, config: AutogenConfig) -> "HealingConfig":
        return cls(max_attempts=config.heal_max_attempts)


@dataclass
class HealingRule:
    category: FailureCategory
    fix_type: str
    confidence: float
    description: str


DEFAULT_HEALING_RULES: List[HealingRule] = [
    HealingRule(FailureCategory.SELECTOR, "selector-refine", 0.85,
                "Replace CSS locator with a role, test id or label locator"),
    HealingRule(FailureCategory.SELECTOR, "add-exact", 0.7,
                "Add exact: true to an ambiguous locator"),
    HealingRule(FailureCategory.TIMEOUT, "missing-await", 0.8,
                "Add a missing await to a page or expect call"),
    HealingRule(FailureCategory.TIMEOUT, "web-first-assertion", 0.75,
                "Convert a one-shot check into an auto-retrying assertion"),
    HealingRule(FailureCategory.TIMEOUT, "navigation-wait", 0.65,
                "Wait for the page to settle after navigation"),
    HealingRule(FailureCategory.TIMEOUT, "timeout-increase", 0.5,
                "Raise the assertion timeout"),
    HealingRule(FailureCategory.NAVIGATION, "navigation-wait", 0.8,
                "Wait for the page to settle after navigation"),
    HealingRule(FailureCategory.NAVIGATION, "timeout-increase", 0.45,
                "Raise the assertion timeout"),
    HealingRule(FailureCategory.ASSERTION, "data-namespace", 0.6,
                "Scope filled values to the current run"),
]


def is_category_healable(category: FailureCategory, config: Optional[HealingConfig] = None) -> bool:
    config = config or HealingConfig()
    return config.enabled and category in config.healable_categories and category not in UNHEALABLE_CATEGORIES


def is_fix_allowed(fix_type: str, config: Optional[HealingConfig] = None) -> bool:
    config = config or HealingConfig()
    return fix_type in config.allowed_fixes and fix_type not in config.forbidden_fixes


def get_applicable_rules(
    category: FailureCategory,
    config: Optional[HealingConfig] = None,
    rules: Optional[List[HealingRule]] = None
) -> List[HealingRule]:
    """Allowed rules for a category, highest confidence first"""
    config = config or HealingConfig()
    if not is_category_healable(category, config):
        return []
    applicable = [
        r for r in (rules if rules is not None else DEFAULT_HEALING_RULES)
        if r.category == category and is_fix_allowed(r.fix_type, config)
    ]
    return sorted(applicable, key=lambda r: r.confidence, reverse=True)


def get_next_rule(
    category: FailureCategory,
    tried: Iterable[str],
    config: Optional[HealingConfig] = None,
    rules: Optional[List[HealingRule]] = None
) -> Optional[HealingRule]:
    """Highest-confidence applicable rule whose fix has not been tried yet"""
    tried = set(tried)
    for rule in get_applicable_rules(category, config, rules):
        if rule.fix_type not in tried:
            return rule
    return None


def get_post_healing_recommendation(category: FailureCategory, attempts: int) -> str:
    """What a human should look at once automatic healing gave up"""
    if category == FailureCategory.SELECTOR:
        return (
            f"Selector still failing after {attempts} attempts. Add a data-testid to the "
            "element or record the correct locator in the journey with a (testid=...) hint."
        )
    if category == FailureCategory.TIMEOUT:
        return (
            f"Still timing out after {attempts} attempts. Check whether the application is "
            "slow or the expected state is ever reached."
        )
    if category == FailureCategory.NAVIGATION:
        return (
            f"Navigation still failing after {attempts} attempts. Verify the URL patterns "
            "and that the environment is reachable."
        )
    if category == FailureCategory.ASSERTION:
        return (
            f"Assertion still failing after {attempts} attempts. The application may have "
            "changed behavior; review the journey's expected outcomes."
        )
    return (
        f"Failure category '{category.value}' cannot be healed automatically. "
        "Fix the test or the application manually."
    )
