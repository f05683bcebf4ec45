"""
Locator Priority Resolver

Given several ways to address the same element, pick the one that is most
resilient: accessible role first, then label/placeholder/text, and raw css or
xpath only as a last resort. Selectors matching a forbidden pattern (usually
generated ids) are never picked unless nothing else exists.
"""

import re
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..config import AutogenConfig, DEFAULT_LOCATOR_PRIORITY
from ..ir.models import Instruction, LocatorOptions, LocatorSpec

logger = logging.getLogger(__name__)

# roles whose accessible name is usually a <label>
LABELLED_ROLES = ("textbox", "checkbox", "radio", "combobox")


@dataclass
class LocatorPriorityConfig:
    """Ordering and exclusion rules for locator candidates"""
    priority: List[str] = field(default_factory=lambda: list(DEFAULT_LOCATOR_PRIORITY))
    forbidden_patterns: List[str] = field(default_factory=list)

    def __post_init__(self):
        self._compiled = [re.compile(p) for p in self.forbidden_patterns]

    @classmethod
    def from_config(cls, config: AutogenConfig) -> "LocatorPriorityConfig":
        return cls(
            priority=list(config.locator_priority),
            forbidden_patterns=list(config.forbidden_selectors),
        )

    def is_forbidden(self, spec: LocatorSpec) -> bool:
        """True when the value or accessible name hits a forbidden pattern"""
        for pattern in self._compiled:
            if pattern.search(spec.value):
                return True
            if spec.name and pattern.search(spec.name):
                return True
        return False

    def rank(self, spec: LocatorSpec) -> int:
        strategy = spec.strategy.value
        if strategy in self.priority:
            return self.priority.index(strategy)
        return len(self.priority)


def resolve_locator(
    candidates: List[LocatorSpec],
    config: Optional[LocatorPriorityConfig] = None
) -> Optional[LocatorSpec]:
    """
    Pick the best locator from a list of candidates.

    Args:
        candidates: Alternative ways to address the same element
        config: Priority order and forbidden patterns

    Returns:
        The preferred LocatorSpec, or None for an empty list
    """
    if not candidates:
        return None

    config = config or LocatorPriorityConfig()

    allowed = [c for c in candidates if not config.is_forbidden(c)]
    if not allowed:
        logger.debug(
            f"[LOCATOR] All {len(candidates)} candidates forbidden, "
            f"falling back to first: {candidates[0].strategy.value}={candidates[0].value}"
        )
        return candidates[0]

    # sorted() is stable, so equal ranks keep input order
    return sorted(allowed, key=config.rank)[0]


def locator_candidates(spec: LocatorSpec) -> List[LocatorSpec]:
    """
    ``spec`` followed by other locators that address the same element.

    role=button name=Submit -> [role, text=Submit]
    role=textbox name=Email -> [role, label=Email, text=Email]
    label=Email             -> [label, placeholder=Email]
    """
    candidates = [spec]
    exact = LocatorOptions(exact=True) if spec.options and spec.options.exact else None
    strategy = spec.strategy.value

    if strategy == "role" and spec.name:
        if spec.value in LABELLED_ROLES:
            candidates.append(LocatorSpec(strategy="label", value=spec.name, options=exact))
        candidates.append(LocatorSpec(strategy="text", value=spec.name, options=exact))
    elif strategy == "label":
        candidates.append(LocatorSpec(strategy="placeholder", value=spec.value, options=exact))
    return candidates


def apply_locator_policy(instruction: Instruction, config: LocatorPriorityConfig) -> Instruction:
    """Re-pick an instruction's locator among its equivalents using ``config``"""
    locator = getattr(instruction, "locator", None)
    if not isinstance(locator, LocatorSpec):
        return instruction

    best = resolve_locator(locator_candidates(locator), config)
    if best is locator:
        return instruction
    logger.debug(
        f"[LOCATOR] {locator.strategy.value}={locator.value} -> "
        f"{best.strategy.value}={best.value} by locator policy"
    )
    return instruction.model_copy(update={"locator": best})


def validate_locator(spec: LocatorSpec, config: Optional[LocatorPriorityConfig] = None) -> List[str]:
    """
    Check a locator against the policy.

    Returns:
        List of warning messages (empty if clean)
    """
    config = config or LocatorPriorityConfig()
    warnings = []

    strategy = spec.strategy.value
    if strategy not in config.priority:
        warnings.append(f"Strategy '{strategy}' is not in the allowed priority list")
    if strategy in ("css", "xpath"):
        warnings.append(
            f"{strategy.upper()} locator '{spec.value}' is brittle; "
            f"prefer role, label or test id"
        )
    if config.is_forbidden(spec):
        warnings.append(f"Locator '{spec.value}' matches a forbidden selector pattern")

    return warnings
