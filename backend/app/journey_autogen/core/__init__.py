"""
Core matching

Step text normalization, the pattern catalog, locator resolution, hints and
the tiered step matcher.
"""

from .text_normalizer import light_normalize, canonical_form, normalize_step_text
from .patterns import StepPattern, ALL_PATTERNS, PATTERN_FAMILIES, match_pattern
from .locator_resolver import (
    LocatorPriorityConfig, apply_locator_policy, locator_candidates, resolve_locator, validate_locator,
)
from .fuzzy_matcher import FuzzyMatcher, FuzzyMatch
from .hints import ExtractedHints, extract_hints, apply_hints
from .step_matcher import StepMatcher, StepMappingResult, MatchTier, map_step_text, get_mapping_stats

__all__ = [
    "light_normalize",
    "canonical_form",
    "normalize_step_text",
    "StepPattern",
    "ALL_PATTERNS",
    "PATTERN_FAMILIES",
    "match_pattern",
    "LocatorPriorityConfig",
    "resolve_locator",
    "locator_candidates",
    "apply_locator_policy",
    "validate_locator",
    "FuzzyMatcher",
    "FuzzyMatch",
    "ExtractedHints",
    "extract_hints",
    "apply_hints",
    "StepMatcher",
    "StepMappingResult",
    "MatchTier",
    "map_step_text",
    "get_mapping_stats",
]
