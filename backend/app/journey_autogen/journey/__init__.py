"""
Journey documents: parsing and normalization to IR
"""

from .models import ParsedJourney, JourneyFrontmatter, JourneyStatus
from .parser import parse_journey, parse_journey_content, parse_journey_for_autogen
from .normalizer import normalize_journey, NormalizeResult

__all__ = [
    "ParsedJourney",
    "JourneyFrontmatter",
    "JourneyStatus",
    "parse_journey",
    "parse_journey_content",
    "parse_journey_for_autogen",
    "normalize_journey",
    "NormalizeResult",
]
