"""
Fuzzy Matcher

Last deterministic attempt before the AI tier. First the patterns are re-run
on lightly normalized text ("The user clicks the Save btn" -> "click the save
button"); failing that, the canonical form is compared against example
phrasings of every pattern with difflib's SequenceMatcher.
"""

import re
import logging
from dataclasses import dataclass
from difflib import SequenceMatcher
from typing import List, Optional, Tuple

from ..ir.models import (
    Check, Clear, Click, DblClick, ExpectHidden, ExpectNotVisible, ExpectText,
    ExpectVisible, Fill, Focus, Goto, Hover, Instruction, Press, RightClick,
    Select, Uncheck, ValueSpec, WaitForHidden, WaitForNetworkIdle,
    WaitForTimeout, WaitForVisible,
)
from .patterns import ALL_PATTERNS, StepPattern, create_locator, match_pattern
from .text_normalizer import canonical_form, light_normalize

logger = logging.getLogger(__name__)

DEFAULT_MIN_SIMILARITY = 0.85
EARLY_STOP_SIMILARITY = 0.98
GENERIC_MIN_SIMILARITY = 0.90
NORMALIZED_MATCH_CONFIDENCE = 0.85

# pattern-name keyword -> example phrasings
_EXAMPLES_BY_KEYWORD = [
    (("navigate", "goto"), [
        "navigate to /home", "go to /login", "open /dashboard",
        "visit the homepage", "navigate to the settings page",
    ]),
    (("click",), [
        "click the submit button", "click on save", "click cancel button",
        "press the login button", "tap the menu icon",
    ]),
    (("fill", "enter", "type"), [
        "enter username in the username field", "fill password in password field",
        "type hello in the search box", "input test@example.com in email field",
        "enter value into the input",
    ]),
    (("see", "visible", "verify"), [
        "see the welcome message", "verify the success message is displayed",
        "confirm the error appears", "should see login button",
        "expect the form to be visible",
    ]),
    (("wait",), [
        "wait for network idle", "wait for page to load", "wait 3 seconds",
        "wait for the spinner to disappear", "wait until the modal closes",
    ]),
    (("select",), [
        "select option 1 from dropdown", "choose value from the list",
        "pick an item from menu", "select country from country dropdown",
    ]),
    (("check",), [
        "check the checkbox", "tick the agreement box", "check remember me",
        "uncheck the newsletter option",
    ]),
    (("hover",), ["hover over the menu", "mouse over the dropdown", "hover on the button"]),
    (("press",), ["press enter", "press tab", "press escape key", "hit the enter key"]),
    (("text", "contain"), [
        "see text welcome back", "page contains login form", "element has text submit",
    ]),
]


@dataclass
class CanonicalExample:
    """One example phrasing of a pattern, pre-normalized"""
    pattern: StepPattern
    example: str
    canonical: str


@dataclass
class FuzzyMatch:
    primitive: Instruction
    pattern_name: str
    similarity: float
    matched_example: Optional[str] = None


def pattern_examples(pattern: StepPattern) -> List[str]:
    name = pattern.name.lower()
    examples: List[str] = []
    for keywords, phrases in _EXAMPLES_BY_KEYWORD:
        if any(k in name for k in keywords):
            examples.extend(phrases)
    return examples


def build_canonical_examples(patterns: Optional[List[StepPattern]] = None) -> List[CanonicalExample]:
    """Canonical forms for every (pattern, example) pair, in pattern order"""
    built = []
    for pattern in patterns if patterns is not None else ALL_PATTERNS:
        for example in pattern_examples(pattern):
            built.append(CanonicalExample(pattern, example, canonical_form(example)))
    return built


def _extract_target(text: str) -> Optional[str]:
    for regex in (
        r"(?:the|a)\s+[\"']?(\w+(?:\s+\w+)?)[\"']?\s+(?:button|field|input|link|element)",
        r"(?:on|click|tap|press)\s+(?:the\s+)?[\"']?(\w+(?:\s+\w+)?)[\"']?",
        r"(?:in|into)\s+(?:the\s+)?[\"']?(\w+(?:\s+\w+)?)[\"']?\s+(?:field|input)",
    ):
        m = re.search(regex, text, re.IGNORECASE)
        if m:
            return m.group(1)
    return None


def create_generic_primitive(primitive_type: str, text: str) -> Optional[Instruction]:
    """
    Build a bare instruction of ``primitive_type`` from loose text.

    Used only when similarity is very high but the pattern regex itself did
    not match; locators fall back to visible text.
    """
    quoted = re.findall(r"[\"']([^\"']+)[\"']", text)
    target = quoted[0] if quoted else (_extract_target(text) or "element")
    value = quoted[1] if len(quoted) > 1 else (quoted[0] if quoted else "")
    locator = create_locator("text", target)

    if primitive_type in ("click", "dblclick", "rightClick", "hover", "focus",
                          "clear", "check", "uncheck"):
        cls = {
            "click": Click, "dblclick": DblClick, "rightClick": RightClick,
            "hover": Hover, "focus": Focus, "clear": Clear,
            "check": Check, "uncheck": Uncheck,
        }[primitive_type]
        return cls(locator=locator)
    if primitive_type == "fill":
        return Fill(locator=locator, value=ValueSpec(type="literal", value=value))
    if primitive_type == "goto":
        m = re.search(r"(?:to\s+|\s)(/[\w./-]*)", text)
        return Goto(url=m.group(1) if m else "/")
    if primitive_type == "waitForTimeout":
        m = re.search(r"(\d+)\s*(ms|millisecond|second|sec)", text, re.IGNORECASE)
        if not m:
            return WaitForTimeout(ms=1000)
        amount = int(m.group(1))
        return WaitForTimeout(ms=amount if m.group(2).lower().startswith("m") else amount * 1000)
    if primitive_type == "waitForNetworkIdle":
        return WaitForNetworkIdle()
    if primitive_type == "waitForVisible":
        return WaitForVisible(locator=locator)
    if primitive_type == "waitForHidden":
        return WaitForHidden(locator=locator)
    if primitive_type == "expectVisible":
        return ExpectVisible(locator=locator)
    if primitive_type == "expectNotVisible":
        return ExpectNotVisible(locator=locator)
    if primitive_type == "expectHidden":
        return ExpectHidden(locator=locator)
    if primitive_type == "expectText":
        return ExpectText(locator=locator, text=value)
    if primitive_type == "select":
        return Select(locator=locator, option=value)
    if primitive_type == "press":
        m = re.search(r"(?:press|hit|key)\s+(\w+)", text, re.IGNORECASE)
        return Press(key=m.group(1).capitalize() if m else "Enter")
    return None


class FuzzyMatcher:
    """Normalization re-match plus similarity search over pattern examples"""

    def __init__(
        self,
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
        max_candidates: int = 10
    ):
        self.min_similarity = min_similarity
        self.max_candidates = max_candidates

    def match(self, text: str, examples: Optional[List[CanonicalExample]] = None) -> Optional[FuzzyMatch]:
        """
        Find a fuzzy match for ``text``.

        Args:
            text: Raw step text
            examples: Pre-built canonical examples (built on demand if None)

        Returns:
            FuzzyMatch or None when nothing clears the threshold
        """
        stripped = text.strip()
        light = light_normalize(stripped)

        # 1. patterns on lightly normalized text
        if light and light != stripped:
            found = match_pattern(light)
            if found:
                pattern, primitive = found
                return FuzzyMatch(primitive, f"{pattern.name}:normalized", NORMALIZED_MATCH_CONFIDENCE)

        # 2. similarity against canonical examples
        canonical = canonical_form(stripped)
        if not canonical:
            return None

        candidates = self._rank(canonical, examples if examples is not None else build_canonical_examples())
        if not candidates:
            logger.debug(f"[FUZZY] No example above {self.min_similarity:.2f} for {stripped!r}")
            return None

        best, similarity = candidates[0]
        primitive = best.pattern.match(light) or best.pattern.match(stripped)
        if primitive is not None:
            return FuzzyMatch(primitive, best.pattern.name, similarity, best.example)

        if similarity >= GENERIC_MIN_SIMILARITY:
            primitive = create_generic_primitive(best.pattern.primitive_type, stripped)
            if primitive is not None:
                logger.debug(f"[FUZZY] Generic {best.pattern.primitive_type} for {stripped!r}")
                return FuzzyMatch(primitive, f"{best.pattern.name}:fuzzy", similarity, best.example)

        return None

    def _rank(self, canonical: str, examples: List[CanonicalExample]) -> List[Tuple[CanonicalExample, float]]:
        scored = []
        for candidate in examples:
            similarity = SequenceMatcher(None, canonical, candidate.canonical).ratio()
            if similarity < self.min_similarity:
                continue
            scored.append((candidate, similarity))
            if similarity >= EARLY_STOP_SIMILARITY:
                break

        # stable sort keeps pattern priority among equal scores
        scored.sort(key=lambda item: item[1], reverse=True)
        return scored[:self.max_candidates]
