"""
Step Matcher - cascading resolution of step text to IR instructions

Tiers are tried strictly in order and the first one that answers wins:

    structured -> core -> learned -> fuzzy -> ai

Confidence is reported per tier but never compared across tiers. A step no
tier can map becomes a ``blocked`` instruction and is written to telemetry.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..brain.ai_fallback import AIFallbackConfig, AIFallbackGateway
from ..context import AutogenContext
from ..ir.models import Blocked, Instruction, is_assertion, parse_instruction
from ..knowledge.learned_patterns import LearnedPatternStore
from ..knowledge.telemetry import BlockedStepTelemetry
from .fuzzy_matcher import FuzzyMatcher, build_canonical_examples
from .hints import apply_hints, create_primitive_from_hints, extract_hints
from .locator_resolver import LocatorPriorityConfig, apply_locator_policy
from .patterns import CORE_FAMILY_ORDER, match_pattern

logger = logging.getLogger(__name__)

NO_MATCH_REASON = "no matching pattern"
HINT_CONFIDENCE = 0.8


@dataclass
class TierMatch:
    """Answer from a single tier"""
    primitive: Instruction
    confidence: float
    tier: str
    pattern_name: Optional[str] = None


@dataclass
class StepMappingResult:
    """Outcome of mapping one step"""
    primitive: Instruction
    source_text: str
    matched_tier: Optional[str]
    confidence: float
    pattern_name: Optional[str] = None
    is_assertion: bool = False
    message: Optional[str] = None

    @property
    def is_blocked(self) -> bool:
        return isinstance(self.primitive, Blocked)


# ==================== Tiers ====================

class MatchTier:
    """Base class for matcher tiers"""

    name = "base"
    # pure tiers cannot fail; others are isolated so one crash never stops matching
    may_fail = True

    def try_match(self, text: str, ctx: AutogenContext) -> Optional[TierMatch]:
        raise NotImplementedError


class StructuredPatternTier(MatchTier):
    """**Action**: / **Wait for**: / **Assert**: bullets"""

    name = "structured"
    may_fail = False
    confidence = 1.0

    def try_match(self, text, ctx):
        found = match_pattern(text, ["structured"])
        if not found:
            return None
        pattern, primitive = found
        return TierMatch(primitive, self.confidence, self.name, pattern.name)


class CorePatternTier(MatchTier):
    """Free-text regex families in priority order"""

    name = "core"
    may_fail = False
    confidence = 0.9

    def __init__(self, families: Optional[List[str]] = None):
        self.families = families or CORE_FAMILY_ORDER

    def try_match(self, text, ctx):
        found = match_pattern(text, self.families)
        if not found:
            return None
        pattern, primitive = found
        return TierMatch(primitive, self.confidence, self.name, pattern.name)


class LearnedKnowledgeTier(MatchTier):
    """Previously confirmed mappings from the learned pattern store"""

    name = "learned"

    def __init__(self, store: LearnedPatternStore, min_confidence: float = 0.7):
        self.store = store
        self.min_confidence = min_confidence

    def try_match(self, text, ctx):
        pattern = self.store.lookup(text, self.min_confidence)
        if pattern is not None:
            return TierMatch(parse_instruction(pattern.primitive), pattern.confidence, self.name, pattern.id)

        similar = self.store.find_similar(text, self.min_confidence)
        if similar is None:
            return None
        pattern, ratio = similar
        return TierMatch(
            parse_instruction(pattern.primitive),
            min(pattern.confidence, ratio),
            self.name,
            f"{pattern.id}:similar",
        )


class FuzzyTier(MatchTier):
    """Normalized re-match, then similarity against pattern examples"""

    name = "fuzzy"

    def __init__(self, matcher: Optional[FuzzyMatcher] = None):
        self.matcher = matcher or FuzzyMatcher()

    def try_match(self, text, ctx):
        if ctx.fuzzy_examples is None:
            ctx.fuzzy_examples = build_canonical_examples()
        found = self.matcher.match(text, ctx.fuzzy_examples)
        if found is None:
            return None
        return TierMatch(found.primitive, found.similarity, self.name, found.pattern_name)


class AIFallbackTier(MatchTier):
    """Optional model-backed suggestion, validated against the IR union"""

    name = "ai"

    def __init__(self, gateway: AIFallbackGateway):
        self.gateway = gateway

    def try_match(self, text, ctx):
        suggestion = self.gateway.suggest(text, ctx)
        if suggestion is None:
            return None
        return TierMatch(
            suggestion.primitive,
            suggestion.confidence,
            self.name,
            f"ai:{suggestion.provider}:{suggestion.model}",
        )


# ==================== Matcher ====================

class StepMatcher:
    """
    Ordered registry of tiers.

    Usage:
        matcher = StepMatcher.default(config)
        result = matcher.map_step_text("Click the Submit button", ctx)
    """

    def __init__(
        self,
        tiers: Optional[List[MatchTier]] = None,
        telemetry: Optional[BlockedStepTelemetry] = None
    ):
        self.tiers: List[MatchTier] = list(tiers) if tiers is not None else [
            StructuredPatternTier(),
            CorePatternTier(),
        ]
        self.telemetry = telemetry

    @classmethod
    def default(
        cls,
        config,
        learned_store: Optional[LearnedPatternStore] = None,
        gateway: Optional[AIFallbackGateway] = None,
        telemetry: Optional[BlockedStepTelemetry] = None
    ) -> "StepMatcher":
        """All five tiers wired from configuration"""
        return cls(
            tiers=[
                StructuredPatternTier(),
                CorePatternTier(),
                LearnedKnowledgeTier(
                    learned_store or LearnedPatternStore(str(config.learned_patterns_dir)),
                    config.learned_min_confidence,
                ),
                FuzzyTier(FuzzyMatcher(min_similarity=config.fuzzy_min_similarity)),
                AIFallbackTier(gateway or AIFallbackGateway(AIFallbackConfig.from_config(config))),
            ],
            telemetry=telemetry or BlockedStepTelemetry(str(config.telemetry_path)),
        )

    def register(self, tier: MatchTier, before: Optional[str] = None):
        """Add a tier at the end, or just before the tier named ``before``"""
        if before is None:
            self.tiers.append(tier)
            return
        for i, existing in enumerate(self.tiers):
            if existing.name == before:
                self.tiers.insert(i, tier)
                return
        raise ValueError(f"No tier named '{before}'. Registered: {self.tier_names}")

    @property
    def tier_names(self) -> List[str]:
        return [t.name for t in self.tiers]

    def match(self, text: str, ctx: AutogenContext) -> Optional[TierMatch]:
        """First tier answer for ``text``, or None"""
        for tier in self.tiers:
            if tier.may_fail:
                try:
                    found = tier.try_match(text, ctx)
                except Exception as e:
                    logger.warning(f"[MATCHER] Tier '{tier.name}' failed on {text!r}: {e}")
                    continue
            else:
                found = tier.try_match(text, ctx)
            if found is not None:
                return found
        return None

    def map_step_text(self, text: str, ctx: Optional[AutogenContext] = None) -> StepMappingResult:
        """
        Map a single step text to an instruction.

        Args:
            text: Raw step text, possibly carrying (key=value) hints
            ctx: Run context (a fresh one is used if None)

        Returns:
            StepMappingResult; the primitive is ``blocked`` when nothing matched
        """
        ctx = ctx or AutogenContext()
        source = text.strip()
        hints = extract_hints(source)
        for warning in hints.warnings:
            logger.warning(f"[MATCHER] {warning} in {source!r}")
        clean = hints.clean_text if hints.has_hints else source

        found = self.match(clean, ctx)
        if found is not None:
            found.primitive = apply_locator_policy(found.primitive, LocatorPriorityConfig.from_config(ctx.config))
        if found is None and hints.has_hints:
            primitive = create_primitive_from_hints(clean, hints)
            if primitive is not None:
                found = TierMatch(primitive, HINT_CONFIDENCE, "hints", "hints")
        elif found is not None and hints.has_hints:
            found.primitive = apply_hints(found.primitive, hints)

        if found is None:
            return self._blocked(source, ctx)

        ctx.tier_counts[found.tier] += 1
        logger.debug(f"[MATCHER] {source!r} -> {found.primitive.type} via {found.tier} ({found.confidence:.2f})")
        return StepMappingResult(
            primitive=found.primitive,
            source_text=source,
            matched_tier=found.tier,
            confidence=found.confidence,
            pattern_name=found.pattern_name,
            is_assertion=is_assertion(found.primitive),
        )

    def map_steps(self, texts: List[str], ctx: Optional[AutogenContext] = None) -> List[StepMappingResult]:
        ctx = ctx or AutogenContext()
        return [self.map_step_text(text, ctx) for text in texts]

    def _blocked(self, source: str, ctx: AutogenContext) -> StepMappingResult:
        ctx.tier_counts["blocked"] += 1
        suggestion = suggest_improvements(source)
        if self.telemetry is not None:
            try:
                self.telemetry.record(ctx.journey_id or "unknown", source, NO_MATCH_REASON, suggested_fix=suggestion)
            except OSError as e:
                logger.warning(f"[MATCHER] Could not write blocked-step telemetry: {e}")

        logger.info(f"[MATCHER] Blocked step: {source!r}")
        return StepMappingResult(
            primitive=Blocked(reason=NO_MATCH_REASON, source_text=source),
            source_text=source,
            matched_tier=None,
            confidence=0.0,
            message=f'Could not map step: "{source}"',
        )


def map_step_text(text: str, ctx: Optional[AutogenContext] = None) -> StepMappingResult:
    """Map with all tiers configured from ``ctx.config``"""
    ctx = ctx or AutogenContext()
    return StepMatcher.default(ctx.config).map_step_text(text, ctx)


# ==================== Reporting ====================

def get_mapping_stats(results: List[StepMappingResult]) -> Dict[str, Any]:
    """Coverage numbers for a batch of mappings"""
    mapped = [r for r in results if not r.is_blocked]
    by_tier: Dict[str, int] = {}
    for result in mapped:
        by_tier[result.matched_tier] = by_tier.get(result.matched_tier, 0) + 1

    return {
        "total": len(results),
        "mapped": len(mapped),
        "blocked": len(results) - len(mapped),
        "actions": sum(1 for r in mapped if not r.is_assertion),
        "assertions": sum(1 for r in mapped if r.is_assertion),
        "by_tier": by_tier,
        "mapping_rate": len(mapped) / len(results) if results else 0.0,
    }


def suggest_improvements(text: str) -> str:
    """Phrasing hint for a step that could not be mapped"""
    lower = text.lower()
    if "go" in lower or "open" in lower or "navigate" in lower:
        return 'Try: "User navigates to /path" or "User opens /path"'
    if "click" in lower or "press" in lower or "button" in lower:
        return "Try: \"User clicks 'Button Name' button\" or \"Click the 'Label' button\""
    if "enter" in lower or "type" in lower or "field" in lower:
        return "Try: \"User enters 'value' in 'Field Label' field\""
    if "see" in lower or "visible" in lower or "display" in lower:
        return "Try: \"User should see 'Text'\" or \"'Element' is visible\""
    return "Could not determine intent. Rephrase using a supported pattern or add a (role=...) hint."
