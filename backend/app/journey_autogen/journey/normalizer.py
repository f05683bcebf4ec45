"""
Journey Normalizer - ParsedJourney to IRJourney

Each acceptance criterion becomes one IR step: its bullets, plus any
procedural steps linked to it with (AC-n), are mapped through the step
matcher. Journeys without ACs fall back to one IR step per procedural step.
"""

import re
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..context import AutogenContext
from ..core.step_matcher import StepMatcher
from ..ir.builder import JourneyBuilder, StepBuilder
from ..ir.models import (
    Blocked, CompletionSignal, ExpectNotVisible, ExpectTitle, ExpectToast,
    ExpectURL, ExpectVisible, Instruction, IRJourney, IRStep, LocatorSpec,
    WaitForResponse,
)
from .models import AcceptanceCriterion, ParsedJourney, ProceduralStep
from .parser import ensure_ready_for_autogen

logger = logging.getLogger(__name__)


@dataclass
class BlockedStepInfo:
    step_id: str
    source_text: str
    reason: str


@dataclass
class NormalizeResult:
    """IR journey plus what could not be mapped"""
    journey: IRJourney
    blocked_steps: List[BlockedStepInfo] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)


def normalize_journey(
    parsed: ParsedJourney,
    matcher: Optional[StepMatcher] = None,
    ctx: Optional[AutogenContext] = None,
    require_ready: bool = True,
    strict: bool = False
) -> NormalizeResult:
    """
    Convert a parsed Journey into IR.

    Args:
        parsed: Output of the journey parser
        matcher: Step matcher (all tiers from ctx.config if None)
        ctx: Run context
        require_ready: Enforce status=clarified and completion signals
        strict: Drop IR steps that contain blocked instructions

    Raises:
        JourneyValidationError: require_ready and the journey is not ready
    """
    if require_ready:
        ensure_ready_for_autogen(parsed)

    ctx = ctx or AutogenContext()
    matcher = matcher or StepMatcher.default(ctx.config)
    fm = parsed.frontmatter
    ctx.journey_id = fm.id

    warnings: List[str] = []
    blocked_steps: List[BlockedStepInfo] = []
    steps: List[IRStep] = []

    for ac in parsed.acceptance_criteria:
        step = _map_acceptance_criterion(ac, parsed.procedural_steps, matcher, ctx, warnings)
        blocked = [i for i in step.instructions if isinstance(i, Blocked)]
        blocked_steps.extend(BlockedStepInfo(step.id, b.source_text, b.reason) for b in blocked)
        if strict and blocked:
            continue
        steps.append(step)

    if not parsed.acceptance_criteria:
        for ps in parsed.procedural_steps:
            step = _map_procedural_step(ps, matcher, ctx, warnings)
            blocked_steps.extend(
                BlockedStepInfo(step.id, i.source_text, i.reason)
                for i in step.instructions if isinstance(i, Blocked)
            )
            steps.append(step)

    builder = (
        JourneyBuilder(fm.id, fm.title)
        .tier(fm.tier.value)
        .scope(fm.scope)
        .actor(fm.actor)
        .tags(fm.tags)
        .modules(fm.modules.foundation, fm.modules.features)
        .completion([CompletionSignal(type=c.type, value=c.value, options=c.options) for c in fm.completion])
        .prerequisites(fm.prerequisites)
        .revision(fm.revision)
        .source_path(parsed.source_path)
    )
    for step in steps:
        builder.step(step)
    journey = builder.build()

    stats = {
        "total_steps": len(parsed.acceptance_criteria) or len(parsed.procedural_steps),
        "mapped_steps": len(steps),
        "blocked_steps": len(blocked_steps),
        "total_actions": sum(len(s.actions) for s in steps),
        "total_assertions": sum(len(s.assertions) for s in steps),
    }
    logger.info(
        f"[JOURNEY] Normalized {fm.id}: {stats['mapped_steps']} steps, "
        f"{stats['blocked_steps']} blocked instructions"
    )
    return NormalizeResult(journey=journey, blocked_steps=blocked_steps, warnings=warnings, stats=stats)


def _map_acceptance_criterion(
    ac: AcceptanceCriterion,
    procedural: List[ProceduralStep],
    matcher: StepMatcher,
    ctx: AutogenContext,
    warnings: List[str]
) -> IRStep:
    builder = StepBuilder(ac.id, ac.title or f"Step {ac.id}").source_text(ac.raw_content)

    for text in ac.steps:
        result = matcher.map_step_text(text, ctx)
        builder.add(result.primitive)
        if result.message:
            warnings.append(result.message)

    for ps in procedural:
        if ps.linked_ac != ac.id or ps.text in ac.steps:
            continue
        result = matcher.map_step_text(ps.text, ctx)
        if result.is_blocked:
            warnings.append(result.message)
            continue
        builder.add(result.primitive)

    if not builder.assertions and ac.title:
        builder.note(f"TODO: Add assertion for: {ac.title}")
    return builder.build()


def _map_procedural_step(
    ps: ProceduralStep,
    matcher: StepMatcher,
    ctx: AutogenContext,
    warnings: List[str]
) -> IRStep:
    result = matcher.map_step_text(ps.text, ctx)
    if result.message:
        warnings.append(result.message)
    return StepBuilder(f"PS-{ps.number}", ps.text).add(result.primitive).build()


# ==================== Completion signals ====================

def parse_locator_from_selector(selector: str) -> LocatorSpec:
    """Playwright-ish selector string to a LocatorSpec; css when unrecognized"""
    testid = re.match(r"""^\[data-testid=['"]([^'"]+)['"]\]$""", selector)
    if testid:
        return LocatorSpec(strategy="testid", value=testid.group(1))
    for prefix in ("role", "text", "label", "placeholder"):
        if selector.startswith(f"{prefix}="):
            return LocatorSpec(strategy=prefix, value=selector[len(prefix) + 1:])
    return LocatorSpec(strategy="css", value=selector)


def _toast_type(value: str) -> str:
    lower = value.lower()
    for toast_type in ("error", "warning", "info"):
        if toast_type in lower:
            return toast_type
    return "success"


def completion_signals_to_assertions(signals: List[CompletionSignal]) -> List[Instruction]:
    """Final checks proving the journey reached its end state"""
    assertions: List[Instruction] = []
    for signal in signals:
        options = signal.options or {}
        if signal.type == "url":
            assertions.append(ExpectURL(pattern=signal.value))
        elif signal.type == "toast":
            assertions.append(ExpectToast(toast_type=_toast_type(signal.value), message=signal.value))
        elif signal.type == "element":
            locator = parse_locator_from_selector(signal.value)
            if options.get("state") in ("hidden", "detached"):
                assertions.append(ExpectNotVisible(locator=locator, timeout=options.get("timeout")))
            else:
                assertions.append(ExpectVisible(locator=locator, timeout=options.get("timeout")))
        elif signal.type == "text":
            assertions.append(ExpectVisible(locator=LocatorSpec(strategy="text", value=signal.value)))
        elif signal.type == "title":
            assertions.append(ExpectTitle(title=signal.value))
        elif signal.type == "api":
            assertions.append(WaitForResponse(url_pattern=signal.value))
    return assertions


def validate_journey_for_codegen(result: NormalizeResult) -> Tuple[bool, List[str]]:
    """Soft readiness checks run before generating code"""
    errors = []
    if not result.journey.steps:
        errors.append("Journey has no steps")
    if not result.journey.completion:
        errors.append("Journey has no completion signals")
    if result.stats.get("blocked_steps", 0) > result.stats.get("mapped_steps", 0):
        errors.append(
            f"Too many blocked steps: {result.stats['blocked_steps']} blocked "
            f"vs {result.stats['mapped_steps']} mapped"
        )
    if result.stats.get("total_assertions", 0) == 0 and not result.journey.completion:
        errors.append("Journey has no assertions")
    return len(errors) == 0, errors
