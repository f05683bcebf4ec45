"""
Healing Engine - bounded fix / re-verify loop

Runs the test, classifies the failure, applies the most promising allowed
fix and runs again. Attempts that change the file count toward the cap;
when the cap is reached the circuit breaker trips and the pipeline is
marked blocked. A failing test never raises.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from ..codegen.blocks import extract_managed_blocks, inject_managed_blocks
from ..config import AutogenConfig
from ..pipeline.atomic import atomic_write, write_text_atomic
from ..pipeline.state import PipelineStage, PipelineStateMachine
from ..verify.classifier import ClassifiedFailure, FailureCategory, classify_output
from ..verify.runner import RunnerOptions, RunResult, run_tests
from .fixes import FixContext, FixResult, apply_fix
from .rules import (
    HealingConfig, HealingRule, get_applicable_rules, get_next_rule,
    get_post_healing_recommendation, is_category_healable,
)

logger = logging.getLogger(__name__)

MAX_LOG_ENTRIES = 100

VerifyFn = Callable[[], Union[RunResult, List[ClassifiedFailure]]]


class HealingStatus(str, Enum):
    HEALED = "healed"
    NOT_HEALABLE = "not_healable"
    EXHAUSTED = "exhausted"
    BLOCKED = "blocked"


@dataclass
class HealingAttempt:
    category: FailureCategory
    fix_type: str
    confidence: float
    applied: bool
    result_status: str  # passed | failed | error | skipped
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "fixType": self.fix_type,
            "confidence": self.confidence,
            "applied": self.applied,
            "resultStatus": self.result_status,
            "timestamp": self.timestamp,
        }


class HealingLog:
    """Attempt history, most recent MAX_LOG_ENTRIES kept"""

    def __init__(self, max_entries: int = MAX_LOG_ENTRIES):
        self.max_entries = max_entries
        self.entries: List[HealingAttempt] = []

    def add(self, attempt: HealingAttempt):
        self.entries.append(attempt)
        if len(self.entries) > self.max_entries:
            self.entries = self.entries[-self.max_entries:]

    def to_list(self) -> List[Dict[str, Any]]:
        return [entry.to_dict() for entry in self.entries]

    def save(self, path: Union[str, Path]):
        with atomic_write(path) as f:
            json.dump(self.to_list(), f, indent=2)
        logger.info(f"[HEAL] Saved {len(self.entries)} attempts to {path}")

    def __len__(self) -> int:
        return len(self.entries)


@dataclass
class HealingResult:
    status: HealingStatus
    attempts: int
    log: HealingLog
    applied_fixes: List[str] = field(default_factory=list)
    recommendation: Optional[str] = None
    final_code: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == HealingStatus.HEALED


def make_verify_fn(options: RunnerOptions, attempts: int = 1) -> VerifyFn:
    """verify_fn that runs Playwright and classifies the output"""
    def _verify() -> List[ClassifiedFailure]:
        return classify_output(run_tests(options, attempts=attempts))
    return _verify


class HealingEngine:
    """
    Bounded self-healing for generated tests.

    Features:
    - Fix selection by failure category and rule confidence
    - Allowed / forbidden fix policy from HealingConfig
    - Writes go through the managed-block merger, so hand-written code survives
    - Circuit breaker that marks the pipeline blocked
    """

    def __init__(self, config: Optional[HealingConfig] = None, rules: Optional[List[HealingRule]] = None):
        self.config = config or HealingConfig()
        self.rules = rules

    @classmethod
    def from_config(cls, config: AutogenConfig, rules: Optional[List[HealingRule]] = None) -> "HealingEngine":
        """Engine whose attempt cap comes from AutogenConfig"""
        return cls(HealingConfig.from_config(config), rules)

    # ==================== Verification ====================

    @staticmethod
    def _failures(outcome: Union[RunResult, List[ClassifiedFailure], None]) -> List[ClassifiedFailure]:
        if isinstance(outcome, RunResult):
            return classify_output(outcome)
        return list(outcome or [])

    def _verify(self, verify_fn: VerifyFn) -> Tuple[Optional[List[ClassifiedFailure]], Optional[str]]:
        try:
            return self._failures(verify_fn()), None
        except Exception as e:
            logger.error(f"[HEAL] Verification failed to run: {e}")
            return None, str(e)

    # ==================== Writing ====================

    @staticmethod
    def _merge(original: str, fixed: str) -> str:
        """Carry block content from ``fixed`` into ``original``; whole file if it has no blocks"""
        existing = extract_managed_blocks(original)
        if not existing.has_blocks:
            return fixed
        return inject_managed_blocks(original, extract_managed_blocks(fixed).blocks)

    @staticmethod
    def _fix_context(failure: ClassifiedFailure, test_file: Path) -> FixContext:
        line = None
        if failure.location and Path(failure.location.file).name == test_file.name:
            line = failure.location.line
        return FixContext(failure=failure, line=line)

    # ==================== Loop ====================

    def heal(
        self,
        test_file: Union[str, Path],
        verify_fn: VerifyFn,
        state_machine: Optional[PipelineStateMachine] = None
    ) -> HealingResult:
        """
        Try to make a failing test pass.

        Args:
            test_file: Generated spec file to fix in place
            verify_fn: Runs the test; returns a RunResult or classified failures
                (an empty list means it passed)
            state_machine: Moved to refining while healing and to blocked when
                the circuit breaker trips

        Returns:
            HealingResult with status healed, not_healable, exhausted or blocked
        """
        path = Path(test_file)
        log = HealingLog()
        applied_fixes: List[str] = []

        failures, error = self._verify(verify_fn)
        if failures is not None and not failures:
            logger.info(f"[HEAL] {path.name} already passes")
            return HealingResult(HealingStatus.HEALED, 0, log, final_code=self._read(path))

        if failures is None:
            return HealingResult(
                HealingStatus.NOT_HEALABLE, 0, log,
                recommendation=f"Verification could not run: {error}",
                final_code=self._read(path),
            )

        failure = failures[0]
        category = failure.category
        if not is_category_healable(category, self.config):
            logger.info(f"[HEAL] {path.name}: {category.value} failures are not healable")
            return HealingResult(
                HealingStatus.NOT_HEALABLE, 0, log,
                recommendation=get_post_healing_recommendation(category, 0),
                final_code=self._read(path),
            )

        if state_machine is not None:
            state_machine.transition("heal", PipelineStage.REFINING)

        tried: set = set()
        attempts = 0
        while attempts < self.config.max_attempts:
            rule = get_next_rule(category, tried, self.config, self.rules)
            if rule is None:
                logger.info(f"[HEAL] {path.name}: no untried fixes left for {category.value}")
                return HealingResult(
                    HealingStatus.EXHAUSTED, attempts, log, applied_fixes,
                    recommendation=get_post_healing_recommendation(category, attempts),
                    final_code=self._read(path),
                )
            tried.add(rule.fix_type)

            original = self._read(path)
            fix = apply_fix(rule.fix_type, original, self._fix_context(failure, path))
            updated = self._merge(original, fix.code) if fix.applied else original

            if updated == original:
                logger.info(f"[HEAL] {rule.fix_type} did not apply: {fix.description}")
                log.add(HealingAttempt(category, rule.fix_type, rule.confidence, False, "skipped",
                                       description=fix.description))
                continue

            attempts += 1
            write_text_atomic(path, updated)
            applied_fixes.append(rule.fix_type)
            logger.info(
                f"[HEAL] Attempt {attempts}/{self.config.max_attempts}: "
                f"{rule.fix_type} ({fix.description})"
            )

            failures, error = self._verify(verify_fn)
            if failures is None:
                status = "error"
            else:
                status = "passed" if not failures else "failed"
            log.add(HealingAttempt(category, rule.fix_type, rule.confidence, True, status,
                                   description=fix.description))

            if status == "passed":
                logger.info(f"[HEAL] {path.name} healed after {attempts} attempts")
                return HealingResult(HealingStatus.HEALED, attempts, log, applied_fixes,
                                     final_code=updated)

            if failures:
                failure = failures[0]
                if failure.category != category:
                    logger.info(f"[HEAL] Failure changed from {category.value} to {failure.category.value}")
                    category = failure.category
                    if not is_category_healable(category, self.config):
                        return HealingResult(
                            HealingStatus.NOT_HEALABLE, attempts, log, applied_fixes,
                            recommendation=get_post_healing_recommendation(category, attempts),
                            final_code=updated,
                        )

        reason = f"healing circuit breaker tripped after {attempts} attempts"
        logger.warning(f"[HEAL] {path.name}: {reason}")
        if state_machine is not None:
            transition = state_machine.transition(
                "heal", PipelineStage.BLOCKED, success=False, blocked_reason=reason,
            )
            if not transition.ok:
                logger.warning(f"[HEAL] Could not mark pipeline blocked: {transition.reason}")

        return HealingResult(
            HealingStatus.BLOCKED, attempts, log, applied_fixes,
            recommendation=get_post_healing_recommendation(category, attempts),
            final_code=self._read(path),
        )

    @staticmethod
    def _read(path: Path) -> str:
        return path.read_text(encoding="utf-8")


def heal_test_file(
    test_file: Union[str, Path],
    config: AutogenConfig,
    state_machine: Optional[PipelineStateMachine] = None,
    **runner_overrides
) -> HealingResult:
    """
    Heal a generated spec by running it with Playwright.

    The attempt cap and the process timeout come from ``config``;
    ``runner_overrides`` are passed to RunnerOptions (cwd, project, ...).
    """
    runner_overrides.setdefault("test_file", str(test_file))
    options = RunnerOptions.from_config(config, **runner_overrides)
    engine = HealingEngine.from_config(config)
    return engine.heal(test_file, make_verify_fn(options), state_machine)


def preview_fixes(
    code: str,
    category: FailureCategory,
    config: Optional[HealingConfig] = None
) -> List[Tuple[HealingRule, FixResult]]:
    """Dry run: what each applicable fix would do to ``code``, in the order the loop tries them"""
    return [
        (rule, apply_fix(rule.fix_type, code))
        for rule in get_applicable_rules(category, config)
    ]
