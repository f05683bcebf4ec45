"""
Pipeline State Machine

Tracks where a journey is in analyze -> plan -> generate -> test -> refine,
persisted as camelCase JSON so an interrupted run can resume. A corrupted
state file is moved aside and replaced by a fresh state instead of
failing the command that tried to read it.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..config import AutogenConfig
from .atomic import write_text_atomic

logger = logging.getLogger(__name__)

STATE_VERSION = "1.0"
MAX_HISTORY = 50


class PipelineStage(str, Enum):
    INITIAL = "initial"
    ANALYZED = "analyzed"
    PLANNED = "planned"
    GENERATED = "generated"
    TESTED = "tested"
    REFINING = "refining"
    COMPLETED = "completed"
    BLOCKED = "blocked"


S = PipelineStage
TRANSITIONS: Dict[PipelineStage, List[PipelineStage]] = {
    S.INITIAL: [S.ANALYZED],
    S.ANALYZED: [S.PLANNED, S.INITIAL],
    S.PLANNED: [S.GENERATED, S.ANALYZED, S.INITIAL],
    S.GENERATED: [S.TESTED, S.PLANNED, S.INITIAL],
    S.TESTED: [S.REFINING, S.COMPLETED, S.GENERATED, S.INITIAL],
    S.REFINING: [S.TESTED, S.COMPLETED, S.BLOCKED, S.INITIAL],
    S.COMPLETED: [S.INITIAL, S.ANALYZED],
    S.BLOCKED: [S.INITIAL, S.ANALYZED],
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


# ==================== Models ====================

class StateModel(BaseModel):
    model_config = ConfigDict(alias_generator=_to_camel, populate_by_name=True)


class HistoryEntry(StateModel):
    command: str
    stage: PipelineStage
    timestamp: str
    success: bool = True


class PipelineState(StateModel):
    version: Literal["1.0"] = STATE_VERSION
    stage: PipelineStage = PipelineStage.INITIAL
    last_command: Optional[str] = None
    last_command_at: Optional[str] = None
    journey_ids: List[str] = Field(default_factory=list)
    test_paths: List[str] = Field(default_factory=list)
    refinement_attempts: int = 0
    is_blocked: bool = False
    blocked_reason: Optional[str] = None
    history: List[HistoryEntry] = Field(default_factory=list)
    created_at: str = Field(default_factory=_now)
    updated_at: str = Field(default_factory=_now)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


KNOWN_KEYS = {
    key
    for name, info in PipelineState.model_fields.items()
    for key in (name, info.alias or name)
}


@dataclass
class TransitionCheck:
    allowed: bool
    reason: Optional[str] = None


@dataclass
class TransitionResult:
    ok: bool
    state: PipelineState
    reason: Optional[str] = None


@dataclass
class LoadResult:
    state: PipelineState
    was_corrupted: bool = False
    was_reset: bool = False
    backup_path: Optional[Path] = None


def can_proceed_to(current: Union[PipelineState, PipelineStage], target: PipelineStage) -> TransitionCheck:
    """Whether ``target`` may follow the current stage (re-entering the same stage is always allowed)"""
    stage = current.stage if isinstance(current, PipelineState) else PipelineStage(current)
    target = PipelineStage(target)
    if target == stage or target in TRANSITIONS[stage]:
        return TransitionCheck(allowed=True)
    allowed = ", ".join(s.value for s in TRANSITIONS[stage])
    return TransitionCheck(
        allowed=False,
        reason=f"Cannot transition from '{stage.value}' to '{target.value}'. Allowed: {allowed}",
    )


def _merge_unique(existing: List[str], new: Optional[List[str]]) -> List[str]:
    merged = list(existing)
    for item in new or []:
        if item not in merged:
            merged.append(item)
    return merged


# ==================== State machine ====================

class PipelineStateMachine:
    """
    Persistent pipeline stage tracking.

    Features:
    - Transition table with rejection reasons (never raises on a bad move)
    - Bounded command history
    - Backup-and-reset recovery for corrupted state files
    - Atomic writes
    """

    def __init__(self, state_path: Optional[Union[str, Path]] = None, config: Optional[AutogenConfig] = None):
        if state_path is None:
            state_path = (config or AutogenConfig()).state_path
        self.state_path = Path(state_path)

    # ==================== Persistence ====================

    def load(self) -> PipelineState:
        return self.load_with_info().state

    def load_with_info(self) -> LoadResult:
        """
        Read the state file.

        Returns:
            LoadResult; a missing file gives a fresh state with was_reset,
            an unreadable one is backed up and gives a fresh state with
            was_corrupted
        """
        if not self.state_path.exists():
            return LoadResult(state=PipelineState(), was_reset=True)

        try:
            raw = self.state_path.read_text(encoding="utf-8")
            data = json.loads(raw)
        except (OSError, ValueError) as e:
            return self._recover(f"invalid JSON ({e})")

        if not isinstance(data, dict):
            return self._recover(f"invalid structure (expected an object, got {type(data).__name__})")

        unknown = sorted(k for k in data if k not in KNOWN_KEYS)
        if unknown:
            logger.warning(f"[STATE] {self.state_path.name} has unknown fields: {', '.join(unknown)}")
            data = {k: v for k, v in data.items() if k in KNOWN_KEYS}

        try:
            state = PipelineState.model_validate(data)
        except ValidationError as e:
            return self._recover(f"invalid structure ({e.error_count()} validation errors)")

        return LoadResult(state=state)

    def _recover(self, problem: str) -> LoadResult:
        stamp = datetime.now().strftime("%Y%m%dT%H%M%S%f")
        backup = self.state_path.with_name(f"{self.state_path.name}.corrupted.{stamp}")
        try:
            self.state_path.replace(backup)
        except OSError as e:
            logger.error(f"[STATE] Could not back up corrupted state file: {e}")
            backup = None

        logger.warning(
            f"[STATE] State file {self.state_path} has {problem}; starting fresh. "
            f"Backup saved to {backup}"
        )
        return LoadResult(state=PipelineState(), was_corrupted=True, was_reset=True, backup_path=backup)

    def save(self, state: PipelineState) -> PipelineState:
        state.updated_at = _now()
        write_text_atomic(self.state_path, json.dumps(state.to_json(), indent=2))
        return state

    # ==================== Transitions ====================

    @staticmethod
    def _record(state: PipelineState, command: str, stage: PipelineStage, success: bool):
        now = _now()
        state.last_command = command
        state.last_command_at = now
        state.history.append(HistoryEntry(command=command, stage=stage, timestamp=now, success=success))
        if len(state.history) > MAX_HISTORY:
            state.history = state.history[-MAX_HISTORY:]

    def transition(
        self,
        command: str,
        target: PipelineStage,
        success: bool = True,
        journey_ids: Optional[List[str]] = None,
        test_paths: Optional[List[str]] = None,
        blocked_reason: Optional[str] = None
    ) -> TransitionResult:
        """
        Move to ``target`` if the transition table allows it.

        Returns:
            TransitionResult; ok=False (state untouched) for a disallowed move
        """
        state = self.load()
        target = PipelineStage(target)
        check = can_proceed_to(state, target)
        if not check.allowed:
            logger.warning(f"[STATE] {command}: {check.reason}")
            return TransitionResult(ok=False, state=state, reason=check.reason)

        previous = state.stage
        state.stage = target
        state.journey_ids = _merge_unique(state.journey_ids, journey_ids)
        state.test_paths = _merge_unique(state.test_paths, test_paths)

        if target == PipelineStage.REFINING:
            state.refinement_attempts += 1
        if target == PipelineStage.BLOCKED:
            state.is_blocked = True
            state.blocked_reason = blocked_reason or f"blocked by {command}"
        else:
            state.is_blocked = False
            state.blocked_reason = None

        self._record(state, command, target, success)
        self.save(state)
        logger.info(f"[STATE] {command}: {previous.value} -> {target.value}")
        return TransitionResult(ok=True, state=state)

    def update(self, command: str, stage: PipelineStage, success: bool = True, **changes) -> PipelineState:
        """Record a command's outcome without checking the transition table"""
        state = self.load()
        state.stage = PipelineStage(stage)
        for key, value in changes.items():
            if key not in PipelineState.model_fields:
                raise ValueError(f"Unknown state field: {key}")
            setattr(state, key, value)
        self._record(state, command, state.stage, success)
        return self.save(state)

    def reset(self) -> PipelineState:
        logger.info(f"[STATE] Resetting {self.state_path}")
        return self.save(PipelineState())

    def summary(self) -> Dict[str, Any]:
        state = self.load()
        return {
            "stage": state.stage.value,
            "lastCommand": state.last_command,
            "lastCommandAt": state.last_command_at,
            "journeyCount": len(state.journey_ids),
            "testCount": len(state.test_paths),
            "refinementAttempts": state.refinement_attempts,
            "isBlocked": state.is_blocked,
            "blockedReason": state.blocked_reason,
            "allowedNext": [s.value for s in TRANSITIONS[state.stage]],
            "historyLength": len(state.history),
        }
