"""
Unit tests for the pipeline state machine.
"""

import json
import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "app"))

from journey_autogen.pipeline.state import (
    MAX_HISTORY, PipelineStage, PipelineState, PipelineStateMachine, can_proceed_to,
)


@pytest.fixture
def machine(tmp_path):
    return PipelineStateMachine(tmp_path / "state.json")


class TestTransitionTable:
    """Test allowed and rejected moves."""

    def test_allowed(self):
        """Test forward moves in the table are allowed."""
        assert can_proceed_to(PipelineStage.INITIAL, PipelineStage.ANALYZED).allowed
        assert can_proceed_to(PipelineStage.TESTED, PipelineStage.REFINING).allowed
        assert can_proceed_to(PipelineStage.BLOCKED, PipelineStage.INITIAL).allowed

    def test_same_stage(self):
        """Test re-entering the current stage is always allowed."""
        assert can_proceed_to(PipelineStage.GENERATED, PipelineStage.GENERATED).allowed

    def test_rejection_reason(self):
        """Test a rejected move lists the allowed ones."""
        check = can_proceed_to(PipelineState(), PipelineStage.PLANNED)

        assert not check.allowed
        assert check.reason == "Cannot transition from 'initial' to 'planned'. Allowed: analyzed"

    def test_blocked_cannot_skip_ahead(self):
        """Test a blocked pipeline must restart before generating again."""
        assert not can_proceed_to(PipelineStage.BLOCKED, PipelineStage.GENERATED).allowed


class TestStateMachine:
    """Test transitions, persistence and history."""

    def test_fresh_load(self, machine):
        """Test a missing file gives a fresh initial state."""
        result = machine.load_with_info()

        assert result.was_reset
        assert not result.was_corrupted
        assert result.state.stage == PipelineStage.INITIAL

    def test_transition_persists(self, machine):
        """Test a transition is written and reloaded."""
        result = machine.transition("analyze", PipelineStage.ANALYZED, journey_ids=["JRN-0001"])

        assert result.ok
        reloaded = machine.load()
        assert reloaded.stage == PipelineStage.ANALYZED
        assert reloaded.journey_ids == ["JRN-0001"]
        assert reloaded.last_command == "analyze"
        assert [h.command for h in reloaded.history] == ["analyze"]

    def test_rejected_transition_leaves_state(self, machine):
        """Test a disallowed move does not write anything."""
        result = machine.transition("generate", PipelineStage.PLANNED)

        assert not result.ok
        assert "Allowed: analyzed" in result.reason
        assert not machine.state_path.exists()

    def test_ids_merged_without_duplicates(self, machine):
        """Test journey ids and test paths accumulate uniquely."""
        machine.transition("analyze", PipelineStage.ANALYZED, journey_ids=["JRN-0001"])
        machine.transition("plan", PipelineStage.PLANNED, journey_ids=["JRN-0001", "JRN-0002"])
        machine.transition("generate", PipelineStage.GENERATED, test_paths=["tests/a.spec.ts"])

        state = machine.load()
        assert state.journey_ids == ["JRN-0001", "JRN-0002"]
        assert state.test_paths == ["tests/a.spec.ts"]

    def test_refining_counts_attempts(self, machine):
        """Test each entry into refining is counted."""
        machine.update("test", PipelineStage.TESTED)
        machine.transition("heal", PipelineStage.REFINING)
        machine.transition("verify", PipelineStage.TESTED)
        machine.transition("heal", PipelineStage.REFINING)

        assert machine.load().refinement_attempts == 2

    def test_blocked_and_unblocked(self, machine):
        """Test blocking sets a reason and a restart clears it."""
        machine.update("test", PipelineStage.REFINING)

        blocked = machine.transition("heal", PipelineStage.BLOCKED, success=False)
        assert blocked.state.is_blocked
        assert blocked.state.blocked_reason == "blocked by heal"
        assert blocked.state.history[-1].success is False

        restarted = machine.transition("analyze", PipelineStage.ANALYZED)
        assert not restarted.state.is_blocked
        assert restarted.state.blocked_reason is None

    def test_history_bounded(self, machine):
        """Test only the most recent entries are kept."""
        for i in range(MAX_HISTORY + 10):
            machine.update(f"cmd-{i}", PipelineStage.ANALYZED)

        history = machine.load().history
        assert len(history) == MAX_HISTORY
        assert history[0].command == "cmd-10"

    def test_update_unknown_field(self, machine):
        """Test update refuses fields the state does not have."""
        with pytest.raises(ValueError, match="Unknown state field: colour"):
            machine.update("x", PipelineStage.ANALYZED, colour="blue")

    def test_update_known_field(self, machine):
        """Test update sets fields without checking the table."""
        state = machine.update("generate", PipelineStage.GENERATED, test_paths=["tests/a.spec.ts"])

        assert state.stage == PipelineStage.GENERATED
        assert machine.load().test_paths == ["tests/a.spec.ts"]

    def test_camel_case_file(self, machine):
        """Test the state file uses camelCase keys and omits nulls."""
        machine.transition("analyze", PipelineStage.ANALYZED)

        data = json.loads(machine.state_path.read_text())
        assert data["stage"] == "analyzed"
        assert data["lastCommand"] == "analyze"
        assert data["refinementAttempts"] == 0
        assert data["isBlocked"] is False
        assert "blockedReason" not in data
        assert data["version"] == "1.0"

    def test_reset(self, machine):
        """Test reset writes a fresh initial state."""
        machine.transition("analyze", PipelineStage.ANALYZED, journey_ids=["JRN-0001"])

        state = machine.reset()

        assert state.stage == PipelineStage.INITIAL
        assert machine.load().journey_ids == []

    def test_summary(self, machine):
        """Test the summary counts and next stages."""
        machine.transition("analyze", PipelineStage.ANALYZED, journey_ids=["JRN-0001"])

        summary = machine.summary()

        assert summary["stage"] == "analyzed"
        assert summary["journeyCount"] == 1
        assert summary["testCount"] == 0
        assert summary["allowedNext"] == ["planned", "initial"]
        assert summary["historyLength"] == 1
        assert summary["isBlocked"] is False

    def test_path_from_config(self, autogen_config):
        """Test the default path comes from the config data dir."""
        machine = PipelineStateMachine(config=autogen_config)

        assert machine.state_path == autogen_config.state_path


class TestCorruptionRecovery:
    """Test unreadable state files are backed up and replaced."""

    def test_invalid_json(self, machine, caplog):
        """Test broken JSON is moved aside and a fresh state returned."""
        machine.state_path.write_text("{not json")

        with caplog.at_level("WARNING"):
            result = machine.load_with_info()

        assert result.was_corrupted
        assert result.state.stage == PipelineStage.INITIAL
        assert ".corrupted." in result.backup_path.name
        assert result.backup_path.read_text() == "{not json"
        assert not machine.state_path.exists()
        assert "starting fresh" in caplog.text

    def test_non_object(self, machine):
        """Test a JSON list is treated as corrupted."""
        machine.state_path.write_text("[1, 2]")

        assert machine.load_with_info().was_corrupted

    def test_invalid_stage(self, machine):
        """Test an unknown stage value is treated as corrupted."""
        machine.state_path.write_text(json.dumps({"stage": "flying"}))

        assert machine.load_with_info().was_corrupted

    def test_unknown_version(self, machine):
        """Test a state file written by another format version is backed up and replaced."""
        machine.state_path.write_text(json.dumps({"version": "2.0", "stage": "initial"}))

        result = machine.load_with_info()

        assert result.was_corrupted
        assert result.backup_path.exists()
        assert result.state.version == "1.0"

    def test_unknown_fields_dropped(self, machine, caplog):
        """Test extra keys are warned about and ignored."""
        machine.state_path.write_text(json.dumps({"stage": "analyzed", "lastCommand": "analyze", "bogus": 1}))

        with caplog.at_level("WARNING"):
            result = machine.load_with_info()

        assert not result.was_corrupted
        assert result.state.stage == PipelineStage.ANALYZED
        assert result.state.last_command == "analyze"
        assert "unknown fields: bogus" in caplog.text

    def test_transition_after_corruption(self, machine):
        """Test commands keep working after recovery."""
        machine.state_path.write_text("garbage")

        assert machine.transition("analyze", PipelineStage.ANALYZED).ok
