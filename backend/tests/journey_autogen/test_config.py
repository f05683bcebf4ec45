"""
Unit tests for AutogenConfig, AutogenContext and the error types.
"""

import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "app"))

from journey_autogen.config import AutogenConfig, DEFAULT_LOCATOR_PRIORITY
from journey_autogen.context import AI_HISTORY_LIMIT, AutogenContext
from journey_autogen.errors import (
    AutogenError, ConfigError, IRValidationError, JourneyParseError, JourneyValidationError,
)


class TestErrors:
    """Test error codes and messages."""

    def test_codes(self):
        """Test every error carries its stable code."""
        assert JourneyParseError("x").code == "AG-101"
        assert JourneyValidationError(["x"]).code == "AG-102"
        assert ConfigError(["x"]).code == "AG-201"
        assert IRValidationError("x").code == "AG-301"

    def test_message_includes_code(self):
        """Test str() prefixes the code."""
        error = IRValidationError("bad payload")

        assert str(error) == "[AG-301] bad payload"
        assert error.message == "bad payload"

    def test_parse_error_source_path(self):
        """Test the source path is appended to the message."""
        error = JourneyParseError("Invalid frontmatter", "journeys/login.md")

        assert error.source_path == "journeys/login.md"
        assert "journeys/login.md" in error.message

    def test_validation_error_lists_all_problems(self):
        """Test every validation problem is reported."""
        error = JourneyValidationError(["id: bad", "tier: missing"], journey_id="JRN-0001")

        assert error.errors == ["id: bad", "tier: missing"]
        assert "Journey JRN-0001 is invalid" in str(error)
        assert "id: bad" in str(error)
        assert "tier: missing" in str(error)

    def test_all_errors_share_base(self):
        """Test callers can catch AutogenError for all of them."""
        for error in (JourneyParseError("x"), ConfigError(["x"]), IRValidationError("x")):
            assert isinstance(error, AutogenError)


class TestAutogenConfig:
    """Test configuration defaults and validation."""

    def test_defaults_are_valid(self):
        """Test the default configuration validates cleanly."""
        config = AutogenConfig()

        assert config.validate() == []
        assert config.llm_enabled is False
        assert config.heal_max_attempts == 3
        assert config.locator_priority == DEFAULT_LOCATOR_PRIORITY

    def test_paths_follow_data_dir(self, tmp_path):
        """Test derived paths live under data_dir."""
        config = AutogenConfig(data_dir=str(tmp_path))

        assert config.state_path == tmp_path / "state.json"
        assert config.telemetry_path == tmp_path / "telemetry" / "blocked-steps.jsonl"
        assert config.learned_patterns_dir == tmp_path / "learned"

    def test_explicit_state_file(self, tmp_path):
        """Test state_file overrides the default state path."""
        config = AutogenConfig(data_dir=str(tmp_path), state_file=str(tmp_path / "custom.json"))

        assert config.state_path == tmp_path / "custom.json"

    def test_validate_reports_every_problem(self):
        """Test validation collects all errors."""
        config = AutogenConfig(
            llm_provider="bogus",
            llm_timeout_s=0,
            heal_max_attempts=0,
            locator_priority=["role", "magic"],
            forbidden_selectors=["[unclosed"],
        )

        errors = config.validate()

        assert len(errors) == 5
        assert any("Invalid LLM provider" in e for e in errors)
        assert any("Unknown locator strategy" in e for e in errors)
        assert any("Invalid forbidden selector regex" in e for e in errors)


class TestConfigFromEnv:
    """Test loading configuration from the environment."""

    def test_reads_environment(self, tmp_path, monkeypatch):
        """Test environment variables override defaults."""
        monkeypatch.setenv("AUTOGEN_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("AUTOGEN_LLM_ENABLED", "true")
        monkeypatch.setenv("AUTOGEN_LLM_PROVIDER", "Mock")
        monkeypatch.setenv("AUTOGEN_HEAL_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("AUTOGEN_LOCATOR_PRIORITY", "testid, role")

        config = AutogenConfig.from_env(env_path=tmp_path / "missing.env")

        assert config.data_dir == str(tmp_path)
        assert config.llm_enabled is True
        assert config.llm_provider == "mock"
        assert config.heal_max_attempts == 5
        assert config.locator_priority == ["testid", "role"]

    def test_reads_dotenv_file(self, tmp_path, monkeypatch):
        """Test values from a .env file are loaded."""
        monkeypatch.delenv("AUTOGEN_FUZZY_MIN_SIMILARITY", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text("AUTOGEN_FUZZY_MIN_SIMILARITY=0.9\n")

        try:
            config = AutogenConfig.from_env(env_path=env_file)
        finally:
            monkeypatch.delenv("AUTOGEN_FUZZY_MIN_SIMILARITY", raising=False)

        assert config.fuzzy_min_similarity == 0.9

    def test_non_numeric_value_raises(self, tmp_path, monkeypatch):
        """Test a malformed number is a ConfigError."""
        monkeypatch.setenv("AUTOGEN_LLM_TIMEOUT_S", "soon")

        with pytest.raises(ConfigError) as exc_info:
            AutogenConfig.from_env(env_path=tmp_path / "missing.env")

        assert "AUTOGEN_LLM_TIMEOUT_S" in str(exc_info.value)

    def test_strict_raises_on_invalid(self, tmp_path, monkeypatch):
        """Test strict mode raises for invalid values."""
        monkeypatch.setenv("AUTOGEN_LLM_PROVIDER", "bogus")

        with pytest.raises(ConfigError):
            AutogenConfig.from_env(env_path=tmp_path / "missing.env")

    def test_non_strict_logs_warnings(self, tmp_path, monkeypatch, caplog):
        """Test non-strict mode logs problems and still returns a config."""
        monkeypatch.setenv("AUTOGEN_LLM_PROVIDER", "bogus")

        with caplog.at_level("WARNING"):
            config = AutogenConfig.from_env(env_path=tmp_path / "missing.env", strict=False)

        assert config.llm_provider == "bogus"
        assert "[CONFIG] Invalid LLM provider" in caplog.text


class TestAutogenContext:
    """Test per-run context isolation."""

    def test_contexts_do_not_share_state(self):
        """Test two contexts keep separate caches."""
        first = AutogenContext()
        second = AutogenContext()

        first.tier_counts["core"] += 1
        first.ai_stats.calls += 1

        assert second.tier_counts["core"] == 0
        assert second.ai_stats.calls == 0

    def test_reset_keeps_config(self, autogen_config):
        """Test reset clears counters but not configuration."""
        ctx = AutogenContext(config=autogen_config, journey_id="JRN-0001")
        ctx.tier_counts["core"] += 3
        ctx.ai_stats.calls = 2

        ctx.reset()

        assert ctx.config is autogen_config
        assert ctx.journey_id is None
        assert not ctx.tier_counts
        assert ctx.ai_stats.calls == 0

    def test_ai_history_is_bounded(self):
        """Test AI history keeps only the most recent entries."""
        ctx = AutogenContext()

        for i in range(AI_HISTORY_LIMIT + 5):
            ctx.ai_stats.record({"n": i})

        assert len(ctx.ai_stats.history) == AI_HISTORY_LIMIT
        assert ctx.ai_stats.history[0] == {"n": 5}
