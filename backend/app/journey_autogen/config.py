"""
AutoGen Configuration

Settings are read from the environment after loading ``backend/.env``.
Each component also accepts explicit arguments, so tests never need
environment variables.
"""

import os
import re
import logging
import pathlib
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

from .errors import ConfigError

logger = logging.getLogger(__name__)

# backend/.env (journey_autogen -> app -> backend)
DEFAULT_ENV_PATH = pathlib.Path(__file__).parent.parent.parent / ".env"

LOCATOR_STRATEGIES = ["role", "label", "placeholder", "text", "testid", "css", "xpath"]
DEFAULT_LOCATOR_PRIORITY = ["role", "label", "placeholder", "text", "testid", "css"]
LLM_PROVIDERS = ["anthropic", "openai", "mock"]


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigError([f"{name} must be a number, got: {value!r}"])


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigError([f"{name} must be an integer, got: {value!r}"])


def _env_list(name: str, default: List[str]) -> List[str]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class AutogenConfig:
    """Runtime settings for the whole pipeline"""
    data_dir: str = "data/autogen"
    state_file: Optional[str] = None

    # AI fallback tier (off by default for deterministic builds)
    llm_enabled: bool = False
    llm_provider: str = "anthropic"
    llm_model: Optional[str] = None
    llm_timeout_s: float = 10.0
    llm_budget_usd: float = 0.50
    llm_cache_ttl_s: int = 3600

    # Matching thresholds
    learned_min_confidence: float = 0.7
    fuzzy_min_similarity: float = 0.85

    # Healing / runner
    heal_max_attempts: int = 3
    runner_timeout_s: float = 600.0

    # Locator policy
    locator_priority: List[str] = field(default_factory=lambda: list(DEFAULT_LOCATOR_PRIORITY))
    forbidden_selectors: List[str] = field(default_factory=list)

    @property
    def state_path(self) -> pathlib.Path:
        if self.state_file:
            return pathlib.Path(self.state_file)
        return pathlib.Path(self.data_dir) / "state.json"

    @property
    def telemetry_path(self) -> pathlib.Path:
        return pathlib.Path(self.data_dir) / "telemetry" / "blocked-steps.jsonl"

    @property
    def learned_patterns_dir(self) -> pathlib.Path:
        return pathlib.Path(self.data_dir) / "learned"

    def validate(self) -> List[str]:
        """
        Validate configuration values.

        Returns:
            List of error messages (empty if valid)
        """
        errors = []

        if self.llm_provider not in LLM_PROVIDERS:
            errors.append(
                f"Invalid LLM provider: '{self.llm_provider}'. "
                f"Valid providers: {', '.join(LLM_PROVIDERS)}"
            )
        if self.llm_timeout_s <= 0:
            errors.append(f"LLM timeout must be positive, got: {self.llm_timeout_s}")
        if self.llm_budget_usd < 0:
            errors.append(f"LLM budget cannot be negative, got: {self.llm_budget_usd}")
        if self.llm_cache_ttl_s < 0:
            errors.append(f"LLM cache TTL cannot be negative, got: {self.llm_cache_ttl_s}")
        if not 0.0 <= self.learned_min_confidence <= 1.0:
            errors.append(
                f"Learned min confidence must be between 0 and 1, got: {self.learned_min_confidence}"
            )
        if not 0.0 < self.fuzzy_min_similarity <= 1.0:
            errors.append(
                f"Fuzzy min similarity must be in (0, 1], got: {self.fuzzy_min_similarity}"
            )
        if self.heal_max_attempts < 1:
            errors.append(f"Heal max attempts must be at least 1, got: {self.heal_max_attempts}")
        if self.runner_timeout_s <= 0:
            errors.append(f"Runner timeout must be positive, got: {self.runner_timeout_s}")

        for strategy in self.locator_priority:
            if strategy not in LOCATOR_STRATEGIES:
                errors.append(
                    f"Unknown locator strategy in priority: '{strategy}'. "
                    f"Valid strategies: {', '.join(LOCATOR_STRATEGIES)}"
                )
        for pattern in self.forbidden_selectors:
            try:
                re.compile(pattern)
            except re.error as e:
                errors.append(f"Invalid forbidden selector regex '{pattern}': {e}")

        return errors

    @classmethod
    def from_env(
        cls,
        env_path: Optional[pathlib.Path] = None,
        strict: bool = True
    ) -> "AutogenConfig":
        """
        Build configuration from environment variables.

        Args:
            env_path: .env file to load first (defaults to backend/.env)
            strict: Raise ConfigError when validation fails

        Returns:
            AutogenConfig instance
        """
        load_dotenv(env_path or DEFAULT_ENV_PATH)

        config = cls(
            data_dir=os.getenv("AUTOGEN_DATA_DIR", "data/autogen"),
            state_file=os.getenv("AUTOGEN_STATE_FILE") or None,
            llm_enabled=_env_bool("AUTOGEN_LLM_ENABLED", False),
            llm_provider=os.getenv("AUTOGEN_LLM_PROVIDER", "anthropic").strip().lower(),
            llm_model=os.getenv("AUTOGEN_LLM_MODEL") or None,
            llm_timeout_s=_env_float("AUTOGEN_LLM_TIMEOUT_S", 10.0),
            llm_budget_usd=_env_float("AUTOGEN_LLM_BUDGET_USD", 0.50),
            llm_cache_ttl_s=_env_int("AUTOGEN_LLM_CACHE_TTL_S", 3600),
            learned_min_confidence=_env_float("AUTOGEN_LEARNED_MIN_CONFIDENCE", 0.7),
            fuzzy_min_similarity=_env_float("AUTOGEN_FUZZY_MIN_SIMILARITY", 0.85),
            heal_max_attempts=_env_int("AUTOGEN_HEAL_MAX_ATTEMPTS", 3),
            runner_timeout_s=_env_float("AUTOGEN_RUNNER_TIMEOUT_S", 600.0),
            locator_priority=_env_list("AUTOGEN_LOCATOR_PRIORITY", DEFAULT_LOCATOR_PRIORITY),
            forbidden_selectors=_env_list("AUTOGEN_FORBIDDEN_SELECTORS", []),
        )

        errors = config.validate()
        if errors:
            if strict:
                raise ConfigError(errors)
            for error in errors:
                logger.warning(f"[CONFIG] {error}")

        return config
