"""
Journey AutoGen

Turns Journey documents (YAML frontmatter + acceptance criteria written in
plain sentences) into Playwright tests, and keeps those tests working:
- Tiered step matching (Structured → Core Patterns → Learned → Fuzzy → AI)
- Managed blocks so regeneration never touches hand-written code
- Failure classification and a bounded self-healing loop
- Crash-safe pipeline state
"""

from .errors import AutogenError, JourneyParseError, JourneyValidationError, ConfigError, IRValidationError
from .config import AutogenConfig
from .context import AutogenContext
from .core import StepMatcher, map_step_text, resolve_locator
from .journey import parse_journey, parse_journey_content, normalize_journey
from .codegen import generate_test, extract_managed_blocks, inject_managed_blocks
from .verify import run_tests, classify_output, FailureCategory
from .heal import HealingEngine, HealingConfig
from .pipeline import PipelineStage, PipelineStateMachine, atomic_write

__all__ = [
    # Errors
    "AutogenError",
    "JourneyParseError",
    "JourneyValidationError",
    "ConfigError",
    "IRValidationError",
    # Setup
    "AutogenConfig",
    "AutogenContext",
    # Matching
    "StepMatcher",
    "map_step_text",
    "resolve_locator",
    # Journeys
    "parse_journey",
    "parse_journey_content",
    "normalize_journey",
    # Code generation
    "generate_test",
    "extract_managed_blocks",
    "inject_managed_blocks",
    # Verify & heal
    "run_tests",
    "classify_output",
    "FailureCategory",
    "HealingEngine",
    "HealingConfig",
    # Pipeline
    "PipelineStage",
    "PipelineStateMachine",
    "atomic_write",
]

__version__ = "1.0.0"
