"""
Unit tests for the tiered StepMatcher and the locator resolver.
"""

import json
import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "app"))

from journey_autogen.context import AutogenContext
from journey_autogen.codegen.locators import to_playwright_locator
from journey_autogen.config import AutogenConfig
from journey_autogen.core.locator_resolver import (
    LocatorPriorityConfig, apply_locator_policy, locator_candidates, resolve_locator, validate_locator,
)
from journey_autogen.core.patterns import create_locator
from journey_autogen.core.step_matcher import (
    HINT_CONFIDENCE, NO_MATCH_REASON, MatchTier, StepMatcher, TierMatch,
    get_mapping_stats, suggest_improvements,
)
from journey_autogen.ir.models import Goto, LocatorSpec
from journey_autogen.knowledge.telemetry import BlockedStepTelemetry


class FixedTier(MatchTier):
    """Tier that always answers with the same instruction."""

    def __init__(self, name, primitive, confidence=0.5):
        self.name = name
        self.primitive = primitive
        self.confidence = confidence
        self.calls = 0

    def try_match(self, text, ctx):
        self.calls += 1
        return TierMatch(self.primitive, self.confidence, self.name)


class ExplodingTier(MatchTier):
    """Tier that always raises."""

    name = "exploding"

    def try_match(self, text, ctx):
        raise RuntimeError("boom")


class TestStepMatcherTiers:
    """Test tier ordering and isolation."""

    def test_default_tiers(self):
        """Test the bare matcher has only the deterministic pattern tiers."""
        assert StepMatcher().tier_names == ["structured", "core"]

    def test_default_factory_has_all_tiers(self, autogen_config):
        """Test StepMatcher.default wires all five tiers."""
        matcher = StepMatcher.default(autogen_config)

        assert matcher.tier_names == ["structured", "core", "learned", "fuzzy", "ai"]

    def test_core_tier_answers(self):
        """Test a core pattern maps with the core confidence."""
        result = StepMatcher().map_step_text("Click the Submit button")

        assert result.matched_tier == "core"
        assert result.confidence == 0.9
        assert result.pattern_name == "click-element-generic"
        assert result.primitive.locator.name == "Submit"
        assert not result.is_blocked
        assert not result.is_assertion

    def test_structured_tier_answers_first(self):
        """Test structured bullets are matched by the structured tier."""
        result = StepMatcher().map_step_text("**Action**: Navigate to /settings")

        assert result.matched_tier == "structured"
        assert result.confidence == 1.0

    def test_first_tier_wins(self):
        """Test later tiers are not consulted once one answers."""
        first = FixedTier("first", Goto(url="/a"))
        second = FixedTier("second", Goto(url="/b"), confidence=0.99)
        matcher = StepMatcher(tiers=[first, second])

        result = matcher.map_step_text("anything")

        assert result.primitive.url == "/a"
        assert second.calls == 0

    def test_failing_tier_is_skipped(self, caplog):
        """Test an exception in one tier does not stop matching."""
        matcher = StepMatcher(tiers=[ExplodingTier(), FixedTier("backup", Goto(url="/ok"))])

        with caplog.at_level("WARNING"):
            result = matcher.map_step_text("anything")

        assert result.matched_tier == "backup"
        assert "Tier 'exploding' failed" in caplog.text

    def test_register_before(self):
        """Test inserting a tier before a named tier."""
        matcher = StepMatcher()
        matcher.register(FixedTier("custom", Goto(url="/")), before="core")

        assert matcher.tier_names == ["structured", "custom", "core"]

    def test_register_unknown_anchor(self):
        """Test registering before an unknown tier raises."""
        with pytest.raises(ValueError):
            StepMatcher().register(FixedTier("custom", Goto(url="/")), before="nope")

    def test_tier_counts(self):
        """Test the context counts answers per tier."""
        ctx = AutogenContext()
        matcher = StepMatcher()

        matcher.map_steps(["User navigates to /login", "Drag the item to the dropzone"], ctx)

        assert ctx.tier_counts["core"] == 1
        assert ctx.tier_counts["blocked"] == 1


class TestBlockedSteps:
    """Test steps no tier can map."""

    def test_unmatched_step_is_blocked(self):
        """Test an unmapped step becomes a blocked instruction."""
        result = StepMatcher().map_step_text("Drag the item to the dropzone")

        assert result.is_blocked
        assert result.primitive.reason == NO_MATCH_REASON
        assert result.primitive.source_text == "Drag the item to the dropzone"
        assert result.matched_tier is None
        assert result.confidence == 0.0
        assert result.message == 'Could not map step: "Drag the item to the dropzone"'

    def test_blocked_step_recorded_in_telemetry(self, tmp_path):
        """Test blocked steps are appended to telemetry with a suggestion."""
        telemetry = BlockedStepTelemetry(str(tmp_path / "blocked.jsonl"))
        ctx = AutogenContext(journey_id="JRN-0001")

        StepMatcher(telemetry=telemetry).map_step_text("Drag the item to the dropzone", ctx)

        records = [json.loads(line) for line in (tmp_path / "blocked.jsonl").read_text().splitlines()]
        assert len(records) == 1
        assert records[0]["journeyId"] == "JRN-0001"
        assert records[0]["reason"] == NO_MATCH_REASON
        assert records[0]["suggestedFix"].startswith("Could not determine intent")

    def test_telemetry_write_failure_is_logged(self, tmp_path, caplog):
        """Test a telemetry OSError does not break mapping."""
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file")
        telemetry = BlockedStepTelemetry(str(blocker / "blocked.jsonl"))

        with caplog.at_level("WARNING"):
            result = StepMatcher(telemetry=telemetry).map_step_text("Drag the item")

        assert result.is_blocked
        assert "Could not write blocked-step telemetry" in caplog.text

    @pytest.mark.parametrize("text,expected", [
        ("Go somewhere nice", "navigates to /path"),
        ("Push the big red button", "Button Name"),
        ("Put stuff into the field", "Field Label"),
        ("The banner should display", "should see"),
    ])
    def test_suggest_improvements(self, text, expected):
        """Test phrasing suggestions follow the apparent intent."""
        assert expected in suggest_improvements(text)


class TestHintsInMatcher:
    """Test hints applied on top of tier answers."""

    def test_hint_overrides_locator(self):
        """Test a role hint overrides the inferred locator."""
        result = StepMatcher().map_step_text("Click the Submit button (testid=submit-form)")

        assert result.matched_tier == "core"
        assert result.primitive.locator.strategy.value == "testid"
        assert result.primitive.locator.value == "submit-form"

    def test_hint_only_mapping(self):
        """Test hints rescue text no tier understood."""
        result = StepMatcher().map_step_text("Smash the shiny thing (role=button) (label=Launch)")

        assert result.matched_tier == "hints"
        assert result.confidence == HINT_CONFIDENCE
        assert result.primitive.type == "click"
        assert result.primitive.locator.name == "Launch"

    def test_module_hint(self):
        """Test a module hint produces a module call."""
        result = StepMatcher().map_step_text("Complete onboarding (module=onboarding.finish)")

        assert result.primitive.type == "callModule"
        assert result.primitive.module == "onboarding"
        assert result.primitive.method == "finish"


class TestMappingStats:
    """Test coverage reporting."""

    def test_stats(self):
        """Test counts by tier and kind."""
        results = StepMatcher().map_steps([
            "User navigates to /login",
            "User should see 'Dashboard'",
            "Drag the item to the dropzone",
        ])

        stats = get_mapping_stats(results)

        assert stats["total"] == 3
        assert stats["mapped"] == 2
        assert stats["blocked"] == 1
        assert stats["actions"] == 1
        assert stats["assertions"] == 1
        assert stats["by_tier"] == {"core": 2}

    def test_empty(self):
        """Test stats on an empty batch."""
        assert get_mapping_stats([])["mapping_rate"] == 0.0


class TestLocatorResolver:
    """Test locator priority resolution."""

    def test_role_preferred(self):
        """Test role beats css and text."""
        candidates = [
            LocatorSpec(strategy="css", value="#submit"),
            LocatorSpec(strategy="text", value="Submit"),
            create_locator("role", "button", "Submit"),
        ]

        assert resolve_locator(candidates).strategy.value == "role"

    def test_custom_priority(self):
        """Test a custom priority order is honored."""
        config = LocatorPriorityConfig(priority=["testid", "role"])
        candidates = [create_locator("role", "button", "Go"), LocatorSpec(strategy="testid", value="go")]

        assert resolve_locator(candidates, config).strategy.value == "testid"

    def test_forbidden_skipped(self):
        """Test forbidden selectors are skipped when alternatives exist."""
        config = LocatorPriorityConfig(forbidden_patterns=[r"^#ember\d+"])
        candidates = [LocatorSpec(strategy="css", value="#ember123"), LocatorSpec(strategy="css", value=".save")]

        assert resolve_locator(candidates, config).value == ".save"

    def test_all_forbidden_falls_back_to_first(self):
        """Test the first candidate is used when everything is forbidden."""
        config = LocatorPriorityConfig(forbidden_patterns=[r"ember"])
        candidates = [LocatorSpec(strategy="css", value="#ember1"), LocatorSpec(strategy="css", value="#ember2")]

        assert resolve_locator(candidates, config).value == "#ember1"

    def test_equal_rank_keeps_order(self):
        """Test ties keep input order."""
        candidates = [LocatorSpec(strategy="text", value="A"), LocatorSpec(strategy="text", value="B")]

        assert resolve_locator(candidates).value == "A"

    def test_empty(self):
        """Test no candidates gives None."""
        assert resolve_locator([]) is None

    def test_from_config(self, autogen_config):
        """Test priority config is built from AutogenConfig."""
        autogen_config.forbidden_selectors = [r"\d{4,}"]
        config = LocatorPriorityConfig.from_config(autogen_config)

        assert config.is_forbidden(LocatorSpec(strategy="css", value="#item-12345"))

    def test_validate_warns_on_css(self):
        """Test css locators are flagged as brittle."""
        warnings = validate_locator(LocatorSpec(strategy="css", value="div > span"))

        assert any("brittle" in w for w in warnings)

    def test_validate_clean_role(self):
        """Test a role locator has no warnings."""
        assert validate_locator(create_locator("role", "button", "OK")) == []

    def test_candidates_for_named_role(self):
        """Test a named role offers text, and label for form controls."""
        button = locator_candidates(create_locator("role", "button", "Submit"))
        textbox = locator_candidates(create_locator("role", "textbox", "Email"))

        assert [(c.strategy.value, c.value) for c in button] == [("role", "button"), ("text", "Submit")]
        assert [c.strategy.value for c in textbox] == ["role", "label", "text"]

    def test_candidates_for_label(self):
        """Test a label locator offers the placeholder form."""
        candidates = locator_candidates(LocatorSpec(strategy="label", value="Email"))

        assert [(c.strategy.value, c.value) for c in candidates] == [("label", "Email"), ("placeholder", "Email")]

    def test_policy_keeps_locator_by_default(self):
        """Test the default priority leaves a role locator alone."""
        click = StepMatcher().map_step_text("Click the Submit button").primitive

        assert apply_locator_policy(click, LocatorPriorityConfig()) is click

    def test_configured_priority_changes_rendered_locator(self):
        """Test locator_priority from config reaches the mapped step."""
        ctx = AutogenContext(config=AutogenConfig(locator_priority=["text", "role"]))

        result = StepMatcher().map_step_text("Click the Submit button", ctx)

        assert to_playwright_locator(result.primitive.locator) == "getByText('Submit')"

    def test_forbidden_selector_changes_rendered_locator(self):
        """Test a forbidden selector from config steers the matcher to an alternative."""
        ctx = AutogenContext(config=AutogenConfig(forbidden_selectors=[r"^button$"]))

        result = StepMatcher().map_step_text("Click the Submit button", ctx)

        assert result.primitive.locator.strategy.value == "text"
        assert to_playwright_locator(result.primitive.locator) == "getByText('Submit')"
