"""
Unit tests for Journey parsing and normalization to IR.
"""

import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "app"))

from journey_autogen.context import AutogenContext
from journey_autogen.core.step_matcher import StepMatcher
from journey_autogen.errors import JourneyParseError, JourneyValidationError
from journey_autogen.ir.models import CompletionSignal
from journey_autogen.journey.models import JourneyStatus
from journey_autogen.journey.normalizer import (
    completion_signals_to_assertions, normalize_journey,
    parse_locator_from_selector, validate_journey_for_codegen,
)
from journey_autogen.journey.parser import (
    ensure_ready_for_autogen, parse_journey, parse_journey_content,
    parse_journey_for_autogen, split_frontmatter,
)

MINIMAL_FRONTMATTER = """---
id: JRN-0042
title: Procedural only
status: clarified
tier: release
scope: cart
actor: buyer
completion:
  - type: url
    value: /cart
---
"""


class TestFrontmatter:
    """Test frontmatter extraction and validation."""

    def test_missing_frontmatter(self):
        """Test a document without frontmatter is a parse error."""
        with pytest.raises(JourneyParseError) as exc_info:
            split_frontmatter("# Just a heading\n", "journeys/x.md")

        assert "no YAML frontmatter" in exc_info.value.message
        assert exc_info.value.source_path == "journeys/x.md"

    def test_invalid_yaml(self):
        """Test broken YAML is a parse error."""
        with pytest.raises(JourneyParseError) as exc_info:
            split_frontmatter("---\nid: [unclosed\n---\nbody\n")

        assert "Invalid YAML" in exc_info.value.message

    def test_frontmatter_must_be_mapping(self):
        """Test a YAML list is rejected."""
        with pytest.raises(JourneyParseError):
            split_frontmatter("---\n- a\n- b\n---\n")

    def test_body_returned(self):
        """Test the body after the closing fence is returned."""
        data, body = split_frontmatter("---\nid: JRN-0001\n---\n## Section\n")

        assert data == {"id": "JRN-0001"}
        assert body == "## Section\n"

    def test_all_field_errors_reported(self):
        """Test every invalid field is listed at once."""
        content = "---\nid: JRN-1\ntitle: Bad\nstatus: clarified\ntier: nightly\nscope: x\n---\n"

        with pytest.raises(JourneyValidationError) as exc_info:
            parse_journey_content(content)

        errors = exc_info.value.errors
        assert any(e.startswith("id:") for e in errors)
        assert any(e.startswith("tier:") for e in errors)
        assert any(e.startswith("actor:") for e in errors)
        assert "Journey JRN-1 is invalid" in str(exc_info.value)

    def test_unknown_completion_type(self):
        """Test completion signal types are checked."""
        content = MINIMAL_FRONTMATTER.replace("type: url", "type: sound")

        with pytest.raises(JourneyValidationError) as exc_info:
            parse_journey_content(content)

        assert any("unknown completion signal type 'sound'" in e for e in exc_info.value.errors)


class TestJourneyParser:
    """Test parsing the markdown body."""

    def test_sample_journey(self, sample_journey_markdown):
        """Test ACs and procedural steps are extracted."""
        parsed = parse_journey_content(sample_journey_markdown)

        assert parsed.frontmatter.id == "JRN-0001"
        assert parsed.frontmatter.status == JourneyStatus.CLARIFIED
        assert [ac.id for ac in parsed.acceptance_criteria] == ["AC-1", "AC-2"]
        assert parsed.acceptance_criteria[0].title == "User signs in"
        assert len(parsed.acceptance_criteria[0].steps) == 3
        assert parsed.frontmatter.modules.foundation == ["auth"]

    def test_procedural_links(self, sample_journey_markdown):
        """Test (AC-n) references are parsed and stripped."""
        parsed = parse_journey_content(sample_journey_markdown)

        first = parsed.procedural_steps[0]
        assert first.number == 1
        assert first.text == "User navigates to /login"
        assert first.linked_ac == "AC-1"

    def test_bulleted_procedural_steps_are_numbered(self):
        """Test bullets are numbered in order when there are no numbers."""
        parsed = parse_journey_content(
            MINIMAL_FRONTMATTER + "\n## Steps\n- User logs in\n- User logs out\n"
        )

        assert [(s.number, s.text) for s in parsed.procedural_steps] == [
            (1, "User logs in"), (2, "User logs out"),
        ]

    def test_data_notes(self):
        """Test bullets of a data section are kept as notes."""
        parsed = parse_journey_content(
            MINIMAL_FRONTMATTER + "\n## Test Data\n- user: alice\n- plan: pro\n"
        )

        assert parsed.data_notes == ["user: alice", "plan: pro"]

    def test_parse_file(self, tmp_path, sample_journey_markdown):
        """Test parsing from disk keeps the source path."""
        path = tmp_path / "jrn-0001.md"
        path.write_text(sample_journey_markdown)

        parsed = parse_journey(str(path))

        assert parsed.source_path == str(path)

    def test_parse_missing_file(self, tmp_path):
        """Test a missing file is a parse error."""
        with pytest.raises(JourneyParseError):
            parse_journey(str(tmp_path / "nope.md"))

    def test_draft_not_ready(self, draft_journey_markdown):
        """Test only clarified journeys are ready for generation."""
        with pytest.raises(JourneyValidationError) as exc_info:
            parse_journey_for_autogen(draft_journey_markdown)

        assert any("must be 'clarified'" in e for e in exc_info.value.errors)

    def test_completion_required(self, sample_journey_markdown):
        """Test a journey without completion signals is not ready."""
        head, _, rest = sample_journey_markdown.partition("completion:")
        _, _, tail = rest.partition("tags:")
        parsed = parse_journey_content(head + "tags:" + tail)

        with pytest.raises(JourneyValidationError) as exc_info:
            ensure_ready_for_autogen(parsed)

        assert "journey has no completion signals" in exc_info.value.errors


class TestNormalizer:
    """Test mapping parsed journeys to IR."""

    def _normalize(self, content, **kwargs):
        return normalize_journey(parse_journey_content(content), StepMatcher(), AutogenContext(), **kwargs)

    def test_sample_stats(self, sample_journey_markdown):
        """Test step, action and assertion counts."""
        result = self._normalize(sample_journey_markdown)

        assert result.stats == {
            "total_steps": 2,
            "mapped_steps": 2,
            "blocked_steps": 1,
            "total_actions": 5,
            "total_assertions": 1,
        }

    def test_linked_procedural_step_added(self, sample_journey_markdown):
        """Test a linked procedural step not already in the AC is appended."""
        result = self._normalize(sample_journey_markdown)

        types = [a.type for a in result.journey.steps[0].actions]
        assert types == ["goto", "fill", "click", "waitForNetworkIdle"]

    def test_missing_assertion_note(self, sample_journey_markdown):
        """Test an AC with no assertion gets a TODO note."""
        result = self._normalize(sample_journey_markdown)

        assert result.journey.steps[0].notes == ["TODO: Add assertion for: User signs in"]
        assert result.journey.steps[1].notes == []

    def test_blocked_step_reported(self, sample_journey_markdown):
        """Test blocked instructions are listed with a warning."""
        result = self._normalize(sample_journey_markdown)

        assert len(result.blocked_steps) == 1
        assert result.blocked_steps[0].step_id == "AC-2"
        assert result.blocked_steps[0].source_text == "Drag the item to the dropzone"
        assert result.warnings == ['Could not map step: "Drag the item to the dropzone"']

    def test_journey_metadata(self, sample_journey_markdown):
        """Test frontmatter is carried into the IR journey."""
        journey = self._normalize(sample_journey_markdown).journey

        assert journey.tier == "smoke"
        assert "@JRN-0001" in journey.tags
        assert journey.tags[-1] == "@login"
        assert [c.type for c in journey.completion] == ["url", "toast"]
        assert journey.module_dependencies.foundation == ["auth"]

    def test_strict_drops_blocked_steps(self, sample_journey_markdown):
        """Test strict mode keeps only fully mapped steps."""
        result = self._normalize(sample_journey_markdown, strict=True)

        assert [s.id for s in result.journey.steps] == ["AC-1"]
        assert result.stats["mapped_steps"] == 1
        assert result.stats["blocked_steps"] == 1

    def test_require_ready(self, draft_journey_markdown):
        """Test a draft journey is refused unless readiness is waived."""
        with pytest.raises(JourneyValidationError):
            self._normalize(draft_journey_markdown)

        result = self._normalize(draft_journey_markdown, require_ready=False)
        assert result.journey.id == "JRN-0001"

    def test_procedural_only_journey(self):
        """Test journeys without ACs get one step per procedural step."""
        result = self._normalize(
            MINIMAL_FRONTMATTER + "\n## Procedural Steps\n1. User logs in\n2. User navigates to /cart\n"
        )

        assert [s.id for s in result.journey.steps] == ["PS-1", "PS-2"]
        assert result.journey.steps[0].actions[0].type == "callModule"

    def test_default_matcher_records_telemetry(self, sample_journey_markdown, autogen_ctx):
        """Test the default matcher logs blocked steps under data_dir."""
        normalize_journey(parse_journey_content(sample_journey_markdown), ctx=autogen_ctx)

        assert autogen_ctx.config.telemetry_path.exists()
        assert autogen_ctx.journey_id == "JRN-0001"

    def test_validate_for_codegen(self, sample_journey_markdown):
        """Test a mostly mapped journey is ready for codegen."""
        assert validate_journey_for_codegen(self._normalize(sample_journey_markdown)) == (True, [])

    def test_validate_for_codegen_all_blocked(self):
        """Test an all-blocked journey is refused."""
        content = MINIMAL_FRONTMATTER + "\n## Acceptance Criteria\n\n### AC-1: Drag\n- Drag the item to the dropzone\n"

        ok, errors = validate_journey_for_codegen(self._normalize(content, strict=True))

        assert ok is False
        assert "Journey has no steps" in errors
        assert "Too many blocked steps: 1 blocked vs 0 mapped" in errors


class TestCompletionSignals:
    """Test completion signals become final assertions."""

    def test_each_signal_type(self):
        """Test the mapping of every signal type."""
        signals = [
            CompletionSignal(type="url", value="/done"),
            CompletionSignal(type="toast", value="Order placed"),
            CompletionSignal(type="toast", value="Error saving"),
            CompletionSignal(type="element", value="[data-testid='receipt']"),
            CompletionSignal(type="element", value=".spinner", options={"state": "hidden"}),
            CompletionSignal(type="text", value="Thank you"),
            CompletionSignal(type="title", value="Receipt"),
            CompletionSignal(type="api", value="/api/orders"),
        ]

        assertions = completion_signals_to_assertions(signals)

        assert [a.type for a in assertions] == [
            "expectURL", "expectToast", "expectToast", "expectVisible",
            "expectNotVisible", "expectVisible", "expectTitle", "waitForResponse",
        ]
        assert assertions[1].toast_type == "success"
        assert assertions[2].toast_type == "error"
        assert assertions[3].locator.strategy.value == "testid"
        assert assertions[4].locator.strategy.value == "css"
        assert assertions[7].url_pattern == "/api/orders"

    def test_selector_prefixes(self):
        """Test role=, text= and friends become the matching strategy."""
        assert parse_locator_from_selector("role=dialog").strategy.value == "role"
        assert parse_locator_from_selector("text=Done").value == "Done"
        assert parse_locator_from_selector("#main").strategy.value == "css"
