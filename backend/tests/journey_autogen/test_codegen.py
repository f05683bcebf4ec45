"""
Unit tests for locator rendering, test generation and managed blocks.
"""

import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "app"))

from journey_autogen.codegen.blocks import (
    BLOCK_END, BLOCK_START, ManagedBlock, extract_managed_blocks,
    inject_managed_blocks, regenerate_file, wrap_in_block,
)
from journey_autogen.codegen.generator import (
    GenerateTestOptions, ImportStatement, collect_imports, generate_test, render_primitive,
)
from journey_autogen.codegen.locators import escape_regex, escape_string, render_value, to_playwright_locator
from journey_autogen.context import AutogenContext
from journey_autogen.core.patterns import create_locator
from journey_autogen.core.step_matcher import StepMatcher
from journey_autogen.ir.builder import JourneyBuilder, StepBuilder
from journey_autogen.ir.models import (
    Blocked, CallModule, ExpectToast, ExpectURL, Fill, Goto,
    LocatorOptions, LocatorSpec, Press, ValueSpec,
)
from journey_autogen.journey.normalizer import normalize_journey
from journey_autogen.journey.parser import parse_journey_content


@pytest.fixture
def sample_ir(sample_journey_markdown):
    parsed = parse_journey_content(sample_journey_markdown)
    return normalize_journey(parsed, StepMatcher(), AutogenContext()).journey


def _block(block_id, body):
    return f"{BLOCK_START} id={block_id}\n{body}\n{BLOCK_END}" if block_id else f"{BLOCK_START}\n{body}\n{BLOCK_END}"


class TestLocatorRendering:
    """Test LocatorSpec to Playwright expressions."""

    def test_role_with_name(self):
        """Test role locators carry their accessible name."""
        assert to_playwright_locator(create_locator("role", "button", "Submit")) == (
            "getByRole('button', { name: 'Submit' })"
        )

    def test_role_with_exact_and_level(self):
        """Test role options are rendered in order."""
        spec = LocatorSpec(strategy="role", value="heading", options=LocatorOptions(name="Cart", exact=True, level=2))

        assert to_playwright_locator(spec) == "getByRole('heading', { name: 'Cart', exact: true, level: 2 })"

    def test_label_exact(self):
        """Test exact matching on a label."""
        spec = LocatorSpec(strategy="label", value="Email", options=LocatorOptions(exact=True))

        assert to_playwright_locator(spec) == "getByLabel('Email', { exact: true })"

    @pytest.mark.parametrize("strategy,value,expected", [
        ("placeholder", "Search", "getByPlaceholder('Search')"),
        ("text", "Welcome", "getByText('Welcome')"),
        ("testid", "save-btn", "getByTestId('save-btn')"),
        ("css", "#main > .row", "locator('#main > .row')"),
        ("xpath", "//div[@id='x']", "locator('xpath=//div[@id=\\'x\\']')"),
    ])
    def test_strategies(self, strategy, value, expected):
        """Test every strategy maps to its Playwright call."""
        assert to_playwright_locator(LocatorSpec(strategy=strategy, value=value)) == expected

    def test_escape_string(self):
        """Test quotes, backslashes and newlines are escaped."""
        assert escape_string("It's a \"test\"\n") == "It\\'s a \\\"test\\\"\\n"

    def test_escape_regex(self):
        """Test regex metacharacters and slashes are escaped."""
        assert escape_regex("/orders/(1)?") == "\\/orders\\/\\(1\\)\\?"

    @pytest.mark.parametrize("value_type,value,expected", [
        ("literal", "bob's", "'bob\\'s'"),
        ("actor", "email", "actor.email"),
        ("runId", "", "runId"),
        ("generated", "user-${runId}", "`user-${runId}`"),
        ("testData", "user.password", "testData.user.password"),
    ])
    def test_render_value(self, value_type, value, expected):
        """Test value sources render as fixture reads or literals."""
        assert render_value(ValueSpec(type=value_type, value=value)) == expected


class TestRenderPrimitive:
    """Test single instruction rendering."""

    def test_goto(self):
        """Test navigation."""
        assert render_primitive(Goto(url="/login")) == "await page.goto('/login');"

    def test_expect_url_is_regex(self):
        """Test URL assertions are rendered as regex matches."""
        assert render_primitive(ExpectURL(pattern="/dashboard")) == (
            "await expect(page).toHaveURL(/\\/dashboard/);"
        )

    def test_fill_actor_value(self):
        """Test fills read actor values from the fixture."""
        primitive = Fill(locator=create_locator("label", "Email"), value=ValueSpec(type="actor", value="email"))

        assert render_primitive(primitive) == "await page.getByLabel('Email').fill(actor.email);"

    def test_press_without_locator(self):
        """Test key presses without a target use the keyboard."""
        assert render_primitive(Press(key="Enter")) == "await page.keyboard.press('Enter');"

    def test_call_module(self):
        """Test module calls pass the page and JSON arguments."""
        assert render_primitive(CallModule(module="auth", method="login")) == "await auth.login(page);"
        assert render_primitive(CallModule(module="auth", method="loginAs", args=["admin"])) == (
            'await auth.loginAs(page, "admin");'
        )

    def test_toast(self):
        """Test toast assertions with and without a message."""
        assert "getByText('Saved')" in render_primitive(ExpectToast(toast_type="success", message="Saved"))
        assert "getByRole('alert')" in render_primitive(ExpectToast(toast_type="info"))

    def test_blocked_fails_loudly(self):
        """Test blocked instructions render as a comment and a throw, indented."""
        code = render_primitive(Blocked(reason="no matching pattern", source_text="Drag it"), "  ")

        assert code.split("\n") == [
            "  // ARTK BLOCKED: no matching pattern",
            "  // Source: Drag it",
            "  throw new Error('ARTK BLOCKED: no matching pattern');",
        ]

    def test_blocked_reason_with_line_breaks(self):
        """Test a multi-line reason cannot end the comment and leak into code."""
        reason = "no pattern\nawait page.goto('/evil');\r\u2028x"

        code = render_primitive(Blocked(reason=reason, source_text="Drag it"))

        lines = code.split("\n")
        assert len(lines) == 3
        assert lines[0] == "// ARTK BLOCKED: no pattern\\nawait page.goto(\\'/evil\\');\\r\\u2028x"
        assert "\r" not in code
        assert "\u2028" not in code


class TestGenerateTest:
    """Test rendering full spec files."""

    def test_filename_and_markers(self, sample_ir):
        """Test the file name and managed block markers."""
        result = generate_test(sample_ir)

        assert result.filename == "jrn-0001.spec.ts"
        assert result.journey_id == "JRN-0001"
        assert "// ARTK:BEGIN GENERATED id=test-JRN-0001" in result.code
        assert result.code.rstrip().endswith("// ARTK:END GENERATED")
        assert "import { test, expect } from '@playwright/test';" in result.code

    def test_single_well_formed_block(self, sample_ir):
        """Test the generated file parses back to exactly one block."""
        extraction = extract_managed_blocks(generate_test(sample_ir).code)

        assert [b.id for b in extraction.blocks] == ["test-JRN-0001"]
        assert extraction.warnings == []

    def test_steps_rendered(self, sample_ir):
        """Test steps, notes and instructions appear in order."""
        code = generate_test(sample_ir).code

        assert "    await test.step('AC-1: User signs in', async () => {" in code
        assert "      // TODO: Add assertion for: User signs in" in code
        assert "      await page.goto('/login');" in code
        assert "      await page.getByRole('button', { name: 'Submit' }).click();" in code
        assert "      throw new Error('ARTK BLOCKED: no matching pattern');" in code
        assert code.index("AC-1: User signs in") < code.index("AC-2: Dashboard is shown")

    def test_completion_assertions(self, sample_ir):
        """Test completion signals become final assertions."""
        code = generate_test(sample_ir).code

        assert "    // Completion signals" in code
        assert "    await expect(page).toHaveURL(/\\/dashboard/);" in code
        assert "    await expect(page.getByText('Welcome back')).toBeVisible();" in code

    def test_tags(self, sample_ir):
        """Test journey tags are passed to test.describe."""
        assert "{ tag: ['@artk', '@journey', '@JRN-0001'," in generate_test(sample_ir).code

    def test_without_comments(self, sample_ir):
        """Test notes and section comments can be left out."""
        code = generate_test(sample_ir, GenerateTestOptions(include_comments=False)).code

        assert "TODO: Add assertion" not in code
        assert "// Completion signals" not in code

    def test_actor_and_module_imports(self):
        """Test module calls add imports and actor fills add the fixture."""
        journey = (
            JourneyBuilder("JRN-0009", "Profile")
            .tier("regression").scope("profile").actor("member")
            .step(
                StepBuilder("AC-1", "Edit name")
                .call_module("auth", "login")
                .fill(create_locator("label", "Name"), ValueSpec(type="actor", value="name"))
            )
            .build()
        )

        result = generate_test(journey, GenerateTestOptions(
            imports=[ImportStatement(members=["seed"], source="../fixtures/seed")]
        ))

        assert [i.render() for i in result.imports] == [
            "import { auth } from '@modules/auth';",
            "import { seed } from '../fixtures/seed';",
        ]
        assert "import { auth } from '@modules/auth';" in result.code
        assert "const actor = JSON.parse(process.env.ARTK_ACTOR ?? '{}');" in result.code
        assert "const testData" not in result.code

    def test_collect_imports_deduplicates(self):
        """Test a module used twice is imported once."""
        journey = (
            JourneyBuilder("JRN-0009", "Profile")
            .tier("regression").scope("profile").actor("member")
            .step(StepBuilder("AC-1", "In").call_module("auth.session", "login"))
            .step(StepBuilder("AC-2", "Out").call_module("auth.session", "logout"))
            .build()
        )

        imports = collect_imports(journey)

        assert len(imports) == 1
        assert imports[0].render() == "import { session } from '@modules/auth/session';"

    def test_custom_template(self, tmp_path, sample_ir):
        """Test a custom template path is honored."""
        template = tmp_path / "mine.j2"
        template.write_text("{{ journey.id }}|{{ block_id }}")

        result = generate_test(sample_ir, GenerateTestOptions(template_path=str(template)))

        assert result.code == "JRN-0001|test-JRN-0001"

    def test_blocks_strategy_keeps_hand_written_code(self, sample_ir):
        """Test regeneration only replaces the test's managed block."""
        existing = (
            "// helper added by hand\n"
            "import { seed } from './seed';\n"
            "\n"
            + _block("test-JRN-0001", "// stale") +
            "\n\n// trailing note\n"
        )

        code = generate_test(sample_ir, GenerateTestOptions(strategy="blocks", existing_code=existing)).code

        assert code.startswith("// helper added by hand\nimport { seed } from './seed';\n")
        assert code.endswith("\n\n// trailing note\n")
        assert "// stale" not in code
        assert "await page.goto('/login');" in code
        assert code.count("ARTK:BEGIN GENERATED") == 1

    def test_blocks_strategy_is_idempotent(self, sample_ir):
        """Test regenerating twice gives the same file."""
        existing = "// hand\n\n" + _block("test-JRN-0001", "// stale") + "\n"
        options = GenerateTestOptions(strategy="blocks", existing_code=existing)
        first = generate_test(sample_ir, options).code

        second = generate_test(sample_ir, GenerateTestOptions(strategy="blocks", existing_code=first)).code

        assert second == first


class TestManagedBlocks:
    """Test extracting and injecting managed blocks."""

    def test_extract(self):
        """Test blocks and preserved code are separated."""
        extraction = extract_managed_blocks("a\n" + _block("x", "body") + "\nb")

        assert extraction.has_blocks
        block = extraction.blocks[0]
        assert (block.id, block.content, block.start_line, block.end_line) == ("x", "body", 1, 3)
        assert extraction.preserved_code == ["a", "b"]

    def test_anonymous_block(self):
        """Test blocks without id are recognized."""
        extraction = extract_managed_blocks(_block(None, "body"))

        assert extraction.blocks[0].id is None

    def test_unclosed_block_preserved(self):
        """Test an unclosed block is kept as plain text with a warning."""
        code = "a\n// ARTK:BEGIN GENERATED id=x\nb"

        extraction = extract_managed_blocks(code)

        assert not extraction.has_blocks
        assert extraction.warnings[0].type == "unclosed"
        assert extraction.warnings[0].line == 2
        assert extraction.preserved_code == code.split("\n")

    def test_nested_block(self):
        """Test the outer half of a nested pair is kept as text."""
        code = "// ARTK:BEGIN GENERATED id=a\nx\n" + _block("b", "y")

        extraction = extract_managed_blocks(code)

        assert [b.id for b in extraction.blocks] == ["b"]
        assert extraction.warnings[0].type == "nested"
        assert extraction.warnings[0].line == 3
        assert "x" in extraction.preserved_code

    def test_invalid_id(self, caplog):
        """Test a marker with an invalid id is reported and kept."""
        with caplog.at_level("WARNING"):
            extraction = extract_managed_blocks("// ARTK:BEGIN GENERATED id=bad id!\ncode")

        assert extraction.warnings[0].type == "invalid-id"
        assert "[BLOCKS]" in caplog.text

    def test_inject_replaces_by_id(self):
        """Test a block is replaced in place and surrounding code kept."""
        existing = "// custom\n" + _block("x", "old") + "\n// tail\n"

        result = inject_managed_blocks(existing, [ManagedBlock(content="new", id="x")])

        assert result == "// custom\n" + _block("x", "new") + "\n// tail\n"

    def test_inject_is_idempotent(self):
        """Test injecting the same blocks twice changes nothing more."""
        existing = "// custom\n" + _block("x", "old") + "\n"
        blocks = [ManagedBlock(content="new", id="x")]

        once = inject_managed_blocks(existing, blocks)

        assert inject_managed_blocks(once, blocks) == once

    def test_anonymous_replaced_by_position(self):
        """Test anonymous blocks pair up in order; extras are kept."""
        existing = _block(None, "one") + "\n" + _block(None, "two")

        result = inject_managed_blocks(existing, [ManagedBlock(content="ONE")])

        assert "ONE" in result
        assert "one" not in result
        assert "two" in result

    def test_leftover_blocks_appended(self):
        """Test new blocks with no existing place go to the end."""
        existing = _block("x", "old") + "\n"

        result = inject_managed_blocks(existing, [ManagedBlock(content="new", id="x"), ManagedBlock(content="y", id="y")])

        assert result == _block("x", "new") + "\n\n" + _block("y", "y") + "\n"

    def test_unmatched_existing_block_kept(self):
        """Test existing blocks without a replacement are untouched."""
        existing = _block("keep", "mine") + "\n" + _block("x", "old")

        result = inject_managed_blocks(existing, [ManagedBlock(content="new", id="x")])

        assert result.startswith(_block("keep", "mine"))

    def test_inject_into_empty(self):
        """Test empty existing code yields just the blocks."""
        result = inject_managed_blocks("", [ManagedBlock(content="a", id="a"), ManagedBlock(content="b")])

        assert result == wrap_in_block("a", "a") + "\n\n" + wrap_in_block("b")

    def test_inject_into_code_without_blocks(self):
        """Test blocks are appended after hand-written code."""
        result = inject_managed_blocks("// header\n", [ManagedBlock(content="a", id="a")])

        assert result == "// header\n\n" + wrap_in_block("a", "a")

    def test_malformed_region_survives_injection(self):
        """Test text of an unclosed block is carried over unchanged."""
        existing = "// ARTK:BEGIN GENERATED id=x\nhalf written"

        result = inject_managed_blocks(existing, [ManagedBlock(content="new", id="x")])

        assert result.startswith(existing)

    def test_regenerate_file(self, tmp_path):
        """Test files are created, updated in place and left alone when unchanged."""
        path = tmp_path / "tests" / "jrn-0001.spec.ts"
        path.parent.mkdir()

        regenerate_file(path, [ManagedBlock(content="v1", id="t")])
        assert path.read_text() == wrap_in_block("v1", "t")

        path.write_text("// mine\n" + path.read_text() + "\n")
        updated = regenerate_file(path, [ManagedBlock(content="v2", id="t")])

        assert updated == "// mine\n" + wrap_in_block("v2", "t") + "\n"
        assert path.read_text() == updated
        assert regenerate_file(path, [ManagedBlock(content="v2", id="t")]) == updated


BLOCK_BODIES = [
    pytest.param("  await page.fill('#q', \"O'Brien & <co> ü ✓ \\\\ \\t\");", id="special-chars"),
    pytest.param("  const label = `Order ${orderId} for ${user.name}`;", id="template-literal"),
    pytest.param("  await page.goto(`/runs/${runId}?q=${encodeURIComponent('a b')}`);", id="interpolation"),
    pytest.param("  await expect(page).toHaveURL(/^\\/users\\/\\d+(a|b)*$/);", id="regex-like"),
    pytest.param("  a();\r\n  b();", id="crlf"),
    pytest.param("\n\n  x();\n", id="blank-lines"),
    pytest.param("  await page.getByRole('button', { name: 'Go' }).click();\n" * 400, id="multi-kb"),
]


class TestManagedBlockRoundTrip:
    """Test block content and surrounding code survive extract and inject unchanged."""

    @staticmethod
    def _file(body, block_id="t"):
        return "// before\n" + wrap_in_block(body, block_id) + "\n// after\n"

    @pytest.mark.parametrize("body", BLOCK_BODIES)
    def test_extract(self, body):
        """Test the body comes back exactly and only outside lines are preserved."""
        extraction = extract_managed_blocks(self._file(body))

        assert [(b.id, b.content) for b in extraction.blocks] == [("t", body)]
        assert extraction.preserved_code == ["// before", "// after", ""]
        assert extraction.warnings == []

    @pytest.mark.parametrize("body", BLOCK_BODIES)
    def test_reinject_is_identity(self, body):
        """Test injecting the extracted blocks reproduces the file byte-for-byte."""
        code = self._file(body)

        assert inject_managed_blocks(code, extract_managed_blocks(code).blocks) == code

    @pytest.mark.parametrize("body", BLOCK_BODIES)
    def test_replace_body(self, body):
        """Test a body replaces old content and hand-written lines are untouched."""
        result = inject_managed_blocks(self._file("  old();"), [ManagedBlock(content=body, id="t")])

        assert result == self._file(body)
        assert extract_managed_blocks(result).blocks[0].content == body

    def test_crlf_file(self):
        """Test a file with Windows line endings keeps them on every line."""
        code = (
            "// before\r\n"
            "// ARTK:BEGIN GENERATED id=t\r\n"
            "a();\r\n"
            "b();\r\n"
            "// ARTK:END GENERATED\r\n"
            "// after\r\n"
        )

        extraction = extract_managed_blocks(code)

        assert extraction.blocks[0].content == "a();\r\nb();\r"
        assert extraction.preserved_code == ["// before\r", "// after\r", ""]
        assert inject_managed_blocks(code, extraction.blocks) == code
        assert inject_managed_blocks(code, [ManagedBlock(content="c();\r", id="t")]) == (
            code.replace("a();\r\nb();\r", "c();\r")
        )
