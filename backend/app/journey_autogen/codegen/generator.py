"""
Test Generator - IRJourney to a Playwright spec file

Each IR instruction renders to one statement (blocked ones to a comment plus
a throw, so the test fails loudly). The file is rendered from a Jinja2
template and the whole test lives inside one managed block, so it can be
regenerated later without touching code the team added around it.
"""

import json
import logging
import pathlib
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader

from ..ir.models import CallModule, Fill, Instruction, IRJourney
from ..journey.normalizer import completion_signals_to_assertions
from .blocks import ManagedBlock, extract_managed_blocks, inject_managed_blocks
from .locators import escape_regex, escape_string, render_value, to_playwright_locator

logger = logging.getLogger(__name__)

TEMPLATES_DIR = pathlib.Path(__file__).parent / "templates"
DEFAULT_TEMPLATE = "test.spec.ts.j2"


@dataclass
class ImportStatement:
    members: List[str]
    source: str

    def render(self) -> str:
        return f"import {{ {', '.join(self.members)} }} from '{self.source}';"


@dataclass
class GenerateTestOptions:
    """How to render a journey"""
    template_path: Optional[str] = None
    include_comments: bool = True
    imports: List[ImportStatement] = field(default_factory=list)
    # "full" renders a fresh file; "blocks" merges into existing_code
    strategy: str = "full"
    existing_code: Optional[str] = None


@dataclass
class GenerateTestResult:
    code: str
    journey_id: str
    filename: str
    imports: List[ImportStatement]


# ==================== Primitive rendering ====================

def _loc(primitive) -> str:
    return f"page.{to_playwright_locator(primitive.locator)}"


def _timeout_opt(timeout: Optional[int]) -> str:
    return f"{{ timeout: {timeout} }}" if timeout else ""


def _regex(pattern: str) -> str:
    return f"/{escape_regex(pattern)}/"


def repr_js(value: str) -> str:
    return f"'{escape_string(value)}'"


def _render_call_module(p: CallModule) -> str:
    member = p.module.split(".")[-1]
    args = ", ".join(json.dumps(a) for a in p.args) if p.args else ""
    return f"await {member}.{p.method}(page{', ' + args if args else ''});"


def _render_toast(p) -> str:
    target = f"getByText('{escape_string(p.message)}')" if p.message else "getByRole('alert')"
    return f"await expect(page.{target}).toBeVisible();"


def _render_blocked(p) -> str:
    return (
        f"// ARTK BLOCKED: {escape_string(p.reason)}\n"
        f"// Source: {escape_string(p.source_text)}\n"
        f"throw new Error('ARTK BLOCKED: {escape_string(p.reason)}');"
    )


RENDERERS: Dict[str, Callable[[Instruction], str]] = {
    # Navigation
    "goto": lambda p: f"await page.goto('{escape_string(p.url)}');",
    "waitForURL": lambda p: f"await page.waitForURL({_regex(p.pattern)});",
    "waitForResponse": lambda p: (
        f"await page.waitForResponse(resp => resp.url().includes('{escape_string(p.url_pattern)}'));"
    ),
    "waitForLoadingComplete": lambda p: "await page.waitForLoadState('networkidle');",
    "reload": lambda p: "await page.reload();",
    "goBack": lambda p: "await page.goBack();",
    "goForward": lambda p: "await page.goForward();",

    # Waits
    "waitForVisible": lambda p: (
        f"await {_loc(p)}.waitFor({{ state: 'visible'{', timeout: ' + str(p.timeout) if p.timeout else ''} }});"
    ),
    "waitForHidden": lambda p: (
        f"await {_loc(p)}.waitFor({{ state: 'hidden'{', timeout: ' + str(p.timeout) if p.timeout else ''} }});"
    ),
    "waitForTimeout": lambda p: f"await page.waitForTimeout({p.ms});",
    "waitForNetworkIdle": lambda p: "await page.waitForLoadState('networkidle');",

    # Interactions
    "click": lambda p: f"await {_loc(p)}.click();",
    "dblclick": lambda p: f"await {_loc(p)}.dblclick();",
    "rightClick": lambda p: f"await {_loc(p)}.click({{ button: 'right' }});",
    "fill": lambda p: f"await {_loc(p)}.fill({render_value(p.value)});",
    "select": lambda p: f"await {_loc(p)}.selectOption('{escape_string(p.option)}');",
    "check": lambda p: f"await {_loc(p)}.check();",
    "uncheck": lambda p: f"await {_loc(p)}.uncheck();",
    "upload": lambda p: (
        f"await {_loc(p)}.setInputFiles([{', '.join(repr_js(f) for f in p.files)}]);"
    ),
    "press": lambda p: (
        f"await {_loc(p)}.press('{escape_string(p.key)}');" if p.locator
        else f"await page.keyboard.press('{escape_string(p.key)}');"
    ),
    "hover": lambda p: f"await {_loc(p)}.hover();",
    "focus": lambda p: f"await {_loc(p)}.focus();",
    "clear": lambda p: f"await {_loc(p)}.clear();",

    # Assertions
    "expectVisible": lambda p: f"await expect({_loc(p)}).toBeVisible({_timeout_opt(p.timeout)});",
    "expectNotVisible": lambda p: f"await expect({_loc(p)}).not.toBeVisible({_timeout_opt(p.timeout)});",
    "expectHidden": lambda p: f"await expect({_loc(p)}).toBeHidden({_timeout_opt(p.timeout)});",
    "expectText": lambda p: f"await expect({_loc(p)}).toHaveText('{escape_string(p.text)}');",
    "expectContainsText": lambda p: f"await expect({_loc(p)}).toContainText('{escape_string(p.text)}');",
    "expectValue": lambda p: f"await expect({_loc(p)}).toHaveValue('{escape_string(p.value)}');",
    "expectChecked": lambda p: (
        f"await expect({_loc(p)}).toBeChecked();" if p.checked
        else f"await expect({_loc(p)}).not.toBeChecked();"
    ),
    "expectEnabled": lambda p: f"await expect({_loc(p)}).toBeEnabled();",
    "expectDisabled": lambda p: f"await expect({_loc(p)}).toBeDisabled();",
    "expectCount": lambda p: f"await expect({_loc(p)}).toHaveCount({p.count});",
    "expectURL": lambda p: f"await expect(page).toHaveURL({_regex(p.pattern)});",
    "expectTitle": lambda p: f"await expect(page).toHaveTitle('{escape_string(p.title)}');",

    # Signals & modules
    "expectToast": _render_toast,
    "dismissModal": lambda p: (
        "await page.getByRole('dialog').getByRole('button', { name: /close|cancel|dismiss/i }).click();"
    ),
    "acceptAlert": lambda p: "page.once('dialog', dialog => dialog.accept());",
    "dismissAlert": lambda p: "page.once('dialog', dialog => dialog.dismiss());",
    "callModule": _render_call_module,
    "blocked": _render_blocked,
}


def render_primitive(primitive: Instruction, indent: str = "") -> str:
    """One instruction as Playwright code, every line prefixed with ``indent``"""
    renderer = RENDERERS.get(primitive.type)
    if renderer is None:
        return f"{indent}// Unknown primitive type: {primitive.type}"
    return "\n".join(f"{indent}{line}" for line in renderer(primitive).split("\n"))


# ==================== File generation ====================

def collect_imports(journey: IRJourney) -> List[ImportStatement]:
    """One import per module referenced by a callModule instruction"""
    modules: Dict[str, str] = {}
    for step in journey.steps:
        for instruction in step.instructions:
            if isinstance(instruction, CallModule):
                modules.setdefault(instruction.module, instruction.module.split(".")[-1])
    return [
        ImportStatement(members=[member], source=f"@modules/{module.replace('.', '/')}")
        for module, member in modules.items()
    ]


def _uses_value_type(journey: IRJourney, value_type: str) -> bool:
    return any(
        isinstance(i, Fill) and i.value.type == value_type
        for step in journey.steps for i in step.instructions
    )


def _load_template(template_path: Optional[str]):
    if template_path:
        path = pathlib.Path(template_path)
        directory, name = path.parent, path.name
    else:
        directory, name = TEMPLATES_DIR, DEFAULT_TEMPLATE
    env = Environment(
        loader=FileSystemLoader(str(directory)),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    return env.get_template(name)


def block_id_for(journey_id: str) -> str:
    return f"test-{journey_id}"


def generate_test(journey: IRJourney, options: Optional[GenerateTestOptions] = None) -> GenerateTestResult:
    """
    Render a journey to a Playwright spec.

    Args:
        journey: IR journey
        options: Rendering options; with strategy "blocks" and existing code
            only the test's managed block is replaced

    Returns:
        GenerateTestResult with code and suggested filename
    """
    options = options or GenerateTestOptions()
    imports = collect_imports(journey) + list(options.imports)

    steps = [
        {
            "id": step.id,
            "description": escape_string(step.description),
            "notes": step.notes if options.include_comments else [],
            "lines": [render_primitive(i, "      ") for i in step.instructions],
        }
        for step in journey.steps
    ]
    completion = [render_primitive(a, "    ") for a in completion_signals_to_assertions(journey.completion)]

    template = _load_template(options.template_path)
    code = template.render(
        journey=journey,
        title=escape_string(journey.title),
        tags=", ".join(f"'{escape_string(t)}'" for t in journey.tags),
        imports=[imp.render() for imp in imports],
        steps=steps,
        completion=completion,
        uses_actor=_uses_value_type(journey, "actor"),
        uses_test_data=_uses_value_type(journey, "testData"),
        include_comments=options.include_comments,
        block_id=block_id_for(journey.id),
    )

    if options.strategy == "blocks" and options.existing_code:
        generated = [
            b for b in extract_managed_blocks(code).blocks
            if b.id == block_id_for(journey.id)
        ]
        code = inject_managed_blocks(options.existing_code, generated or [
            ManagedBlock(content=code.strip(), id=block_id_for(journey.id))
        ])
    elif options.strategy not in ("full", "blocks"):
        logger.warning(f"[CODEGEN] Unknown strategy '{options.strategy}', using full generation")

    blocked = len(journey.blocked_instructions())
    if blocked:
        logger.info(f"[CODEGEN] {journey.id}: {blocked} blocked instructions rendered as failing steps")

    return GenerateTestResult(
        code=code,
        journey_id=journey.id,
        filename=f"{journey.id.lower()}.spec.ts",
        imports=imports,
    )
