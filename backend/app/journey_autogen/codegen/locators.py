"""
Locator rendering - LocatorSpec to Playwright TypeScript expressions
"""

import re

from ..ir.models import LocatorSpec, ValueSpec


def escape_string(value: str) -> str:
    """Escape for a single-quoted JS string literal"""
    return (
        value.replace("\\", "\\\\")
        .replace("'", "\\'")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\u2028", "\\u2028")
        .replace("\u2029", "\\u2029")
    )


def escape_regex(value: str) -> str:
    """Escape for the body of a JS regex literal"""
    return re.sub(r"([.*+?^${}()|\[\]\\/])", r"\\\1", value)


def to_playwright_locator(spec: LocatorSpec) -> str:
    """
    Render the locator call, without the receiver.

    role=button name=Submit -> getByRole('button', { name: 'Submit' })
    """
    strategy = spec.strategy.value
    options = spec.options
    exact = ", { exact: true }" if options and options.exact else ""

    if strategy == "role":
        opts = []
        if options and options.name:
            opts.append(f"name: '{escape_string(options.name)}'")
        if options and options.exact:
            opts.append("exact: true")
        if options and options.level:
            opts.append(f"level: {options.level}")
        opts_str = f", {{ {', '.join(opts)} }}" if opts else ""
        return f"getByRole('{escape_string(spec.value)}'{opts_str})"
    if strategy == "label":
        return f"getByLabel('{escape_string(spec.value)}'{exact})"
    if strategy == "placeholder":
        return f"getByPlaceholder('{escape_string(spec.value)}'{exact})"
    if strategy == "text":
        return f"getByText('{escape_string(spec.value)}'{exact})"
    if strategy == "testid":
        return f"getByTestId('{escape_string(spec.value)}')"
    if strategy == "xpath":
        return f"locator('xpath={escape_string(spec.value)}')"
    return f"locator('{escape_string(spec.value)}')"


def render_value(value: ValueSpec) -> str:
    """Fill value expression; actor/testData read from fixtures, generated is a template literal"""
    if value.type == "actor":
        return f"actor.{value.value}"
    if value.type == "runId":
        return "runId"
    if value.type == "generated":
        return "`" + value.value.replace("`", "\\`") + "`"
    if value.type == "testData":
        return f"testData.{value.value}"
    return f"'{escape_string(value.value)}'"
