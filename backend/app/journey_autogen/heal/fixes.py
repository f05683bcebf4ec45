"""
Healing Fixes

Each fix is a pure function (code, FixContext) -> FixResult. A fix that finds
nothing to change returns applied=False with the code untouched.
"""

import re
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from ..verify.classifier import ClassifiedFailure

logger = logging.getLogger(__name__)

TIMEOUT_START_MS = 10000
TIMEOUT_CAP_MS = 30000


@dataclass
class FixContext:
    """What the healing loop knows about the failure"""
    failure: Optional[ClassifiedFailure] = None
    # 1-based line from the failure location, when it points into the test file
    line: Optional[int] = None
    run_id_expr: str = "runId"


@dataclass
class FixResult:
    applied: bool
    code: str
    description: str


def _not_applied(code: str, description: str) -> FixResult:
    return FixResult(applied=False, code=code, description=description)


# ==================== selector-refine ====================

_CSS_LOCATOR_RE = re.compile(r"""page\.locator\(\s*(['"])(?P<css>(?:(?!\1).)+)\1\s*\)""")
_TESTID_ATTR_RE = re.compile(r"""^\[data-test(?:id|-id)?=['"]?([^'"\]]+)['"]?\]$""")
_NAMED_ATTR_RE = re.compile(r"""\[(aria-label|title|alt|name|placeholder)=['"]?([^'"\]]+)['"]?\]""")
_IDENT_RE = re.compile(r"[.#]([A-Za-z][\w-]*)")

UI_TOKEN_TO_ROLE = {
    "button": "button",
    "btn": "button",
    "input": "textbox",
    "textbox": "textbox",
    "checkbox": "checkbox",
    "radio": "radio",
    "select": "combobox",
    "dropdown": "combobox",
    "link": "link",
    "heading": "heading",
    "h1": "heading",
    "h2": "heading",
    "h3": "heading",
    "dialog": "dialog",
    "modal": "dialog",
    "alert": "alert",
    "tab": "tab",
    "menu": "menu",
    "menuitem": "menuitem",
    "table": "table",
    "row": "row",
    "cell": "cell",
    "list": "list",
    "listitem": "listitem",
    "img": "img",
    "image": "img",
    "nav": "navigation",
    "navigation": "navigation",
    "search": "search",
}


def _tokens(css: str) -> List[str]:
    return [t for t in re.split(r"[^a-z0-9]+", css.lower()) if t]


def infer_role_from_selector(css: str) -> Optional[str]:
    """ARIA role implied by tag, class or id names ('.submit-btn' -> button)"""
    for token in _tokens(css):
        if token in UI_TOKEN_TO_ROLE:
            return UI_TOKEN_TO_ROLE[token]
    return None


def infer_name_from_selector(css: str) -> Optional[str]:
    named = _NAMED_ATTR_RE.search(css)
    if named:
        return named.group(2)
    ident = _IDENT_RE.search(css)
    if not ident:
        return None
    words = [w for w in re.split(r"[-_]", ident.group(1)) if w and w.lower() not in UI_TOKEN_TO_ROLE]
    if not words or len(words[0]) <= 2:
        return None
    return " ".join(words)


def _semantic_locator(css: str) -> Optional[str]:
    testid = _TESTID_ATTR_RE.match(css.strip())
    if testid:
        return f"page.getByTestId('{testid.group(1)}')"

    role = infer_role_from_selector(css)
    name = infer_name_from_selector(css)
    if role and name:
        return f"page.getByRole('{role}', {{ name: '{name}' }})"
    if role:
        return f"page.getByRole('{role}')"

    named = _NAMED_ATTR_RE.search(css)
    if named and named.group(1) == "aria-label":
        return f"page.getByLabel('{named.group(2)}')"
    if named and named.group(1) == "placeholder":
        return f"page.getByPlaceholder('{named.group(2)}')"
    if name:
        return f"page.getByText('{name}')"
    return None


def fix_selector_refine(code: str, ctx: FixContext) -> FixResult:
    """Rewrite the first CSS locator into a role / test id / label locator"""
    for match in _CSS_LOCATOR_RE.finditer(code):
        replacement = _semantic_locator(match.group("css"))
        if replacement is None:
            continue
        new_code = code[:match.start()] + replacement + code[match.end():]
        return FixResult(
            applied=True,
            code=new_code,
            description=f"Replaced page.locator('{match.group('css')}') with {replacement}",
        )
    return _not_applied(code, "No CSS locator that could be refined")


# ==================== add-exact ====================

_ROLE_NAME_RE = re.compile(r"getByRole\(\s*'((?:[^'\\]|\\.)*)'\s*,\s*\{(?P<opts>[^}]*\bname:[^}]*)\}\s*\)")
_TEXT_LABEL_RE = re.compile(r"getBy(Text|Label)\(\s*'((?:[^'\\]|\\.)*)'\s*\)")


def fix_add_exact(code: str, ctx: FixContext) -> FixResult:
    """Add exact: true to the first role/text/label locator that lacks it"""
    candidates: List[Tuple[int, int, str]] = []

    for match in _ROLE_NAME_RE.finditer(code):
        opts = match.group("opts")
        if "exact" in opts:
            continue
        new_opts = opts.rstrip()
        candidates.append((
            match.start(), match.end(),
            f"getByRole('{match.group(1)}', {{{new_opts}, exact: true }})",
        ))
        break

    for match in _TEXT_LABEL_RE.finditer(code):
        candidates.append((
            match.start(), match.end(),
            f"getBy{match.group(1)}('{match.group(2)}', {{ exact: true }})",
        ))
        break

    if not candidates:
        return _not_applied(code, "No locator found to add exact option")

    start, end, replacement = min(candidates, key=lambda c: c[0])
    return FixResult(
        applied=True,
        code=code[:start] + replacement + code[end:],
        description=f"Added exact: true to {replacement.split('(')[0]}",
    )


# ==================== missing-await ====================

_NEEDS_AWAIT_RE = re.compile(r"^(\s*)((?:page\.|expect\()\S.*)$")
_NO_AWAIT_CALLS = ("page.on(", "page.once(", "page.off(")


def fix_missing_await(code: str, ctx: FixContext) -> FixResult:
    """Prefix await to page./expect( statements that lack it"""
    lines = code.split("\n")
    fixed = 0
    for i, line in enumerate(lines):
        match = _NEEDS_AWAIT_RE.match(line)
        if not match or match.group(2).startswith(_NO_AWAIT_CALLS):
            continue
        lines[i] = f"{match.group(1)}await {match.group(2)}"
        fixed += 1

    if not fixed:
        return _not_applied(code, "No unawaited page or expect calls")
    return FixResult(applied=True, code="\n".join(lines), description=f"Added await to {fixed} statements")


# ==================== web-first-assertion ====================

_WEB_FIRST_REWRITES = [
    (re.compile(r"(?:await\s+)?expect\(\s*await\s+(?P<loc>[^;]+?)\.isVisible\(\)\s*\)\.toBe(?:\(true\)|Truthy\(\))"),
     lambda m: f"await expect({m.group('loc')}).toBeVisible()"),
    (re.compile(r"(?:await\s+)?expect\(\s*await\s+(?P<loc>[^;]+?)\.isVisible\(\)\s*\)\.toBe(?:\(false\)|Falsy\(\))"),
     lambda m: f"await expect({m.group('loc')}).toBeHidden()"),
    (re.compile(r"(?:await\s+)?expect\(\s*await\s+(?P<loc>[^;]+?)\.isHidden\(\)\s*\)\.toBe(?:\(true\)|Truthy\(\))"),
     lambda m: f"await expect({m.group('loc')}).toBeHidden()"),
    (re.compile(r"(?:await\s+)?expect\(\s*await\s+(?P<loc>[^;]+?)\.textContent\(\)\s*\)\.(?:toBe|toEqual)\((?P<arg>[^;]*)\)"),
     lambda m: f"await expect({m.group('loc')}).toHaveText({m.group('arg')})"),
    (re.compile(r"(?:await\s+)?expect\(\s*await\s+(?P<loc>[^;]+?)\.textContent\(\)\s*\)\.toContain\((?P<arg>[^;]*)\)"),
     lambda m: f"await expect({m.group('loc')}).toContainText({m.group('arg')})"),
    (re.compile(r"(?:await\s+)?expect\(\s*await\s+(?P<loc>[^;]+?)\.inputValue\(\)\s*\)\.(?:toBe|toEqual)\((?P<arg>[^;]*)\)"),
     lambda m: f"await expect({m.group('loc')}).toHaveValue({m.group('arg')})"),
]


def fix_web_first_assertion(code: str, ctx: FixContext) -> FixResult:
    """Turn one-shot checks like expect(await x.isVisible()).toBe(true) into auto-retrying assertions"""
    new_code = code
    converted = 0
    for pattern, rewrite in _WEB_FIRST_REWRITES:
        new_code, n = pattern.subn(rewrite, new_code)
        converted += n

    if not converted:
        return _not_applied(code, "No one-shot assertions to convert")
    return FixResult(applied=True, code=new_code, description=f"Converted {converted} assertions to web-first form")


# ==================== navigation-wait ====================

_NAV_LINE_RE = re.compile(r"^(\s*)(?:await\s+)?(?:page\.goto\(|.*\.click\().*;\s*$")
LOAD_STATE_WAIT = "await page.waitForLoadState('networkidle');"


def fix_navigation_wait(code: str, ctx: FixContext) -> FixResult:
    """Wait for network idle after goto and click lines that do not already wait"""
    lines = code.split("\n")
    out: List[str] = []
    inserted = 0
    for i, line in enumerate(lines):
        out.append(line)
        match = _NAV_LINE_RE.match(line)
        if not match:
            continue
        following = next((l for l in lines[i + 1:] if l.strip()), "")
        if "waitForLoadState" in following or "waitForURL" in following:
            continue
        out.append(f"{match.group(1)}{LOAD_STATE_WAIT}")
        inserted += 1

    if not inserted:
        return _not_applied(code, "No navigation without a following wait")
    return FixResult(applied=True, code="\n".join(out), description=f"Added {inserted} load-state waits")


# ==================== timeout-increase ====================

_ASSERTION_CALL_RE = re.compile(r"(?P<head>\.(?:not\.)?to\w+\()(?P<args>.*)(?P<tail>\)\s*;\s*)$")
_TIMEOUT_OPT_RE = re.compile(r"timeout:\s*(\d+)")


def _raise_timeout(line: str) -> Optional[str]:
    if "expect(" not in line:
        return None
    existing = _TIMEOUT_OPT_RE.search(line)
    if existing:
        current = int(existing.group(1))
        if current >= TIMEOUT_CAP_MS:
            return None
        raised = min(current * 2, TIMEOUT_CAP_MS)
        return line[:existing.start(1)] + str(raised) + line[existing.end(1):]

    call = _ASSERTION_CALL_RE.search(line)
    if not call:
        return None
    args = call.group("args").strip()
    if not args:
        new_args = f"{{ timeout: {TIMEOUT_START_MS} }}"
    elif args.endswith("}") and "{" in args:
        new_args = f"{args[:-1].rstrip()}, timeout: {TIMEOUT_START_MS} }}"
    else:
        new_args = f"{args}, {{ timeout: {TIMEOUT_START_MS} }}"
    return line[:call.start()] + call.group("head") + new_args + call.group("tail")


def fix_timeout_increase(code: str, ctx: FixContext) -> FixResult:
    """Add { timeout } to expect assertions, or double an existing one (capped)"""
    lines = code.split("\n")
    targets = range(len(lines))
    if ctx.line and 0 < ctx.line <= len(lines) and "expect(" in lines[ctx.line - 1]:
        targets = [ctx.line - 1]

    changed = 0
    for i in targets:
        raised = _raise_timeout(lines[i])
        if raised is not None and raised != lines[i]:
            lines[i] = raised
            changed += 1

    if not changed:
        return _not_applied(code, f"No assertion timeouts below {TIMEOUT_CAP_MS}ms")
    return FixResult(applied=True, code="\n".join(lines), description=f"Raised timeout on {changed} assertions")


# ==================== data-namespace ====================

_FILL_LITERAL_RE = re.compile(r"""\.fill\(\s*(['"])(?P<value>(?:(?!\1)[^\\]|\\.)+)\1\s*\)""")


def _namespaced(value: str, run_id_expr: str) -> str:
    value = value.replace("`", "\\`").replace("${", "\\${")
    if re.fullmatch(r"[^@\s]+@[^@\s]+", value):
        local, domain = value.split("@", 1)
        return f"`{local}+${{{run_id_expr}}}@{domain}`"
    return f"`{value}-${{{run_id_expr}}}`"


def fix_data_namespace(code: str, ctx: FixContext) -> FixResult:
    """Make literal fill values unique per run so reruns do not collide on existing data"""
    changed = 0

    def _rewrite(match):
        nonlocal changed
        changed += 1
        return f".fill({_namespaced(match.group('value'), ctx.run_id_expr)})"

    new_code = _FILL_LITERAL_RE.sub(_rewrite, code)
    if not changed:
        return _not_applied(code, "No literal fill values to namespace")
    return FixResult(applied=True, code=new_code, description=f"Namespaced {changed} fill values with the run id")


FIXES: Dict[str, Callable[[str, FixContext], FixResult]] = {
    "selector-refine": fix_selector_refine,
    "add-exact": fix_add_exact,
    "missing-await": fix_missing_await,
    "web-first-assertion": fix_web_first_assertion,
    "navigation-wait": fix_navigation_wait,
    "timeout-increase": fix_timeout_increase,
    "data-namespace": fix_data_namespace,
}


def apply_fix(fix_type: str, code: str, ctx: Optional[FixContext] = None) -> FixResult:
    """Run one fix by name; unknown names are reported as not applied"""
    fix = FIXES.get(fix_type)
    if fix is None:
        logger.warning(f"[HEAL] Unknown fix type: {fix_type}")
        return _not_applied(code, f"Unknown fix type: {fix_type}")
    return fix(code, ctx or FixContext())
