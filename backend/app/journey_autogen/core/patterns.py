"""
Step Patterns - regexes that turn step text into IR instructions

Patterns are grouped in families. The core tier tries families in
CORE_FAMILY_ORDER and, inside a family, patterns in declaration order, so the
more specific phrasing always wins ("go back" before "go to X", "is not
visible" before "is visible").
"""

import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from ..ir.models import (
    AcceptAlert, CallModule, Check, Clear, Click, DblClick, DismissAlert,
    DismissModal, ExpectChecked, ExpectCount, ExpectDisabled, ExpectEnabled,
    ExpectHidden, ExpectText, ExpectTitle, ExpectToast, ExpectURL, ExpectValue,
    ExpectVisible, Fill, Focus, GoBack, GoForward, Goto, Hover, Instruction,
    LocatorOptions, LocatorSpec, Press, Reload, RightClick, Select, Uncheck,
    ValueSpec, WaitForHidden, WaitForLoadingComplete, WaitForNetworkIdle,
    WaitForTimeout, WaitForURL, WaitForVisible,
)

PATTERN_VERSION = "1.1.0"


@dataclass
class StepPattern:
    """A named regex plus the function that builds its instruction"""
    name: str
    regex: re.Pattern
    primitive_type: str
    extract: Callable[[re.Match], Optional[Instruction]]
    family: str = ""

    def match(self, text: str) -> Optional[Instruction]:
        m = self.regex.match(text)
        if not m:
            return None
        return self.extract(m)


def _p(name: str, regex: str, primitive_type: str, extract) -> StepPattern:
    return StepPattern(name, re.compile(regex, re.IGNORECASE), primitive_type, extract)


def _unquote(text: str) -> str:
    return re.sub(r"[\"']", "", text).strip()


# ==================== Builders ====================

def create_locator(strategy: str, value: str, name: Optional[str] = None) -> LocatorSpec:
    """Build a LocatorSpec, adding an accessible name when given"""
    if name:
        return LocatorSpec(strategy=strategy, value=value, options=LocatorOptions(name=name))
    return LocatorSpec(strategy=strategy, value=value)


def create_value_from_text(text: str) -> ValueSpec:
    """
    Classify a fill value.

    {{email}} is an actor field, $user.email is test data, anything containing
    ${...} is generated at runtime, everything else is literal.
    """
    if re.match(r"^\{\{.+\}\}$", text):
        return ValueSpec(type="actor", value=text[2:-2].strip())
    if re.match(r"^\$.+", text) and not text.startswith("${"):
        return ValueSpec(type="testData", value=text[1:])
    if re.search(r"\$\{.+\}", text):
        return ValueSpec(type="generated", value=text)
    return ValueSpec(type="literal", value=text)


def parse_selector_to_locator(selector: str) -> LocatorSpec:
    """
    Turn a natural-language target into a locator.

    "Submit button" -> role=button name=Submit
    "Help link"     -> role=link name=Help
    "Email field"   -> label=Email
    anything else   -> text
    """
    clean = re.sub(r"^the\s+", "", selector.strip(), flags=re.IGNORECASE).strip()
    clean = _unquote(clean) or clean

    if re.search(r"button$", clean, re.IGNORECASE):
        name = re.sub(r"\s*button$", "", clean, flags=re.IGNORECASE).strip()
        return create_locator("role", "button", name or None)
    if re.search(r"link$", clean, re.IGNORECASE):
        name = re.sub(r"\s*link$", "", clean, flags=re.IGNORECASE).strip()
        return create_locator("role", "link", name or None)
    if re.search(r"(?:input|field)$", clean, re.IGNORECASE):
        label = re.sub(r"\s*(?:input|field)$", "", clean, flags=re.IGNORECASE).strip()
        if label:
            return create_locator("label", label)
    return create_locator("text", clean)


def _slug_path(text: str) -> str:
    return "/" + re.sub(r"\s+", "-", text.strip().lower())


# ==================== Structured (Journey markdown bullets) ====================

STRUCTURED_PATTERNS = [
    _p("structured-action-click",
       r"^\*\*Action\*\*:\s*click\s+(?:on\s+)?(?:the\s+)?['\"]?(.+?)['\"]?\s*(button|link)?$",
       "click",
       lambda m: Click(locator=parse_selector_to_locator(f"{m.group(1)} {m.group(2) or 'button'}"))),
    _p("structured-action-fill",
       r"^\*\*Action\*\*:\s*fill\s+(?:in\s+)?['\"]?(.+?)['\"]?\s+with\s+['\"]?(.+?)['\"]?$",
       "fill",
       lambda m: Fill(locator=parse_selector_to_locator(m.group(1)),
                      value=create_value_from_text(m.group(2)))),
    _p("structured-action-navigate",
       r"^\*\*Action\*\*:\s*navigate\s+to\s+['\"]?(.+?)['\"]?$",
       "goto",
       lambda m: Goto(url=m.group(1))),
    _p("structured-wait-for-visible",
       r"^\*\*Wait for\*\*:\s*(.+?)\s+(?:to\s+)?(?:be\s+)?(?:visible|appear|load)",
       "expectVisible",
       lambda m: ExpectVisible(locator=parse_selector_to_locator(m.group(1)))),
    _p("structured-assert-visible",
       r"^\*\*Assert\*\*:\s*(.+?)\s+(?:is\s+)?visible$",
       "expectVisible",
       lambda m: ExpectVisible(locator=parse_selector_to_locator(m.group(1)))),
    _p("structured-assert-text",
       r"^\*\*Assert\*\*:\s*(.+?)\s+(?:contains|has text)\s+['\"]?(.+?)['\"]?$",
       "expectText",
       lambda m: ExpectText(locator=parse_selector_to_locator(m.group(1)), text=m.group(2))),
]


# ==================== Auth ====================

AUTH_PATTERNS = [
    _p("user-login",
       r"^(?:user\s+)?(?:logs?\s*in|login\s+is\s+performed|authenticates?)$",
       "callModule",
       lambda m: CallModule(module="auth", method="login")),
    _p("user-logout",
       r"^(?:user\s+)?(?:logs?\s*out|logout\s+is\s+performed|signs?\s*out)$",
       "callModule",
       lambda m: CallModule(module="auth", method="logout")),
    _p("login-as-role",
       r"^(?:user\s+)?logs?\s*in\s+as\s+(?:an?\s+)?(.+?)(?:\s+user)?$",
       "callModule",
       lambda m: CallModule(module="auth", method="loginAs", args=[m.group(1).lower()])),
]


# ==================== Toast ====================

_TOAST_VERB = r"(?:appears?|is\s+shown|displays?)"

TOAST_PATTERNS = [
    _p("success-toast-message",
       rf"^(?:a\s+)?success\s+toast\s+(?:with\s+)?[\"']([^\"']+)[\"']\s*(?:message\s+)?{_TOAST_VERB}$",
       "expectToast",
       lambda m: ExpectToast(toast_type="success", message=m.group(1))),
    _p("success-toast-appears-with",
       rf"^(?:a\s+)?success\s+toast\s+{_TOAST_VERB}\s+(?:with\s+)?(?:(?:message|text)\s+)?[\"']?(.+?)[\"']?$",
       "expectToast",
       lambda m: ExpectToast(toast_type="success", message=m.group(1))),
    _p("error-toast-message",
       rf"^(?:an?\s+)?error\s+toast\s+(?:with\s+)?[\"']([^\"']+)[\"']\s*(?:message\s+)?{_TOAST_VERB}$",
       "expectToast",
       lambda m: ExpectToast(toast_type="error", message=m.group(1))),
    _p("error-toast-appears-with",
       rf"^(?:an?\s+)?error\s+toast\s+{_TOAST_VERB}\s+(?:with\s+)?(?:(?:message|text)\s+)?[\"']?(.+?)[\"']?$",
       "expectToast",
       lambda m: ExpectToast(toast_type="error", message=m.group(1))),
    _p("toast-appears",
       rf"^(?:an?\s+)?(?:(success|error|info|warning)\s+)?toast\s+(?:notification\s+)?{_TOAST_VERB}$",
       "expectToast",
       lambda m: ExpectToast(toast_type=(m.group(1) or "info").lower())),
    _p("toast-with-text",
       rf"^(?:a\s+)?(?:toast|notification)\s+(?:with\s+)?(?:(?:text|message)\s+)?[\"']?(.+?)[\"']?\s+{_TOAST_VERB}$",
       "expectToast",
       lambda m: ExpectToast(toast_type="info", message=m.group(1))),
    _p("status-message-visible",
       r"^(?:a\s+)?status\s+(?:message\s+)?[\"']([^\"']+)[\"']\s+(?:is\s+)?(?:visible|shown|displayed)$",
       "expectVisible",
       lambda m: ExpectVisible(locator=create_locator("role", "status", m.group(1)))),
    _p("verify-status-message",
       r"^(?:verify|check)\s+(?:that\s+)?(?:the\s+)?status\s+(?:message\s+)?(?:shows?|displays?|contains?)\s+[\"']([^\"']+)[\"']$",
       "expectVisible",
       lambda m: ExpectVisible(locator=create_locator("role", "status", m.group(1)))),
]


# ==================== Modal / Alert ====================

MODAL_PATTERNS = [
    _p("dismiss-modal", r"^(?:dismiss|close)\s+(?:the\s+)?(?:modal|dialog)(?:\s+dialog)?$",
       "dismissModal", lambda m: DismissModal()),
    _p("accept-alert", r"^(?:accept|confirm|ok)\s+(?:the\s+)?alert$",
       "acceptAlert", lambda m: AcceptAlert()),
    _p("dismiss-alert", r"^(?:dismiss|cancel|close)\s+(?:the\s+)?alert$",
       "dismissAlert", lambda m: DismissAlert()),
]


# ==================== Navigation ====================

EXTENDED_NAVIGATION_PATTERNS = [
    _p("refresh-page", r"^(?:user\s+)?(?:refresh(?:es)?|reloads?)\s+(?:the\s+)?page$",
       "reload", lambda m: Reload()),
    _p("go-back", r"^(?:user\s+)?(?:go(?:es)?|navigates?)\s+back$",
       "goBack", lambda m: GoBack()),
    _p("go-forward", r"^(?:user\s+)?(?:go(?:es)?|navigates?)\s+forward$",
       "goForward", lambda m: GoForward()),
]

NAVIGATION_PATTERNS = [
    _p("navigate-to-url",
       r"^(?:user\s+)?(?:navigates?|go(?:es)?|opens?)\s+(?:to\s+)?(?:the\s+)?[\"']?([^\"'\s]+)[\"']?$",
       "goto",
       lambda m: Goto(url=m.group(1))),
    _p("navigate-to-page",
       r"^(?:user\s+)?(?:navigates?|go(?:es)?|opens?)\s+(?:to\s+)?(?:the\s+)?(.+?)\s+page$",
       "goto",
       lambda m: Goto(url=_slug_path(m.group(1)))),
    _p("wait-for-url-change",
       r"^(?:user\s+)?waits?\s+(?:for\s+)?(?:the\s+)?url\s+(?:to\s+)?(?:change\s+to|contain|include)\s+[\"']?([^\"']+)[\"']?$",
       "waitForURL",
       lambda m: WaitForURL(pattern=m.group(1))),
]


# ==================== Click ====================

EXTENDED_CLICK_PATTERNS = [
    _p("click-on-element",
       r"^(?:user\s+)?(?:clicks?|selects?)\s+on\s+(?:the\s+)?(.+?)$",
       "click",
       lambda m: Click(locator=parse_selector_to_locator(m.group(1)))),
    _p("press-enter-key", r"^(?:user\s+)?(?:press(?:es)?|hits?)\s+(?:the\s+)?(?:enter|return)(?:\s+key)?$",
       "press", lambda m: Press(key="Enter")),
    _p("press-tab-key", r"^(?:user\s+)?(?:press(?:es)?|hits?)\s+(?:the\s+)?tab(?:\s+key)?$",
       "press", lambda m: Press(key="Tab")),
    _p("press-escape-key", r"^(?:user\s+)?(?:press(?:es)?|hits?)\s+(?:the\s+)?(?:escape|esc)(?:\s+key)?$",
       "press", lambda m: Press(key="Escape")),
    _p("double-click",
       r"^(?:user\s+)?double[-\s]?clicks?\s+(?:on\s+)?(?:the\s+)?[\"']?(.+?)[\"']?$",
       "dblclick",
       lambda m: DblClick(locator=create_locator("text", _unquote(m.group(1))))),
    _p("right-click",
       r"^(?:user\s+)?right[-\s]?clicks?\s+(?:on\s+)?(?:the\s+)?[\"']?(.+?)[\"']?$",
       "rightClick",
       lambda m: RightClick(locator=create_locator("text", _unquote(m.group(1))))),
    _p("submit-form", r"^(?:user\s+)?submits?\s+(?:the\s+)?form$",
       "click", lambda m: Click(locator=create_locator("role", "button", "Submit"))),
]

_CLICK_VERB = r"(?:clicks?|presses?|taps?|selects?)"

CLICK_PATTERNS = [
    _p("click-button-quoted",
       rf"^(?:user\s+)?{_CLICK_VERB}\s+(?:on\s+)?(?:the\s+)?[\"']([^\"']+)[\"']\s+button$",
       "click",
       lambda m: Click(locator=create_locator("role", "button", m.group(1)))),
    _p("click-link-quoted",
       rf"^(?:user\s+)?{_CLICK_VERB}\s+(?:on\s+)?(?:the\s+)?[\"']([^\"']+)[\"']\s+link$",
       "click",
       lambda m: Click(locator=create_locator("role", "link", m.group(1)))),
    _p("click-menuitem-quoted",
       r"^(?:user\s+)?(?:clicks?|selects?)\s+(?:on\s+)?(?:the\s+)?[\"']([^\"']+)[\"']\s+menu\s*item$",
       "click",
       lambda m: Click(locator=create_locator("role", "menuitem", m.group(1)))),
    _p("click-tab-quoted",
       r"^(?:user\s+)?(?:clicks?|selects?)\s+(?:on\s+)?(?:the\s+)?[\"']([^\"']+)[\"']\s+tab$",
       "click",
       lambda m: Click(locator=create_locator("role", "tab", m.group(1)))),
    _p("click-element-quoted",
       rf"^(?:user\s+)?{_CLICK_VERB}\s+(?:on\s+)?(?:the\s+)?[\"']([^\"']+)[\"']$",
       "click",
       lambda m: Click(locator=create_locator("text", m.group(1)))),
    _p("click-element-generic",
       rf"^(?!.*\sfrom\s)(?:user\s+)?{_CLICK_VERB}\s+(?:on\s+)?(?:the\s+)?(.+?)\s+(button|link|icon|menu|tab)$",
       "click",
       lambda m: Click(locator=parse_selector_to_locator(f"{m.group(1)} {m.group(2)}"))),
]


# ==================== Fill ====================

_FILL_VERB = r"(?:enters?|types?|fills?(?:\s+in)?|inputs?)"

EXTENDED_FILL_PATTERNS = [
    _p("fill-field-with-value",
       r"^(?:user\s+)?(?:fills?|enters?|types?|inputs?)(?:\s+in)?\s+(?:the\s+)?[\"']?(.+?)[\"']?\s+(?:field|input)\s+with\s+[\"']?(.+?)[\"']?$",
       "fill",
       lambda m: Fill(locator=create_locator("label", _unquote(m.group(1))),
                      value=create_value_from_text(_unquote(m.group(2))))),
    _p("type-into-field",
       r"^(?:user\s+)?types?\s+['\"](.+?)['\"]\s+into\s+(?:the\s+)?[\"']?(.+?)[\"']?\s*(?:field|input)?$",
       "fill",
       lambda m: Fill(locator=create_locator("label", m.group(2)),
                      value=create_value_from_text(m.group(1)))),
    _p("fill-in-field-no-value",
       r"^(?:user\s+)?fills?\s+in\s+(?:the\s+)?[\"']?([^\"']+?)[\"']?\s*(?:field|input)?$",
       "fill",
       lambda m: Fill(locator=create_locator("label", _unquote(m.group(1))),
                      value=ValueSpec(type="actor",
                                      value=re.sub(r"\s+", "_", _unquote(m.group(1)).lower())))),
    _p("clear-field",
       r"^(?:user\s+)?clears?\s+(?:the\s+)?[\"']?(.+?)[\"']?\s*(?:field|input)?$",
       "clear",
       lambda m: Clear(locator=create_locator("label", _unquote(m.group(1))))),
    _p("set-value",
       r"^(?:user\s+)?sets?\s+(?:the\s+)?(?:value\s+)?(?:of\s+)?[\"']?(.+?)[\"']?\s+to\s+['\"](.+?)['\"]$",
       "fill",
       lambda m: Fill(locator=create_locator("label", m.group(1)),
                      value=create_value_from_text(m.group(2)))),
]

FILL_PATTERNS = [
    _p("fill-field-quoted-value",
       rf"^(?:user\s+)?{_FILL_VERB}\s+[\"']([^\"']+)[\"']\s+(?:in|into)\s+(?:the\s+)?[\"']([^\"']+)[\"']\s*(?:field|input)?$",
       "fill",
       lambda m: Fill(locator=create_locator("label", m.group(2)),
                      value=create_value_from_text(m.group(1)))),
    _p("fill-field-actor-value",
       rf"^(?:user\s+)?{_FILL_VERB}\s+(\{{\{{[^}}]+\}}\}})\s+(?:in|into)\s+(?:the\s+)?[\"']([^\"']+)[\"']\s*(?:field|input)?$",
       "fill",
       lambda m: Fill(locator=create_locator("label", m.group(2)),
                      value=create_value_from_text(m.group(1)))),
    _p("fill-placeholder-field",
       r"^(?:user\s+)?(?:enters?|types?|fills?)\s+[\"']([^\"']+)[\"']\s+(?:in|into)\s+(?:the\s+)?(?:field|input)\s+with\s+placeholder\s+[\"']([^\"']+)[\"']$",
       "fill",
       lambda m: Fill(locator=create_locator("placeholder", m.group(2)),
                      value=create_value_from_text(m.group(1)))),
    _p("fill-field-generic",
       rf"^(?:user\s+)?{_FILL_VERB}\s+(.+?)\s+(?:in|into)\s+(?:the\s+)?(.+?)\s*(?:field|input)?$",
       "fill",
       lambda m: Fill(locator=create_locator("label", _unquote(m.group(2))),
                      value=create_value_from_text(_unquote(m.group(1))))),
]


# ==================== Select / Check ====================

EXTENDED_SELECT_PATTERNS = [
    _p("select-from-dropdown",
       r"^(?:user\s+)?(?:selects?|chooses?)\s+['\"](.+?)['\"]\s+from\s+(?:the\s+)?dropdown$",
       "select",
       lambda m: Select(locator=create_locator("role", "combobox"), option=m.group(1))),
    _p("select-from-named-dropdown",
       r"^(?:user\s+)?(?:selects?|chooses?)\s+[\"'](.+?)[\"']\s+from\s+(?:the\s+)?(.+?)\s*(?:dropdown|select|selector|menu|list)$",
       "select",
       lambda m: Select(locator=create_locator("label", _unquote(m.group(2))), option=m.group(1))),
    _p("select-option-named",
       r"^(?:user\s+)?(?:selects?|chooses?)\s+(?:the\s+)?(?:option\s+)?(?:named\s+)?[\"'](.+?)[\"'](?:\s+option)?$",
       "select",
       lambda m: Select(locator=create_locator("role", "combobox"), option=m.group(1))),
]

SELECT_PATTERNS = [
    _p("select-option",
       r"^(?:user\s+)?(?:selects?|chooses?)\s+[\"']([^\"']+)[\"']\s+(?:from|in)\s+(?:the\s+)?[\"']([^\"']+)[\"']\s*(?:dropdown|select|menu)?$",
       "select",
       lambda m: Select(locator=create_locator("label", m.group(2)), option=m.group(1))),
]

CHECK_PATTERNS = [
    _p("check-checkbox",
       r"^(?:user\s+)?(?:checks?|enables?|ticks?)\s+(?:the\s+)?[\"']([^\"']+)[\"']\s*(?:checkbox|option)?$",
       "check",
       lambda m: Check(locator=create_locator("label", m.group(1)))),
    _p("check-checkbox-unquoted",
       r"^(?:user\s+)?(?:checks?|enables?|ticks?)\s+(?:the\s+)?(\w+(?:\s+\w+)*)\s+checkbox$",
       "check",
       lambda m: Check(locator=create_locator("label", m.group(1)))),
    _p("uncheck-checkbox",
       r"^(?:user\s+)?(?:unchecks?|disables?|unticks?)\s+(?:the\s+)?[\"']([^\"']+)[\"']\s*(?:checkbox|option)?$",
       "uncheck",
       lambda m: Uncheck(locator=create_locator("label", m.group(1)))),
    _p("uncheck-checkbox-unquoted",
       r"^(?:user\s+)?(?:unchecks?|disables?|unticks?)\s+(?:the\s+)?(\w+(?:\s+\w+)*)\s+checkbox$",
       "uncheck",
       lambda m: Uncheck(locator=create_locator("label", m.group(1)))),
]


# ==================== Assertions ====================

_VERIFY = r"(?:verify|confirm|check)\s+(?:that\s+)?(?:the\s+)?"

EXTENDED_ASSERTION_PATTERNS = [
    # negatives before positives
    _p("verify-not-visible",
       rf"^{_VERIFY}[\"']?(.+?)[\"']?\s+is\s+not\s+visible$",
       "expectHidden",
       lambda m: ExpectHidden(locator=create_locator("text", m.group(1)))),
    _p("element-should-not-be-visible",
       r"^(?:the\s+)?[\"']?(.+?)[\"']?\s+(?:should\s+)?(?:not\s+be|is\s+not)\s+(?:visible|displayed|shown)$",
       "expectHidden",
       lambda m: ExpectHidden(locator=create_locator("text", m.group(1)))),
    _p("verify-url-contains",
       rf"^{_VERIFY}url\s+contains?\s+[\"']([^\"']+)[\"']$",
       "expectURL",
       lambda m: ExpectURL(pattern=m.group(1))),
    _p("verify-title-is",
       rf"^{_VERIFY}(?:page\s+)?title\s+(?:is|equals?)\s+[\"']([^\"']+)[\"']$",
       "expectTitle",
       lambda m: ExpectTitle(title=m.group(1))),
    _p("verify-field-value",
       rf"^{_VERIFY}[\"']?(\w+)[\"']?\s+(?:field\s+)?has\s+value\s+[\"']([^\"']+)[\"']$",
       "expectValue",
       lambda m: ExpectValue(locator=create_locator("label", m.group(1)), value=m.group(2))),
    _p("verify-element-enabled",
       rf"^{_VERIFY}[\"']?(.+?)[\"']?\s+(?:button\s+)?is\s+enabled$",
       "expectEnabled",
       lambda m: ExpectEnabled(locator=create_locator("label", m.group(1)))),
    _p("verify-element-disabled",
       rf"^{_VERIFY}[\"']?(.+?)[\"']?\s+(?:input\s+)?is\s+disabled$",
       "expectDisabled",
       lambda m: ExpectDisabled(locator=create_locator("label", m.group(1)))),
    _p("verify-checkbox-checked",
       rf"^{_VERIFY}[\"']?(.+?)[\"']?\s+(?:checkbox\s+)?is\s+checked$",
       "expectChecked",
       lambda m: ExpectChecked(locator=create_locator("label", m.group(1)))),
    _p("verify-count",
       r"^(?:verify|confirm|check)\s+(?:that\s+)?(\d+)\s+(items?|elements?|rows?)\s+(?:are\s+)?(?:shown|displayed|exist|visible)$",
       "expectCount",
       lambda m: ExpectCount(
           locator=create_locator("role", "row") if m.group(2).lower().startswith("row")
           else create_locator("role", "listitem"),
           count=int(m.group(1)))),
    # generic visibility after the specific state checks
    _p("verify-element-showing",
       r"^(?:verify|confirm|ensure)\s+(?:that\s+)?(?:the\s+)?[\"']?(.+?)[\"']?\s+(?:is\s+)?(?:showing|displayed|visible)$",
       "expectVisible",
       lambda m: ExpectVisible(locator=create_locator("text", m.group(1)))),
    _p("page-should-show",
       r"^(?:the\s+)?page\s+should\s+(?:show|display|contain)\s+['\"](.+?)['\"]$",
       "expectText",
       lambda m: ExpectText(locator=create_locator("role", "main"), text=m.group(1))),
    _p("make-sure-assertion",
       r"^make\s+sure\s+(?:that\s+)?(?:the\s+)?(.+?)\s+(?:is\s+)?(?:visible|displayed|shown)$",
       "expectVisible",
       lambda m: ExpectVisible(locator=create_locator("text", _unquote(m.group(1))))),
    _p("confirm-that-assertion",
       r"^(?:verify|confirm)\s+(?:that\s+)?(?:the\s+)?[\"']?(.+?)[\"']?\s+(?:appears?|is\s+shown|displays?)$",
       "expectVisible",
       lambda m: ExpectVisible(locator=create_locator("text", m.group(1)))),
    _p("check-element-exists",
       r"^check\s+(?:that\s+)?(?:the\s+)?[\"']?(.+?)[\"']?\s+(?:exists?|is\s+present)$",
       "expectVisible",
       lambda m: ExpectVisible(locator=create_locator("text", m.group(1)))),
    # "contains" last; URL phrasing belongs to the url family
    _p("element-contains-text",
       r"^(?!(?:the\s+)?url\s)(?:the\s+)?[\"']?(.+?)[\"']?\s+(?:should\s+)?contains?\s+['\"](.+?)['\"]$",
       "expectText",
       lambda m: ExpectText(locator=create_locator("text", m.group(1)), text=m.group(2))),
]

VISIBILITY_PATTERNS = [
    _p("should-see-text",
       r"^(?:user\s+)?(?:should\s+)?(?:sees?|views?)\s+(?:the\s+)?[\"']([^\"']+)[\"']$",
       "expectVisible",
       lambda m: ExpectVisible(locator=create_locator("text", m.group(1)))),
    _p("is-visible",
       r"^[\"']?([^\"']+)[\"']?\s+(?:is\s+)?(?:visible|displayed|shown)$",
       "expectVisible",
       lambda m: ExpectVisible(locator=create_locator("text", m.group(1)))),
    _p("should-see-element",
       r"^(?:user\s+)?(?:should\s+)?(?:sees?|views?)\s+(?:the\s+)?(.+?)\s+(?:heading|button|link|form|page|element)$",
       "expectVisible",
       lambda m: ExpectVisible(locator=create_locator("text", m.group(1)))),
    _p("page-displayed",
       r"^(?:the\s+)?(.+?)\s+(?:page|screen|view)\s+(?:is\s+)?(?:displayed|shown|visible)$",
       "expectVisible",
       lambda m: ExpectVisible(locator=create_locator("text", m.group(1)))),
]

URL_PATTERNS = [
    _p("url-contains",
       r"^(?:the\s+)?url\s+(?:should\s+)?(?:contains?|includes?)\s+[\"']?([^\"'\s]+)[\"']?$",
       "expectURL", lambda m: ExpectURL(pattern=m.group(1))),
    _p("url-is",
       r"^(?:the\s+)?url\s+(?:should\s+)?(?:is|equals?|be)\s+[\"']?([^\"'\s]+)[\"']?$",
       "expectURL", lambda m: ExpectURL(pattern=m.group(1))),
    _p("redirected-to",
       r"^(?:user\s+)?(?:is\s+)?redirected\s+to\s+[\"']?([^\"'\s]+)[\"']?$",
       "expectURL", lambda m: ExpectURL(pattern=m.group(1))),
]


# ==================== Waits ====================

EXTENDED_WAIT_PATTERNS = [
    _p("wait-for-element-hidden",
       r"^(?:user\s+)?waits?\s+(?:for\s+)?(?:the\s+)?[\"']?(.+?)[\"']?\s+to\s+(?:disappear|be\s+hidden)$",
       "waitForHidden",
       lambda m: WaitForHidden(locator=create_locator("text", m.group(1)))),
    _p("wait-for-element-appear",
       r"^(?:user\s+)?waits?\s+(?:for\s+)?(?:the\s+)?[\"']?(.+?)[\"']?\s+to\s+(?:appear|show|be\s+visible)$",
       "waitForVisible",
       lambda m: WaitForVisible(locator=create_locator("text", m.group(1)))),
    _p("wait-until-loaded",
       r"^(?:user\s+)?waits?\s+until\s+(?:the\s+)?(?:page|content|data)\s+(?:is\s+)?loaded$",
       "waitForLoadingComplete", lambda m: WaitForLoadingComplete()),
    _p("wait-seconds",
       r"^(?:user\s+)?waits?\s+(?:for\s+)?(\d+)\s+seconds?$",
       "waitForTimeout", lambda m: WaitForTimeout(ms=int(m.group(1)) * 1000)),
    _p("wait-for-network",
       r"^(?:user\s+)?waits?\s+(?:for\s+)?(?:the\s+)?network\s+(?:to\s+be\s+)?idle$",
       "waitForNetworkIdle", lambda m: WaitForNetworkIdle()),
]

WAIT_PATTERNS = [
    _p("wait-for-navigation",
       r"^(?:user\s+)?(?:waits?\s+)?(?:for\s+)?navigation\s+to\s+[\"']?([^\"'\s]+)[\"']?$",
       "waitForURL", lambda m: WaitForURL(pattern=m.group(1))),
    _p("wait-for-page",
       r"^(?:user\s+)?(?:waits?\s+)?(?:for\s+)?(?:the\s+)?(.+?)\s+(?:page|screen)\s+to\s+load$",
       "waitForLoadingComplete", lambda m: WaitForLoadingComplete()),
]


# ==================== Hover / Focus ====================

HOVER_PATTERNS = [
    _p("hover-over-element",
       r"^(?:user\s+)?hovers?\s+(?:over|on)\s+(?:the\s+)?[\"']?(.+?)[\"']?$",
       "hover", lambda m: Hover(locator=create_locator("text", _unquote(m.group(1))))),
    _p("mouse-over",
       r"^(?:user\s+)?mouse\s*over\s+(?:the\s+)?[\"']?(.+?)[\"']?$",
       "hover", lambda m: Hover(locator=create_locator("text", _unquote(m.group(1))))),
]

FOCUS_PATTERNS = [
    _p("focus-on-element",
       r"^(?:user\s+)?focus(?:es)?\s+(?:on\s+)?(?:the\s+)?[\"']?(.+?)[\"']?$",
       "focus", lambda m: Focus(locator=create_locator("label", _unquote(m.group(1))))),
]


# ==================== Registry ====================

PATTERN_FAMILIES: Dict[str, List[StepPattern]] = {
    "structured": STRUCTURED_PATTERNS,
    "auth": AUTH_PATTERNS,
    "toast": TOAST_PATTERNS,
    "modal": MODAL_PATTERNS,
    "extended-navigation": EXTENDED_NAVIGATION_PATTERNS,
    "navigation": NAVIGATION_PATTERNS,
    "extended-click": EXTENDED_CLICK_PATTERNS,
    "click": CLICK_PATTERNS,
    "extended-fill": EXTENDED_FILL_PATTERNS,
    "fill": FILL_PATTERNS,
    "extended-select": EXTENDED_SELECT_PATTERNS,
    "select": SELECT_PATTERNS,
    "check": CHECK_PATTERNS,
    "extended-assertion": EXTENDED_ASSERTION_PATTERNS,
    "visibility": VISIBILITY_PATTERNS,
    "url": URL_PATTERNS,
    "extended-wait": EXTENDED_WAIT_PATTERNS,
    "wait": WAIT_PATTERNS,
    "hover": HOVER_PATTERNS,
    "focus": FOCUS_PATTERNS,
}

for _family, _patterns in PATTERN_FAMILIES.items():
    for _pattern in _patterns:
        _pattern.family = _family

CORE_FAMILY_ORDER = [f for f in PATTERN_FAMILIES if f != "structured"]


def iter_patterns(families: Optional[List[str]] = None) -> List[StepPattern]:
    """All patterns of the given families, in priority order"""
    families = families if families is not None else list(PATTERN_FAMILIES)
    return [p for family in families for p in PATTERN_FAMILIES[family]]


ALL_PATTERNS = iter_patterns()


def match_pattern(
    text: str,
    families: Optional[List[str]] = None
) -> Optional[Tuple[StepPattern, Instruction]]:
    """
    Return the first pattern that matches and the instruction it builds.

    Args:
        text: Step text (leading/trailing whitespace ignored)
        families: Restrict to these families (default: all, structured first)
    """
    stripped = text.strip()
    for pattern in iter_patterns(families):
        primitive = pattern.match(stripped)
        if primitive is not None:
            return pattern, primitive
    return None


def find_matching_patterns(text: str) -> List[str]:
    """Names of every pattern whose regex matches (for debugging overlaps)"""
    stripped = text.strip()
    return [p.name for p in ALL_PATTERNS if p.regex.match(stripped)]


def get_pattern_count_by_family() -> Dict[str, int]:
    return {family: len(patterns) for family, patterns in PATTERN_FAMILIES.items()}
