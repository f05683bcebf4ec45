"""
Machine hints - explicit locator/behavior overrides written inline in step text

    User clicks the Submit button (role=button)
    User enters email (label="Email Address") (exact)
    See heading (role=heading) (level=2)
    Login with credentials (module=auth.login)

Hints are stripped before pattern matching and applied to whatever the
matcher produced, so an author can always overrule inference.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..ir.models import CallModule, Check, Click, ExpectVisible, Fill, Instruction, LocatorOptions, LocatorSpec, ValueSpec

LOCATOR_HINTS = ("role", "testid", "label", "text", "exact", "level")
BEHAVIOR_HINTS = ("timeout", "module", "signal", "wait")

VALID_ROLES = frozenset("""
    alert alertdialog application article banner button cell checkbox columnheader
    combobox complementary contentinfo definition dialog directory document feed
    figure form grid gridcell group heading img link list listbox listitem log
    main marquee math menu menubar menuitem menuitemcheckbox menuitemradio
    navigation none note option presentation progressbar radio radiogroup region
    row rowgroup rowheader scrollbar search searchbox separator slider spinbutton
    status switch tab table tablist tabpanel term textbox timer toolbar tooltip
    tree treegrid treeitem
""".split())

_HINT_RE = re.compile(r"""\(\s*([a-z]+)\s*(?:=\s*(?:"([^"]*)"|'([^']*)'|([^)\s]+)))?\s*\)""", re.IGNORECASE)


@dataclass
class ExtractedHints:
    """Hints found in one step text"""
    clean_text: str
    locator: Dict[str, Any] = field(default_factory=dict)
    behavior: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    @property
    def has_hints(self) -> bool:
        return bool(self.locator or self.behavior)

    @property
    def has_locator_hints(self) -> bool:
        return any(k in self.locator for k in ("role", "testid", "label", "text"))


def extract_hints(text: str) -> ExtractedHints:
    """Pull every ``(key=value)`` hint out of ``text``"""
    locator: Dict[str, Any] = {}
    behavior: Dict[str, Any] = {}
    warnings: List[str] = []

    def _consume(match) -> str:
        key = match.group(1).lower()
        raw = next((g for g in match.groups()[1:] if g is not None), None)

        if key not in LOCATOR_HINTS and key not in BEHAVIOR_HINTS:
            warnings.append(f"Unknown hint type: {key}")
            return match.group(0)

        if key == "exact":
            locator["exact"] = raw is None or raw.lower() == "true"
        elif key in ("level", "timeout"):
            if raw is None or not raw.isdigit():
                warnings.append(f"Hint {key} needs a number, got: {raw}")
                return ""
            (locator if key == "level" else behavior)[key] = int(raw)
        elif raw is None or raw == "":
            warnings.append(f"Hint {key} needs a value")
        elif key == "role":
            if raw.lower() not in VALID_ROLES:
                warnings.append(f"Invalid ARIA role: {raw}")
            locator["role"] = raw.lower()
        elif key in LOCATOR_HINTS:
            locator[key] = raw
        else:
            behavior[key] = raw
        return ""

    clean = _HINT_RE.sub(_consume, text)
    clean = re.sub(r"\s{2,}", " ", clean).strip()
    return ExtractedHints(clean_text=clean, locator=locator, behavior=behavior, warnings=warnings)


def build_locator_from_hints(hints: ExtractedHints) -> Optional[LocatorSpec]:
    """testid beats role beats label beats text"""
    loc = hints.locator
    exact = True if loc.get("exact") else None

    if loc.get("testid"):
        return LocatorSpec(strategy="testid", value=loc["testid"])
    if loc.get("role"):
        options = LocatorOptions(name=loc.get("label"), exact=exact, level=loc.get("level"))
        has_options = any(v is not None for v in (options.name, options.exact, options.level))
        return LocatorSpec(strategy="role", value=loc["role"], options=options if has_options else None)
    for strategy in ("label", "text"):
        if loc.get(strategy):
            return LocatorSpec(
                strategy=strategy,
                value=loc[strategy],
                options=LocatorOptions(exact=True) if exact else None,
            )
    return None


def parse_module_hint(value: str) -> Optional[Dict[str, str]]:
    """'auth.login' -> {'module': 'auth', 'method': 'login'}"""
    module, _, method = value.rpartition(".")
    if not module or not method:
        return None
    return {"module": module, "method": method}


def apply_hints(primitive: Instruction, hints: ExtractedHints) -> Instruction:
    """Return a copy of ``primitive`` with hinted values overriding inferred ones"""
    update: Dict[str, Any] = {}
    fields = type(primitive).model_fields

    if hints.has_locator_hints and "locator" in fields:
        locator = build_locator_from_hints(hints)
        if locator is not None:
            update["locator"] = locator
    if "timeout" in hints.behavior and "timeout" in fields:
        update["timeout"] = hints.behavior["timeout"]
    if "module" in hints.behavior and isinstance(primitive, CallModule):
        parsed = parse_module_hint(hints.behavior["module"])
        if parsed:
            update.update(parsed)

    return primitive.model_copy(update=update) if update else primitive


def create_primitive_from_hints(text: str, hints: ExtractedHints) -> Optional[Instruction]:
    """Infer an action for text no tier understood, using the hinted locator"""
    if "module" in hints.behavior:
        parsed = parse_module_hint(hints.behavior["module"])
        if parsed:
            return CallModule(**parsed)

    locator = build_locator_from_hints(hints)
    if locator is None:
        return None

    lower = text.lower()
    if "click" in lower or "press" in lower:
        return Click(locator=locator)
    if any(k in lower for k in ("enter", "type", "fill")):
        quoted = re.search(r"[\"']([^\"']+)[\"']", text)
        return Fill(locator=locator, value=ValueSpec(type="literal", value=quoted.group(1) if quoted else ""))
    if any(k in lower for k in ("see", "visible", "display")):
        return ExpectVisible(locator=locator, timeout=hints.behavior.get("timeout"))
    if "check" in lower or "select" in lower:
        return Check(locator=locator)
    return Click(locator=locator)
