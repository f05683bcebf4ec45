"""
Step Text Normalization

Two levels of normalization feed the fuzzy tier:

- light: drop the actor prefix, expand abbreviations and synonyms, stem verbs.
  The result still reads like a step, so the regex patterns can be re-run on it.
- canonical: light plus stop-word removal and quoted literals collapsed to a
  placeholder. Only used for similarity scoring.

Quoted values ("Submit", 'admin') are protected from every transformation.
"""

import re
from typing import Dict, List, Tuple

VALUE_PLACEHOLDER = "<value>"

VERB_STEMS: Dict[str, str] = {
    # click
    "clicking": "click", "clicked": "click", "clicks": "click",
    # fill (enter / type)
    "filling": "fill", "filled": "fill", "fills": "fill",
    "entering": "fill", "entered": "fill", "enters": "fill",
    "typing": "fill", "typed": "fill", "types": "fill",
    # select
    "selecting": "select", "selected": "select", "selects": "select",
    "choosing": "select", "chose": "select", "chosen": "select", "chooses": "select",
    # check / uncheck
    "checking": "check", "checked": "check", "checks": "check",
    "unchecking": "uncheck", "unchecked": "uncheck", "unchecks": "uncheck",
    # navigate
    "navigating": "navigate", "navigated": "navigate", "navigates": "navigate",
    "going": "navigate", "went": "navigate", "goes": "navigate",
    "visiting": "navigate", "visited": "navigate", "visits": "navigate",
    "opening": "navigate", "opened": "navigate", "opens": "navigate",
    # see / verify
    "seeing": "see", "saw": "see", "seen": "see", "sees": "see",
    "verifying": "verify", "verified": "verify", "verifies": "verify",
    "confirming": "verify", "confirmed": "verify", "confirms": "verify",
    "ensuring": "verify", "ensured": "verify", "ensures": "verify",
    # misc actions
    "waiting": "wait", "waited": "wait", "waits": "wait",
    "submitting": "submit", "submitted": "submit", "submits": "submit",
    "pressing": "press", "pressed": "press", "presses": "press",
    "hovering": "hover", "hovered": "hover", "hovers": "hover",
    "scrolling": "scroll", "scrolled": "scroll", "scrolls": "scroll",
    "focusing": "focus", "focused": "focus", "focuses": "focus",
    "dragging": "drag", "dragged": "drag", "drags": "drag",
    "dropping": "drop", "dropped": "drop", "drops": "drop",
    "clearing": "clear", "cleared": "clear", "clears": "clear",
    "uploading": "upload", "uploaded": "upload", "uploads": "upload",
    "downloading": "download", "downloaded": "download", "downloads": "download",
    # assertions
    "asserting": "assert", "asserted": "assert", "asserts": "assert",
    "expecting": "expect", "expected": "expect", "expects": "expect",
    "showing": "show", "showed": "show", "shown": "show", "shows": "show",
    "displaying": "display", "displayed": "display", "displays": "display",
    "hiding": "hide", "hid": "hide", "hidden": "hide", "hides": "hide",
    "enabling": "enable", "enabled": "enable", "enables": "enable",
    "disabling": "disable", "disabled": "disable", "disables": "disable",
}

ABBREVIATIONS: Dict[str, str] = {
    # shorthand
    "btn": "button", "msg": "message", "err": "error", "pwd": "password",
    "usr": "user", "nav": "navigation", "pg": "page", "txt": "text",
    "num": "number", "val": "value", "img": "image", "pic": "picture",
    "lbl": "label", "chk": "checkbox", "chkbox": "checkbox", "cb": "checkbox",
    "rb": "radio", "dd": "dropdown", "sel": "select", "dlg": "dialog",
    "mdl": "modal", "lnk": "link", "tbl": "table", "col": "column",
    "hdr": "header", "ftr": "footer", "sec": "section",
    # element synonyms
    "textbox": "field", "text field": "field", "text input": "field",
    "input field": "field", "inputbox": "field",
    "combobox": "dropdown", "combo box": "dropdown", "selectbox": "dropdown",
    "select box": "dropdown", "picker": "dropdown", "listbox": "dropdown",
    "list box": "dropdown",
    # action synonyms
    "sign in": "login", "log in": "login", "signin": "login",
    "sign out": "logout", "log out": "logout", "signout": "logout",
    "search box": "search field", "search bar": "search field",
}

STOP_WORDS = frozenset("""
    the a an is are was were be been being have has had do does did will would
    could should may might must shall can need dare ought used to of in for on
    with at by from up about into through during before after above below
    between under again further then once here there when where why how all
    each few more most other some such no nor not only own same so than too
    very just and
""".split())

ACTOR_PREFIXES = [
    re.compile(r"^the user\s+", re.IGNORECASE),
    re.compile(r"^user\s+", re.IGNORECASE),
    re.compile(r"^i\s+", re.IGNORECASE),
    re.compile(r"^we\s+", re.IGNORECASE),
    re.compile(r"^they\s+", re.IGNORECASE),
    re.compile(r"^customer\s+", re.IGNORECASE),
    re.compile(r"^visitor\s+", re.IGNORECASE),
    re.compile(r"^admin\s+", re.IGNORECASE),
    re.compile(r"^administrator\s+", re.IGNORECASE),
]

_QUOTED_RE = re.compile(r"""(['"])([^'"]*)\1""")
_PLACEHOLDER_RE = re.compile(r"__q(\d+)__")
_ABBREVIATION_RES: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"\b" + re.escape(abbr) + r"\b", re.IGNORECASE), expansion)
    for abbr, expansion in sorted(ABBREVIATIONS.items(), key=lambda kv: -len(kv[0]))
]


def stem_word(word: str) -> str:
    lower = word.lower()
    return VERB_STEMS.get(lower, lower)


def expand_abbreviations(text: str) -> str:
    """Expand shorthand and synonyms, longest phrases first"""
    result = text.lower()
    for pattern, expansion in _ABBREVIATION_RES:
        result = pattern.sub(expansion, result)
    return result


def remove_actor_prefix(text: str) -> str:
    result = text
    for pattern in ACTOR_PREFIXES:
        result = pattern.sub("", result)
    return result.strip()


def remove_stop_words(text: str) -> str:
    return " ".join(w for w in text.split() if w.lower() not in STOP_WORDS)


def _protect_quotes(text: str) -> Tuple[str, List[str]]:
    quotes: List[str] = []

    def _swap(match):
        quotes.append(match.group(0))
        return f"__q{len(quotes) - 1}__"

    return _QUOTED_RE.sub(_swap, text), quotes


def _restore_quotes(text: str, quotes: List[str], placeholder: str = None) -> str:
    def _swap(match):
        if placeholder is not None:
            return placeholder
        return quotes[int(match.group(1))]

    return _PLACEHOLDER_RE.sub(_swap, text)


def normalize_step_text(
    text: str,
    stem_verbs: bool = True,
    expand: bool = True,
    drop_stop_words: bool = False,
    drop_actor: bool = True,
    collapse_quotes: bool = False,
) -> str:
    """
    Normalize step text for matching.

    Args:
        text: Raw step text
        stem_verbs: Reduce verb forms to their base ("clicks" -> "click")
        expand: Expand abbreviations and synonyms ("btn" -> "button")
        drop_stop_words: Remove articles, prepositions and auxiliaries
        drop_actor: Remove a leading actor ("the user", "I")
        collapse_quotes: Replace quoted literals with VALUE_PLACEHOLDER

    Returns:
        Normalized text; quoted literals keep their original case
    """
    result, quotes = _protect_quotes(text.strip())

    if drop_actor:
        result = remove_actor_prefix(result)

    result = result.lower()

    if expand:
        result = expand_abbreviations(result)

    if stem_verbs:
        result = " ".join(
            w if _PLACEHOLDER_RE.fullmatch(w) or re.search(r"[^a-z]", w) else stem_word(w)
            for w in result.split()
        )

    if drop_stop_words:
        result = remove_stop_words(result)

    result = re.sub(r"\s+", " ", result).strip()
    return _restore_quotes(result, quotes, VALUE_PLACEHOLDER if collapse_quotes else None)


def light_normalize(text: str) -> str:
    """Actor removal, abbreviation expansion and stemming; keeps sentence shape"""
    return normalize_step_text(text)


def canonical_form(text: str) -> str:
    """Most aggressive normalization, used for similarity scoring only"""
    return normalize_step_text(text, drop_stop_words=True, collapse_quotes=True)


def are_steps_equivalent(first: str, second: str) -> bool:
    return canonical_form(first) == canonical_form(second)
