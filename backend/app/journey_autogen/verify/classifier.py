"""
Failure Classifier - categorize Playwright failures for the healing loop

Output is split into one chunk per numbered failure, and each chunk is run
through ordered regex checks. The first category that matches wins, so
the order of CLASSIFICATION_RULES matters.
"""

import re
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Pattern, Tuple, Union

from .runner import RunResult

logger = logging.getLogger(__name__)


class FailureCategory(str, Enum):
    TIMEOUT = "timeout"
    SELECTOR = "selector"
    ASSERTION = "assertion"
    NAVIGATION = "navigation"
    COMPILE = "compile"
    RUNTIME = "runtime"
    UNKNOWN = "unknown"


@dataclass
class SourceLocation:
    file: str
    line: int
    column: Optional[int] = None


@dataclass
class ClassifiedFailure:
    category: FailureCategory
    message: str
    location: Optional[SourceLocation] = None
    suggestion: str = ""
    test_title: Optional[str] = None
    raw: str = ""


FIX_SUGGESTIONS: Dict[FailureCategory, str] = {
    FailureCategory.TIMEOUT: "Wait for the expected state with a web-first assertion instead of a fixed delay",
    FailureCategory.SELECTOR: "Use a more stable locator (role, label or test id) and make it unique",
    FailureCategory.ASSERTION: "Check the expected value against the application state and test data",
    FailureCategory.NAVIGATION: "Check the URL pattern and wait for navigation to settle",
    FailureCategory.COMPILE: "Fix the TypeScript error in the generated test or its imports",
    FailureCategory.RUNTIME: "Fix the script error in the test or the module it calls",
    FailureCategory.UNKNOWN: "Review the failure output manually",
}


def _compile(*patterns: str) -> List[Pattern]:
    return [re.compile(p) for p in patterns]


CLASSIFICATION_RULES: List[Tuple[FailureCategory, List[Pattern]]] = [
    (FailureCategory.COMPILE, _compile(
        r"SyntaxError", r"TS\d+:", r"error TS", r"Cannot find module", r"Unexpected token",
    )),
    (FailureCategory.TIMEOUT, _compile(
        r"Timeout \d+ms exceeded", r"(?i)timed out", r"exceeded while waiting",
    )),
    (FailureCategory.SELECTOR, _compile(
        r"strict mode violation", r"locator resolved to \d+ elements",
        r"waiting for (locator|getBy)", r"No element matches",
        r"element is not (visible|attached|enabled)",
    )),
    (FailureCategory.NAVIGATION, _compile(
        r"net::ERR_", r"page\.goto:", r"toHaveURL", r"Expected URL|expected url", r"navigation failed",
    )),
    (FailureCategory.ASSERTION, _compile(
        r"expect\(.*\)\.(not\.)?to\w+", r"Expected:", r"Received:",
        r"toHaveText|toBeVisible|toHaveValue|toEqual|toBe\(",
    )),
    (FailureCategory.RUNTIME, _compile(
        r"TypeError", r"ReferenceError", r"is not a function", r"Cannot read propert", r"Error:",
    )),
]

_FAILURE_HEADER_RE = re.compile(r"^\s{2,}\d+\) (.*)$", re.MULTILINE)
_LOCATION_RE = re.compile(r"([\w./\\@-]+\.(?:ts|js|tsx|jsx|mjs|cjs)):(\d+)(?::(\d+))?")
_FAILED_SUMMARY_RE = re.compile(r"^\s*\d+ failed\b", re.MULTILINE)
_ERROR_LINE_RE = re.compile(r"^\s*(\w*Error\b.*)$", re.MULTILINE)


def categorize(text: str) -> FailureCategory:
    """First category whose patterns match ``text``"""
    for category, patterns in CLASSIFICATION_RULES:
        if any(p.search(text) for p in patterns):
            return category
    return FailureCategory.UNKNOWN


def extract_location(text: str) -> Optional[SourceLocation]:
    match = _LOCATION_RE.search(text)
    if not match:
        return None
    column = int(match.group(3)) if match.group(3) else None
    return SourceLocation(file=match.group(1), line=int(match.group(2)), column=column)


def _split_failures(output: str) -> List[Tuple[Optional[str], str]]:
    headers = list(_FAILURE_HEADER_RE.finditer(output))
    if not headers:
        return [(None, output)]

    chunks = []
    for i, header in enumerate(headers):
        end = headers[i + 1].start() if i + 1 < len(headers) else len(output)
        chunks.append((header.group(1), output[header.start():end]))
    return chunks


def _test_title(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    # "[chromium] › tests/a.spec.ts:3:5 › JRN-0001: Title ────"
    title = header.split("›")[-1]
    return title.strip(" ─-\t") or None


def _first_error_line(chunk: str, has_header: bool) -> str:
    if has_header:
        chunk = chunk.split("\n", 1)[1] if "\n" in chunk else ""
    match = _ERROR_LINE_RE.search(chunk)
    if match:
        return match.group(1).strip()
    lines = [line.strip() for line in chunk.splitlines() if line.strip()]
    return lines[0] if lines else ""


def classify_output(result: Union[RunResult, str], exit_code: Optional[int] = None) -> List[ClassifiedFailure]:
    """
    Classify every failure in a run's output.

    Args:
        result: RunResult, or raw output text
        exit_code: Exit code when ``result`` is text (taken from the RunResult otherwise)

    Returns:
        One ClassifiedFailure per failure chunk; empty when the run passed
    """
    if isinstance(result, RunResult):
        output = result.output
        code = result.exit_code if exit_code is None else exit_code
    else:
        output = result or ""
        code = 1 if exit_code is None else exit_code

    if code == 0 and not _FAILED_SUMMARY_RE.search(output):
        return []

    failures = []
    for header, chunk in _split_failures(output):
        category = categorize(chunk)
        failures.append(ClassifiedFailure(
            category=category,
            message=_first_error_line(chunk, header is not None) or f"Process exited with code {code}",
            location=extract_location(chunk),
            suggestion=FIX_SUGGESTIONS[category],
            test_title=_test_title(header),
            raw=chunk,
        ))

    logger.info(
        f"[CLASSIFIER] {len(failures)} failures: "
        f"{', '.join(f.category.value for f in failures)}"
    )
    return failures


def get_failure_stats(failures: List[ClassifiedFailure]) -> Dict[str, int]:
    """Count of failures per category (all categories present)"""
    stats = {category.value: 0 for category in FailureCategory}
    for failure in failures:
        stats[failure.category.value] += 1
    return stats
