"""
Journey Parser
Parses Journey markdown (YAML frontmatter + AC sections) into ParsedJourney
"""

import re
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import ValidationError

from ..errors import JourneyParseError, JourneyValidationError
from .models import AcceptanceCriterion, JourneyFrontmatter, JourneyStatus, ParsedJourney, ProceduralStep

logger = logging.getLogger(__name__)

FRONTMATTER_RE = re.compile(r"\A\ufeff?---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)
SECTION_RE = re.compile(r"^##\s+(.+?)\s*$")
AC_HEADING_RE = re.compile(r"^###\s+(AC-\d+)\s*(?::\s*(.*?))?\s*$", re.IGNORECASE)
BULLET_RE = re.compile(r"^\s*[-*+]\s+(.+?)\s*$")
NUMBERED_RE = re.compile(r"^\s*(\d+)[.)]\s+(.+?)\s*$")
AC_REF_RE = re.compile(r"\s*\((AC-\d+)\)\s*", re.IGNORECASE)

DATA_SECTION_KEYWORDS = ("data", "test data", "data notes", "notes")


def split_frontmatter(content: str, source_path: Optional[str] = None) -> Tuple[Dict[str, Any], str]:
    """
    Split a document into its YAML frontmatter dict and markdown body.

    Raises:
        JourneyParseError: no frontmatter block, or the YAML does not parse
    """
    match = FRONTMATTER_RE.match(content)
    if not match:
        raise JourneyParseError("Invalid frontmatter: no YAML frontmatter found", source_path)

    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        raise JourneyParseError(f"Invalid YAML in frontmatter: {e}", source_path)

    if not isinstance(data, dict):
        raise JourneyParseError("Invalid frontmatter: expected a YAML mapping", source_path)
    return data, content[match.end():]


def validate_frontmatter(data: Dict[str, Any]) -> JourneyFrontmatter:
    """
    Validate raw frontmatter.

    Raises:
        JourneyValidationError: every field problem at once
    """
    try:
        return JourneyFrontmatter.model_validate(data)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        ]
        raise JourneyValidationError(errors, journey_id=str(data.get("id")) if data.get("id") else None)


def _split_sections(body: str) -> List[Tuple[str, List[str]]]:
    """(heading, lines) for every ## section, in order"""
    sections: List[Tuple[str, List[str]]] = []
    current_heading = ""
    current_lines: List[str] = []

    for line in body.splitlines():
        match = SECTION_RE.match(line)
        if match:
            if current_heading or current_lines:
                sections.append((current_heading, current_lines))
            current_heading = match.group(1)
            current_lines = []
            continue
        current_lines.append(line)

    if current_heading or current_lines:
        sections.append((current_heading, current_lines))
    return sections


def parse_acceptance_criteria(lines: List[str]) -> List[AcceptanceCriterion]:
    criteria: List[AcceptanceCriterion] = []
    current: Optional[Dict[str, Any]] = None

    def _flush():
        if current is not None:
            criteria.append(AcceptanceCriterion(
                id=current["id"],
                title=current["title"],
                steps=current["steps"],
                raw_content="\n".join(current["raw"]).strip(),
            ))

    for line in lines:
        heading = AC_HEADING_RE.match(line)
        if heading:
            _flush()
            current = {"id": heading.group(1).upper(), "title": heading.group(2) or "", "steps": [], "raw": []}
            continue
        if current is None:
            continue
        current["raw"].append(line)
        bullet = BULLET_RE.match(line)
        if bullet:
            current["steps"].append(bullet.group(1))

    _flush()
    return criteria


def parse_procedural_steps(lines: List[str]) -> List[ProceduralStep]:
    """Numbered steps; bullets are numbered in order when there are none"""
    numbered = [NUMBERED_RE.match(line) for line in lines]
    entries = [(int(m.group(1)), m.group(2)) for m in numbered if m]
    if not entries:
        bullets = [BULLET_RE.match(line) for line in lines]
        entries = [(i, m.group(1)) for i, m in enumerate((b for b in bullets if b), 1)]

    steps = []
    for number, text in entries:
        ref = AC_REF_RE.search(text)
        linked = ref.group(1).upper() if ref else None
        clean = AC_REF_RE.sub(" ", text).strip() if ref else text
        steps.append(ProceduralStep(number=number, text=clean, linked_ac=linked))
    return steps


def parse_journey_content(content: str, source_path: str = "virtual.journey.md") -> ParsedJourney:
    """
    Parse Journey markdown held in memory.

    Args:
        content: Full document text
        source_path: Path reported in errors and carried into the IR

    Returns:
        ParsedJourney
    """
    raw, body = split_frontmatter(content, source_path)
    frontmatter = validate_frontmatter(raw)

    criteria: List[AcceptanceCriterion] = []
    procedural: List[ProceduralStep] = []
    data_notes: List[str] = []

    for heading, lines in _split_sections(body):
        name = heading.lower()
        if "acceptance criteria" in name:
            criteria.extend(parse_acceptance_criteria(lines))
        elif "procedural" in name or name == "steps":
            procedural.extend(parse_procedural_steps(lines))
        elif any(name == k or name.startswith(k) for k in DATA_SECTION_KEYWORDS):
            data_notes.extend(m.group(1) for m in map(BULLET_RE.match, lines) if m)

    logger.debug(
        f"[JOURNEY] Parsed {frontmatter.id}: {len(criteria)} ACs, "
        f"{len(procedural)} procedural steps"
    )
    return ParsedJourney(
        frontmatter=frontmatter,
        acceptance_criteria=criteria,
        procedural_steps=procedural,
        data_notes=data_notes,
        body=body,
        source_path=source_path,
    )


def parse_journey(path: str) -> ParsedJourney:
    """Parse a Journey markdown file"""
    file_path = Path(path)
    if not file_path.exists():
        raise JourneyParseError("Journey file not found", str(path))
    return parse_journey_content(file_path.read_text(encoding="utf-8"), str(path))


def ensure_ready_for_autogen(parsed: ParsedJourney):
    """
    Check a parsed Journey can be turned into a test.

    Raises:
        JourneyValidationError: status is not clarified, or no completion signals
    """
    errors = []
    if parsed.frontmatter.status != JourneyStatus.CLARIFIED:
        errors.append(
            f"status is '{parsed.frontmatter.status.value}', journey is not ready for AutoGen "
            f"(must be 'clarified')"
        )
    if not parsed.frontmatter.completion:
        errors.append("journey has no completion signals")
    if errors:
        raise JourneyValidationError(errors, journey_id=parsed.frontmatter.id)


def parse_journey_for_autogen(content: str, source_path: str = "virtual.journey.md") -> ParsedJourney:
    parsed = parse_journey_content(content, source_path)
    ensure_ready_for_autogen(parsed)
    return parsed
