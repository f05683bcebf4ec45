"""
Blocked-step telemetry

Every step that no tier could map is appended to a JSONL file. Grouping the
records by similarity shows which phrasings are worth a new pattern.
"""

import json
import re
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

STEP_CATEGORIES = ["navigation", "interaction", "assertion", "wait", "unknown"]

_CATEGORY_KEYWORDS = [
    ("navigation", ("navigate", "go to", "open", "visit")),
    ("interaction", ("click", "fill", "enter", "type", "select", "check", "press", "submit", "input")),
    ("assertion", ("see", "visible", "verify", "assert", "confirm", "should", "ensure", "expect", "display")),
    ("wait", ("wait", "load", "until")),
]


def normalize_step_text_for_telemetry(text: str) -> str:
    """Lowercase, drop articles and blank out quoted values, for de-duplication"""
    result = text.lower().strip()
    result = re.sub(r"\b(the|a|an)\b", "", result)
    result = re.sub(r"\s+", " ", result)
    result = re.sub(r'"[^"]*"', '""', result)
    result = re.sub(r"'[^']*'", "''", result)
    return result.strip()


def categorize_step_text(text: str) -> str:
    """Rough intent bucket of a step, checked in a fixed order"""
    lower = text.lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(k in lower for k in keywords):
            return category
    return "unknown"


def token_similarity(a: str, b: str) -> float:
    """Jaccard similarity of whitespace tokens"""
    tokens_a = set(a.split())
    tokens_b = set(b.split())
    if not tokens_a and not tokens_b:
        return 1.0
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)


def suggest_pattern(example: str) -> str:
    """A starting regex for a new pattern, with quoted values as groups"""
    pattern = re.escape(example.lower())
    pattern = re.sub(r'"[^"]+"', '"([^"]+)"', pattern)
    pattern = re.sub(r"'[^']+'", "'([^']+)'", pattern)
    return rf"^(?:user\s+)?{pattern}$"


@dataclass
class TelemetryRecord:
    """One blocked step occurrence"""
    journey_id: str
    step_text: str
    normalized_text: str
    category: str
    reason: str
    timestamp: str
    suggested_fix: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "journeyId": self.journey_id,
            "stepText": self.step_text,
            "normalizedText": self.normalized_text,
            "category": self.category,
            "reason": self.reason,
            "timestamp": self.timestamp,
        }
        if self.suggested_fix:
            data["suggestedFix"] = self.suggested_fix
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TelemetryRecord":
        return cls(
            journey_id=data.get("journeyId", ""),
            step_text=data["stepText"],
            normalized_text=data.get("normalizedText") or normalize_step_text_for_telemetry(data["stepText"]),
            category=data.get("category", "unknown"),
            reason=data.get("reason", ""),
            timestamp=data.get("timestamp", ""),
            suggested_fix=data.get("suggestedFix"),
        )


@dataclass
class PatternGap:
    """A cluster of similar blocked steps"""
    example_text: str
    normalized_text: str
    count: int
    category: str
    variants: List[str]
    suggested_pattern: str
    first_seen: str
    last_seen: str


class BlockedStepTelemetry:
    """Append-only JSONL log of blocked steps"""

    def __init__(self, path: str = "data/autogen/telemetry/blocked-steps.jsonl"):
        self.path = Path(path)

    def record(
        self,
        journey_id: str,
        step_text: str,
        reason: str,
        suggested_fix: Optional[str] = None,
        category: Optional[str] = None
    ) -> TelemetryRecord:
        """Append one record; the directory is created on first use"""
        record = TelemetryRecord(
            journey_id=journey_id,
            step_text=step_text,
            normalized_text=normalize_step_text_for_telemetry(step_text),
            category=category or categorize_step_text(step_text),
            reason=reason,
            timestamp=datetime.now(timezone.utc).isoformat(),
            suggested_fix=suggested_fix,
        )

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record.to_dict()) + "\n")

        logger.debug(f"[TELEMETRY] Blocked step recorded: {step_text!r} ({record.category})")
        return record

    def read_records(self) -> List[TelemetryRecord]:
        """All parseable records; corrupt lines are skipped"""
        if not self.path.exists():
            return []

        records = []
        for line_no, line in enumerate(self.path.read_text(encoding="utf-8").splitlines(), 1):
            if not line.strip():
                continue
            try:
                records.append(TelemetryRecord.from_dict(json.loads(line)))
            except (ValueError, KeyError) as e:
                logger.warning(f"[TELEMETRY] Skipping corrupt line {line_no} in {self.path}: {e}")
        return records

    def get_stats(self) -> Dict[str, Any]:
        records = self.read_records()
        if not records:
            return {
                "total_records": 0,
                "unique_patterns": 0,
                "by_category": {},
                "date_range": {"earliest": "", "latest": ""},
            }

        by_category: Dict[str, int] = {}
        for record in records:
            by_category[record.category] = by_category.get(record.category, 0) + 1
        timestamps = sorted(r.timestamp for r in records)

        return {
            "total_records": len(records),
            "unique_patterns": len({r.normalized_text for r in records}),
            "by_category": by_category,
            "date_range": {"earliest": timestamps[0], "latest": timestamps[-1]},
        }

    def analyze_gaps(self, threshold: float = 0.7, limit: Optional[int] = None) -> List[PatternGap]:
        """
        Group similar blocked steps, most frequent first.

        Args:
            threshold: Minimum token Jaccard similarity to join a group
            limit: Return at most this many gaps
        """
        records = self.read_records()
        processed = set()
        gaps = []

        for i, record in enumerate(records):
            if i in processed:
                continue
            processed.add(i)
            group = [record]

            for j in range(i + 1, len(records)):
                if j in processed:
                    continue
                if token_similarity(record.normalized_text, records[j].normalized_text) >= threshold:
                    group.append(records[j])
                    processed.add(j)

            timestamps = sorted(r.timestamp for r in group)
            variants = list(dict.fromkeys(r.step_text for r in group))
            gaps.append(PatternGap(
                example_text=group[0].step_text,
                normalized_text=record.normalized_text,
                count=len(group),
                category=group[0].category,
                variants=variants,
                suggested_pattern=suggest_pattern(variants[0]),
                first_seen=timestamps[0],
                last_seen=timestamps[-1],
            ))

        gaps.sort(key=lambda g: g.count, reverse=True)
        return gaps[:limit] if limit else gaps

    def clear(self):
        if self.path.exists():
            self.path.unlink()
