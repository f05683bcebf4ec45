"""
Learned Pattern Store - step texts that were confirmed to map to an instruction

Every time a generated step passes, the mapping is recorded here. Confidence
is the Wilson lower bound of the success rate, so a handful of lucky runs
never outranks a long track record. Patterns that have proven themselves
across several journeys are flagged ``stable`` and become eligible for
near-exact (similarity) lookup.
"""

import json
import math
import logging
import threading
from dataclasses import dataclass, field, asdict
from datetime import datetime
from difflib import SequenceMatcher
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..core.text_normalizer import light_normalize
from ..pipeline.atomic import atomic_write

logger = logging.getLogger(__name__)

PATTERNS_FILE = "learned-patterns.json"
STABLE_MIN_SUCCESSES = 5
STABLE_MIN_JOURNEYS = 2


def calculate_confidence(success_count: int, failure_count: int) -> float:
    """Wilson score lower bound (95%) of the success rate; 0.5 with no data"""
    total = success_count + failure_count
    if total == 0:
        return 0.5

    z = 1.96
    p = success_count / total
    denominator = 1 + z * z / total
    center = p + z * z / (2 * total)
    spread = z * math.sqrt((p * (1 - p) + z * z / (4 * total)) / total)
    return max(0.0, min(1.0, (center - spread) / denominator))


@dataclass
class LearnedPattern:
    """A confirmed mapping from step text to an IR instruction"""
    id: str
    step_text: str
    normalized_text: str
    primitive: Dict[str, Any]  # IR wire dict
    confidence: float = 0.5
    success_count: int = 0
    failure_count: int = 0
    stable: bool = False
    source_journeys: List[str] = field(default_factory=list)
    created_at: Optional[str] = None
    last_used: Optional[str] = None

    def refresh(self):
        """Recompute confidence and stability from the counters"""
        self.confidence = calculate_confidence(self.success_count, self.failure_count)
        self.stable = (
            self.success_count >= STABLE_MIN_SUCCESSES
            and self.failure_count == 0
            and len(self.source_journeys) >= STABLE_MIN_JOURNEYS
        )


class LearnedPatternStore:
    """
    JSON-backed store of learned patterns.

    Every *.json file in the directory is loaded (a file may hold a single
    pattern or {"patterns": [...]}); writes go to learned-patterns.json.
    """

    def __init__(self, patterns_dir: str = "data/autogen/learned"):
        self.patterns_dir = Path(patterns_dir)
        self.patterns: Dict[str, LearnedPattern] = {}
        self.by_text: Dict[str, str] = {}  # normalized text -> pattern id

        self._lock = threading.Lock()

        self._load_all_patterns()

    def _load_all_patterns(self):
        """Load all pattern files from disk"""
        if not self.patterns_dir.exists():
            return

        for pattern_file in sorted(self.patterns_dir.glob("*.json")):
            try:
                data = json.loads(pattern_file.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.warning(f"[LEARNED] Error loading pattern file {pattern_file}: {e}")
                continue

            if isinstance(data, dict) and "patterns" in data:
                entries = data["patterns"]
            elif isinstance(data, list):
                entries = data
            else:
                entries = [data]
            for entry in entries:
                try:
                    self._add_pattern_from_dict(entry)
                except (TypeError, KeyError) as e:
                    logger.warning(f"[LEARNED] Skipping malformed pattern in {pattern_file.name}: {e}")

        logger.debug(f"[LEARNED] Loaded {len(self.patterns)} patterns from {self.patterns_dir}")

    def _add_pattern_from_dict(self, data: Dict[str, Any]):
        step_text = data["step_text"]
        pattern = LearnedPattern(
            id=data.get("id") or f"lp_{len(self.patterns) + 1:05d}",
            step_text=step_text,
            normalized_text=data.get("normalized_text") or light_normalize(step_text),
            primitive=data["primitive"],
            confidence=data.get("confidence", 0.5),
            success_count=data.get("success_count", 0),
            failure_count=data.get("failure_count", 0),
            stable=data.get("stable", False),
            source_journeys=list(data.get("source_journeys", [])),
            created_at=data.get("created_at"),
            last_used=data.get("last_used"),
        )
        self._index_pattern(pattern)

    def _index_pattern(self, pattern: LearnedPattern):
        with self._lock:
            self.patterns[pattern.id] = pattern
            self.by_text[pattern.normalized_text] = pattern.id

    # ==================== Lookup ====================

    def lookup(self, text: str, min_confidence: float = 0.7) -> Optional[LearnedPattern]:
        """Exact lookup on normalized text"""
        pattern_id = self.by_text.get(light_normalize(text))
        if not pattern_id:
            return None
        pattern = self.patterns[pattern_id]
        if pattern.confidence < min_confidence:
            return None
        return pattern

    def find_similar(
        self,
        text: str,
        min_confidence: float = 0.7,
        min_ratio: float = 0.92
    ) -> Optional[Tuple[LearnedPattern, float]]:
        """
        Near-exact lookup among stable patterns.

        Returns:
            (pattern, similarity) for the closest stable pattern above both
            thresholds, or None
        """
        normalized = light_normalize(text)
        best: Optional[Tuple[LearnedPattern, float]] = None

        for pattern in self.patterns.values():
            if not pattern.stable or pattern.confidence < min_confidence:
                continue
            ratio = SequenceMatcher(None, normalized, pattern.normalized_text).ratio()
            if ratio >= min_ratio and (best is None or ratio > best[1]):
                best = (pattern, ratio)

        return best

    # ==================== Learning ====================

    def record_success(self, step_text: str, primitive: Dict[str, Any], journey_id: str) -> LearnedPattern:
        """Record that ``step_text`` mapped to ``primitive`` and the test passed"""
        normalized = light_normalize(step_text)
        now = datetime.now().isoformat()

        pattern_id = self.by_text.get(normalized)
        if pattern_id:
            pattern = self.patterns[pattern_id]
            pattern.success_count += 1
            pattern.primitive = primitive
            if journey_id not in pattern.source_journeys:
                pattern.source_journeys.append(journey_id)
        else:
            pattern = LearnedPattern(
                id=f"lp_{datetime.now().strftime('%Y%m%d%H%M%S%f')}",
                step_text=step_text,
                normalized_text=normalized,
                primitive=primitive,
                success_count=1,
                source_journeys=[journey_id],
                created_at=now,
            )
            self._index_pattern(pattern)

        pattern.refresh()
        pattern.last_used = now
        self.save()
        return pattern

    def record_failure(self, step_text: str) -> Optional[LearnedPattern]:
        """Record that a learned mapping produced a failing step"""
        pattern_id = self.by_text.get(light_normalize(step_text))
        if not pattern_id:
            return None

        pattern = self.patterns[pattern_id]
        pattern.failure_count += 1
        pattern.refresh()
        pattern.last_used = datetime.now().isoformat()
        self.save()
        return pattern

    def prune(self, min_confidence: float = 0.3) -> int:
        """Drop patterns whose confidence fell below ``min_confidence``"""
        with self._lock:
            doomed = [pid for pid, p in self.patterns.items() if p.confidence < min_confidence]
            for pid in doomed:
                pattern = self.patterns.pop(pid)
                self.by_text.pop(pattern.normalized_text, None)
        if doomed:
            self.save()
        return len(doomed)

    def save(self):
        """Write all patterns to learned-patterns.json atomically"""
        with self._lock:
            payload = {"patterns": [asdict(p) for p in self.patterns.values()]}
        with atomic_write(self.patterns_dir / PATTERNS_FILE) as f:
            json.dump(payload, f, indent=2)

    def get_stats(self) -> Dict[str, Any]:
        patterns = list(self.patterns.values())
        return {
            "total_patterns": len(patterns),
            "stable": sum(1 for p in patterns if p.stable),
            "high_confidence": sum(1 for p in patterns if p.confidence >= 0.7),
            "low_confidence": sum(1 for p in patterns if p.confidence < 0.3),
            "average_confidence": (
                sum(p.confidence for p in patterns) / len(patterns) if patterns else 0.0
            ),
        }
