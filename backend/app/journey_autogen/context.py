"""
AutoGen Context

Holds every in-memory cache and counter a pipeline run needs. Components
receive the context explicitly instead of keeping module-level state, so two
runs (or two tests) never see each other's caches.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config import AutogenConfig

AI_HISTORY_LIMIT = 1000
AI_CACHE_MAX_ENTRIES = 500


@dataclass
class CachedSuggestion:
    """An AI answer kept for reuse until it expires"""
    payload: Dict[str, Any]
    stored_at: float


@dataclass
class AIUsageStats:
    """Running counters for the AI fallback tier"""
    calls: int = 0
    successes: int = 0
    failures: int = 0
    cache_hits: int = 0
    budget_blocks: int = 0
    total_latency_ms: int = 0
    total_cost_usd: float = 0.0
    history: List[Dict[str, Any]] = field(default_factory=list)

    def record(self, entry: Dict[str, Any]):
        """Append a history entry, keeping only the most recent ones"""
        self.history.append(entry)
        if len(self.history) > AI_HISTORY_LIMIT:
            del self.history[:-AI_HISTORY_LIMIT]

    @property
    def average_latency_ms(self) -> float:
        return self.total_latency_ms / self.calls if self.calls else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "calls": self.calls,
            "successes": self.successes,
            "failures": self.failures,
            "cache_hits": self.cache_hits,
            "budget_blocks": self.budget_blocks,
            "average_latency_ms": round(self.average_latency_ms, 1),
            "total_cost_usd": round(self.total_cost_usd, 6),
        }


@dataclass
class AutogenContext:
    """Per-run state shared by the matcher tiers"""
    config: AutogenConfig = field(default_factory=AutogenConfig)
    journey_id: Optional[str] = None

    ai_cache: Dict[str, CachedSuggestion] = field(default_factory=dict)
    ai_stats: AIUsageStats = field(default_factory=AIUsageStats)
    fuzzy_examples: Optional[List[Any]] = None
    tier_counts: Counter = field(default_factory=Counter)

    def reset(self):
        """Drop caches and counters; configuration is kept"""
        self.ai_cache.clear()
        self.ai_stats = AIUsageStats()
        self.fuzzy_examples = None
        self.tier_counts.clear()
        self.journey_id = None
