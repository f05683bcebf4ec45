"""
AI Fallback Gateway
===================

Last-resort mapping of a step the deterministic tiers could not handle.
Acts as a gatekeeper that:
- Stays off unless explicitly enabled
- Serves repeated steps from a TTL cache
- Refuses calls once the session cost budget is spent
- Accepts only answers that validate against the IR union

Every failure (no key, timeout, HTTP error, junk output) ends in "no
suggestion"; the step then becomes a blocked placeholder.
"""

import os
import re
import json
import time
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import httpx

from ..config import AutogenConfig
from ..context import AI_CACHE_MAX_ENTRIES, AutogenContext, CachedSuggestion
from ..errors import IRValidationError
from ..ir.models import Blocked, Instruction, parse_instruction

logger = logging.getLogger(__name__)

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
OPENAI_URL = "https://api.openai.com/v1/chat/completions"

DEFAULT_MODELS = {
    "anthropic": "claude-3-haiku-20240307",
    "openai": "gpt-4o-mini",
    "mock": "mock",
}

# USD per 1M tokens (input, output)
MODEL_COSTS = {
    "claude-3-haiku": (0.25, 1.25),
    "claude-3-5-haiku": (0.80, 4.00),
    "claude-3-sonnet": (3.00, 15.00),
    "claude-sonnet-4": (3.00, 15.00),
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4o": (5.00, 15.00),
}

SUGGESTION_CONFIDENCE = 0.7
BLOCKED_SUGGESTION_CONFIDENCE = 0.3

PROMPT_TEMPLATE = """You convert natural language test steps into IR primitives for Playwright test automation.

Test step:
"{step}"

Return ONE JSON object. Allowed "type" values:
- Navigation: goto (url), waitForURL (pattern), reload, goBack, goForward
- Wait: waitForVisible (locator), waitForHidden (locator), waitForTimeout (ms), waitForNetworkIdle
- Actions: click (locator), fill (locator, value), select (locator, option), check (locator), uncheck (locator), press (key), hover (locator)
- Assertions: expectVisible (locator), expectText (locator, text), expectValue (locator, value), expectURL (pattern), expectTitle (title)
- If the step cannot be expressed: blocked (reason, sourceText)

Locator: {{"strategy": "role"|"label"|"placeholder"|"text"|"testid"|"css", "value": "...", "options": {{"name": "...", "exact": true}}}}
Value (fill only): {{"type": "literal"|"actor"|"testData", "value": "..."}}

Examples:
- "Click the Submit button" -> {{"type": "click", "locator": {{"strategy": "role", "value": "button", "options": {{"name": "Submit"}}}}}}
- "Enter 'john@test.com' in email field" -> {{"type": "fill", "locator": {{"strategy": "label", "value": "email"}}, "value": {{"type": "literal", "value": "john@test.com"}}}}
- "Wait for page to load" -> {{"type": "waitForNetworkIdle"}}

RESPOND WITH ONLY THE JSON OBJECT, NO EXPLANATION."""


@dataclass
class AIFallbackConfig:
    """AI tier settings"""
    enabled: bool = False
    provider: str = "anthropic"
    model: Optional[str] = None
    timeout_s: float = 10.0
    max_tokens: int = 500
    temperature: float = 0.1
    budget_usd: float = 0.50
    cache_ttl_s: int = 3600
    cache_max_entries: int = AI_CACHE_MAX_ENTRIES

    @classmethod
    def from_config(cls, config: AutogenConfig) -> "AIFallbackConfig":
        return cls(
            enabled=config.llm_enabled,
            provider=config.llm_provider,
            model=config.llm_model,
            timeout_s=config.llm_timeout_s,
            budget_usd=config.llm_budget_usd,
            cache_ttl_s=config.llm_cache_ttl_s,
        )

    @property
    def resolved_model(self) -> str:
        return self.model or DEFAULT_MODELS.get(self.provider, "unknown")


@dataclass
class AIResponse:
    """Raw provider response"""
    success: bool
    content: str
    input_tokens: int = 0
    output_tokens: int = 0
    error: Optional[str] = None


@dataclass
class AISuggestion:
    """A validated instruction suggested by the AI tier"""
    primitive: Instruction
    confidence: float
    from_cache: bool
    latency_ms: int
    cost_usd: float
    provider: str
    model: str


def build_prompt(step_text: str) -> str:
    return PROMPT_TEMPLATE.format(step=step_text.replace('"', '\\"'))


def estimate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Rough USD cost of one call; unknown models priced as gpt-4o-mini"""
    key = next((k for k in sorted(MODEL_COSTS, key=len, reverse=True) if k in model), "gpt-4o-mini")
    input_rate, output_rate = MODEL_COSTS[key]
    return (input_tokens * input_rate + output_tokens * output_rate) / 1_000_000


def parse_ai_response(content: str) -> Optional[Instruction]:
    """Extract the first JSON object from ``content`` and validate it"""
    match = re.search(r"\{[\s\S]*\}", content)
    if not match:
        logger.warning("[AI-GATE] Response contained no JSON object")
        return None
    try:
        return parse_instruction(json.loads(match.group(0)))
    except ValueError as e:
        logger.warning(f"[AI-GATE] Response is not valid JSON: {e}")
    except IRValidationError as e:
        logger.warning(f"[AI-GATE] Response failed IR validation: {e.message}")
    return None


def mock_suggestion(step_text: str) -> Dict[str, Any]:
    """Keyword heuristic standing in for a model in offline runs"""
    lower = step_text.lower()
    quoted = re.findall(r"[\"']([^\"']+)[\"']", step_text)

    if "click" in lower:
        return {"type": "click",
                "locator": {"strategy": "role", "value": "button",
                            "options": {"name": quoted[0] if quoted else "button"}}}
    if any(k in lower for k in ("enter", "fill", "type")):
        return {"type": "fill",
                "locator": {"strategy": "label", "value": quoted[1] if len(quoted) > 1 else "input"},
                "value": {"type": "literal", "value": quoted[0] if quoted else ""}}
    if "see" in lower or "visible" in lower:
        return {"type": "expectVisible",
                "locator": {"strategy": "text", "value": quoted[0] if quoted else "element"}}
    if "navigate" in lower or "go to" in lower:
        m = re.search(r"(?:to\s+|\s)(/[\w./-]*)", step_text)
        return {"type": "goto", "url": m.group(1) if m else "/"}
    if "wait" in lower:
        return {"type": "waitForNetworkIdle"}
    return {"type": "blocked", "reason": "mock provider could not interpret step", "sourceText": step_text}


class AIFallbackGateway:
    """
    Gatekeeper for AI step mapping.

    Responsibilities:
    - Check the cache before spending anything
    - Enforce the session cost budget
    - Call the provider with a hard timeout
    - Validate and cache the answer
    """

    def __init__(self, config: Optional[AIFallbackConfig] = None, client: Optional[httpx.Client] = None):
        self.config = config or AIFallbackConfig()
        self._client = client

    def cache_key(self, step_text: str) -> str:
        return f"{self.config.provider}:{self.config.resolved_model}:{step_text.lower().strip()}"

    def check_cache(self, step_text: str, ctx: AutogenContext) -> Optional[Instruction]:
        """Cached instruction for this step, dropping the entry if expired"""
        key = self.cache_key(step_text)
        entry = ctx.ai_cache.get(key)
        if entry is None:
            return None
        if time.time() - entry.stored_at > self.config.cache_ttl_s:
            del ctx.ai_cache[key]
            return None
        return parse_instruction(entry.payload)

    def store(self, step_text: str, primitive: Instruction, ctx: AutogenContext):
        """
        Cache an answer. Expired entries are swept first; past
        cache_max_entries the oldest entries are evicted.
        """
        now = time.time()
        cache = ctx.ai_cache
        for key in [k for k, v in cache.items() if now - v.stored_at > self.config.cache_ttl_s]:
            del cache[key]

        key = self.cache_key(step_text)
        cache.pop(key, None)
        cache[key] = CachedSuggestion(primitive.to_wire(), now)

        # dicts keep insertion order, so the first key is the oldest
        while len(cache) > max(self.config.cache_max_entries, 1):
            evicted = next(iter(cache))
            del cache[evicted]
            logger.debug(f"[AI-GATE] Cache full, evicted {evicted!r}")

    def can_make_request(self, ctx: AutogenContext) -> bool:
        if ctx.ai_stats.total_cost_usd >= self.config.budget_usd:
            logger.warning(
                f"[AI-GATE] Cost budget reached "
                f"(${ctx.ai_stats.total_cost_usd:.4f} of ${self.config.budget_usd:.2f})"
            )
            return False
        return True

    def suggest(self, step_text: str, ctx: AutogenContext) -> Optional[AISuggestion]:
        """
        Ask the AI for an instruction. Main entry point.

        Returns:
            AISuggestion, or None when disabled, over budget or on any failure
        """
        if not self.config.enabled:
            return None

        model = self.config.resolved_model
        provider = self.config.provider

        # 1. Cache
        cached = self.check_cache(step_text, ctx)
        if cached is not None:
            ctx.ai_stats.cache_hits += 1
            logger.debug(f"[AI-GATE] Cache hit for {step_text!r}")
            return AISuggestion(cached, self._confidence_for(cached), True, 0, 0.0, provider, model)

        # 2. Budget
        if not self.can_make_request(ctx):
            ctx.ai_stats.budget_blocks += 1
            return None

        # 3. Call
        start_time = time.time()
        ctx.ai_stats.calls += 1
        try:
            response = self._call_ai(build_prompt(step_text))
        except Exception as e:
            response = AIResponse(success=False, content="", error=f"{type(e).__name__}: {e}")
        latency_ms = int((time.time() - start_time) * 1000)
        cost = estimate_cost(model, response.input_tokens, response.output_tokens)

        ctx.ai_stats.total_latency_ms += latency_ms
        ctx.ai_stats.total_cost_usd += cost

        primitive = parse_ai_response(response.content) if response.success else None
        if primitive is None:
            ctx.ai_stats.failures += 1
            error = response.error or "invalid response"
            logger.warning(f"[AI-GATE] No suggestion for {step_text!r}: {error}")
            self._record(ctx, step_text, False, latency_ms, cost, error)
            return None

        # 4. Cache + stats
        ctx.ai_stats.successes += 1
        self.store(step_text, primitive, ctx)
        self._record(ctx, step_text, True, latency_ms, cost)

        return AISuggestion(primitive, self._confidence_for(primitive), False, latency_ms, cost, provider, model)

    @staticmethod
    def _confidence_for(primitive: Instruction) -> float:
        return BLOCKED_SUGGESTION_CONFIDENCE if isinstance(primitive, Blocked) else SUGGESTION_CONFIDENCE

    @staticmethod
    def _record(ctx, step_text, success, latency_ms, cost, error=None):
        entry = {
            "timestamp": datetime.now().isoformat(),
            "step_text": step_text,
            "success": success,
            "latency_ms": latency_ms,
            "cost_usd": cost,
        }
        if error:
            entry["error"] = error
        ctx.ai_stats.record(entry)

    # ==================== Providers ====================

    def _call_ai(self, prompt: str) -> AIResponse:
        """Make the actual provider call"""
        provider = self.config.provider
        if provider == "anthropic":
            return self._call_anthropic(prompt)
        elif provider == "openai":
            return self._call_openai(prompt)
        elif provider == "mock":
            step = re.search(r'Test step:\n"(.*)"\n', prompt, re.DOTALL)
            step_text = step.group(1).replace('\\"', '"') if step else prompt
            return AIResponse(success=True, content=json.dumps(mock_suggestion(step_text)))
        return AIResponse(success=False, content="", error=f"Unknown provider: {provider}")

    def _post(self, url: str, headers: Dict[str, str], payload: Dict[str, Any]) -> httpx.Response:
        if self._client is not None:
            return self._client.post(url, headers=headers, json=payload, timeout=self.config.timeout_s)
        with httpx.Client(timeout=self.config.timeout_s) as client:
            return client.post(url, headers=headers, json=payload)

    def _call_anthropic(self, prompt: str) -> AIResponse:
        """Call Anthropic Messages API"""
        api_key = os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            return AIResponse(success=False, content="", error="ANTHROPIC_API_KEY not set")

        response = self._post(
            ANTHROPIC_URL,
            headers={
                "x-api-key": api_key,
                "anthropic-version": "2023-06-01",
                "content-type": "application/json",
            },
            payload={
                "model": self.config.resolved_model,
                "max_tokens": self.config.max_tokens,
                "temperature": self.config.temperature,
                "messages": [{"role": "user", "content": prompt}],
            },
        )
        if response.status_code != 200:
            return AIResponse(success=False, content="", error=f"API error: {response.status_code}")

        data = response.json()
        usage = data.get("usage", {})
        return AIResponse(
            success=True,
            content=data["content"][0]["text"],
            input_tokens=usage.get("input_tokens", 0),
            output_tokens=usage.get("output_tokens", 0),
        )

    def _call_openai(self, prompt: str) -> AIResponse:
        """Call OpenAI Chat Completions API"""
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            return AIResponse(success=False, content="", error="OPENAI_API_KEY not set")

        response = self._post(
            OPENAI_URL,
            headers={
                "Authorization": f"Bearer {api_key}",
                "content-type": "application/json",
            },
            payload={
                "model": self.config.resolved_model,
                "max_tokens": self.config.max_tokens,
                "temperature": self.config.temperature,
                "messages": [{"role": "user", "content": prompt}],
            },
        )
        if response.status_code != 200:
            return AIResponse(success=False, content="", error=f"API error: {response.status_code}")

        data = response.json()
        usage = data.get("usage", {})
        return AIResponse(
            success=True,
            content=data["choices"][0]["message"]["content"],
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
        )

    def get_stats(self, ctx: AutogenContext) -> Dict[str, Any]:
        stats = ctx.ai_stats.to_dict()
        stats.update({
            "enabled": self.config.enabled,
            "provider": self.config.provider,
            "model": self.config.resolved_model,
            "budget_usd": self.config.budget_usd,
            "budget_remaining_usd": round(max(0.0, self.config.budget_usd - ctx.ai_stats.total_cost_usd), 6),
            "cached_entries": len(ctx.ai_cache),
        })
        return stats
