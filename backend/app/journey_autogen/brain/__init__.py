"""
AI fallback for steps no deterministic tier could map
"""

from .ai_fallback import AIFallbackGateway, AIFallbackConfig, AISuggestion

__all__ = [
    "AIFallbackGateway",
    "AIFallbackConfig",
    "AISuggestion",
]
