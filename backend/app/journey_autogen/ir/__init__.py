"""
Intermediate representation: the instruction union and journey/step models
"""

from .models import (
    Instruction, IRJourney, IRStep, LocatorSpec, ValueSpec, CompletionSignal,
    parse_instruction, is_assertion,
)
from .builder import JourneyBuilder, StepBuilder

__all__ = [
    "Instruction",
    "IRJourney",
    "IRStep",
    "LocatorSpec",
    "ValueSpec",
    "CompletionSignal",
    "parse_instruction",
    "is_assertion",
    "JourneyBuilder",
    "StepBuilder",
]
