"""
Pipeline state and atomic file writes
"""

from .atomic import atomic_write, write_text_atomic
from .state import PipelineStage, PipelineState, PipelineStateMachine, can_proceed_to

__all__ = [
    "atomic_write",
    "write_text_atomic",
    "PipelineStage",
    "PipelineState",
    "PipelineStateMachine",
    "can_proceed_to",
]
