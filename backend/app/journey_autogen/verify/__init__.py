"""
Running generated tests and classifying their failures
"""

from .runner import RunnerOptions, RunResult, run_tests
from .classifier import FailureCategory, ClassifiedFailure, classify_output

__all__ = [
    "RunnerOptions",
    "RunResult",
    "run_tests",
    "FailureCategory",
    "ClassifiedFailure",
    "classify_output",
]
