"""
Code generation

Renders IR journeys to Playwright specs and merges regenerated code into
files people have edited.
"""

from .blocks import ManagedBlock, extract_managed_blocks, inject_managed_blocks, regenerate_file
from .generator import GenerateTestOptions, GenerateTestResult, generate_test

__all__ = [
    "ManagedBlock",
    "extract_managed_blocks",
    "inject_managed_blocks",
    "regenerate_file",
    "GenerateTestOptions",
    "GenerateTestResult",
    "generate_test",
]
