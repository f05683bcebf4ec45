"""
AutoGen Errors

Hard errors raised when no safe default exists: missing Journey fields,
invalid configuration, malformed IR. Everything recoverable (blocked steps,
AI timeouts, corrupt state files, failing tests) is handled where it occurs
and never surfaces as one of these.
"""

from typing import List, Optional


class AutogenError(Exception):
    """Base error with a stable code for programmatic handling"""

    code = "AG-000"

    def __init__(self, message: str, code: Optional[str] = None):
        self.message = message
        if code:
            self.code = code
        super().__init__(f"[{self.code}] {message}")


class JourneyParseError(AutogenError):
    """Journey document could not be parsed (no frontmatter, bad YAML)"""

    code = "AG-101"

    def __init__(self, message: str, source_path: Optional[str] = None):
        self.source_path = source_path
        if source_path:
            message = f"{message} ({source_path})"
        super().__init__(message)


class JourneyValidationError(AutogenError):
    """
    Journey frontmatter failed validation.

    Carries every problem found so the author can fix them in one pass.
    """

    code = "AG-102"

    def __init__(self, errors: List[str], journey_id: Optional[str] = None):
        self.errors = errors
        self.journey_id = journey_id
        prefix = f"Journey {journey_id} is invalid" if journey_id else "Journey is invalid"
        super().__init__(prefix + ":\n  - " + "\n  - ".join(errors))


class ConfigError(AutogenError):
    """Configuration validation failed"""

    code = "AG-201"

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("Configuration validation failed:\n  - " + "\n  - ".join(errors))


class IRValidationError(AutogenError):
    """An IR payload does not satisfy the instruction union"""

    code = "AG-301"
