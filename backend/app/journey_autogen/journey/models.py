"""
Journey Models
Frontmatter schema and parsed body of a Journey markdown document
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

JOURNEY_ID_PATTERN = r"^JRN-\d{4}$"


class JourneyStatus(str, Enum):
    """Lifecycle of a Journey document; only clarified ones are generated"""
    PROPOSED = "proposed"
    DEFINED = "defined"
    CLARIFIED = "clarified"
    IMPLEMENTED = "implemented"
    QUARANTINED = "quarantined"
    DEPRECATED = "deprecated"


class JourneyTier(str, Enum):
    SMOKE = "smoke"
    RELEASE = "release"
    REGRESSION = "regression"


class JourneyModules(BaseModel):
    foundation: List[str] = []
    features: List[str] = []


class JourneyCompletion(BaseModel):
    """A frontmatter completion signal"""
    type: str
    value: str = Field(min_length=1)
    options: Optional[Dict[str, Any]] = None

    @field_validator("type")
    @classmethod
    def _known_type(cls, v: str) -> str:
        if v not in ("url", "toast", "element", "text", "title", "api"):
            raise ValueError(f"unknown completion signal type '{v}'")
        return v


class JourneyFrontmatter(BaseModel):
    """YAML frontmatter of a Journey"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(pattern=JOURNEY_ID_PATTERN)
    title: str = Field(min_length=1)
    status: JourneyStatus
    tier: JourneyTier
    scope: str = Field(min_length=1)
    actor: str = Field(min_length=1)
    revision: int = Field(default=1, ge=1)
    modules: JourneyModules = JourneyModules()
    completion: List[JourneyCompletion] = []
    data: Optional[Dict[str, Any]] = None
    tags: List[str] = []
    prerequisites: List[str] = []
    negative_paths: List[Dict[str, Any]] = Field(default=[], alias="negativePaths")


class AcceptanceCriterion(BaseModel):
    """### AC-n: Title, followed by bullet steps"""
    id: str
    title: str
    steps: List[str] = []
    raw_content: str = ""


class ProceduralStep(BaseModel):
    """A numbered (or bulleted) step, optionally linked to an AC with (AC-n)"""
    number: int
    text: str
    linked_ac: Optional[str] = None


class ParsedJourney(BaseModel):
    """A Journey document after parsing, before step mapping"""
    frontmatter: JourneyFrontmatter
    acceptance_criteria: List[AcceptanceCriterion] = []
    procedural_steps: List[ProceduralStep] = []
    data_notes: List[str] = []
    body: str = ""
    source_path: str = "virtual.journey.md"
