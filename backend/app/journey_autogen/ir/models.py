"""
IR Models - the closed instruction set Journey steps compile to

Every instruction is a pydantic model tagged by ``type``; the union is
discriminated on that tag so an instruction can never be built without the
fields its kind requires. The wire form is camelCase JSON, which is also the
contract AI-suggested instructions must satisfy before they are trusted.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..errors import IRValidationError


def _to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


class IRModel(BaseModel):
    """Base for all IR models: camelCase on the wire, strict fields"""
    model_config = ConfigDict(
        alias_generator=_to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    def to_wire(self) -> Dict[str, Any]:
        """Serialize to the camelCase wire shape, omitting unset optionals"""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# ==================== Locators & Values ====================

class LocatorStrategy(str, Enum):
    """Ways to address a UI element"""
    ROLE = "role"
    LABEL = "label"
    PLACEHOLDER = "placeholder"
    TEXT = "text"
    TESTID = "testid"
    CSS = "css"
    XPATH = "xpath"


class LocatorOptions(IRModel):
    """Disambiguating options for a locator"""
    name: Optional[str] = None
    exact: Optional[bool] = None
    level: Optional[int] = None


class LocatorSpec(IRModel):
    """Strategy + value description of how to find an element"""
    strategy: LocatorStrategy
    value: str = Field(min_length=1)
    options: Optional[LocatorOptions] = None

    @property
    def name(self) -> Optional[str]:
        return self.options.name if self.options else None


class ValueSpec(IRModel):
    """Where a fill value comes from"""
    type: Literal["literal", "actor", "runId", "generated", "testData"]
    value: str


# ==================== Navigation ====================

class Goto(IRModel):
    type: Literal["goto"] = "goto"
    url: str
    wait_for_load: bool = True


class WaitForURL(IRModel):
    type: Literal["waitForURL"] = "waitForURL"
    pattern: str


class WaitForResponse(IRModel):
    type: Literal["waitForResponse"] = "waitForResponse"
    url_pattern: str


class WaitForLoadingComplete(IRModel):
    type: Literal["waitForLoadingComplete"] = "waitForLoadingComplete"
    timeout: Optional[int] = None


class Reload(IRModel):
    type: Literal["reload"] = "reload"


class GoBack(IRModel):
    type: Literal["goBack"] = "goBack"


class GoForward(IRModel):
    type: Literal["goForward"] = "goForward"


# ==================== Waits ====================

class WaitForVisible(IRModel):
    type: Literal["waitForVisible"] = "waitForVisible"
    locator: LocatorSpec
    timeout: Optional[int] = None


class WaitForHidden(IRModel):
    type: Literal["waitForHidden"] = "waitForHidden"
    locator: LocatorSpec
    timeout: Optional[int] = None


class WaitForTimeout(IRModel):
    type: Literal["waitForTimeout"] = "waitForTimeout"
    ms: int = Field(ge=0)


class WaitForNetworkIdle(IRModel):
    type: Literal["waitForNetworkIdle"] = "waitForNetworkIdle"
    timeout: Optional[int] = None


# ==================== Interactions ====================

class Click(IRModel):
    type: Literal["click"] = "click"
    locator: LocatorSpec


class DblClick(IRModel):
    type: Literal["dblclick"] = "dblclick"
    locator: LocatorSpec


class RightClick(IRModel):
    type: Literal["rightClick"] = "rightClick"
    locator: LocatorSpec


class Fill(IRModel):
    type: Literal["fill"] = "fill"
    locator: LocatorSpec
    value: ValueSpec


class Select(IRModel):
    type: Literal["select"] = "select"
    locator: LocatorSpec
    option: str


class Check(IRModel):
    type: Literal["check"] = "check"
    locator: LocatorSpec


class Uncheck(IRModel):
    type: Literal["uncheck"] = "uncheck"
    locator: LocatorSpec


class Upload(IRModel):
    type: Literal["upload"] = "upload"
    locator: LocatorSpec
    files: List[str] = Field(min_length=1)


class Press(IRModel):
    type: Literal["press"] = "press"
    key: str
    locator: Optional[LocatorSpec] = None


class Hover(IRModel):
    type: Literal["hover"] = "hover"
    locator: LocatorSpec


class Focus(IRModel):
    type: Literal["focus"] = "focus"
    locator: LocatorSpec


class Clear(IRModel):
    type: Literal["clear"] = "clear"
    locator: LocatorSpec


# ==================== Assertions ====================

class ExpectVisible(IRModel):
    type: Literal["expectVisible"] = "expectVisible"
    locator: LocatorSpec
    timeout: Optional[int] = None


class ExpectNotVisible(IRModel):
    type: Literal["expectNotVisible"] = "expectNotVisible"
    locator: LocatorSpec
    timeout: Optional[int] = None


class ExpectHidden(IRModel):
    type: Literal["expectHidden"] = "expectHidden"
    locator: LocatorSpec
    timeout: Optional[int] = None


class ExpectText(IRModel):
    type: Literal["expectText"] = "expectText"
    locator: LocatorSpec
    text: str


class ExpectContainsText(IRModel):
    type: Literal["expectContainsText"] = "expectContainsText"
    locator: LocatorSpec
    text: str


class ExpectValue(IRModel):
    type: Literal["expectValue"] = "expectValue"
    locator: LocatorSpec
    value: str


class ExpectChecked(IRModel):
    type: Literal["expectChecked"] = "expectChecked"
    locator: LocatorSpec
    checked: bool = True


class ExpectEnabled(IRModel):
    type: Literal["expectEnabled"] = "expectEnabled"
    locator: LocatorSpec


class ExpectDisabled(IRModel):
    type: Literal["expectDisabled"] = "expectDisabled"
    locator: LocatorSpec


class ExpectCount(IRModel):
    type: Literal["expectCount"] = "expectCount"
    locator: LocatorSpec
    count: int = Field(ge=0)


class ExpectURL(IRModel):
    type: Literal["expectURL"] = "expectURL"
    pattern: str


class ExpectTitle(IRModel):
    type: Literal["expectTitle"] = "expectTitle"
    title: str


# ==================== Signals & Modules ====================

class ExpectToast(IRModel):
    type: Literal["expectToast"] = "expectToast"
    toast_type: Literal["success", "error", "info", "warning"]
    message: Optional[str] = None


class DismissModal(IRModel):
    type: Literal["dismissModal"] = "dismissModal"


class AcceptAlert(IRModel):
    type: Literal["acceptAlert"] = "acceptAlert"


class DismissAlert(IRModel):
    type: Literal["dismissAlert"] = "dismissAlert"


class CallModule(IRModel):
    type: Literal["callModule"] = "callModule"
    module: str = Field(min_length=1)
    method: str = Field(min_length=1)
    args: Optional[List[Any]] = None


class Blocked(IRModel):
    """A step that could not be resolved; rendered as a failing placeholder"""
    type: Literal["blocked"] = "blocked"
    reason: str
    source_text: str


Instruction = Annotated[
    Union[
        Goto, WaitForURL, WaitForResponse, WaitForLoadingComplete,
        Reload, GoBack, GoForward,
        WaitForVisible, WaitForHidden, WaitForTimeout, WaitForNetworkIdle,
        Click, DblClick, RightClick, Fill, Select, Check, Uncheck, Upload,
        Press, Hover, Focus, Clear,
        ExpectVisible, ExpectNotVisible, ExpectHidden, ExpectText,
        ExpectContainsText, ExpectValue, ExpectChecked, ExpectEnabled,
        ExpectDisabled, ExpectCount, ExpectURL, ExpectTitle,
        ExpectToast, DismissModal, AcceptAlert, DismissAlert,
        CallModule, Blocked,
    ],
    Field(discriminator="type"),
]

_INSTRUCTION_ADAPTER = TypeAdapter(Instruction)

INSTRUCTION_TYPES = sorted(
    cls.model_fields["type"].default
    for cls in IRModel.__subclasses__()
    if "type" in cls.model_fields and isinstance(cls.model_fields["type"].default, str)
)


def parse_instruction(data: Dict[str, Any]) -> Instruction:
    """
    Validate a wire dict into an Instruction.

    Raises:
        IRValidationError: payload does not match any variant
    """
    try:
        return _INSTRUCTION_ADAPTER.validate_python(data)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        )
        raise IRValidationError(f"Invalid instruction: {errors}")


def validate_instruction(data: Any) -> Tuple[bool, List[str]]:
    """Check a payload against the union without raising"""
    if not isinstance(data, dict):
        return False, ["Instruction must be an object"]
    try:
        _INSTRUCTION_ADAPTER.validate_python(data)
        return True, []
    except ValidationError as e:
        return False, [
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        ]


def is_assertion(instruction: Instruction) -> bool:
    """Assertions are the expect* family"""
    return instruction.type.startswith("expect")


# ==================== Journey-level IR ====================

class CompletionSignal(IRModel):
    """How the journey knows it finished"""
    type: Literal["url", "toast", "element", "text", "title", "api"]
    value: str = Field(min_length=1)
    options: Optional[Dict[str, Any]] = None


class ModuleDependencies(IRModel):
    foundation: List[str] = Field(default_factory=list)
    feature: List[str] = Field(default_factory=list)


class IRStep(IRModel):
    """One acceptance criterion (or procedural step) compiled to instructions"""
    id: str
    description: str
    actions: List[Instruction] = Field(default_factory=list)
    assertions: List[Instruction] = Field(default_factory=list)
    source_text: Optional[str] = None
    notes: List[str] = Field(default_factory=list)

    @property
    def instructions(self) -> List[Instruction]:
        return list(self.actions) + list(self.assertions)


class IRJourney(IRModel):
    """A full journey in IR form, ready for code generation"""
    id: str
    title: str
    tier: str
    scope: str
    actor: str
    tags: List[str] = Field(default_factory=list)
    module_dependencies: ModuleDependencies = Field(default_factory=ModuleDependencies)
    completion: List[CompletionSignal] = Field(default_factory=list)
    steps: List[IRStep] = Field(default_factory=list)
    revision: int = 1
    prerequisites: List[str] = Field(default_factory=list)
    source_path: Optional[str] = None

    def blocked_instructions(self) -> List[Tuple[str, Blocked]]:
        """All blocked instructions with their owning step id"""
        found = []
        for step in self.steps:
            for instruction in step.instructions:
                if isinstance(instruction, Blocked):
                    found.append((step.id, instruction))
        return found
