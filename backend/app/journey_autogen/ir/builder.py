"""
IR Builder - fluent construction of IR steps and journeys

    step = (StepBuilder("AC-1", "Log in")
            .goto("/login")
            .fill(create_locator("label", "Email"), "a@b.c")
            .click(create_locator("role", "button", name="Sign in"))
            .expect_url("/dashboard")
            .build())
"""

from typing import Any, List, Optional, Union

from ..ir.models import (
    Blocked, CallModule, Click, CompletionSignal, ExpectText, ExpectToast,
    ExpectURL, ExpectVisible, Fill, Goto, Instruction, IRJourney, IRStep,
    LocatorSpec, ModuleDependencies, ValueSpec, is_assertion,
)


def standard_tags(journey_id: str, tier: str, scope: str, actor: Optional[str] = None) -> List[str]:
    """Tags every generated journey carries"""
    tags = ["@artk", "@journey", f"@{journey_id}", f"@tier-{tier}", f"@scope-{scope}"]
    if actor:
        tags.append(f"@actor-{actor}")
    return tags


class StepBuilder:
    """Accumulates actions and assertions for one IR step"""

    def __init__(self, step_id: str, description: str):
        self.step_id = step_id
        self.description = description
        self.actions: List[Instruction] = []
        self.assertions: List[Instruction] = []
        self.notes: List[str] = []
        self._source_text: Optional[str] = None

    def source_text(self, text: str) -> "StepBuilder":
        self._source_text = text
        return self

    def note(self, note: str) -> "StepBuilder":
        self.notes.append(note)
        return self

    def add(self, primitive: Instruction) -> "StepBuilder":
        """Route to assertions or actions by instruction type"""
        if is_assertion(primitive):
            self.assertions.append(primitive)
        else:
            self.actions.append(primitive)
        return self

    def action(self, primitive: Instruction) -> "StepBuilder":
        self.actions.append(primitive)
        return self

    def assertion(self, primitive: Instruction) -> "StepBuilder":
        self.assertions.append(primitive)
        return self

    # ==================== Shortcuts ====================

    def goto(self, url: str, wait_for_load: bool = True) -> "StepBuilder":
        return self.action(Goto(url=url, wait_for_load=wait_for_load))

    def click(self, locator: LocatorSpec) -> "StepBuilder":
        return self.action(Click(locator=locator))

    def fill(self, locator: LocatorSpec, value: Union[ValueSpec, str]) -> "StepBuilder":
        if isinstance(value, str):
            value = ValueSpec(type="literal", value=value)
        return self.action(Fill(locator=locator, value=value))

    def call_module(self, module: str, method: str, args: Optional[List[Any]] = None) -> "StepBuilder":
        return self.action(CallModule(module=module, method=method, args=args))

    def blocked(self, reason: str, source_text: str) -> "StepBuilder":
        return self.action(Blocked(reason=reason, source_text=source_text))

    def expect_visible(self, locator: LocatorSpec, timeout: Optional[int] = None) -> "StepBuilder":
        return self.assertion(ExpectVisible(locator=locator, timeout=timeout))

    def expect_text(self, locator: LocatorSpec, text: str) -> "StepBuilder":
        return self.assertion(ExpectText(locator=locator, text=text))

    def expect_url(self, pattern: str) -> "StepBuilder":
        return self.assertion(ExpectURL(pattern=pattern))

    def expect_toast(self, toast_type: str, message: Optional[str] = None) -> "StepBuilder":
        return self.assertion(ExpectToast(toast_type=toast_type, message=message))

    def build(self) -> IRStep:
        if not self.step_id or not self.description:
            raise ValueError("IRStep requires id and description")
        return IRStep(
            id=self.step_id,
            description=self.description,
            actions=list(self.actions),
            assertions=list(self.assertions),
            source_text=self._source_text,
            notes=list(self.notes),
        )


class JourneyBuilder:
    """Assembles an IRJourney; standard tags are added on build"""

    def __init__(self, journey_id: str, title: str):
        self.journey_id = journey_id
        self.title = title
        self._tier: Optional[str] = None
        self._scope: Optional[str] = None
        self._actor: Optional[str] = None
        self._tags: List[str] = []
        self._steps: List[IRStep] = []
        self._completion: List[CompletionSignal] = []
        self._modules = ModuleDependencies()
        self._prerequisites: List[str] = []
        self._revision = 1
        self._source_path: Optional[str] = None

    def tier(self, tier: str) -> "JourneyBuilder":
        self._tier = tier
        return self

    def scope(self, scope: str) -> "JourneyBuilder":
        self._scope = scope
        return self

    def actor(self, actor: str) -> "JourneyBuilder":
        self._actor = actor
        return self

    def tags(self, tags: List[str]) -> "JourneyBuilder":
        self._tags.extend(t if t.startswith("@") else f"@{t}" for t in tags)
        return self

    def modules(self, foundation: List[str], feature: List[str]) -> "JourneyBuilder":
        self._modules = ModuleDependencies(foundation=list(foundation), feature=list(feature))
        return self

    def completion(self, signals: List[CompletionSignal]) -> "JourneyBuilder":
        self._completion = list(signals)
        return self

    def prerequisites(self, journey_ids: List[str]) -> "JourneyBuilder":
        self._prerequisites = list(journey_ids)
        return self

    def revision(self, revision: int) -> "JourneyBuilder":
        self._revision = revision
        return self

    def source_path(self, path: str) -> "JourneyBuilder":
        self._source_path = path
        return self

    def step(self, step: Union[IRStep, StepBuilder]) -> "JourneyBuilder":
        self._steps.append(step.build() if isinstance(step, StepBuilder) else step)
        return self

    def build(self) -> IRJourney:
        if not (self.journey_id and self.title and self._tier and self._scope and self._actor):
            raise ValueError("IRJourney requires id, title, tier, scope, and actor")

        tags = list(dict.fromkeys(
            standard_tags(self.journey_id, self._tier, self._scope, self._actor) + self._tags
        ))
        return IRJourney(
            id=self.journey_id,
            title=self.title,
            tier=self._tier,
            scope=self._scope,
            actor=self._actor,
            tags=tags,
            module_dependencies=self._modules,
            completion=self._completion,
            steps=self._steps,
            revision=self._revision,
            prerequisites=self._prerequisites,
            source_path=self._source_path,
        )
