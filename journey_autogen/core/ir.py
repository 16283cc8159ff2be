"""IR model — typed test actions and assertions produced from journey steps."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar, Optional


class LocatorStrategy(Enum):
    ROLE = "role"
    LABEL = "label"
    TEXT = "text"
    TESTID = "testid"
    CSS = "css"
    PLACEHOLDER = "placeholder"


class ValueType(Enum):
    LITERAL = "literal"
    ACTOR = "actor"
    TEST_DATA = "testData"
    GENERATED = "generated"
    RUN_ID = "runId"


@dataclass
class LocatorSpec:
    strategy: LocatorStrategy
    value: str
    options: dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> Optional[str]:
        return self.options.get("name")

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"strategy": self.strategy.value, "value": self.value}
        if self.options:
            d["options"] = dict(self.options)
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LocatorSpec:
        return cls(
            strategy=LocatorStrategy(data["strategy"]),
            value=data["value"],
            options=dict(data.get("options") or {}),
        )


@dataclass
class ValueSpec:
    type: ValueType
    value: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ValueSpec:
        return cls(type=ValueType(data["type"]), value=data["value"])


def make_locator(
    strategy: str, value: str, name: Optional[str] = None
) -> LocatorSpec:
    """Build a LocatorSpec, attaching an accessible name when given."""
    spec = LocatorSpec(LocatorStrategy(strategy), value)
    if name:
        spec.options["name"] = name
    return spec


def value_from_text(text: str) -> ValueSpec:
    """Classify quoted step text as a literal or a templated placeholder.

    ``{{email}}`` is an actor reference, ``$user.email`` a test-data
    reference, anything containing ``${...}`` a generated value.
    """
    if re.match(r"^\{\{.+\}\}$", text):
        return ValueSpec(ValueType.ACTOR, text[2:-2].strip())
    if re.match(r"^\$\{runId\}$", text):
        return ValueSpec(ValueType.RUN_ID, text)
    if text.startswith("$") and not text.startswith("${") and len(text) > 1:
        return ValueSpec(ValueType.TEST_DATA, text[1:])
    if re.search(r"\$\{.+\}", text):
        return ValueSpec(ValueType.GENERATED, text)
    return ValueSpec(ValueType.LITERAL, text)


# ── Primitives ───────────────────────────────────────────────────────

PRIMITIVE_TYPES: dict[str, type[Primitive]] = {}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


@dataclass
class Primitive:
    """Base for all IR primitives. Subclasses set the ``type`` tag."""

    type: ClassVar[str] = ""

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if cls.type:
            PRIMITIVE_TYPES[cls.type] = cls

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"type": self.type}
        for f in fields(self):
            val = getattr(self, f.name)
            if val is None:
                continue
            key = _camel(f.name)
            if isinstance(val, (LocatorSpec, ValueSpec)):
                val = val.to_dict()
            elif isinstance(val, list):
                val = list(val)
            d[key] = val
        return d


@dataclass
class Goto(Primitive):
    type: ClassVar[str] = "goto"
    url: str
    wait_for_load: bool = False


@dataclass
class Click(Primitive):
    type: ClassVar[str] = "click"
    locator: LocatorSpec


@dataclass
class DblClick(Primitive):
    type: ClassVar[str] = "dblclick"
    locator: LocatorSpec


@dataclass
class RightClick(Primitive):
    type: ClassVar[str] = "rightClick"
    locator: LocatorSpec


@dataclass
class Fill(Primitive):
    type: ClassVar[str] = "fill"
    locator: LocatorSpec
    value: ValueSpec


@dataclass
class Clear(Primitive):
    type: ClassVar[str] = "clear"
    locator: LocatorSpec


@dataclass
class Select(Primitive):
    type: ClassVar[str] = "select"
    locator: LocatorSpec
    option: str


@dataclass
class Check(Primitive):
    type: ClassVar[str] = "check"
    locator: LocatorSpec


@dataclass
class Uncheck(Primitive):
    type: ClassVar[str] = "uncheck"
    locator: LocatorSpec


@dataclass
class Hover(Primitive):
    type: ClassVar[str] = "hover"
    locator: LocatorSpec


@dataclass
class Focus(Primitive):
    type: ClassVar[str] = "focus"
    locator: LocatorSpec


@dataclass
class Press(Primitive):
    type: ClassVar[str] = "press"
    key: str
    locator: Optional[LocatorSpec] = None


@dataclass
class ExpectVisible(Primitive):
    type: ClassVar[str] = "expectVisible"
    locator: LocatorSpec


@dataclass
class ExpectHidden(Primitive):
    type: ClassVar[str] = "expectHidden"
    locator: LocatorSpec


@dataclass
class ExpectText(Primitive):
    type: ClassVar[str] = "expectText"
    locator: LocatorSpec
    text: str


@dataclass
class ExpectValue(Primitive):
    type: ClassVar[str] = "expectValue"
    locator: LocatorSpec
    value: str


@dataclass
class ExpectEnabled(Primitive):
    type: ClassVar[str] = "expectEnabled"
    locator: LocatorSpec


@dataclass
class ExpectDisabled(Primitive):
    type: ClassVar[str] = "expectDisabled"
    locator: LocatorSpec


@dataclass
class ExpectChecked(Primitive):
    type: ClassVar[str] = "expectChecked"
    locator: LocatorSpec


@dataclass
class ExpectCount(Primitive):
    type: ClassVar[str] = "expectCount"
    locator: LocatorSpec
    count: int


@dataclass
class ExpectURL(Primitive):
    type: ClassVar[str] = "expectURL"
    pattern: str


@dataclass
class ExpectTitle(Primitive):
    type: ClassVar[str] = "expectTitle"
    title: str


@dataclass
class ExpectToast(Primitive):
    type: ClassVar[str] = "expectToast"
    toast_type: str = "info"  # "success", "error", "info", "warning"
    message: Optional[str] = None


@dataclass
class CallModule(Primitive):
    type: ClassVar[str] = "callModule"
    module: str
    method: str
    args: list[Any] = field(default_factory=list)


@dataclass
class WaitForURL(Primitive):
    type: ClassVar[str] = "waitForURL"
    pattern: str


@dataclass
class WaitForLoadingComplete(Primitive):
    type: ClassVar[str] = "waitForLoadingComplete"


@dataclass
class WaitForVisible(Primitive):
    type: ClassVar[str] = "waitForVisible"
    locator: LocatorSpec


@dataclass
class WaitForHidden(Primitive):
    type: ClassVar[str] = "waitForHidden"
    locator: LocatorSpec


@dataclass
class WaitForTimeout(Primitive):
    type: ClassVar[str] = "waitForTimeout"
    ms: int


@dataclass
class WaitForNetworkIdle(Primitive):
    type: ClassVar[str] = "waitForNetworkIdle"


@dataclass
class Reload(Primitive):
    type: ClassVar[str] = "reload"


@dataclass
class GoBack(Primitive):
    type: ClassVar[str] = "goBack"


@dataclass
class GoForward(Primitive):
    type: ClassVar[str] = "goForward"


@dataclass
class DismissModal(Primitive):
    type: ClassVar[str] = "dismissModal"


@dataclass
class AcceptAlert(Primitive):
    type: ClassVar[str] = "acceptAlert"


@dataclass
class DismissAlert(Primitive):
    type: ClassVar[str] = "dismissAlert"


@dataclass
class Blocked(Primitive):
    """Explicit sentinel for step text that could not be resolved."""

    type: ClassVar[str] = "blocked"
    reason: str
    source_text: str


def primitive_from_dict(data: dict[str, Any]) -> Primitive:
    """Rebuild a primitive from its dict form.

    Raises:
        ValueError: If the ``type`` tag is missing or unknown.
    """
    kind = data.get("type")
    cls = PRIMITIVE_TYPES.get(kind or "")
    if cls is None:
        raise ValueError(f"Unknown primitive type: {kind!r}")

    known = {f.name for f in fields(cls)}
    kwargs: dict[str, Any] = {}
    for key, val in data.items():
        if key == "type":
            continue
        name = _snake(key)
        if name not in known:
            continue
        if name == "locator" and isinstance(val, dict):
            val = LocatorSpec.from_dict(val)
        elif name == "value" and isinstance(val, dict):
            val = ValueSpec.from_dict(val)
        kwargs[name] = val
    return cls(**kwargs)


# ── Steps / journeys ─────────────────────────────────────────────────

ASSERTION_TYPES = frozenset({
    "expectVisible", "expectHidden", "expectText", "expectValue",
    "expectEnabled", "expectDisabled", "expectChecked", "expectCount",
    "expectURL", "expectTitle", "expectToast",
})


def is_assertion(primitive: Primitive) -> bool:
    return primitive.type in ASSERTION_TYPES


@dataclass
class IRStep:
    id: str
    description: str
    actions: list[Primitive] = field(default_factory=list)
    assertions: list[Primitive] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    def add(self, primitive: Primitive) -> None:
        """File a primitive under actions or assertions by its kind."""
        if is_assertion(primitive):
            self.assertions.append(primitive)
        else:
            self.actions.append(primitive)

    @property
    def blocked(self) -> list[Blocked]:
        return [
            p for p in self.actions + self.assertions if isinstance(p, Blocked)
        ]


@dataclass
class IRJourney:
    id: str
    title: str
    tier: str = "smoke"
    scope: str = ""
    actor: str = "user"
    steps: list[IRStep] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
