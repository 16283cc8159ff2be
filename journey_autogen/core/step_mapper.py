"""Step mapping — journey markdown and step text to IR steps.

Unmatched text never raises. It becomes a ``blocked`` primitive that keeps
the source text, together with the nearest known pattern for diagnostics.
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from journey_autogen.core.fuzzy import NearestPattern, find_nearest_pattern
from journey_autogen.core.hints import StepHints, extract_hints, split_module_hint
from journey_autogen.core.ir import (
    Blocked,
    CallModule,
    Check,
    Click,
    ExpectVisible,
    Fill,
    IRStep,
    Primitive,
    ValueSpec,
    ValueType,
    is_assertion,
)
from journey_autogen.core.matcher import MatchResult, PatternMatcher, get_default_matcher


@dataclass
class StepMappingResult:
    primitive: Primitive
    source_text: str
    is_assertion: bool = False
    match: Optional[MatchResult] = None
    message: Optional[str] = None
    nearest: Optional[NearestPattern] = None

    @property
    def blocked(self) -> bool:
        return isinstance(self.primitive, Blocked)


def _primitive_from_hints(text: str, hints: StepHints) -> Optional[Primitive]:
    locator = hints.to_locator()
    if locator is None:
        return None
    lower = text.lower()
    if "click" in lower or "press" in lower:
        return Click(locator)
    if any(kw in lower for kw in ("enter", "type", "fill")):
        quoted = re.search(r"['\"]([^'\"]+)['\"]", text)
        return Fill(locator, ValueSpec(ValueType.LITERAL, quoted.group(1) if quoted else ""))
    if any(kw in lower for kw in ("see", "visible", "display")):
        return ExpectVisible(locator)
    if "check" in lower or "select" in lower:
        return Check(locator)
    return Click(locator)


def _apply_hints(primitive: Primitive, hints: StepHints) -> Primitive:
    enhanced = copy.deepcopy(primitive)
    locator = hints.to_locator()
    if locator is not None and hasattr(enhanced, "locator"):
        enhanced.locator = locator
    if hints.module and isinstance(enhanced, CallModule):
        parsed = split_module_hint(hints.module)
        if parsed:
            enhanced.module, enhanced.method = parsed
    return enhanced


def map_step_text(
    text: str, matcher: Optional[PatternMatcher] = None
) -> StepMappingResult:
    """Map one step to a primitive; machine hints override inferred locators."""
    matcher = matcher or get_default_matcher()
    hints = extract_hints(text)
    clean = hints.clean_text if hints else text

    result = matcher.match(clean)
    primitive: Optional[Primitive] = None
    if result is not None:
        primitive = _apply_hints(result.primitive, hints) if hints else result.primitive
    elif hints is not None and hints.has_locator:
        primitive = _primitive_from_hints(clean, hints)

    if primitive is not None:
        return StepMappingResult(
            primitive=primitive,
            source_text=text,
            is_assertion=is_assertion(primitive),
            match=result,
        )

    message = f'Could not map step: "{text.strip()}"'
    return StepMappingResult(
        primitive=Blocked(reason=message, source_text=text),
        source_text=text,
        message=message,
        nearest=find_nearest_pattern(clean) if clean.strip() else None,
    )


def map_steps(
    steps: list[str], matcher: Optional[PatternMatcher] = None
) -> list[StepMappingResult]:
    return [map_step_text(s, matcher) for s in steps]


def get_mapping_stats(mappings: list[StepMappingResult]) -> dict[str, Any]:
    mapped = [m for m in mappings if not m.blocked]
    return {
        "total": len(mappings),
        "mapped": len(mapped),
        "blocked": len(mappings) - len(mapped),
        "actions": sum(1 for m in mapped if not m.is_assertion),
        "assertions": sum(1 for m in mapped if m.is_assertion),
        "mapping_rate": len(mapped) / len(mappings) if mappings else 0.0,
    }


# ── Structured steps ─────────────────────────────────────────────────

_STEP_HEADER = re.compile(r"^###\s*Step\s+(\d+):\s*(.+)$", re.MULTILINE)
_STEP_BULLET = re.compile(r"^-\s*\*\*(Action|Wait for|Assert)\*\*:\s*(.+)$", re.MULTILINE)
_BULLET_KIND = {"action": "action", "wait for": "wait", "assert": "assert"}


@dataclass
class StructuredAction:
    kind: str  # "action", "wait", "assert"
    text: str
    primitive: Primitive
    action: str
    target: str = ""
    value: Optional[str] = None
    mapping: Optional[StepMappingResult] = None


@dataclass
class StructuredStep:
    number: int
    name: str
    actions: list[StructuredAction] = field(default_factory=list)


def summarize_primitive(primitive: Primitive, text: str) -> tuple[str, str, Optional[str]]:
    """Flatten a primitive into ``(action, target, value)``."""
    kind = primitive.type
    locator = getattr(primitive, "locator", None)

    if kind == "goto":
        return "navigate", primitive.url, None
    if kind == "fill":
        return "fill", locator.value, primitive.value.value
    if kind == "select":
        return "select", locator.value, primitive.option
    if kind == "expectToast":
        return "expectToast", primitive.toast_type or "info", primitive.message
    if kind in ("expectURL", "waitForURL"):
        return kind, primitive.pattern, None
    if kind == "callModule":
        return (
            f"{primitive.module}.{primitive.method}",
            ", ".join(str(a) for a in primitive.args),
            None,
        )
    if kind == "waitForLoadingComplete":
        return kind, "", None
    if kind in ("click", "check", "uncheck", "expectVisible") and locator is not None:
        return kind, locator.value, None
    return text.strip(), "", None


def parse_structured_steps(
    markdown: str, matcher: Optional[PatternMatcher] = None
) -> list[StructuredStep]:
    """Parse ``### Step N: title`` sections with Action / Wait for / Assert bullets.

    Steps without any bullet are skipped.
    """
    steps = []
    headers = list(_STEP_HEADER.finditer(markdown))
    for i, header in enumerate(headers):
        end = headers[i + 1].start() if i + 1 < len(headers) else len(markdown)
        section = markdown[header.end():end]
        step = StructuredStep(number=int(header.group(1)), name=header.group(2).strip())

        for bullet in _STEP_BULLET.finditer(section):
            label, body = bullet.group(1), bullet.group(2).strip()
            mapping = map_step_text(f"**{label}**: {body}", matcher)
            if mapping.blocked:
                action, target, value = body, "", None
            else:
                action, target, value = summarize_primitive(mapping.primitive, body)
            step.actions.append(StructuredAction(
                kind=_BULLET_KIND[label.lower()],
                text=body,
                primitive=mapping.primitive,
                action=action,
                target=target,
                value=value,
                mapping=mapping,
            ))

        if step.actions:
            steps.append(step)
    return steps


def structured_steps_to_ir(steps: list[StructuredStep]) -> list[IRStep]:
    out = []
    for s in steps:
        ir_step = IRStep(id=f"STEP-{s.number}", description=s.name)
        for a in s.actions:
            ir_step.add(a.primitive)
        out.append(ir_step)
    return out


# ── Acceptance criteria and procedure lists ──────────────────────────

_SECTION_END = r"(?=\n##\s[^#]|\Z)"
_PROCEDURE_SECTION = re.compile(
    rf"##\s*(?:Procedure|Procedural\s*Steps?)\s*\n([\s\S]*?){_SECTION_END}", re.IGNORECASE
)
_AC_SECTION = re.compile(
    rf"##\s*Acceptance\s*Criteria\s*\n([\s\S]*?){_SECTION_END}", re.IGNORECASE
)
_AC_HEADER = re.compile(r"^###?[ \t]*(AC-\d+)[: \t]*(.*?)$", re.IGNORECASE | re.MULTILINE)
_AC_REF = re.compile(r"\s*\(AC-(\d+)\)\s*", re.IGNORECASE)
_NUMBERED = re.compile(r"^\s*\d+\.\s+(.+)$", re.MULTILINE)
_BULLET = re.compile(r"^\s*[-*]\s+(.+)$", re.MULTILINE)


@dataclass
class ProceduralStep:
    number: int
    text: str
    linked_ac: Optional[str] = None


@dataclass
class AcceptanceCriterion:
    id: str
    title: str
    steps: list[str] = field(default_factory=list)


def parse_numbered_steps(markdown: str) -> list[ProceduralStep]:
    """Numbered items of the ``## Procedure`` section; bullets when there are none."""
    section = _PROCEDURE_SECTION.search(markdown)
    if not section:
        return []
    body = section.group(1)
    items = _NUMBERED.findall(body) or _BULLET.findall(body)

    steps = []
    for number, raw in enumerate(items, start=1):
        text = raw.strip()
        ref = _AC_REF.search(text)
        steps.append(ProceduralStep(
            number=number,
            text=_AC_REF.sub(" ", text).strip(),
            linked_ac=f"AC-{ref.group(1)}" if ref else None,
        ))
    return steps


def parse_acceptance_criteria(markdown: str) -> list[AcceptanceCriterion]:
    section = _AC_SECTION.search(markdown)
    if not section:
        return []
    body = section.group(1)
    headers = list(_AC_HEADER.finditer(body))
    criteria = []
    for i, header in enumerate(headers):
        end = headers[i + 1].start() if i + 1 < len(headers) else len(body)
        chunk = body[header.end():end]
        criteria.append(AcceptanceCriterion(
            id=header.group(1).upper(),
            title=header.group(2).strip(),
            steps=[s.strip() for s in _BULLET.findall(chunk)],
        ))
    return criteria


def map_acceptance_criterion(
    ac: AcceptanceCriterion,
    procedural: Optional[list[ProceduralStep]] = None,
    matcher: Optional[PatternMatcher] = None,
) -> tuple[IRStep, list[StepMappingResult]]:
    """Map an AC's bullets, plus any procedure steps linked to it, to one IRStep."""
    step = IRStep(id=ac.id, description=ac.title or f"Step {ac.id}")
    mappings = map_steps(ac.steps, matcher)
    for m in mappings:
        step.add(m.primitive)

    for ps in procedural or []:
        if ps.linked_ac != ac.id or ps.text in ac.steps:
            continue
        m = map_step_text(ps.text, matcher)
        if not m.blocked:
            step.add(m.primitive)

    if not step.assertions and ac.title:
        step.notes.append(f"No assertion mapped for: {ac.title}")
    return step, mappings


def map_procedural_step(
    ps: ProceduralStep, matcher: Optional[PatternMatcher] = None
) -> IRStep:
    step = IRStep(id=f"PS-{ps.number}", description=ps.text)
    step.add(map_step_text(ps.text, matcher).primitive)
    return step
