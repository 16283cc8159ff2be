"""Tests for journey_autogen.core.step_mapper — journey markdown to IR."""

from __future__ import annotations

from journey_autogen.core.ir import Blocked, CallModule, Click, Fill, Goto, LocatorStrategy
from journey_autogen.core.step_mapper import (
    AcceptanceCriterion,
    get_mapping_stats,
    map_acceptance_criterion,
    map_procedural_step,
    map_step_text,
    map_steps,
    parse_acceptance_criteria,
    parse_numbered_steps,
    parse_structured_steps,
    structured_steps_to_ir,
)

STRUCTURED_JOURNEY = """\
# Journey: Update settings

### Step 1: Open settings
- **Action**: Navigate to /settings
- **Wait for**: Settings page to load
- **Assert**: Settings heading is visible

### Step 2: Nothing here
Just prose.

### Step 3: Save
- **Action**: Click the Save button
- **Action**: Frobnicate the gizmo
"""

AC_JOURNEY = """\
# Journey: Login

## Acceptance Criteria
### AC-1: User can log in
- User logs in
- User should see "Dashboard"

### AC-2 Profile loads
- Frobnicate the gizmo

## Procedure
1. Navigate to /login (AC-1)
2. Enter "a@b.c" in the "Email" field (ac-2)
3. User logs in

## Notes
1. not a step
"""


# ---------------------------------------------------------------------------
# map_step_text
# ---------------------------------------------------------------------------

class TestMapStepText:
    def test_pattern_match(self):
        result = map_step_text('Click the "Submit" button')
        assert not result.blocked
        assert result.primitive.type == "click"
        assert result.match.source == "pattern"
        assert result.is_assertion is False

    def test_assertion_flag(self):
        assert map_step_text('User should see "Welcome"').is_assertion is True

    def test_unmatched_becomes_blocked(self):
        result = map_step_text("Frobnicate the gizmo")
        assert result.blocked
        assert isinstance(result.primitive, Blocked)
        assert result.primitive.source_text == "Frobnicate the gizmo"
        assert result.message == 'Could not map step: "Frobnicate the gizmo"'
        assert result.nearest is not None

    def test_blank_text_has_no_nearest(self):
        result = map_step_text("   ")
        assert result.blocked
        assert result.nearest is None

    def test_hint_overrides_inferred_locator(self):
        result = map_step_text('Click the "Save" button (testid=save-btn)')
        assert result.primitive.locator.strategy == LocatorStrategy.TESTID
        assert result.primitive.locator.value == "save-btn"
        assert result.source_text == 'Click the "Save" button (testid=save-btn)'

    def test_hints_alone_build_a_click(self):
        result = map_step_text("Frobnicate the gizmo (role=button, name=Gizmo)")
        assert result.primitive == Click(result.primitive.locator)
        assert result.primitive.locator.name == "Gizmo"

    def test_hints_alone_build_a_fill(self):
        result = map_step_text("Type 'abc' somewhere (label=Notes)")
        assert isinstance(result.primitive, Fill)
        assert result.primitive.locator.value == "Notes"
        assert result.primitive.value.value == "abc"

    def test_module_hint_rewrites_call(self):
        result = map_step_text("Log in (module=auth.ssoLogin)")
        assert result.primitive == CallModule("auth", "ssoLogin")

    def test_label_alias_applies(self):
        result = map_step_text('Enter "a@b.c" in the "Email" field')
        assert result.primitive.locator.strategy == LocatorStrategy.TESTID
        assert result.primitive.locator.value == "email-input"


class TestMappingStats:
    def test_counts(self):
        mappings = map_steps([
            "User logs in",
            'User should see "Dashboard"',
            "Frobnicate the gizmo",
            "Go back",
        ])
        stats = get_mapping_stats(mappings)
        assert stats == {
            "total": 4,
            "mapped": 3,
            "blocked": 1,
            "actions": 2,
            "assertions": 1,
            "mapping_rate": 0.75,
        }

    def test_empty(self):
        assert get_mapping_stats([])["mapping_rate"] == 0.0


# ---------------------------------------------------------------------------
# Structured steps
# ---------------------------------------------------------------------------

class TestStructuredSteps:
    def test_parse(self):
        steps = parse_structured_steps(STRUCTURED_JOURNEY)
        assert [s.number for s in steps] == [1, 3]
        first = steps[0]
        assert first.name == "Open settings"
        assert [a.kind for a in first.actions] == ["action", "wait", "assert"]
        nav = first.actions[0]
        assert (nav.action, nav.target, nav.value) == ("navigate", "/settings", None)
        assert nav.primitive == Goto("/settings", wait_for_load=True)
        assert first.actions[1].primitive.type == "expectVisible"
        assert nav.mapping is not None and nav.mapping.blocked is False

    def test_blocked_bullet_keeps_text(self):
        steps = parse_structured_steps(STRUCTURED_JOURNEY)
        blocked = steps[1].actions[1]
        assert blocked.primitive.type == "blocked"
        assert blocked.action == "Frobnicate the gizmo"

    def test_to_ir(self):
        ir_steps = structured_steps_to_ir(parse_structured_steps(STRUCTURED_JOURNEY))
        assert [s.id for s in ir_steps] == ["STEP-1", "STEP-3"]
        assert len(ir_steps[0].actions) == 1
        assert len(ir_steps[0].assertions) == 2
        assert len(ir_steps[1].blocked) == 1

    def test_no_structured_steps(self):
        assert parse_structured_steps(AC_JOURNEY) == []


# ---------------------------------------------------------------------------
# Acceptance criteria and procedure
# ---------------------------------------------------------------------------

class TestProcedure:
    def test_numbered_steps_and_links(self):
        steps = parse_numbered_steps(AC_JOURNEY)
        assert [s.text for s in steps] == [
            "Navigate to /login",
            'Enter "a@b.c" in the "Email" field',
            "User logs in",
        ]
        assert [s.linked_ac for s in steps] == ["AC-1", "AC-2", None]

    def test_bullet_fallback(self):
        steps = parse_numbered_steps("## Procedure\n- Go back\n- Refresh the page\n")
        assert [(s.number, s.text) for s in steps] == [(1, "Go back"), (2, "Refresh the page")]

    def test_no_section(self):
        assert parse_numbered_steps("# nothing") == []

    def test_map_procedural_step(self):
        step = map_procedural_step(parse_numbered_steps(AC_JOURNEY)[2])
        assert step.id == "PS-3"
        assert step.actions == [CallModule("auth", "login")]


class TestAcceptanceCriteria:
    def test_parse(self):
        criteria = parse_acceptance_criteria(AC_JOURNEY)
        assert [(c.id, c.title) for c in criteria] == [
            ("AC-1", "User can log in"),
            ("AC-2", "Profile loads"),
        ]
        assert criteria[0].steps == ["User logs in", 'User should see "Dashboard"']

    def test_map_with_linked_procedure(self):
        ac = parse_acceptance_criteria(AC_JOURNEY)[0]
        step, mappings = map_acceptance_criterion(ac, parse_numbered_steps(AC_JOURNEY))
        assert step.id == "AC-1"
        assert len(mappings) == 2
        assert step.actions == [CallModule("auth", "login"), Goto("/login", wait_for_load=True)]
        assert len(step.assertions) == 1
        assert step.notes == []

    def test_missing_assertion_is_noted(self):
        ac = parse_acceptance_criteria(AC_JOURNEY)[1]
        step, mappings = map_acceptance_criterion(ac)
        assert mappings[0].blocked
        assert step.notes == ["No assertion mapped for: Profile loads"]

    def test_untitled_description(self):
        step, _ = map_acceptance_criterion(AcceptanceCriterion("AC-9", "", ["Go back"]))
        assert step.description == "Step AC-9"
        assert step.notes == []
