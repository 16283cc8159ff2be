"""Tests for journey_autogen.core.patterns — the regex rule table."""

from __future__ import annotations

import pytest

from journey_autogen.core.ir import LocatorStrategy, ValueType
from journey_autogen.core.patterns import (
    ALL_PATTERNS,
    find_matching_patterns,
    get_all_pattern_names,
    get_pattern,
    get_pattern_count_by_group,
    match_regex_patterns,
    parse_selector_to_locator,
)

EXAMPLES = [(p.name, example) for p in ALL_PATTERNS for example in p.examples]


def _match(text):
    hit = match_regex_patterns(text)
    assert hit is not None, f"no pattern matched {text!r}"
    return hit


# ---------------------------------------------------------------------------
# Table integrity
# ---------------------------------------------------------------------------

class TestTable:
    def test_names_are_unique(self):
        names = get_all_pattern_names()
        assert len(names) == len(set(names))

    def test_every_pattern_has_examples(self):
        assert all(p.examples for p in ALL_PATTERNS)

    def test_group_counts_cover_all_patterns(self):
        counts = get_pattern_count_by_group()
        assert sum(counts.values()) == len(ALL_PATTERNS)
        assert counts["auth"] == 3

    def test_group_is_stamped(self):
        assert get_pattern("go-back").group == "extended-navigation"
        assert get_pattern("missing") is None

    @pytest.mark.parametrize("name, example", EXAMPLES)
    def test_example_matches_its_own_rule(self, name, example):
        pattern = get_pattern(name)
        primitive = pattern.try_match(example)
        assert primitive is not None
        assert primitive.type == pattern.primitive_type


# ---------------------------------------------------------------------------
# Precedence
# ---------------------------------------------------------------------------

class TestPrecedence:
    def test_go_back_is_not_a_goto(self):
        pattern, primitive = _match("Go back")
        assert pattern.name == "go-back"
        assert primitive.type == "goBack"
        assert {"go-back", "navigate-to-url"} <= set(find_matching_patterns("Go back"))

    def test_click_on_before_generic_click(self):
        pattern, primitive = _match("Click on the Profile link")
        assert pattern.name == "click-on-element"
        assert primitive.locator.value == "Profile"

    def test_negative_visibility_before_positive(self):
        pattern, primitive = _match("Verify the error banner is not visible")
        assert primitive.type == "expectHidden"

    def test_named_dropdown_without_name_falls_through(self):
        pattern, primitive = _match('Choose "Large" from the dropdown')
        assert pattern.name == "select-from-dropdown"
        assert primitive.locator.value == "combobox"
        assert primitive.option == "Large"

    def test_quoted_select_from_quoted_label(self):
        pattern, primitive = _match('Select "US" from "Country"')
        assert pattern.name == "select-option"
        assert primitive.option == "US"
        assert primitive.locator.strategy == LocatorStrategy.LABEL
        assert primitive.locator.value == "Country"

    def test_quoted_label_before_dropdown_is_unquoted(self):
        pattern, primitive = _match('Select "US" from the "Country" dropdown')
        assert primitive.option == "US"
        assert primitive.locator.value == "Country"

    def test_named_option_stops_at_the_quote(self):
        assert _match('Select option "Premium"')[1].option == "Premium"

    def test_no_match(self):
        assert match_regex_patterns("Frobnicate the gizmo") is None
        assert find_matching_patterns("Frobnicate the gizmo") == []


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

class TestExtraction:
    def test_quoted_button(self):
        _, primitive = _match('Click the "Submit" button')
        assert primitive.locator.strategy == LocatorStrategy.ROLE
        assert primitive.locator.value == "button"
        assert primitive.locator.name == "Submit"

    def test_case_insensitive(self):
        pattern, _ = _match("USER LOGS IN")
        assert pattern.name == "user-login"

    def test_login_as_role(self):
        _, primitive = _match("Log in as editor user")
        assert (primitive.module, primitive.method, primitive.args) == ("auth", "loginAs", ["editor"])

    def test_fill_with_actor_value(self):
        _, primitive = _match('Enter {{email}} into the "Email" field')
        assert primitive.locator.value == "Email"
        assert primitive.value.type == ValueType.ACTOR
        assert primitive.value.value == "email"

    def test_fill_without_value_uses_field_name(self):
        _, primitive = _match("Fill in the email address")
        assert primitive.value.type == ValueType.ACTOR
        assert primitive.value.value == "email_address"

    def test_navigate_to_page_builds_path(self):
        _, primitive = _match("Go to the account details page")
        assert primitive.url == "/account-details"
        assert primitive.wait_for_load is True

    def test_wait_seconds_in_ms(self):
        _, primitive = _match("Wait 3 seconds")
        assert primitive.ms == 3000

    def test_toast_type(self):
        _, primitive = _match("A warning toast is shown")
        assert primitive.toast_type == "warning"
        assert primitive.message is None


class TestStructuredQuotes:
    @pytest.mark.parametrize("bullet, free_text", [
        ('**Assert**: "Welcome" is visible', '"Welcome" is visible'),
        ("**Assert**: 'Welcome' is visible", "'Welcome' is visible"),
    ])
    def test_assert_bullet_matches_free_text_locator(self, bullet, free_text):
        pattern, structured = _match(bullet)
        assert pattern.name == "structured-assert-visible"
        assert structured.locator == _match(free_text)[1].locator
        assert structured.locator.value == "Welcome"

    def test_wait_for_bullet_drops_quotes(self):
        _, primitive = _match('**Wait for**: "Dashboard" to load')
        assert primitive.locator.value == "Dashboard"


class TestParseSelector:
    @pytest.mark.parametrize("text, strategy, value, name", [
        ("the Save button", "role", "button", "Save"),
        ("Help link", "role", "link", "Help"),
        ("the email field", "label", "email", None),
        ("Dashboard", "text", "Dashboard", None),
    ])
    def test_shapes(self, text, strategy, value, name):
        locator = parse_selector_to_locator(text)
        assert locator.strategy.value == strategy
        assert locator.value == value
        assert locator.name == name
