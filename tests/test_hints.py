"""Tests for journey_autogen.core.hints — inline machine hints."""

from __future__ import annotations

from journey_autogen.core.hints import extract_hints, split_module_hint
from journey_autogen.core.ir import LocatorStrategy


class TestExtractHints:
    def test_no_hints(self):
        assert extract_hints("Click the Save button") is None

    def test_role_and_name(self):
        hints = extract_hints("Click Save (role=button, name=Save)")
        assert hints.clean_text == "Click Save"
        assert hints.role == "button"
        assert hints.name == "Save"
        assert hints.warnings == []
        locator = hints.to_locator()
        assert locator.strategy == LocatorStrategy.ROLE
        assert locator.options == {"name": "Save"}

    def test_quoted_values_and_backticks(self):
        hints = extract_hints('Enter email `(label="Email address", exact=true)`')
        assert hints.clean_text == "Enter email"
        assert hints.label == "Email address"
        assert hints.exact is True
        assert hints.to_locator().options == {"exact": True}

    def test_testid_wins(self):
        hints = extract_hints("Click it (testid=save-btn, role=button)")
        locator = hints.to_locator()
        assert locator.strategy == LocatorStrategy.TESTID
        assert locator.value == "save-btn"

    def test_heading_level(self):
        hints = extract_hints("See title (role=heading, level=2)")
        assert hints.to_locator().options == {"level": 2}

    def test_warnings(self):
        hints = extract_hints("Do it (role=sparkle, colour=red, level=two)")
        assert "Invalid ARIA role: sparkle" in hints.warnings
        assert "Unknown hint type: colour" in hints.warnings
        assert "Expected a number for level: two" in hints.warnings
        assert hints.level is None

    def test_behaviour_hints_are_dropped(self):
        hints = extract_hints("Wait (signal=ready, module=waits.ready)")
        assert hints.has_locator is False
        assert hints.module == "waits.ready"
        assert hints.to_locator() is None


class TestSplitModuleHint:
    def test_valid(self):
        assert split_module_hint("auth.login") == ("auth", "login")

    def test_invalid(self):
        assert split_module_hint("auth") is None
        assert split_module_hint(".login") is None
        assert split_module_hint("auth.") is None
