"""Tests for journey_autogen.core.errors — the failure classifier."""

from __future__ import annotations

import pytest

from journey_autogen.core.errors import (
    ErrorAnalysis,
    ErrorCategory,
    ErrorSeverity,
    RunStatus,
    classify_error,
    dedupe_errors,
    is_selector_related,
    is_timing_related,
    make_fingerprint,
    parse_errors,
    parse_playwright_report,
    suggested_fix_types,
)


# ---------------------------------------------------------------------------
# classify_error
# ---------------------------------------------------------------------------

class TestClassifyError:
    @pytest.mark.parametrize("raw, category, severity", [
        ("locator.click: Timeout 30000ms exceeded", ErrorCategory.SELECTOR_NOT_FOUND, ErrorSeverity.MAJOR),
        ("page.waitForURL: Timeout 5000ms exceeded", ErrorCategory.TIMEOUT, ErrorSeverity.MAJOR),
        ("Test timeout of 30000ms exceeded", ErrorCategory.TIMEOUT, ErrorSeverity.MAJOR),
        ("expect(locator).toBeVisible() failed", ErrorCategory.ASSERTION_FAILED, ErrorSeverity.MAJOR),
        ("net::ERR_CONNECTION_REFUSED at http://localhost", ErrorCategory.NAVIGATION_ERROR, ErrorSeverity.CRITICAL),
        ("fetch failed: ECONNREFUSED", ErrorCategory.NAVIGATION_ERROR, ErrorSeverity.MAJOR),
        ("SyntaxError: Unexpected token ')'", ErrorCategory.SYNTAX_ERROR, ErrorSeverity.CRITICAL),
        ("Error: 401 Unauthorized", ErrorCategory.RUNTIME_ERROR, ErrorSeverity.CRITICAL),
        ("TypeError: page.foo is not a function", ErrorCategory.RUNTIME_ERROR, ErrorSeverity.MAJOR),
        ("Something odd happened", ErrorCategory.UNKNOWN, ErrorSeverity.MAJOR),
    ])
    def test_rules(self, raw, category, severity):
        analysis = classify_error(raw)
        assert analysis.category == category
        assert analysis.severity == severity
        assert analysis.original_error == raw

    def test_step_category_breaks_ties(self):
        analysis = classify_error("Something odd happened", step_category="navigation")
        assert analysis.category == ErrorCategory.NAVIGATION_ERROR

    def test_keyword_rules_beat_step_category(self):
        analysis = classify_error("TypeError: x is undefined", step_category="wait")
        assert analysis.category == ErrorCategory.RUNTIME_ERROR

    def test_selector_extraction(self):
        analysis = classify_error("waiting for locator('#submit') to be visible")
        assert analysis.selector == "#submit"
        assert is_selector_related(analysis)

    def test_get_by_selector_extraction(self):
        analysis = classify_error("getByTestId('save') resolved to 0 elements")
        assert analysis.category == ErrorCategory.SELECTOR_NOT_FOUND
        assert analysis.selector == "save"

    def test_expected_and_received(self):
        raw = 'expect(locator).toHaveText failed\nExpected: "Welcome"\nReceived: "Hello"'
        analysis = classify_error(raw)
        assert analysis.message == "expect(locator).toHaveText failed"
        assert analysis.expected_value == '"Welcome"'
        assert analysis.actual_value == '"Hello"'

    def test_location_and_stack(self):
        raw = "Error: boom\n    at /proj/tests/login.spec.ts:12:5"
        analysis = classify_error(raw, test_file="tests/login.spec.ts", test_name="logs in")
        assert analysis.stack_trace == "at /proj/tests/login.spec.ts:12:5"
        assert analysis.location.file == "tests/login.spec.ts"
        assert (analysis.location.line, analysis.location.column) == (12, 5)
        assert analysis.location.test_name == "logs in"

    def test_long_message_is_truncated(self):
        analysis = classify_error("Error: " + "x" * 300)
        assert len(analysis.message) == 203
        assert analysis.message.endswith("...")

    def test_fingerprint(self):
        analysis = classify_error("Error: " + "y" * 100)
        assert analysis.fingerprint == "RUNTIME_ERROR:" + ("Error: " + "y" * 100)[:50]
        assert classify_error("Error: abc", fingerprint_length=5).fingerprint == "RUNTIME_ERROR:Error"

    def test_same_text_same_fingerprint(self):
        assert classify_error("Error: boom").fingerprint == classify_error("Error: boom").fingerprint

    def test_dict_round_trip(self):
        analysis = classify_error("Error: boom\n    at tests/a.spec.ts:3:1", test_file="a.spec.ts")
        restored = ErrorAnalysis.from_dict(analysis.to_dict())
        assert restored == analysis


class TestMakeFingerprint:
    def test_format(self):
        assert make_fingerprint(ErrorCategory.TIMEOUT, "abc") == "TIMEOUT:abc"
        assert make_fingerprint(ErrorCategory.UNKNOWN, "abcdef", length=3) == "UNKNOWN:abc"


# ---------------------------------------------------------------------------
# parse_errors / dedupe
# ---------------------------------------------------------------------------

class TestParseErrors:
    def test_splits_and_dedupes(self):
        output = (
            "Running 2 tests\n"
            "Error: boom one happened\n\n"
            "Error: locator.click: Timeout 5000ms exceeded\n"
            "Error: boom one happened\n"
        )
        errors = parse_errors(output, test_file="a.spec.ts")
        assert [e.category for e in errors] == [
            ErrorCategory.RUNTIME_ERROR,
            ErrorCategory.SELECTOR_NOT_FOUND,
        ]

    def test_ignores_noise(self):
        assert parse_errors("Running 1 test using 1 worker\n  1 passed") == []

    def test_dedupe_keeps_first(self):
        a1 = classify_error("Error: a")
        a2 = classify_error("Error: a")
        b = classify_error("Error: b")
        assert dedupe_errors([a1, b, a2]) == [a1, b]


# ---------------------------------------------------------------------------
# Playwright JSON report
# ---------------------------------------------------------------------------

class TestPlaywrightReport:
    REPORT = {
        "suites": [
            {
                "title": "auth",
                "file": "auth.spec.ts",
                "specs": [
                    {
                        "title": "logs in",
                        "tests": [
                            {
                                "title": "chromium",
                                "status": "unexpected",
                                "results": [
                                    {"status": "failed", "duration": 10},
                                    {
                                        "status": "failed",
                                        "duration": 1500,
                                        "error": {"message": "Test timeout of 30000ms exceeded"},
                                        "stderr": [{"text": "TypeError: boom is not a function"}],
                                        "stdout": ["hello"],
                                    },
                                ],
                            }
                        ],
                    }
                ],
                "suites": [
                    {
                        "title": "nested",
                        "specs": [
                            {"title": "skipped one", "tests": [{"title": "chromium", "status": "skipped", "results": []}]}
                        ],
                    }
                ],
            }
        ]
    }

    def test_walks_nested_suites(self):
        results = parse_playwright_report(self.REPORT)
        assert len(results) == 2
        failed, skipped = results
        assert failed.status == RunStatus.FAILED
        assert failed.test_name == "auth > logs in > chromium"
        assert failed.duration_ms == 1500
        assert failed.retries == 1
        assert failed.stdout == "hello"
        assert [e.category for e in failed.errors] == [
            ErrorCategory.TIMEOUT,
            ErrorCategory.RUNTIME_ERROR,
        ]
        assert skipped.status == RunStatus.SKIPPED
        # Nested suites inherit the parent file
        assert skipped.test_file == "auth.spec.ts"
        assert skipped.errors == []

    def test_empty_report(self):
        assert parse_playwright_report({}) == []


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestHelpers:
    def test_timing_related(self):
        assert is_timing_related(classify_error("Test timeout of 1000ms exceeded"))
        assert is_timing_related(classify_error("locator.click: Timeout 30000ms exceeded"))
        assert not is_timing_related(classify_error("Error: boom"))

    def test_selector_related_needs_selector(self):
        assert not is_selector_related(classify_error("locator.click: Timeout 30000ms exceeded"))

    def test_suggested_fix_types(self):
        assert suggested_fix_types(ErrorCategory.TIMEOUT)[0] == "WAIT_ADDED"
        assert suggested_fix_types(ErrorCategory.UNKNOWN) == ["OTHER"]
