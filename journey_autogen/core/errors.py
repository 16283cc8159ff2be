"""Error classifier — raw Playwright failure text to structured ErrorAnalysis."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class ErrorCategory(Enum):
    SELECTOR_NOT_FOUND = "SELECTOR_NOT_FOUND"
    TIMEOUT = "TIMEOUT"
    ASSERTION_FAILED = "ASSERTION_FAILED"
    NAVIGATION_ERROR = "NAVIGATION_ERROR"
    SYNTAX_ERROR = "SYNTAX_ERROR"
    RUNTIME_ERROR = "RUNTIME_ERROR"
    UNKNOWN = "UNKNOWN"


class ErrorSeverity(Enum):
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"


DEFAULT_FINGERPRINT_LENGTH = 50
MAX_MESSAGE_LENGTH = 200


@dataclass(frozen=True)
class ErrorLocation:
    file: str
    line: int
    column: Optional[int] = None
    test_name: Optional[str] = None


@dataclass(frozen=True)
class ErrorAnalysis:
    fingerprint: str
    category: ErrorCategory
    message: str
    severity: ErrorSeverity = ErrorSeverity.MAJOR
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    original_error: Optional[str] = None
    selector: Optional[str] = None
    expected_value: Optional[str] = None
    actual_value: Optional[str] = None
    stack_trace: Optional[str] = None
    location: Optional[ErrorLocation] = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "fingerprint": self.fingerprint,
            "category": self.category.value,
            "message": self.message,
            "severity": self.severity.value,
            "timestamp": self.timestamp.isoformat(),
        }
        for key in ("original_error", "selector", "expected_value", "actual_value", "stack_trace"):
            val = getattr(self, key)
            if val is not None:
                d[key] = val
        if self.location is not None:
            d["location"] = {
                "file": self.location.file,
                "line": self.location.line,
                "column": self.location.column,
                "test_name": self.location.test_name,
            }
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ErrorAnalysis:
        loc = data.get("location")
        ts = data.get("timestamp")
        return cls(
            fingerprint=data["fingerprint"],
            category=ErrorCategory(data.get("category", "UNKNOWN")),
            message=data.get("message", ""),
            severity=ErrorSeverity(data.get("severity", "major")),
            timestamp=datetime.fromisoformat(ts) if ts else datetime.now(timezone.utc),
            original_error=data.get("original_error"),
            selector=data.get("selector"),
            expected_value=data.get("expected_value"),
            actual_value=data.get("actual_value"),
            stack_trace=data.get("stack_trace"),
            location=ErrorLocation(**loc) if loc else None,
        )


@dataclass(frozen=True)
class _ErrorRule:
    category: ErrorCategory
    severity: ErrorSeverity
    patterns: tuple[re.Pattern, ...]


def _rule(category: ErrorCategory, severity: ErrorSeverity, *patterns: str) -> _ErrorRule:
    return _ErrorRule(category, severity, tuple(re.compile(p, re.IGNORECASE) for p in patterns))


_C = ErrorCategory
_S = ErrorSeverity

# Checked in order; the first rule with a matching pattern wins.
ERROR_RULES: tuple[_ErrorRule, ...] = (
    _rule(
        _C.SELECTOR_NOT_FOUND, _S.MAJOR,
        r"locator\..*: Timeout \d+ms exceeded",
        r"waiting for (locator|selector)",
        r"No element matches selector",
        r"Element is not attached to the DOM",
        r"Element is outside of the viewport",
        r"page\.\$\(.*\) resolved to (null|undefined)",
        r"getByRole.*resolved to \d+ element",
        r"getByTestId.*resolved to \d+ element",
        r"getByText.*resolved to \d+ element",
        r"locator resolved to \d+ elements",
    ),
    _rule(
        _C.TIMEOUT, _S.MAJOR,
        r"Timeout \d+ms exceeded",
        r"page\.waitFor.*exceeded",
        r"Test timeout of \d+ms exceeded",
        r"Navigation timeout of \d+ms exceeded",
        r"exceeded .*timeout",
    ),
    _rule(
        _C.ASSERTION_FAILED, _S.MAJOR,
        r"expect\(.*\)\.to",
        r"Expected.*to (be|have|contain|match|equal)",
        r"AssertionError",
        r"Received.*Expected",
        r"toBeVisible.*but.*hidden",
        r"toHaveText.*but.*received",
        r"toHaveValue.*but.*received",
        r"toBeChecked.*but.*unchecked",
    ),
    _rule(
        _C.NAVIGATION_ERROR, _S.CRITICAL,
        r"net::ERR_",
        r"Navigation failed",
        r"page\.goto.*failed",
        r"Frame was detached",
        r"Target page.*closed",
        r"browser has disconnected",
        r"Protocol error.*Target closed",
    ),
    # Network failures are reported as navigation errors
    _rule(
        _C.NAVIGATION_ERROR, _S.MAJOR,
        r"ECONNREFUSED",
        r"ENOTFOUND",
        r"ETIMEDOUT",
        r"fetch failed",
        r"Request failed",
        r"Status code: [45]\d{2}",
    ),
    _rule(
        _C.SYNTAX_ERROR, _S.CRITICAL,
        r"SyntaxError:",
        r"Unexpected token",
        r"Unexpected identifier",
        r"Invalid or unexpected token",
    ),
    # Authentication, permission and type errors fold into runtime errors
    _rule(
        _C.RUNTIME_ERROR, _S.CRITICAL,
        r"401 Unauthorized",
        r"403 Forbidden",
        r"Authentication failed",
        r"Login failed",
        r"Invalid credentials",
        r"Session expired",
        r"Token expired",
        r"Permission denied",
        r"Access denied",
        r"not authorized",
        r"insufficient permissions",
    ),
    _rule(
        _C.RUNTIME_ERROR, _S.MAJOR,
        r"TypeError:",
        r"Cannot read propert",
        r"is not a function",
        r"is not defined",
        r"undefined is not",
        r"null is not",
        r"ReferenceError:",
        r"RangeError:",
        r"Error:",
    ),
)

STEP_CATEGORY_HINTS = {
    "navigation": ErrorCategory.NAVIGATION_ERROR,
    "assertion": ErrorCategory.ASSERTION_FAILED,
    "wait": ErrorCategory.TIMEOUT,
    "interaction": ErrorCategory.SELECTOR_NOT_FOUND,
}

_SELECTOR_EXTRACTOR = re.compile(r"locator\(['\"]([^'\"]+)['\"]\)|getBy\w+\(['\"]([^'\"]+)['\"]\)")
_EXPECTED = re.compile(r"Expected:?\s*(.+?)(?:\n|$)", re.IGNORECASE)
_RECEIVED = re.compile(r"Received:?\s*(.+?)(?:\n|$)", re.IGNORECASE)
_STACK = re.compile(r"(\s+at\s+.+(?:\n\s+at\s+.+)*)")
_LOCATION_PATTERNS = (
    re.compile(r"at\s+.*\s+\(([^:]+):(\d+):(\d+)\)"),
    re.compile(r"([^:\s]+\.ts):(\d+):(\d+)"),
    re.compile(r"([^:\s]+\.(?:ts|js)):(\d+)"),
)


def _extract_location(
    text: str, test_file: Optional[str], test_name: Optional[str]
) -> Optional[ErrorLocation]:
    for pattern in _LOCATION_PATTERNS:
        m = pattern.search(text)
        if m:
            return ErrorLocation(
                file=test_file or m.group(1),
                line=int(m.group(2)),
                column=int(m.group(3)) if m.lastindex and m.lastindex >= 3 else None,
                test_name=test_name,
            )
    return None


def _first_line(text: str) -> str:
    line = text.split("\n", 1)[0].strip()
    if len(line) > MAX_MESSAGE_LENGTH:
        return line[:MAX_MESSAGE_LENGTH] + "..."
    return line


def make_fingerprint(
    category: ErrorCategory, message: str, length: int = DEFAULT_FINGERPRINT_LENGTH
) -> str:
    return f"{category.value}:{message[:length]}"


def classify_error(
    raw: str,
    *,
    step_category: Optional[str] = None,
    test_file: Optional[str] = None,
    test_name: Optional[str] = None,
    fingerprint_length: int = DEFAULT_FINGERPRINT_LENGTH,
) -> ErrorAnalysis:
    """Classify raw failure text.

    Keyword rules decide first. When none matches, the failing step's
    category (navigation / assertion / wait / interaction) maps to an error
    category; otherwise the error is UNKNOWN.
    """
    matched: Optional[_ErrorRule] = None
    for rule in ERROR_RULES:
        if any(p.search(raw) for p in rule.patterns):
            matched = rule
            break

    if matched is not None:
        category, severity = matched.category, matched.severity
    else:
        category = STEP_CATEGORY_HINTS.get(step_category or "", ErrorCategory.UNKNOWN)
        severity = ErrorSeverity.MAJOR

    selector = None
    if category == ErrorCategory.SELECTOR_NOT_FOUND:
        m = _SELECTOR_EXTRACTOR.search(raw)
        if m:
            selector = m.group(1) or m.group(2)

    expected = actual = None
    if category == ErrorCategory.ASSERTION_FAILED:
        em = _EXPECTED.search(raw)
        rm = _RECEIVED.search(raw)
        expected = em.group(1).strip() if em else None
        actual = rm.group(1).strip() if rm else None

    stack_match = _STACK.search(raw)
    stack = stack_match.group(1).strip() if stack_match else None

    message = _first_line(raw)
    return ErrorAnalysis(
        fingerprint=make_fingerprint(category, message, fingerprint_length),
        category=category,
        message=message,
        severity=severity,
        original_error=raw,
        selector=selector,
        expected_value=expected,
        actual_value=actual,
        stack_trace=stack,
        location=_extract_location(stack or raw, test_file, test_name),
    )


def dedupe_errors(errors: list[ErrorAnalysis]) -> list[ErrorAnalysis]:
    seen: set[str] = set()
    out = []
    for e in errors:
        if e.fingerprint in seen:
            continue
        seen.add(e.fingerprint)
        out.append(e)
    return out


_ERROR_BOUNDARY = re.compile(r"(?=Error:|AssertionError:|TypeError:|TimeoutError:)", re.IGNORECASE)
_ERROR_WORDS = re.compile(r"error|failed|timeout|assert", re.IGNORECASE)


def parse_errors(
    output: str,
    *,
    test_file: Optional[str] = None,
    test_name: Optional[str] = None,
) -> list[ErrorAnalysis]:
    """Split test output on error boundaries and classify each block."""
    errors = []
    for block in _ERROR_BOUNDARY.split(output):
        trimmed = block.strip()
        if len(trimmed) > 10 and _ERROR_WORDS.search(trimmed):
            errors.append(classify_error(trimmed, test_file=test_file, test_name=test_name))
    return dedupe_errors(errors)


# ── Playwright JSON report ───────────────────────────────────────────


class RunStatus(Enum):
    PASSED = "passed"
    FAILED = "failed"
    TIMED_OUT = "timedOut"
    SKIPPED = "skipped"
    INTERRUPTED = "interrupted"


_STATUS_MAP = {
    "passed": RunStatus.PASSED,
    "expected": RunStatus.PASSED,
    "failed": RunStatus.FAILED,
    "unexpected": RunStatus.FAILED,
    "timedout": RunStatus.TIMED_OUT,
    "skipped": RunStatus.SKIPPED,
    "pending": RunStatus.SKIPPED,
    "interrupted": RunStatus.INTERRUPTED,
}


@dataclass
class PlaywrightTestResult:
    test_id: str
    test_name: str
    test_file: str
    status: RunStatus
    duration_ms: int = 0
    errors: list[ErrorAnalysis] = field(default_factory=list)
    retries: int = 0
    stdout: str = ""
    stderr: str = ""


def _text_lines(entries: Any) -> str:
    # Reporter stdout/stderr entries are either strings or {"text": ...}
    parts = []
    for e in entries or []:
        if isinstance(e, dict):
            parts.append(str(e.get("text", "")))
        else:
            parts.append(str(e))
    return "\n".join(parts)


def parse_playwright_report(report: dict[str, Any]) -> list[PlaywrightTestResult]:
    """Walk suites/specs/tests; errors come from each test's last run."""
    results: list[PlaywrightTestResult] = []

    def walk(suite: dict[str, Any], parent_file: Optional[str]) -> None:
        file = suite.get("file") or parent_file
        for spec in suite.get("specs") or []:
            for test in spec.get("tests") or []:
                runs = test.get("results") or []
                last = runs[-1] if runs else {}
                name = f"{suite.get('title', '')} > {spec.get('title', '')} > {test.get('title', '')}"
                errors: list[ErrorAnalysis] = []

                err = last.get("error") or {}
                text = "\n".join(s for s in (err.get("message"), err.get("stack")) if s)
                if text:
                    errors.append(classify_error(text, test_file=file, test_name=name))

                stderr = _text_lines(last.get("stderr"))
                if stderr:
                    errors.extend(parse_errors(stderr, test_file=file, test_name=name))

                status = str(test.get("status") or last.get("status") or "failed").lower()
                results.append(PlaywrightTestResult(
                    test_id=f"{file}:{spec.get('title', '')}:{test.get('title', '')}",
                    test_name=name,
                    test_file=file or "unknown",
                    status=_STATUS_MAP.get(status, RunStatus.FAILED),
                    duration_ms=int(last.get("duration") or test.get("duration") or 0),
                    errors=dedupe_errors(errors),
                    retries=max(len(runs) - 1, 0),
                    stdout=_text_lines(last.get("stdout")),
                    stderr=stderr,
                ))
        for child in suite.get("suites") or []:
            walk(child, file)

    for suite in report.get("suites") or []:
        walk(suite, None)
    return results


# ── Helpers ──────────────────────────────────────────────────────────


def is_selector_related(error: ErrorAnalysis) -> bool:
    return error.category == ErrorCategory.SELECTOR_NOT_FOUND and bool(error.selector)


def is_timing_related(error: ErrorAnalysis) -> bool:
    return error.category == ErrorCategory.TIMEOUT or (
        error.category == ErrorCategory.SELECTOR_NOT_FOUND and "Timeout" in error.message
    )


_FIX_TYPES = {
    ErrorCategory.SELECTOR_NOT_FOUND: ["SELECTOR_CHANGE", "LOCATOR_STRATEGY_CHANGED", "FRAME_CONTEXT_ADDED"],
    ErrorCategory.TIMEOUT: ["WAIT_ADDED", "TIMEOUT_INCREASED", "RETRY_ADDED"],
    ErrorCategory.ASSERTION_FAILED: ["ASSERTION_MODIFIED", "WAIT_ADDED"],
    ErrorCategory.NAVIGATION_ERROR: ["ERROR_HANDLING_ADDED", "RETRY_ADDED"],
}


def suggested_fix_types(category: ErrorCategory) -> list[str]:
    return list(_FIX_TYPES.get(category, ["OTHER"]))
