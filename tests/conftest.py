"""Shared test fixtures for journey-autogen tests."""

from __future__ import annotations

from typing import Optional

import pytest
from rich.console import Console

from journey_autogen.core.errors import (
    ErrorAnalysis,
    ErrorCategory,
    make_fingerprint,
)
from journey_autogen.core.glossary import GlossaryRegistry, reset_default_registry
from journey_autogen.core.interfaces import FixGenerator, TestRunner
from journey_autogen.core.models import (
    CodeFix,
    FixGenerationResult,
    FixType,
    TestRunResult,
    TokenUsage,
)
from journey_autogen.data.store import DataStore


def make_error(
    message: str = "locator.click: Timeout 30000ms exceeded",
    category: ErrorCategory = ErrorCategory.SELECTOR_NOT_FOUND,
    selector: Optional[str] = None,
) -> ErrorAnalysis:
    """ErrorAnalysis with a fingerprint derived the same way the classifier does."""
    return ErrorAnalysis(
        fingerprint=make_fingerprint(category, message),
        category=category,
        message=message,
        selector=selector,
    )


def make_fix(
    original: str = "page.locator('#old')",
    fixed: str = "page.getByTestId('new')",
    confidence: float = 0.9,
    fix_type: FixType = FixType.SELECTOR_CHANGE,
) -> CodeFix:
    return CodeFix(
        type=fix_type,
        description="Use a test id",
        original_code=original,
        fixed_code=fixed,
        confidence=confidence,
    )


class FakeGenerator(FixGenerator):
    """Returns scripted results in order; an Exception entry is raised."""

    def __init__(self, results):
        self.results = list(results)
        self.calls = []

    async def generate_fix(self, code, errors, previous_attempts, options):
        self.calls.append((code, list(errors), list(previous_attempts), options))
        item = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, CodeFix):
            return FixGenerationResult(
                fixes=[item], token_usage=TokenUsage(input_tokens=100, output_tokens=50)
            )
        return item


class FakeRunner(TestRunner):
    """Returns scripted error lists in order; the last one repeats."""

    def __init__(self, error_lists):
        self.error_lists = list(error_lists)
        self.calls = []

    async def run_test(self, test_file, test_code):
        self.calls.append((test_file, test_code))
        item = self.error_lists.pop(0) if len(self.error_lists) > 1 else self.error_lists[0]
        if isinstance(item, Exception):
            raise item
        return TestRunResult(errors=list(item), passed=not item, exit_code=0 if not item else 1)


@pytest.fixture(autouse=True)
def _fresh_default_registry():
    """Every test starts from the core glossary."""
    reset_default_registry()
    yield
    reset_default_registry()


@pytest.fixture
def temp_db(tmp_path):
    """DataStore with a temporary SQLite database."""
    db_path = str(tmp_path / "test.db")
    store = DataStore(db_path=db_path)
    yield store
    store.close()


@pytest.fixture
def registry() -> GlossaryRegistry:
    """Isolated registry over the core glossary."""
    return GlossaryRegistry()


@pytest.fixture
def quiet_console() -> Console:
    return Console(quiet=True)


@pytest.fixture
def selector_error() -> ErrorAnalysis:
    return make_error(selector="#old")
