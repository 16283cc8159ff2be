"""Collaborators the refinement loop depends on."""

from __future__ import annotations

from abc import ABC, abstractmethod

from journey_autogen.core.errors import ErrorAnalysis
from journey_autogen.core.models import (
    FixAttempt,
    FixGenerationOptions,
    FixGenerationResult,
    TestRunResult,
    TokenUsage,
)


class FixResponseError(ValueError):
    """The generator got a reply it could not parse. The tokens are still spent."""

    def __init__(self, message: str, token_usage: TokenUsage):
        super().__init__(message)
        self.token_usage = token_usage


class FixGenerator(ABC):
    """Proposes ranked code fixes for a failing test."""

    @abstractmethod
    async def generate_fix(
        self,
        code: str,
        errors: list[ErrorAnalysis],
        previous_attempts: list[FixAttempt],
        options: FixGenerationOptions,
    ) -> FixGenerationResult:
        """Return candidate fixes, best first.

        ``previous_attempts`` lets the generator avoid proposing a fix
        that has already been tried and rejected.
        """


class TestRunner(ABC):
    """Executes a test file and reports classified errors."""

    __test__ = False

    @abstractmethod
    async def run_test(self, test_file: str, test_code: str) -> TestRunResult:
        """Run ``test_code`` as ``test_file``. Infrastructure problems raise."""


class CostTracker(ABC):
    @abstractmethod
    def would_exceed_limit(self, estimated_tokens: int) -> bool:
        ...

    @abstractmethod
    def track_usage(self, usage: TokenUsage) -> None:
        ...


class TokenBudgetTracker(CostTracker):
    """Cost tracker with a fixed token ceiling across sessions."""

    def __init__(self, limit_tokens: int):
        self.limit_tokens = limit_tokens
        self.used = TokenUsage()

    def would_exceed_limit(self, estimated_tokens: int) -> bool:
        return self.used.total_tokens + estimated_tokens > self.limit_tokens

    def track_usage(self, usage: TokenUsage) -> None:
        self.used = self.used + usage
