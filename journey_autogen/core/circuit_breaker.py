"""Circuit breaker — stops refinement once it is clearly not converging."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from journey_autogen.core.errors import ErrorAnalysis
from journey_autogen.core.models import TokenUsage


class OpenReason(Enum):
    MAX_ATTEMPTS = "MAX_ATTEMPTS"
    SAME_ERROR = "SAME_ERROR"
    OSCILLATION = "OSCILLATION"
    TIMEOUT = "TIMEOUT"
    BUDGET_EXCEEDED = "BUDGET_EXCEEDED"


@dataclass
class CircuitBreakerConfig:
    max_attempts: int = 3
    # A fingerprint present in each of this many most recent attempts
    same_error_threshold: int = 2
    oscillation_detection: bool = True
    oscillation_window: int = 4
    timeout_seconds: float = 300.0
    cooldown_seconds: float = 1.0
    max_token_budget: int = 50_000


@dataclass
class CircuitBreakerState:
    max_attempts: int
    start_time: float
    is_open: bool = False
    open_reason: Optional[OpenReason] = None
    attempt_count: int = 0
    tokens_used: int = 0
    error_history: list[str] = field(default_factory=list)
    attempt_error_sets: list[list[str]] = field(default_factory=list)
    opened_at: Optional[float] = None


class CircuitBreaker:
    """Counts attempts and opens, permanently, on the first failure mode hit.

    Checks run in a fixed order after every attempt: max attempts, same
    error, oscillation, timeout, token budget. The first one that fires
    sets the open reason.
    """

    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self.state = CircuitBreakerState(
            max_attempts=self.config.max_attempts,
            start_time=clock(),
        )

    @property
    def is_open(self) -> bool:
        return self.state.is_open

    @property
    def open_reason(self) -> Optional[OpenReason]:
        return self.state.open_reason

    @property
    def attempt_count(self) -> int:
        return self.state.attempt_count

    def record_attempt(
        self,
        errors: list[ErrorAnalysis],
        token_usage: Optional[TokenUsage] = None,
    ) -> CircuitBreakerState:
        fingerprints = [e.fingerprint for e in errors]
        self.state.attempt_count += 1
        self.state.error_history.extend(fingerprints)
        self.state.attempt_error_sets.append(sorted(set(fingerprints)))
        if token_usage is not None:
            self.state.tokens_used += token_usage.total_tokens

        if not self.state.is_open:
            reason = (
                self._check_max_attempts()
                or self._check_same_error()
                or self._check_oscillation()
                or self._check_timeout()
                or self._check_budget()
            )
            if reason is not None:
                self._open(reason)
        return self.state

    def can_attempt(self) -> bool:
        if not self.state.is_open and self._check_timeout():
            self._open(OpenReason.TIMEOUT)
        return not self.state.is_open

    def report_timeout(self) -> None:
        """Open with TIMEOUT on behalf of a caller that tracks its own clock."""
        if not self.state.is_open:
            self._open(OpenReason.TIMEOUT)

    def remaining_attempts(self) -> int:
        if self.state.is_open:
            return 0
        return max(0, self.state.max_attempts - self.state.attempt_count)

    def remaining_token_budget(self) -> int:
        return max(0, self.config.max_token_budget - self.state.tokens_used)

    def would_exceed_budget(self, estimated_tokens: int) -> bool:
        return self.state.tokens_used + estimated_tokens > self.config.max_token_budget

    def reset(self) -> None:
        self.state = CircuitBreakerState(
            max_attempts=self.config.max_attempts,
            start_time=self._clock(),
        )

    def get_trip_message(self) -> str:
        """Operator-facing explanation of why the breaker opened."""
        reason = self.state.open_reason
        if reason is None:
            return ""
        count = self.state.attempt_count
        messages = {
            OpenReason.MAX_ATTEMPTS: f"Stopped after {count} attempts (limit {self.state.max_attempts}).",
            OpenReason.SAME_ERROR: (
                f"The same error survived the last {self.config.same_error_threshold} "
                "attempts. The fixes are not reaching the root cause."
            ),
            OpenReason.OSCILLATION: (
                "The error set is flipping between two states. Consecutive fixes "
                "are undoing each other."
            ),
            OpenReason.TIMEOUT: (
                f"Session exceeded its {self.config.timeout_seconds:.0f}s time budget."
            ),
            OpenReason.BUDGET_EXCEEDED: (
                f"Used {self.state.tokens_used} tokens, over the "
                f"{self.config.max_token_budget} token budget."
            ),
        }
        return messages[reason]

    # ── Snapshots ────────────────────────────────────────────────────

    def to_snapshot(self) -> dict[str, Any]:
        s = self.state
        return {
            "is_open": s.is_open,
            "open_reason": s.open_reason.value if s.open_reason else None,
            "attempt_count": s.attempt_count,
            "error_history": list(s.error_history),
            "attempt_error_sets": [list(x) for x in s.attempt_error_sets],
            "tokens_used": s.tokens_used,
            "max_attempts": s.max_attempts,
            "start_time": s.start_time,
            "opened_at": s.opened_at,
        }

    @classmethod
    def from_snapshot(
        cls,
        snapshot: dict[str, Any],
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> CircuitBreaker:
        breaker = cls(config, clock)
        reason = snapshot.get("open_reason")
        breaker.state = CircuitBreakerState(
            max_attempts=int(snapshot.get("max_attempts", breaker.config.max_attempts)),
            start_time=float(snapshot.get("start_time") or clock()),
            is_open=bool(snapshot.get("is_open", False)),
            open_reason=OpenReason(reason) if reason else None,
            attempt_count=int(snapshot.get("attempt_count", 0)),
            tokens_used=int(snapshot.get("tokens_used", 0)),
            error_history=list(snapshot.get("error_history", [])),
            attempt_error_sets=[list(x) for x in snapshot.get("attempt_error_sets", [])],
            opened_at=snapshot.get("opened_at"),
        )
        return breaker

    # ── Checks ───────────────────────────────────────────────────────

    def _open(self, reason: OpenReason) -> None:
        self.state.is_open = True
        self.state.open_reason = reason
        self.state.opened_at = self._clock()

    def _check_max_attempts(self) -> Optional[OpenReason]:
        if self.state.attempt_count >= self.state.max_attempts:
            return OpenReason.MAX_ATTEMPTS
        return None

    def _check_same_error(self) -> Optional[OpenReason]:
        n = self.config.same_error_threshold
        sets = self.state.attempt_error_sets
        if n < 1 or len(sets) < n:
            return None
        common = set.intersection(*(set(s) for s in sets[-n:]))
        return OpenReason.SAME_ERROR if common else None

    def _check_oscillation(self) -> Optional[OpenReason]:
        if not self.config.oscillation_detection:
            return None
        window = self.config.oscillation_window
        sets = self.state.attempt_error_sets
        if window < 2 or len(sets) < window:
            return None
        recent = [frozenset(s) for s in sets[-window:]]
        a, b = recent[0], recent[1]
        if a == b:
            return None
        for i, s in enumerate(recent):
            if s != (a if i % 2 == 0 else b):
                return None
        return OpenReason.OSCILLATION

    def _check_timeout(self) -> Optional[OpenReason]:
        if self._clock() - self.state.start_time > self.config.timeout_seconds:
            return OpenReason.TIMEOUT
        return None

    def _check_budget(self) -> Optional[OpenReason]:
        if self.state.tokens_used > self.config.max_token_budget:
            return OpenReason.BUDGET_EXCEEDED
        return None
