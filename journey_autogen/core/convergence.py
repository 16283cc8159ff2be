"""Convergence detection over the per-attempt error count."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from journey_autogen.core.circuit_breaker import CircuitBreaker, OpenReason
from journey_autogen.core.errors import ErrorAnalysis
from journey_autogen.core.models import FixAttempt


class Trend(Enum):
    IMPROVING = "improving"
    DEGRADING = "degrading"
    OSCILLATING = "oscillating"
    STAGNATING = "stagnating"


@dataclass
class ConvergenceInfo:
    converged: bool
    attempts: int
    error_count_history: list[int]
    trend: Trend
    stagnation_count: int
    improvement_percentage: int
    last_improvement: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "converged": self.converged,
            "attempts": self.attempts,
            "error_count_history": list(self.error_count_history),
            "trend": self.trend.value,
            "stagnation_count": self.stagnation_count,
            "improvement_percentage": self.improvement_percentage,
            "last_improvement": self.last_improvement,
        }


def _sign(n: int) -> int:
    return (n > 0) - (n < 0)


class ConvergenceDetector:
    def __init__(
        self,
        trend_window: int = 3,
        oscillation_window: int = 4,
        min_direction_changes: int = 2,
    ):
        self.trend_window = trend_window
        self.oscillation_window = oscillation_window
        self.min_direction_changes = min_direction_changes
        self.error_count_history: list[int] = []
        self.unique_errors_history: list[set[str]] = []
        self.last_improvement: Optional[int] = None
        self.stagnation_count = 0

    def record_attempt(self, errors: list[ErrorAnalysis]) -> None:
        self.error_count_history.append(len(errors))
        self.unique_errors_history.append({e.fingerprint for e in errors})
        self._update_stagnation(len(self.error_count_history) - 1)

    def restore_from_history(self, counts: list[int]) -> None:
        """Resume from saved counts without replaying the attempts."""
        self.reset()
        self.error_count_history = list(counts)
        self.unique_errors_history = [set() for _ in counts]
        for i in range(1, len(counts)):
            self._update_stagnation(i)

    def reset(self) -> None:
        self.error_count_history = []
        self.unique_errors_history = []
        self.last_improvement = None
        self.stagnation_count = 0

    def _update_stagnation(self, i: int) -> None:
        if i < 1:
            return
        if self.error_count_history[i] < self.error_count_history[i - 1]:
            self.last_improvement = i
            self.stagnation_count = 0
        else:
            self.stagnation_count += 1

    def is_converged(self) -> bool:
        return bool(self.error_count_history) and self.error_count_history[-1] == 0

    def is_oscillating(self) -> bool:
        history = self.error_count_history
        if len(history) < self.oscillation_window:
            return False
        recent = history[-self.oscillation_window:]
        signs = [_sign(b - a) for a, b in zip(recent, recent[1:])]
        signs = [s for s in signs if s != 0]
        changes = sum(1 for a, b in zip(signs, signs[1:]) if a != b)
        return changes >= self.min_direction_changes

    def detect_trend(self) -> Trend:
        if len(self.error_count_history) < 2:
            return Trend.STAGNATING
        if self.is_oscillating():
            return Trend.OSCILLATING

        recent = self.error_count_history[-self.trend_window:]
        steps = [b - a for a, b in zip(recent, recent[1:])]
        if all(d <= 0 for d in steps) and any(d < 0 for d in steps):
            return Trend.IMPROVING
        if all(d >= 0 for d in steps) and any(d > 0 for d in steps):
            return Trend.DEGRADING
        return Trend.STAGNATING

    def improvement_percentage(self) -> int:
        if len(self.error_count_history) < 2:
            return 0
        first, last = self.error_count_history[0], self.error_count_history[-1]
        if first == 0:
            return 0
        pct = round((first - last) / first * 100)
        return max(0, min(100, pct))

    def new_errors(self) -> set[str]:
        """Fingerprints present in the last attempt but not the one before."""
        if not self.unique_errors_history:
            return set()
        if len(self.unique_errors_history) < 2:
            return set(self.unique_errors_history[0])
        return self.unique_errors_history[-1] - self.unique_errors_history[-2]

    def fixed_errors(self) -> set[str]:
        if len(self.unique_errors_history) < 2:
            return set()
        return self.unique_errors_history[-2] - self.unique_errors_history[-1]

    def get_info(self) -> ConvergenceInfo:
        return ConvergenceInfo(
            converged=self.is_converged(),
            attempts=len(self.error_count_history),
            error_count_history=list(self.error_count_history),
            trend=self.detect_trend(),
            stagnation_count=self.stagnation_count,
            improvement_percentage=self.improvement_percentage(),
            last_improvement=self.last_improvement,
        )

    def to_snapshot(self) -> dict[str, Any]:
        return {"error_count_history": list(self.error_count_history)}

    @classmethod
    def from_snapshot(cls, snapshot: dict[str, Any], **kwargs: Any) -> ConvergenceDetector:
        detector = cls(**kwargs)
        detector.restore_from_history(snapshot.get("error_count_history", []))
        return detector


# ── Combined analysis ────────────────────────────────────────────────


@dataclass
class ProgressAnalysis:
    should_continue: bool
    reason: str
    recommendation: str  # "continue", "stop", "escalate"
    convergence: ConvergenceInfo
    open_reason: Optional[OpenReason] = None
    stop_reason: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)


def analyze_refinement_progress(
    attempts: list[FixAttempt],
    breaker: CircuitBreaker,
    detector: ConvergenceDetector,
) -> ProgressAnalysis:
    """Decide whether another attempt is worthwhile. Pure; mutates nothing.

    Stop checks in order: breaker open, converged, degrading, oscillating,
    two or more attempts without improvement.
    """
    info = detector.get_info()
    details = {"attempts": len(attempts), "attempt_count": breaker.attempt_count}

    if breaker.is_open:
        return ProgressAnalysis(
            should_continue=False,
            reason=f"Circuit breaker open: {breaker.open_reason.value}",
            recommendation="stop",
            convergence=info,
            open_reason=breaker.open_reason,
            stop_reason="breaker",
            details=details,
        )
    if info.converged:
        return ProgressAnalysis(False, "All errors resolved", "stop", info,
                                stop_reason="converged", details=details)
    if info.trend == Trend.DEGRADING:
        return ProgressAnalysis(
            False, "Error count increasing; fixes are making things worse",
            "escalate", info, stop_reason="degrading", details=details,
        )
    if info.trend == Trend.OSCILLATING:
        return ProgressAnalysis(
            False, "Error counts oscillating; cannot converge",
            "escalate", info, stop_reason="oscillating", details=details,
        )
    if info.stagnation_count >= 2:
        return ProgressAnalysis(
            False, "No improvement in the last 2 attempts",
            "escalate", info, stop_reason="stagnating", details=details,
        )
    return ProgressAnalysis(True, "Progress being made", "continue", info, details=details)
