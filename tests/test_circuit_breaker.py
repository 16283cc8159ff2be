"""Tests for journey_autogen.core.circuit_breaker — CircuitBreaker."""

from __future__ import annotations

from conftest import make_error
from journey_autogen.core.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    OpenReason,
)
from journey_autogen.core.errors import ErrorCategory
from journey_autogen.core.models import TokenUsage

A = make_error("locator.click: Timeout 30000ms exceeded")
B = make_error("expect(locator).toBeVisible failed", ErrorCategory.ASSERTION_FAILED)
C = make_error("TypeError: foo is not a function", ErrorCategory.RUNTIME_ERROR)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _breaker(clock=None, **overrides) -> CircuitBreaker:
    config = CircuitBreakerConfig(**overrides)
    return CircuitBreaker(config, clock or FakeClock())


# ---------------------------------------------------------------------------
# Max attempts
# ---------------------------------------------------------------------------

class TestMaxAttempts:
    def test_closed_below_limit(self):
        breaker = _breaker(max_attempts=3)
        breaker.record_attempt([A])
        breaker.record_attempt([B])
        assert breaker.is_open is False
        assert breaker.remaining_attempts() == 1
        assert breaker.can_attempt() is True

    def test_opens_at_limit(self):
        breaker = _breaker(max_attempts=2, same_error_threshold=5)
        breaker.record_attempt([A])
        breaker.record_attempt([A])
        assert breaker.is_open is True
        assert breaker.open_reason == OpenReason.MAX_ATTEMPTS
        assert breaker.can_attempt() is False
        assert breaker.remaining_attempts() == 0

    def test_max_attempts_checked_before_same_error(self):
        breaker = _breaker(max_attempts=2, same_error_threshold=2)
        breaker.record_attempt([A])
        breaker.record_attempt([A])
        assert breaker.open_reason == OpenReason.MAX_ATTEMPTS


# ---------------------------------------------------------------------------
# Same error
# ---------------------------------------------------------------------------

class TestSameError:
    def test_same_fingerprint_in_consecutive_attempts(self):
        breaker = _breaker(max_attempts=10)
        breaker.record_attempt([A, B])
        assert breaker.is_open is False
        breaker.record_attempt([A, C])
        assert breaker.open_reason == OpenReason.SAME_ERROR

    def test_different_errors_stay_closed(self):
        breaker = _breaker(max_attempts=10)
        breaker.record_attempt([A])
        breaker.record_attempt([B])
        breaker.record_attempt([C])
        assert breaker.is_open is False

    def test_threshold_three(self):
        breaker = _breaker(max_attempts=10, same_error_threshold=3)
        breaker.record_attempt([A])
        breaker.record_attempt([A])
        assert breaker.is_open is False
        breaker.record_attempt([A])
        assert breaker.open_reason == OpenReason.SAME_ERROR

    def test_empty_error_sets_never_match(self):
        breaker = _breaker(max_attempts=10)
        breaker.record_attempt([])
        breaker.record_attempt([])
        assert breaker.is_open is False


# ---------------------------------------------------------------------------
# Oscillation
# ---------------------------------------------------------------------------

class TestOscillation:
    def test_alternating_sets_open(self):
        breaker = _breaker(max_attempts=10)
        for errors in ([A], [B], [A], [B]):
            breaker.record_attempt(errors)
        assert breaker.open_reason == OpenReason.OSCILLATION

    def test_disabled(self):
        breaker = _breaker(max_attempts=10, oscillation_detection=False)
        for errors in ([A], [B], [A], [B]):
            breaker.record_attempt(errors)
        assert breaker.is_open is False

    def test_three_distinct_sets_do_not_oscillate(self):
        breaker = _breaker(max_attempts=10)
        for errors in ([A], [B], [C], [B]):
            breaker.record_attempt(errors)
        assert breaker.is_open is False


# ---------------------------------------------------------------------------
# Timeout and budget
# ---------------------------------------------------------------------------

class TestTimeoutAndBudget:
    def test_can_attempt_opens_on_timeout(self):
        clock = FakeClock()
        breaker = _breaker(clock, timeout_seconds=60)
        clock.now += 61
        assert breaker.can_attempt() is False
        assert breaker.open_reason == OpenReason.TIMEOUT

    def test_record_attempt_checks_timeout(self):
        clock = FakeClock()
        breaker = _breaker(clock, timeout_seconds=60, max_attempts=10)
        clock.now += 120
        breaker.record_attempt([A])
        assert breaker.open_reason == OpenReason.TIMEOUT

    def test_report_timeout(self):
        breaker = _breaker()
        breaker.report_timeout()
        assert breaker.open_reason == OpenReason.TIMEOUT

    def test_budget_exceeded(self):
        breaker = _breaker(max_attempts=10, max_token_budget=1000)
        breaker.record_attempt([A], TokenUsage(input_tokens=800, output_tokens=300))
        assert breaker.open_reason == OpenReason.BUDGET_EXCEEDED
        assert breaker.remaining_token_budget() == 0

    def test_would_exceed_budget(self):
        breaker = _breaker(max_token_budget=1000)
        breaker.record_attempt([A], TokenUsage(input_tokens=400, output_tokens=100))
        assert breaker.would_exceed_budget(400) is False
        assert breaker.would_exceed_budget(600) is True
        assert breaker.remaining_token_budget() == 500


# ---------------------------------------------------------------------------
# Open state is sticky
# ---------------------------------------------------------------------------

class TestOpenState:
    def test_reason_never_changes(self):
        clock = FakeClock()
        breaker = _breaker(clock, max_attempts=10)
        breaker.record_attempt([A])
        breaker.record_attempt([A])
        assert breaker.open_reason == OpenReason.SAME_ERROR
        clock.now += 10_000
        breaker.record_attempt([B])
        assert breaker.open_reason == OpenReason.SAME_ERROR

    def test_counting_continues_while_open(self):
        breaker = _breaker(max_attempts=1)
        breaker.record_attempt([A])
        breaker.record_attempt([B])
        assert breaker.attempt_count == 2

    def test_reset_closes(self):
        breaker = _breaker(max_attempts=1)
        breaker.record_attempt([A])
        breaker.reset()
        assert breaker.is_open is False
        assert breaker.attempt_count == 0

    def test_trip_message(self):
        breaker = _breaker(max_attempts=1)
        assert breaker.get_trip_message() == ""
        breaker.record_attempt([A])
        assert "1 attempts" in breaker.get_trip_message()


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------

class TestSnapshot:
    def test_snapshot_restores_state(self):
        clock = FakeClock()
        breaker = _breaker(clock, max_attempts=5)
        breaker.record_attempt([A], TokenUsage(input_tokens=10, output_tokens=5))
        breaker.record_attempt([A])

        restored = CircuitBreaker.from_snapshot(
            breaker.to_snapshot(), CircuitBreakerConfig(max_attempts=5), clock
        )
        assert restored.is_open is True
        assert restored.open_reason == OpenReason.SAME_ERROR
        assert restored.attempt_count == 2
        assert restored.state.tokens_used == 15
        assert restored.state.attempt_error_sets == [[A.fingerprint], [A.fingerprint]]

    def test_restored_breaker_keeps_counting(self):
        breaker = _breaker(max_attempts=3)
        breaker.record_attempt([A])
        restored = CircuitBreaker.from_snapshot(breaker.to_snapshot(), breaker.config, FakeClock())
        restored.record_attempt([B])
        restored.record_attempt([C])
        assert restored.open_reason == OpenReason.MAX_ATTEMPTS

    def test_empty_snapshot_is_fresh(self):
        restored = CircuitBreaker.from_snapshot({}, CircuitBreakerConfig(max_attempts=4), FakeClock())
        assert restored.is_open is False
        assert restored.remaining_attempts() == 4
