"""Persisted refinement state, one JSON payload per test file."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Optional

from journey_autogen.core.models import AttemptOutcome, FixAttempt, RefinementState
from journey_autogen.data.store import DataStore

logger = logging.getLogger(__name__)

_TEST_SUFFIX = re.compile(r"(\.(spec|test))?\.(ts|js|mjs|cjs|tsx|jsx)$", re.IGNORECASE)

# Keys used by older payloads written before the breaker snapshot existed
_LEGACY_BREAKER_KEYS = {
    "isOpen": "is_open",
    "openReason": "open_reason",
    "attemptCount": "attempt_count",
    "errorHistory": "error_history",
    "tokensUsed": "tokens_used",
    "maxAttempts": "max_attempts",
}


def state_key(test_file: str) -> str:
    """``tests/login.spec.ts`` -> ``login``."""
    return _TEST_SUFFIX.sub("", Path(test_file).name)


# Attempts whose new_errors describe the failure itself, not the test run
_UNCHANGED_NOTES = ("generation-error", "runner-error")


def _attempt_errors(attempt: FixAttempt) -> list[str]:
    """Fingerprints the loop recorded for this attempt."""
    if attempt.outcome == AttemptOutcome.SUCCESS:
        return []
    if attempt.new_errors and attempt.note not in _UNCHANGED_NOTES:
        return [e.fingerprint for e in attempt.new_errors]
    return [attempt.error.fingerprint] if attempt.error else []


def breaker_state_from_attempts(attempts: list[FixAttempt]) -> dict[str, Any]:
    """Rebuild a closed breaker snapshot from recorded attempts."""
    sets = [sorted(set(_attempt_errors(a))) for a in attempts]
    return {
        "is_open": False,
        "open_reason": None,
        "attempt_count": len(attempts),
        "error_history": [fp for a in attempts for fp in _attempt_errors(a)],
        "attempt_error_sets": sets,
        "tokens_used": sum(a.token_usage.total_tokens for a in attempts if a.token_usage),
    }


def history_from_attempts(attempts: list[FixAttempt]) -> list[int]:
    """Error counts in the shape RefinementLoop records them.

    Element 0 is the count before the first attempt. Only the addressed
    error of the first attempt is persisted, so it stands for that count.
    """
    if not attempts:
        return []
    initial = 1 if attempts[0].error else len(_attempt_errors(attempts[0]))
    return [initial] + [len(set(_attempt_errors(a))) for a in attempts]


def _migrate_legacy_breaker(legacy: dict[str, Any]) -> dict[str, Any]:
    out = {new: legacy[old] for old, new in _LEGACY_BREAKER_KEYS.items() if old in legacy}
    start = legacy.get("startTime")
    if isinstance(start, (int, float)):
        # Milliseconds since the epoch
        out["start_time"] = start / 1000
    return out


def state_from_dict(data: dict[str, Any]) -> RefinementState:
    """Load a payload, deriving missing breaker/history fields from attempts.

    Raises:
        ValueError: If the payload is not an object or an attempt is malformed.
    """
    if not isinstance(data, dict):
        raise ValueError("Refinement state payload must be a JSON object")
    try:
        attempts = [FixAttempt.from_dict(a) for a in data.get("attempts") or []]
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"Malformed attempt in refinement state: {e}") from e

    breaker = data.get("circuit_breaker_state")
    if not breaker and isinstance(data.get("circuitBreaker"), dict):
        breaker = _migrate_legacy_breaker(data["circuitBreaker"])
    if not breaker:
        breaker = breaker_state_from_attempts(attempts)

    history = data.get("error_count_history") or data.get("errorCountHistory")
    if not history:
        history = history_from_attempts(attempts)

    return RefinementState(
        attempts=attempts,
        circuit_breaker_state=dict(breaker),
        error_count_history=[int(n) for n in history],
    )


class StateStore:
    """Loads and saves RefinementState through the DataStore."""

    def __init__(self, store: DataStore):
        self.store = store

    def load(self, test_file: str) -> Optional[RefinementState]:
        """Saved state for ``test_file``; None when absent or unreadable."""
        key = state_key(test_file)
        payload = self.store.get_state_payload(key)
        if payload is None:
            return None
        try:
            return state_from_dict(json.loads(payload))
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning("Ignoring corrupt refinement state for %s: %s", key, e)
            return None

    def save(self, test_file: str, state: RefinementState) -> None:
        self.store.save_state_payload(state_key(test_file), json.dumps(state.to_dict()))

    def clear(self, test_file: str) -> bool:
        return self.store.delete_state(state_key(test_file))
