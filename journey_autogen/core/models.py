"""Data models for the refinement loop."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from journey_autogen.core.errors import ErrorAnalysis


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    estimated_cost_usd: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            estimated_cost_usd=self.estimated_cost_usd + other.estimated_cost_usd,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
            "estimated_cost_usd": self.estimated_cost_usd,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TokenUsage:
        return cls(
            input_tokens=int(data.get("input_tokens", 0)),
            output_tokens=int(data.get("output_tokens", 0)),
            estimated_cost_usd=float(data.get("estimated_cost_usd", 0.0)),
        )


class FixType(Enum):
    SELECTOR_CHANGE = "SELECTOR_CHANGE"
    LOCATOR_STRATEGY_CHANGED = "LOCATOR_STRATEGY_CHANGED"
    FRAME_CONTEXT_ADDED = "FRAME_CONTEXT_ADDED"
    WAIT_ADDED = "WAIT_ADDED"
    TIMEOUT_INCREASED = "TIMEOUT_INCREASED"
    RETRY_ADDED = "RETRY_ADDED"
    ASSERTION_MODIFIED = "ASSERTION_MODIFIED"
    ERROR_HANDLING_ADDED = "ERROR_HANDLING_ADDED"
    FLOW_REORDERED = "FLOW_REORDERED"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value: Any) -> FixType:
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.OTHER


@dataclass
class FixLocation:
    file: str = ""
    line: Optional[int] = None
    step_description: Optional[str] = None


@dataclass
class CodeFix:
    type: FixType
    description: str
    original_code: str
    fixed_code: str
    confidence: float
    location: FixLocation = field(default_factory=FixLocation)
    reasoning: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "description": self.description,
            "original_code": self.original_code,
            "fixed_code": self.fixed_code,
            "confidence": self.confidence,
            "location": {
                "file": self.location.file,
                "line": self.location.line,
                "step_description": self.location.step_description,
            },
            "reasoning": self.reasoning,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CodeFix:
        loc = data.get("location") or {}
        return cls(
            type=FixType.parse(data.get("type", "OTHER")),
            description=data.get("description", ""),
            original_code=data.get("original_code", ""),
            fixed_code=data.get("fixed_code", ""),
            confidence=float(data.get("confidence", 0.0)),
            location=FixLocation(
                file=loc.get("file", ""),
                line=loc.get("line"),
                step_description=loc.get("step_description"),
            ),
            reasoning=data.get("reasoning"),
        )


class AttemptOutcome(Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"
    SKIPPED = "skipped"


@dataclass
class FixAttempt:
    attempt_number: int
    error: Optional[ErrorAnalysis]
    outcome: AttemptOutcome
    proposed_fixes: list[CodeFix] = field(default_factory=list)
    applied_fix: Optional[CodeFix] = None
    new_errors: list[ErrorAnalysis] = field(default_factory=list)
    token_usage: Optional[TokenUsage] = None
    duration_ms: int = 0
    note: str = ""
    timestamp: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempt_number": self.attempt_number,
            "error": self.error.to_dict() if self.error else None,
            "outcome": self.outcome.value,
            "proposed_fixes": [f.to_dict() for f in self.proposed_fixes],
            "applied_fix": self.applied_fix.to_dict() if self.applied_fix else None,
            "new_errors": [e.to_dict() for e in self.new_errors],
            "token_usage": self.token_usage.to_dict() if self.token_usage else None,
            "duration_ms": self.duration_ms,
            "note": self.note,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FixAttempt:
        ts = data.get("timestamp")
        return cls(
            attempt_number=int(data["attempt_number"]),
            error=ErrorAnalysis.from_dict(data["error"]) if data.get("error") else None,
            outcome=AttemptOutcome(data["outcome"]),
            proposed_fixes=[CodeFix.from_dict(f) for f in data.get("proposed_fixes", [])],
            applied_fix=CodeFix.from_dict(data["applied_fix"]) if data.get("applied_fix") else None,
            new_errors=[ErrorAnalysis.from_dict(e) for e in data.get("new_errors", [])],
            token_usage=TokenUsage.from_dict(data["token_usage"]) if data.get("token_usage") else None,
            duration_ms=int(data.get("duration_ms", 0)),
            note=data.get("note", ""),
            timestamp=datetime.fromisoformat(ts) if ts else _now(),
        )


class RefinementStatus(Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    PARTIAL_SUCCESS = "PARTIAL_SUCCESS"
    MAX_ATTEMPTS_REACHED = "MAX_ATTEMPTS_REACHED"
    SAME_ERROR_LOOP = "SAME_ERROR_LOOP"
    OSCILLATION_DETECTED = "OSCILLATION_DETECTED"
    TIMEOUT = "TIMEOUT"
    BUDGET_EXCEEDED = "BUDGET_EXCEEDED"
    CANNOT_FIX = "CANNOT_FIX"


STATUS_RECOMMENDATIONS = {
    RefinementStatus.SUCCESS: "All errors resolved. The refined test is ready to commit.",
    RefinementStatus.PARTIAL_SUCCESS: (
        "Some errors were fixed. Review the remaining errors and refine manually."
    ),
    RefinementStatus.MAX_ATTEMPTS_REACHED: (
        "Attempt limit reached. Inspect the remaining errors or raise --max-attempts."
    ),
    RefinementStatus.SAME_ERROR_LOOP: (
        "The same error keeps recurring. The failure likely needs a change "
        "outside the test code (app state, test data or journey wording)."
    ),
    RefinementStatus.OSCILLATION_DETECTED: (
        "Fixes are undoing each other. Fix one error manually and refine again."
    ),
    RefinementStatus.TIMEOUT: "Session time budget exhausted. Retry with --resume.",
    RefinementStatus.BUDGET_EXCEEDED: (
        "Token budget exhausted. Raise the budget or fix the remaining errors manually."
    ),
    RefinementStatus.CANNOT_FIX: (
        "Error count is not improving. Escalate to a human reviewer."
    ),
}


def recommendation_for(status: RefinementStatus) -> str:
    return STATUS_RECOMMENDATIONS.get(status, "Refinement did not finish.")


@dataclass
class RefinementSession:
    session_id: str
    journey_id: str
    test_file: str
    original_code: str
    current_code: str
    original_errors: list[ErrorAnalysis] = field(default_factory=list)
    attempts: list[FixAttempt] = field(default_factory=list)
    status: RefinementStatus = RefinementStatus.PENDING
    total_token_usage: TokenUsage = field(default_factory=TokenUsage)
    started_at: datetime = field(default_factory=_now)
    completed_at: Optional[datetime] = None
    # Snapshots written back after every attempt
    circuit_breaker_state: dict[str, Any] = field(default_factory=dict)
    convergence_info: dict[str, Any] = field(default_factory=dict)


class LessonType(Enum):
    SELECTOR_PATTERN = "selector_pattern"
    WAIT_STRATEGY = "wait_strategy"
    FLOW_PATTERN = "flow_pattern"
    ERROR_FIX = "error_fix"


_LESSON_TYPES = {
    FixType.SELECTOR_CHANGE: LessonType.SELECTOR_PATTERN,
    FixType.LOCATOR_STRATEGY_CHANGED: LessonType.SELECTOR_PATTERN,
    FixType.FRAME_CONTEXT_ADDED: LessonType.SELECTOR_PATTERN,
    FixType.WAIT_ADDED: LessonType.WAIT_STRATEGY,
    FixType.TIMEOUT_INCREASED: LessonType.WAIT_STRATEGY,
    FixType.RETRY_ADDED: LessonType.WAIT_STRATEGY,
    FixType.FLOW_REORDERED: LessonType.FLOW_PATTERN,
}


def lesson_type_for(fix_type: FixType) -> LessonType:
    return _LESSON_TYPES.get(fix_type, LessonType.ERROR_FIX)


@dataclass
class LessonLearned:
    id: str
    type: LessonType
    journey_id: str
    error_category: Optional[str]
    pattern: str
    code: str
    explanation: str
    confidence: float
    original_selector: Optional[str] = None
    element: Optional[str] = None
    verified: bool = True
    created_at: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "context": {
                "journey_id": self.journey_id,
                "error_category": self.error_category,
                "original_selector": self.original_selector,
                "element": self.element,
            },
            "solution": {
                "pattern": self.pattern,
                "code": self.code,
                "explanation": self.explanation,
            },
            "confidence": self.confidence,
            "verified": self.verified,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LessonLearned:
        ctx = data.get("context", {})
        sol = data.get("solution", {})
        ts = data.get("created_at")
        return cls(
            id=data["id"],
            type=LessonType(data["type"]),
            journey_id=ctx.get("journey_id", ""),
            error_category=ctx.get("error_category"),
            original_selector=ctx.get("original_selector"),
            element=ctx.get("element"),
            pattern=sol.get("pattern", ""),
            code=sol.get("code", ""),
            explanation=sol.get("explanation", ""),
            confidence=float(data.get("confidence", 0.0)),
            verified=bool(data.get("verified", True)),
            created_at=datetime.fromisoformat(ts) if ts else _now(),
        )


@dataclass
class FixGenerationOptions:
    max_tokens: int = 4096
    temperature: float = 0.2
    system_prompt: Optional[str] = None


@dataclass
class FixGenerationResult:
    fixes: list[CodeFix]
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    reasoning: Optional[str] = None


@dataclass
class TestRunResult:
    __test__ = False  # not a pytest class

    errors: list[ErrorAnalysis]
    passed: bool = False
    exit_code: int = 0
    duration_ms: int = 0
    stdout: str = ""
    stderr: str = ""


@dataclass
class RefinementProgress:
    attempt_number: int
    max_attempts: int
    current_error_count: int
    original_error_count: int
    trend: str
    status: RefinementStatus


@dataclass
class RefinementDiagnostics:
    attempts: int
    last_error: Optional[str] = None
    convergence_failure: bool = False
    same_error_repeated: bool = False
    oscillation_detected: bool = False
    budget_exhausted: bool = False
    timed_out: bool = False


@dataclass
class RefinementResult:
    success: bool
    session: RefinementSession
    remaining_errors: list[ErrorAnalysis]
    applied_fixes: list[CodeFix]
    lessons_learned: list[LessonLearned]
    diagnostics: RefinementDiagnostics
    fixed_code: Optional[str] = None

    @property
    def recommendation(self) -> str:
        return recommendation_for(self.session.status)


@dataclass
class RefinementState:
    """What is persisted between invocations for one test file."""

    attempts: list[FixAttempt] = field(default_factory=list)
    circuit_breaker_state: dict[str, Any] = field(default_factory=dict)
    error_count_history: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempts": [a.to_dict() for a in self.attempts],
            "circuit_breaker_state": dict(self.circuit_breaker_state),
            "error_count_history": list(self.error_count_history),
        }
