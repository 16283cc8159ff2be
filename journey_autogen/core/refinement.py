"""Refinement loop: propose a fix, apply it, re-run the test, decide."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from rich.console import Console
from rich.panel import Panel

from journey_autogen.core.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    OpenReason,
)
from journey_autogen.core.convergence import (
    ConvergenceDetector,
    ProgressAnalysis,
    Trend,
    analyze_refinement_progress,
)
from journey_autogen.core.errors import ErrorAnalysis, classify_error
from journey_autogen.core.interfaces import (
    CostTracker,
    FixGenerator,
    FixResponseError,
    TestRunner,
)
from journey_autogen.core.models import (
    AttemptOutcome,
    CodeFix,
    FixAttempt,
    FixGenerationOptions,
    FixGenerationResult,
    LessonLearned,
    RefinementDiagnostics,
    RefinementProgress,
    RefinementResult,
    RefinementSession,
    RefinementState,
    RefinementStatus,
    TokenUsage,
    lesson_type_for,
    recommendation_for,
)
from journey_autogen.core.prompts import REFINEMENT_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

MIN_FIX_CONFIDENCE = 0.5
LESSON_CONFIDENCE = 0.7
BUDGET_ESTIMATE_TOKENS = 5000


class FixApplicationError(ValueError):
    """The fix's original code is not present verbatim in the current source."""


def apply_fix(code: str, fix: CodeFix) -> str:
    """Replace the first occurrence of ``fix.original_code``.

    Raises:
        FixApplicationError: If the original code is empty or not found.
    """
    if not fix.original_code or fix.original_code not in code:
        raise FixApplicationError(
            f'Original code not found: "{fix.original_code[:50]}..."'
        )
    return code.replace(fix.original_code, fix.fixed_code, 1)


def determine_outcome(
    previous: list[ErrorAnalysis], new: list[ErrorAnalysis]
) -> AttemptOutcome:
    if not new:
        return AttemptOutcome.SUCCESS
    if len(new) < len(previous):
        return AttemptOutcome.PARTIAL
    new_fps = {e.fingerprint for e in new}
    if any(e.fingerprint not in new_fps for e in previous):
        return AttemptOutcome.PARTIAL
    return AttemptOutcome.FAILURE


_BREAKER_STATUS = {
    OpenReason.MAX_ATTEMPTS: RefinementStatus.MAX_ATTEMPTS_REACHED,
    OpenReason.SAME_ERROR: RefinementStatus.SAME_ERROR_LOOP,
    OpenReason.OSCILLATION: RefinementStatus.OSCILLATION_DETECTED,
    OpenReason.TIMEOUT: RefinementStatus.TIMEOUT,
    OpenReason.BUDGET_EXCEEDED: RefinementStatus.BUDGET_EXCEEDED,
}


def status_for_analysis(analysis: ProgressAnalysis, no_errors: bool) -> RefinementStatus:
    if no_errors:
        return RefinementStatus.SUCCESS
    if analysis.open_reason is not None:
        return _BREAKER_STATUS[analysis.open_reason]
    if analysis.stop_reason in ("stagnating", "degrading"):
        return RefinementStatus.CANNOT_FIX
    if analysis.stop_reason == "oscillating":
        return RefinementStatus.OSCILLATION_DETECTED
    return RefinementStatus.PARTIAL_SUCCESS


def create_lesson(
    journey_id: str, fix: CodeFix, error: Optional[ErrorAnalysis], attempt_number: int
) -> Optional[LessonLearned]:
    if fix.confidence < LESSON_CONFIDENCE:
        return None
    return LessonLearned(
        id=f"lesson-{journey_id}-{attempt_number}-{int(time.time() * 1000)}",
        type=lesson_type_for(fix.type),
        journey_id=journey_id,
        error_category=error.category.value if error else None,
        original_selector=error.selector if error else None,
        element=fix.location.step_description,
        pattern=fix.type.value,
        code=fix.fixed_code,
        explanation=fix.reasoning or fix.description,
        confidence=fix.confidence,
    )


@dataclass
class RefinementOptions:
    max_attempts: int = 3
    fix_options: FixGenerationOptions = field(default_factory=FixGenerationOptions)
    # Overrides max_attempts when given
    circuit_breaker: Optional[CircuitBreakerConfig] = None
    min_fix_confidence: float = MIN_FIX_CONFIDENCE
    budget_estimate_tokens: int = BUDGET_ESTIMATE_TOKENS

    def breaker_config(self) -> CircuitBreakerConfig:
        return self.circuit_breaker or CircuitBreakerConfig(max_attempts=self.max_attempts)


class RefinementLoop:
    """Runs one refinement session against a single test file.

    Exactly one fix generation and one test run are in flight at a time.
    The loop stops when the breaker opens, the errors converge to zero, or
    the convergence detector says further attempts are pointless.
    """

    def __init__(
        self,
        generator: FixGenerator,
        runner: TestRunner,
        options: Optional[RefinementOptions] = None,
        cost_tracker: Optional[CostTracker] = None,
        on_attempt_complete: Optional[Callable[[FixAttempt], None]] = None,
        on_progress_update: Optional[Callable[[RefinementProgress], None]] = None,
        console: Optional[Console] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.generator = generator
        self.runner = runner
        self.options = options or RefinementOptions()
        self.cost_tracker = cost_tracker
        self.on_attempt_complete = on_attempt_complete
        self.on_progress_update = on_progress_update
        self.console = console or Console()
        self._clock = clock

        self.breaker = CircuitBreaker(self.options.breaker_config(), clock)
        self.detector = ConvergenceDetector()
        self.session: Optional[RefinementSession] = None

    async def run(
        self,
        journey_id: str,
        test_file: str,
        original_code: str,
        initial_errors: list[ErrorAnalysis],
        resume_from: Optional[RefinementState] = None,
    ) -> RefinementResult:
        config = self.options.breaker_config()
        session = RefinementSession(
            session_id=f"refine-{journey_id}-{int(self._clock() * 1000)}",
            journey_id=journey_id,
            test_file=test_file,
            original_code=original_code,
            current_code=original_code,
            original_errors=list(initial_errors),
            status=RefinementStatus.RUNNING,
        )
        self.session = session

        if resume_from is not None:
            self.breaker = CircuitBreaker.from_snapshot(
                resume_from.circuit_breaker_state, config, self._clock
            )
            if resume_from.error_count_history:
                self.detector.restore_from_history(resume_from.error_count_history)
            else:
                self.detector.reset()
                self.detector.record_attempt(initial_errors)
            session.attempts.extend(resume_from.attempts)
            logger.debug(
                "Resuming %s at attempt %d", test_file, self.breaker.attempt_count
            )
        else:
            self.breaker = CircuitBreaker(config, self._clock)
            self.detector.reset()
            self.detector.record_attempt(initial_errors)
        self._sync_snapshots()

        current_code = original_code
        current_errors = list(initial_errors)
        applied: list[CodeFix] = []
        lessons: list[LessonLearned] = []

        self._display_start(session, len(initial_errors))

        while True:
            self.breaker.can_attempt()
            analysis = analyze_refinement_progress(session.attempts, self.breaker, self.detector)
            if not analysis.should_continue:
                session.status = status_for_analysis(analysis, not current_errors)
                logger.debug("Stopping: %s", analysis.reason)
                break

            if self.cost_tracker is not None and self.cost_tracker.would_exceed_limit(
                self.options.budget_estimate_tokens
            ):
                session.status = RefinementStatus.BUDGET_EXCEEDED
                break

            attempt_number = len(session.attempts) + 1
            self._report_progress(attempt_number, current_errors, RefinementStatus.RUNNING)
            self.console.print(
                f"\n[dim]─── Attempt {attempt_number}/{config.max_attempts} "
                f"({len(current_errors)} errors) ───[/]"
            )

            started = self._clock()
            attempt, new_code, recorded_errors = await self._attempt(
                session, attempt_number, current_code, current_errors
            )
            attempt.duration_ms = int((self._clock() - started) * 1000)
            session.attempts.append(attempt)

            if attempt.outcome in (AttemptOutcome.SUCCESS, AttemptOutcome.PARTIAL):
                current_code = new_code
                current_errors = recorded_errors
                session.current_code = current_code
                applied.append(attempt.applied_fix)
                lesson = create_lesson(
                    journey_id, attempt.applied_fix, attempt.error, attempt_number
                )
                if lesson is not None:
                    lessons.append(lesson)

            self.detector.record_attempt(recorded_errors)
            self.breaker.record_attempt(recorded_errors, attempt.token_usage)
            self._sync_snapshots()
            self._display_attempt(attempt)

            if self.on_attempt_complete is not None:
                self.on_attempt_complete(attempt)

            # No cooldown after the attempt that ends the session
            if config.cooldown_seconds > 0 and analyze_refinement_progress(
                session.attempts, self.breaker, self.detector
            ).should_continue:
                await asyncio.sleep(config.cooldown_seconds)

        session.completed_at = datetime.now(timezone.utc)
        self._sync_snapshots()
        self._report_progress(len(session.attempts), current_errors, session.status)

        result = RefinementResult(
            success=not current_errors,
            session=session,
            fixed_code=current_code if not current_errors else None,
            remaining_errors=current_errors,
            applied_fixes=applied,
            lessons_learned=lessons,
            diagnostics=self._diagnostics(session),
        )
        self._display_final_result(result)
        return result

    async def _attempt(
        self,
        session: RefinementSession,
        number: int,
        code: str,
        errors: list[ErrorAnalysis],
    ) -> tuple[FixAttempt, str, list[ErrorAnalysis]]:
        """One generate / apply / run cycle.

        Returns the attempt, the candidate code and the error set the
        breaker and detector should record.
        """
        head_error = errors[0] if errors else None
        options = self.options.fix_options
        if options.system_prompt is None:
            options = FixGenerationOptions(
                max_tokens=options.max_tokens,
                temperature=options.temperature,
                system_prompt=REFINEMENT_SYSTEM_PROMPT,
            )

        try:
            generated = await self.generator.generate_fix(
                code, errors, list(session.attempts), options
            )
        except Exception as e:
            logger.warning("Fix generation failed: %s", e)
            self.console.print(f"[red]Fix generation error: {e}[/]")
            spent = e.token_usage if isinstance(e, FixResponseError) else None
            if spent is not None:
                self._track_usage(session, spent)
            return FixAttempt(
                attempt_number=number,
                error=head_error,
                outcome=AttemptOutcome.FAILURE,
                new_errors=[classify_error(f"Fix generation error: {e}")],
                token_usage=spent,
                note="generation-error",
            ), code, errors

        usage = generated.token_usage
        self._track_usage(session, usage)

        viable = sorted(
            (f for f in generated.fixes if f.confidence >= self.options.min_fix_confidence),
            key=lambda f: f.confidence,
            reverse=True,
        )
        if not viable:
            return FixAttempt(
                attempt_number=number,
                error=head_error,
                outcome=AttemptOutcome.SKIPPED,
                proposed_fixes=generated.fixes,
                token_usage=usage,
                note="no fix above the confidence threshold",
            ), code, errors

        fix = viable[0]
        self._display_fix(fix)
        try:
            fixed_code = apply_fix(code, fix)
        except FixApplicationError as e:
            self.console.print(f"[yellow]{e}[/]")
            return FixAttempt(
                attempt_number=number,
                error=head_error,
                outcome=AttemptOutcome.FAILURE,
                proposed_fixes=generated.fixes,
                token_usage=usage,
                note=str(e),
            ), code, errors

        try:
            run = await self.runner.run_test(session.test_file, fixed_code)
        except Exception as e:
            logger.warning("Test run failed: %s", e)
            return FixAttempt(
                attempt_number=number,
                error=head_error,
                outcome=AttemptOutcome.FAILURE,
                proposed_fixes=generated.fixes,
                applied_fix=fix,
                new_errors=[classify_error(str(e) or "Test run error")],
                token_usage=usage,
                note="runner-error",
            ), code, errors

        outcome = determine_outcome(errors, run.errors)
        return FixAttempt(
            attempt_number=number,
            error=head_error,
            outcome=outcome,
            proposed_fixes=generated.fixes,
            applied_fix=fix,
            new_errors=list(run.errors),
            token_usage=usage,
        ), fixed_code, list(run.errors)

    def _track_usage(self, session: RefinementSession, usage: TokenUsage) -> None:
        session.total_token_usage = session.total_token_usage + usage
        if self.cost_tracker is not None:
            self.cost_tracker.track_usage(usage)

    def export_state(self) -> RefinementState:
        """Snapshot for resuming this target in a later process."""
        attempts = list(self.session.attempts) if self.session else []
        return RefinementState(
            attempts=attempts,
            circuit_breaker_state=self.breaker.to_snapshot(),
            error_count_history=list(self.detector.error_count_history),
        )

    def _sync_snapshots(self) -> None:
        if self.session is None:
            return
        self.session.circuit_breaker_state = self.breaker.to_snapshot()
        self.session.convergence_info = self.detector.get_info().to_dict()

    def _report_progress(
        self, attempt_number: int, errors: list[ErrorAnalysis], status: RefinementStatus
    ) -> None:
        if self.on_progress_update is None:
            return
        session = self.session
        self.on_progress_update(RefinementProgress(
            attempt_number=attempt_number,
            max_attempts=self.breaker.state.max_attempts,
            current_error_count=len(errors),
            original_error_count=len(session.original_errors) if session else 0,
            trend=self.detector.detect_trend().value,
            status=status,
        ))

    def _diagnostics(self, session: RefinementSession) -> RefinementDiagnostics:
        trend = self.detector.detect_trend()
        reason = self.breaker.open_reason
        last = session.attempts[-1] if session.attempts else None
        return RefinementDiagnostics(
            attempts=len(session.attempts),
            last_error=last.error.message if last and last.error else None,
            convergence_failure=trend in (Trend.STAGNATING, Trend.OSCILLATING),
            same_error_repeated=reason == OpenReason.SAME_ERROR,
            oscillation_detected=(
                reason == OpenReason.OSCILLATION or trend == Trend.OSCILLATING
            ),
            budget_exhausted=(
                reason == OpenReason.BUDGET_EXCEEDED
                or session.status == RefinementStatus.BUDGET_EXCEEDED
            ),
            timed_out=reason == OpenReason.TIMEOUT,
        )

    # ── Display ──────────────────────────────────────────────────────

    def _display_start(self, session: RefinementSession, error_count: int) -> None:
        self.console.print(
            Panel(
                f"[bold]Journey:[/] {session.journey_id}\n"
                f"[bold]Test:[/] {session.test_file}\n"
                f"[bold]Errors:[/] {error_count}\n"
                f"[bold]Max attempts:[/] {self.breaker.state.max_attempts}",
                title="Refinement Session",
                border_style="blue",
            )
        )

    def _display_fix(self, fix: CodeFix) -> None:
        self.console.print(
            f"[bold cyan]{fix.type.value}[/] {fix.description} "
            f"[dim](confidence {fix.confidence:.2f})[/]"
        )

    def _display_attempt(self, attempt: FixAttempt) -> None:
        styles = {
            AttemptOutcome.SUCCESS: "green",
            AttemptOutcome.PARTIAL: "yellow",
            AttemptOutcome.FAILURE: "red",
            AttemptOutcome.SKIPPED: "dim",
        }
        style = styles[attempt.outcome]
        detail = f" - {attempt.note}" if attempt.note else ""
        self.console.print(
            f"[{style}]Attempt {attempt.attempt_number}: "
            f"{attempt.outcome.value}{detail}[/]"
        )

    def _display_final_result(self, result: RefinementResult) -> None:
        session = result.session
        self.console.print()
        if result.success:
            self.console.print(
                Panel(
                    f"[bold green]All errors resolved[/]\n"
                    f"Attempts: {result.diagnostics.attempts}\n"
                    f"Fixes applied: {len(result.applied_fixes)}\n"
                    f"Tokens: {session.total_token_usage.total_tokens}",
                    title="Refinement Complete",
                    border_style="green",
                )
            )
            return
        message = self.breaker.get_trip_message() or recommendation_for(session.status)
        self.console.print(
            Panel(
                f"[bold red]{session.status.value}[/]\n"
                f"Attempts: {result.diagnostics.attempts}\n"
                f"Remaining errors: {len(result.remaining_errors)}\n"
                f"{message}\n"
                f"[dim]{recommendation_for(session.status)}[/]",
                title="Refinement Stopped",
                border_style="red",
            )
        )


# ── One-shot helper ──────────────────────────────────────────────────


@dataclass
class SingleAttemptResult:
    fixes: list[CodeFix] = field(default_factory=list)
    reasoning: Optional[str] = None
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def run_single_refinement_attempt(
    code: str,
    errors: list[ErrorAnalysis],
    generator: FixGenerator,
    max_tokens: int = 4096,
    temperature: float = 0.2,
) -> SingleAttemptResult:
    """Ask for fixes once, without applying or running anything."""
    try:
        result: FixGenerationResult = await generator.generate_fix(
            code,
            errors,
            [],
            FixGenerationOptions(
                max_tokens=max_tokens,
                temperature=temperature,
                system_prompt=REFINEMENT_SYSTEM_PROMPT,
            ),
        )
    except FixResponseError as e:
        return SingleAttemptResult(error=str(e), token_usage=e.token_usage)
    except Exception as e:
        return SingleAttemptResult(error=str(e) or e.__class__.__name__)
    return SingleAttemptResult(
        fixes=result.fixes,
        reasoning=result.reasoning,
        token_usage=result.token_usage,
    )
