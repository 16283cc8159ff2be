"""Playwright test runner — writes the candidate test and runs it via npx."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from pathlib import Path
from typing import Optional

from journey_autogen.core.errors import (
    ErrorAnalysis,
    RunStatus,
    classify_error,
    dedupe_errors,
    parse_errors,
    parse_playwright_report,
)
from journey_autogen.core.interfaces import TestRunner
from journey_autogen.core.models import TestRunResult

logger = logging.getLogger(__name__)


def errors_from_output(stdout: str, stderr: str, test_file: str) -> list[ErrorAnalysis]:
    """Errors from a JSON reporter run; raw stderr when stdout is not a report."""
    try:
        report = json.loads(stdout) if stdout.strip() else None
    except json.JSONDecodeError:
        report = None

    if isinstance(report, dict):
        errors: list[ErrorAnalysis] = []
        for result in parse_playwright_report(report):
            if result.status in (RunStatus.FAILED, RunStatus.TIMED_OUT, RunStatus.INTERRUPTED):
                errors.extend(result.errors)
        for err in report.get("errors") or []:
            # Top-level errors, e.g. a compile failure before any test ran
            text = err.get("message") if isinstance(err, dict) else str(err)
            if text:
                errors.append(classify_error(text, test_file=test_file))
        return dedupe_errors(errors)

    return parse_errors(f"{stdout}\n{stderr}", test_file=test_file)


class PlaywrightRunner(TestRunner):
    """Runs ``npx playwright test <file> --reporter=json``."""

    def __init__(
        self,
        cwd: Optional[str] = None,
        timeout: float = 120.0,
        npx: str = "npx",
        extra_args: Optional[list[str]] = None,
        env: Optional[dict[str, str]] = None,
    ):
        self.cwd = cwd or os.getcwd()
        self.timeout = timeout
        self.npx = npx
        self.extra_args = list(extra_args or [])
        self.env = env

    def build_command(self, test_file: str) -> list[str]:
        return [self.npx, "playwright", "test", test_file, "--reporter=json", *self.extra_args]

    async def run_test(self, test_file: str, test_code: str) -> TestRunResult:
        path = Path(self.cwd, test_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(test_code)

        env = {**os.environ, **self.env} if self.env else None
        start = time.time()
        # FileNotFoundError (npx missing) propagates as an infrastructure failure
        proc = await asyncio.create_subprocess_exec(
            *self.build_command(test_file),
            cwd=self.cwd,
            env=env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            out, err = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            return TestRunResult(
                errors=[classify_error(
                    f"Test timeout of {int(self.timeout * 1000)}ms exceeded",
                    test_file=test_file,
                )],
                passed=False,
                exit_code=-1,
                duration_ms=int((time.time() - start) * 1000),
            )
        finally:
            # Timed out or cancelled by the caller
            if proc.returncode is None:
                try:
                    proc.kill()
                except ProcessLookupError:
                    # Exited between the check and the kill
                    pass
                await proc.wait()

        stdout = out.decode(errors="replace")
        stderr = err.decode(errors="replace")
        errors = errors_from_output(stdout, stderr, test_file)
        exit_code = proc.returncode if proc.returncode is not None else -1
        if exit_code != 0 and not errors:
            errors = [classify_error(
                stderr.strip() or f"Playwright exited with code {exit_code}",
                test_file=test_file,
            )]
        logger.debug("%s exited %s with %d errors", test_file, exit_code, len(errors))
        return TestRunResult(
            errors=errors,
            passed=exit_code == 0 and not errors,
            exit_code=exit_code,
            duration_ms=int((time.time() - start) * 1000),
            stdout=stdout,
            stderr=stderr,
        )
