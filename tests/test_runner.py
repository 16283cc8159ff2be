"""Tests for journey_autogen.core.runner — PlaywrightRunner with a patched subprocess."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from journey_autogen.core.errors import ErrorCategory
from journey_autogen.core.runner import PlaywrightRunner, errors_from_output

FAILED_REPORT = {
    "suites": [
        {
            "title": "login.spec.ts",
            "file": "login.spec.ts",
            "specs": [
                {
                    "title": "user logs in",
                    "tests": [
                        {
                            "title": "chromium",
                            "status": "unexpected",
                            "results": [
                                {
                                    "status": "failed",
                                    "duration": 1200,
                                    "error": {
                                        "message": "locator.click: Timeout 30000ms exceeded",
                                        "stack": "    at login.spec.ts:12:5",
                                    },
                                }
                            ],
                        }
                    ],
                },
                {
                    "title": "user sees home",
                    "tests": [{"title": "chromium", "status": "expected", "results": [{"status": "passed"}]}],
                },
            ],
        }
    ]
}


def _mock_proc(stdout: str = "", stderr: str = "", returncode: int = 0):
    proc = MagicMock()
    proc.communicate = AsyncMock(return_value=(stdout.encode(), stderr.encode()))
    proc.wait = AsyncMock(return_value=returncode)
    proc.returncode = returncode
    return proc


# ---------------------------------------------------------------------------
# errors_from_output
# ---------------------------------------------------------------------------

class TestErrorsFromOutput:
    def test_failed_tests_from_json_report(self):
        errors = errors_from_output(json.dumps(FAILED_REPORT), "", "login.spec.ts")
        assert len(errors) == 1
        assert errors[0].category == ErrorCategory.SELECTOR_NOT_FOUND
        assert errors[0].location.line == 12

    def test_top_level_report_errors(self):
        report = {"suites": [], "errors": [{"message": "SyntaxError: Unexpected token ')'"}]}
        errors = errors_from_output(json.dumps(report), "", "t.spec.ts")
        assert [e.category for e in errors] == [ErrorCategory.SYNTAX_ERROR]

    def test_plain_text_falls_back_to_parse_errors(self):
        errors = errors_from_output("", "TypeError: page.foo is not a function", "t.spec.ts")
        assert errors[0].category == ErrorCategory.RUNTIME_ERROR

    def test_passing_report_has_no_errors(self):
        report = {"suites": [{"file": "t.spec.ts", "specs": [
            {"title": "ok", "tests": [{"status": "expected", "results": [{"status": "passed"}]}]}
        ]}]}
        assert errors_from_output(json.dumps(report), "", "t.spec.ts") == []


# ---------------------------------------------------------------------------
# PlaywrightRunner
# ---------------------------------------------------------------------------

class TestPlaywrightRunner:
    def test_build_command(self):
        runner = PlaywrightRunner(cwd="/proj", extra_args=["--project=chromium"])
        assert runner.build_command("tests/a.spec.ts") == [
            "npx", "playwright", "test", "tests/a.spec.ts",
            "--reporter=json", "--project=chromium",
        ]

    @pytest.mark.asyncio
    async def test_writes_code_and_reports_failure(self, tmp_path):
        proc = _mock_proc(json.dumps(FAILED_REPORT), "", 1)
        with patch(
            "journey_autogen.core.runner.asyncio.create_subprocess_exec",
            AsyncMock(return_value=proc),
        ) as mock_exec:
            runner = PlaywrightRunner(cwd=str(tmp_path))
            result = await runner.run_test("tests/login.spec.ts", "// code")

        assert (tmp_path / "tests" / "login.spec.ts").read_text() == "// code"
        assert mock_exec.call_args.kwargs["cwd"] == str(tmp_path)
        assert result.passed is False
        assert result.exit_code == 1
        assert len(result.errors) == 1

    @pytest.mark.asyncio
    async def test_passing_run(self, tmp_path):
        report = {"suites": []}
        proc = _mock_proc(json.dumps(report), "", 0)
        with patch(
            "journey_autogen.core.runner.asyncio.create_subprocess_exec",
            AsyncMock(return_value=proc),
        ):
            result = await PlaywrightRunner(cwd=str(tmp_path)).run_test("a.spec.ts", "ok")
        assert result.passed is True
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_nonzero_exit_without_errors_is_classified(self, tmp_path):
        proc = _mock_proc("", "", 2)
        with patch(
            "journey_autogen.core.runner.asyncio.create_subprocess_exec",
            AsyncMock(return_value=proc),
        ):
            result = await PlaywrightRunner(cwd=str(tmp_path)).run_test("a.spec.ts", "x")
        assert result.passed is False
        assert "exited with code 2" in result.errors[0].message

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, tmp_path):
        async def _hang():
            await asyncio.sleep(10)

        proc = _mock_proc(returncode=None)
        proc.communicate = _hang
        with patch(
            "journey_autogen.core.runner.asyncio.create_subprocess_exec",
            AsyncMock(return_value=proc),
        ):
            runner = PlaywrightRunner(cwd=str(tmp_path), timeout=0.05)
            result = await runner.run_test("a.spec.ts", "x")

        proc.kill.assert_called_once()
        proc.wait.assert_awaited_once()
        assert result.exit_code == -1
        assert result.errors[0].category == ErrorCategory.TIMEOUT

    @pytest.mark.asyncio
    async def test_cancellation_kills_process(self, tmp_path):
        started = asyncio.Event()

        async def _hang():
            started.set()
            await asyncio.sleep(10)

        proc = _mock_proc(returncode=None)
        proc.communicate = _hang
        with patch(
            "journey_autogen.core.runner.asyncio.create_subprocess_exec",
            AsyncMock(return_value=proc),
        ):
            runner = PlaywrightRunner(cwd=str(tmp_path), timeout=30)
            task = asyncio.ensure_future(runner.run_test("a.spec.ts", "x"))
            await started.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        proc.kill.assert_called_once()
        proc.wait.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_finished_process_is_not_killed(self, tmp_path):
        proc = _mock_proc(json.dumps({"suites": []}), "", 0)
        with patch(
            "journey_autogen.core.runner.asyncio.create_subprocess_exec",
            AsyncMock(return_value=proc),
        ):
            await PlaywrightRunner(cwd=str(tmp_path)).run_test("a.spec.ts", "x")
        proc.kill.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_npx_propagates(self, tmp_path):
        with patch(
            "journey_autogen.core.runner.asyncio.create_subprocess_exec",
            AsyncMock(side_effect=FileNotFoundError("npx")),
        ):
            with pytest.raises(FileNotFoundError):
                await PlaywrightRunner(cwd=str(tmp_path)).run_test("a.spec.ts", "x")
