"""LLM fix generator — provider-agnostic implementation of FixGenerator."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Optional

from journey_autogen.core.errors import ErrorAnalysis
from journey_autogen.core.interfaces import FixGenerator, FixResponseError
from journey_autogen.core.models import (
    CodeFix,
    FixAttempt,
    FixGenerationOptions,
    FixGenerationResult,
    FixLocation,
    FixType,
    TokenUsage,
)
from journey_autogen.core.prompts import REFINEMENT_SYSTEM_PROMPT
from journey_autogen.core.providers import create_provider, detect_provider, estimate_cost
from journey_autogen.core.providers.base import BaseLLMProvider

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"

_FENCE = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```")


def extract_json(text: str) -> dict[str, Any]:
    """Parse the JSON object in an LLM reply.

    Accepts a bare object, a fenced ``json`` block, or an object embedded in
    prose.

    Raises:
        ValueError: If no JSON object can be parsed.
    """
    candidates = [text.strip()]
    fenced = _FENCE.search(text)
    if fenced:
        candidates.append(fenced.group(1))
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    raise ValueError("LLM response did not contain a JSON object. Response: " + text[:500])


def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def parse_fix(data: dict[str, Any], default_file: str = "") -> Optional[CodeFix]:
    original = _pick(data, "originalCode", "original_code")
    fixed = _pick(data, "fixedCode", "fixed_code")
    if original is None or fixed is None:
        return None
    loc = data.get("location")
    if not isinstance(loc, dict):
        loc = {}
    try:
        confidence = float(data.get("confidence", 0.0))
    except (TypeError, ValueError):
        confidence = 0.0
    line = loc.get("line")
    return CodeFix(
        type=FixType.parse(data.get("type", "OTHER")),
        description=str(data.get("description", "")),
        original_code=str(original),
        fixed_code=str(fixed),
        confidence=max(0.0, min(1.0, confidence)),
        location=FixLocation(
            file=str(loc.get("file") or default_file),
            line=int(line) if isinstance(line, (int, float)) else None,
            step_description=_pick(loc, "stepDescription", "step_description"),
        ),
        reasoning=data.get("reasoning"),
    )


def parse_fix_response(text: str, default_file: str = "") -> tuple[list[CodeFix], Optional[str]]:
    data = extract_json(text)
    fixes = []
    for raw in data.get("fixes") or []:
        if not isinstance(raw, dict):
            continue
        fix = parse_fix(raw, default_file)
        if fix is None:
            logger.debug("Dropping fix without original/fixed code: %s", raw)
            continue
        fixes.append(fix)
    return fixes, data.get("reasoning")


def build_user_message(
    code: str, errors: list[ErrorAnalysis], previous_attempts: list[FixAttempt]
) -> str:
    parts = ["## Current test code", "```typescript", code, "```", "", "## Errors"]
    for i, e in enumerate(errors, 1):
        parts.append(f"{i}. [{e.category.value}] {e.message}")
        if e.selector:
            parts.append(f"   selector: {e.selector}")
        if e.expected_value is not None or e.actual_value is not None:
            parts.append(f"   expected: {e.expected_value}  received: {e.actual_value}")
        if e.location:
            parts.append(f"   at {e.location.file}:{e.location.line}")

    if previous_attempts:
        parts += ["", "## Previous attempts"]
        for a in previous_attempts:
            fix = a.applied_fix or (a.proposed_fixes[0] if a.proposed_fixes else None)
            desc = f"{fix.type.value}: {fix.description}" if fix else "no fix proposed"
            parts.append(f"- Attempt {a.attempt_number} ({a.outcome.value}): {desc}")
            if fix and a.outcome.value == "failure":
                parts.append(f"  rejected originalCode: {fix.original_code[:200]!r}")
    return "\n".join(parts)


class LLMFixGenerator(FixGenerator):
    """Asks an LLM provider for fixes and parses the JSON reply."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        provider: Optional[BaseLLMProvider] = None,
        test_file: str = "",
    ):
        self.model = model
        self.provider_name = detect_provider(model)
        if provider is None:
            provider = create_provider(model)
        self.provider = provider
        self.test_file = test_file

    async def generate_fix(
        self,
        code: str,
        errors: list[ErrorAnalysis],
        previous_attempts: list[FixAttempt],
        options: FixGenerationOptions,
    ) -> FixGenerationResult:
        message = build_user_message(code, errors, previous_attempts)
        # SDK clients are blocking
        response = await asyncio.to_thread(
            self.provider.complete,
            options.system_prompt or REFINEMENT_SYSTEM_PROMPT,
            message,
            options.max_tokens,
            options.temperature,
        )
        usage = TokenUsage(
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            estimated_cost_usd=estimate_cost(
                self.provider_name, response.input_tokens, response.output_tokens
            ),
        )
        try:
            fixes, reasoning = parse_fix_response(response.text, self.test_file)
        except ValueError as e:
            raise FixResponseError(str(e), usage) from e
        logger.debug("%s proposed %d fixes (%d tokens)", self.model, len(fixes), usage.total_tokens)
        return FixGenerationResult(fixes=fixes, token_usage=usage, reasoning=reasoning)
