"""Resolution cascade from one line of step text to an IR primitive.

Order: exact glossary phrase, regex pattern groups (with a second pass over
the body of unmatched structured bullets), label-alias rewrite,
module-method substring, learned patterns. Misses return None.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from journey_autogen.core.glossary import GlossaryRegistry, get_default_registry
from journey_autogen.core.ir import LocatorStrategy, Primitive
from journey_autogen.core.patterns import (
    ALL_PATTERNS,
    STRUCTURED_PREFIX,
    StepPattern,
    match_regex_patterns,
)

logger = logging.getLogger(__name__)

DEFAULT_MIN_LLKB_CONFIDENCE = 0.7


@dataclass
class LearnedMatch:
    pattern_id: str
    primitive: Primitive
    confidence: float


class LearnedPatternSource(Protocol):
    def match(
        self, normalized_text: str, min_confidence: float
    ) -> Optional[LearnedMatch]: ...


@dataclass
class MatchResult:
    primitive: Primitive
    source: str  # "glossary", "pattern", "module-method", "llkb"
    pattern_name: Optional[str] = None
    confidence: Optional[float] = None


class PatternMatcher:
    def __init__(
        self,
        registry: Optional[GlossaryRegistry] = None,
        patterns: tuple[StepPattern, ...] = ALL_PATTERNS,
        learned: Optional[LearnedPatternSource] = None,
        min_llkb_confidence: float = DEFAULT_MIN_LLKB_CONFIDENCE,
    ):
        self._registry = registry
        self.patterns = patterns
        self.learned = learned
        self.min_llkb_confidence = min_llkb_confidence

    @property
    def registry(self) -> GlossaryRegistry:
        # Late-bound so reset_default_registry() takes effect
        return self._registry or get_default_registry()

    def match(self, text: str) -> Optional[MatchResult]:
        trimmed = text.strip()
        if not trimmed:
            return None

        result = self._match_exact_or_regex(trimmed)
        if result is None:
            prefix = STRUCTURED_PREFIX.match(trimmed)
            if prefix:
                body = trimmed[prefix.end():].strip()
                if body:
                    result = self._match_exact_or_regex(body)

        if result is not None:
            self._apply_label_alias(result.primitive)
            logger.debug("Matched %r via %s (%s)", trimmed, result.source, result.pattern_name)
            return result

        mm = self.registry.find_module_method(trimmed)
        if mm is not None:
            return MatchResult(mm.to_primitive(), "module-method", mm.phrase)

        if self.learned is not None:
            normalized = self.registry.normalize_step_text(trimmed).lower()
            learned = self.learned.match(normalized, self.min_llkb_confidence)
            if learned is not None:
                return MatchResult(
                    copy.deepcopy(learned.primitive),
                    "llkb",
                    learned.pattern_id,
                    learned.confidence,
                )

        logger.debug("No match for %r", trimmed)
        return None

    def match_primitive(self, text: str) -> Optional[Primitive]:
        result = self.match(text)
        return result.primitive if result else None

    def _match_exact_or_regex(self, text: str) -> Optional[MatchResult]:
        exact = self.registry.lookup_exact(text)
        if exact is not None:
            return MatchResult(exact, "glossary", text.lower())

        hit = match_regex_patterns(text, self.patterns)
        if hit is None:
            return None
        pattern, primitive = hit
        return MatchResult(primitive, "pattern", pattern.name)

    def _apply_label_alias(self, primitive: Primitive) -> None:
        locator = getattr(primitive, "locator", None)
        if locator is None:
            return
        if locator.strategy not in (LocatorStrategy.LABEL, LocatorStrategy.TEXT):
            return
        aliased = self.registry.locator_for_label(locator.value)
        if aliased is not None:
            primitive.locator = aliased


_default_matcher = PatternMatcher()


def get_default_matcher() -> PatternMatcher:
    return _default_matcher


def match_pattern(text: str) -> Optional[Primitive]:
    """Resolve ``text`` with the default matcher. Never raises on a miss."""
    return _default_matcher.match_primitive(text)
