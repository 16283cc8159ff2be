"""Learned patterns — step phrasings that the pattern engine missed but a
later run mapped successfully, scored by how often they held up.

Confidence is the Wilson score lower bound of the success rate, so a
pattern needs a number of successes before it can outrank the matcher's
threshold. Patterns that reach promotion confidence are candidates for the
core regex table; once promoted they are no longer served from here.
"""

from __future__ import annotations

import json
import logging
import math
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from journey_autogen.core.fuzzy import calculate_similarity
from journey_autogen.core.glossary import GlossaryRegistry, get_default_registry
from journey_autogen.core.ir import Primitive, primitive_from_dict
from journey_autogen.core.matcher import LearnedMatch
from journey_autogen.data.store import DataStore

logger = logging.getLogger(__name__)

WILSON_Z = 1.96
INITIAL_CONFIDENCE = 0.5
MIN_FUZZY_SIMILARITY = 0.7
PROMOTION_CONFIDENCE = 0.9
PROMOTION_MIN_SUCCESS = 5


def calculate_confidence(success_count: int, fail_count: int) -> float:
    """Wilson score lower bound for ``success / (success + fail)``."""
    n = success_count + fail_count
    if n == 0:
        return INITIAL_CONFIDENCE
    p = success_count / n
    z2 = WILSON_Z * WILSON_Z
    denominator = 1 + z2 / n
    center = p + z2 / (2 * n)
    spread = WILSON_Z * math.sqrt((p * (1 - p) + z2 / (4 * n)) / n)
    return max(0.0, min(1.0, (center - spread) / denominator))


_VERB_STEMS = ("click", "fill", "select", "type", "see", "wait")


def generate_regex_from_text(text: str) -> str:
    """Turn a learned phrase into an anchored regex for the core table.

    Quoted values become capture groups, articles become optional and the
    common action verbs accept an optional trailing ``s``.
    """
    pattern = re.escape(text.lower().strip())
    # re.escape leaves quotes alone but escapes spaces
    pattern = pattern.replace("\\ ", " ")
    pattern = re.sub(r'"[^"]+"', '"([^"]+)"', pattern)
    pattern = re.sub(r"'[^']+'", "'([^']+)'", pattern)
    pattern = re.sub(r"\b(the|a|an) ", r"(?:\1\\s+)?", pattern)
    pattern = re.sub(r"^user\s+", r"(?:user\\s+)?", pattern)
    for stem in _VERB_STEMS:
        pattern = re.sub(rf"\b{stem}s?\b", f"{stem}s?", pattern)
    return f"^{pattern}$"


@dataclass
class LearnedPattern:
    id: str
    original_text: str
    normalized_text: str
    primitive: Primitive
    confidence: float = INITIAL_CONFIDENCE
    source_journeys: list[str] = field(default_factory=list)
    success_count: int = 0
    fail_count: int = 0
    last_used: Optional[str] = None
    created_at: Optional[str] = None
    promoted: bool = False
    promoted_at: Optional[str] = None

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "original_text": self.original_text,
            "normalized_text": self.normalized_text,
            "primitive": self.primitive.to_dict(),
            "confidence": self.confidence,
            "source_journeys": list(self.source_journeys),
            "success_count": self.success_count,
            "fail_count": self.fail_count,
            "last_used": self.last_used,
            "created_at": self.created_at,
            "promoted": self.promoted,
            "promoted_at": self.promoted_at,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> LearnedPattern:
        return cls(
            id=row["id"],
            original_text=row["original_text"],
            normalized_text=row["normalized_text"],
            primitive=primitive_from_dict(row["primitive"]),
            confidence=row["confidence"],
            source_journeys=list(row.get("source_journeys") or []),
            success_count=row.get("success_count") or 0,
            fail_count=row.get("fail_count") or 0,
            last_used=row.get("last_used"),
            created_at=row.get("created_at"),
            promoted=bool(row.get("promoted")),
            promoted_at=row.get("promoted_at"),
        )


@dataclass
class PromotionCandidate:
    pattern: LearnedPattern
    regex: str
    priority: float


@dataclass
class PatternStats:
    total: int = 0
    promoted: int = 0
    high_confidence: int = 0
    low_confidence: int = 0
    avg_confidence: float = 0.0
    total_successes: int = 0
    total_failures: int = 0


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class LearnedPatternIndex:
    """Learned patterns backed by the ``learned_patterns`` table.

    Implements the matcher's learned-pattern source: pass an instance as
    ``PatternMatcher(learned=...)``.
    """

    def __init__(self, store: DataStore, registry: Optional[GlossaryRegistry] = None):
        self.store = store
        self._registry = registry

    @property
    def registry(self) -> GlossaryRegistry:
        return self._registry or get_default_registry()

    def normalize(self, text: str) -> str:
        normalized = self.registry.normalize_step_text(text.strip()).lower()
        return re.sub(r"\s+", " ", normalized)

    def get(self, text: str) -> Optional[LearnedPattern]:
        row = self.store.get_learned_pattern(self.normalize(text))
        return LearnedPattern.from_row(row) if row else None

    def all(self, include_promoted: bool = True) -> list[LearnedPattern]:
        return [
            LearnedPattern.from_row(r)
            for r in self.store.list_learned_patterns(include_promoted)
        ]

    # ── Matching ─────────────────────────────────────────────────────

    def match(
        self,
        normalized_text: str,
        min_confidence: float = INITIAL_CONFIDENCE,
        min_similarity: float = MIN_FUZZY_SIMILARITY,
    ) -> Optional[LearnedMatch]:
        key = re.sub(r"\s+", " ", normalized_text.strip().lower())
        candidates = self.all(include_promoted=False)

        for p in candidates:
            if p.normalized_text == key and p.confidence >= min_confidence:
                return LearnedMatch(p.id, p.primitive, p.confidence)

        best: Optional[LearnedPattern] = None
        best_similarity = 0.0
        for p in candidates:
            if p.confidence < min_confidence:
                continue
            similarity = calculate_similarity(key, p.normalized_text)
            if similarity >= min_similarity and similarity > best_similarity:
                best, best_similarity = p, similarity

        if best is None:
            return None
        adjusted = best.confidence * best_similarity
        if adjusted < min_confidence:
            return None
        logger.debug("Fuzzy learned match %s (%.2f) for %r", best.id, best_similarity, key)
        return LearnedMatch(best.id, best.primitive, adjusted)

    # ── Recording ────────────────────────────────────────────────────

    def record_success(
        self, original_text: str, primitive: Primitive, journey_id: str
    ) -> LearnedPattern:
        pattern = self.get(original_text)
        now = _now()
        if pattern is None:
            pattern = LearnedPattern(
                id=f"LP{uuid.uuid4().hex[:12]}",
                original_text=original_text.strip(),
                normalized_text=self.normalize(original_text),
                primitive=primitive,
                confidence=INITIAL_CONFIDENCE,
                source_journeys=[journey_id],
                success_count=1,
                created_at=now,
            )
        else:
            pattern.success_count += 1
            pattern.confidence = calculate_confidence(pattern.success_count, pattern.fail_count)
            if journey_id not in pattern.source_journeys:
                pattern.source_journeys.append(journey_id)
        pattern.last_used = now
        self.store.upsert_learned_pattern(pattern.to_row())
        return pattern

    def record_failure(self, original_text: str) -> Optional[LearnedPattern]:
        pattern = self.get(original_text)
        if pattern is None:
            return None
        pattern.fail_count += 1
        pattern.confidence = calculate_confidence(pattern.success_count, pattern.fail_count)
        pattern.last_used = _now()
        self.store.upsert_learned_pattern(pattern.to_row())
        return pattern

    # ── Promotion and housekeeping ───────────────────────────────────

    def get_promotable(self, min_source_journeys: int = 1) -> list[PromotionCandidate]:
        candidates = [
            PromotionCandidate(
                pattern=p,
                regex=generate_regex_from_text(p.original_text),
                priority=p.success_count * p.confidence,
            )
            for p in self.all(include_promoted=False)
            if p.confidence >= PROMOTION_CONFIDENCE
            and p.success_count >= PROMOTION_MIN_SUCCESS
            and len(p.source_journeys) >= min_source_journeys
        ]
        return sorted(candidates, key=lambda c: c.priority, reverse=True)

    def mark_promoted(self, pattern_ids: list[str]) -> int:
        now = _now()
        count = 0
        for p in self.all(include_promoted=False):
            if p.id in pattern_ids:
                p.promoted = True
                p.promoted_at = now
                self.store.upsert_learned_pattern(p.to_row())
                count += 1
        return count

    def prune(
        self,
        min_confidence: float = 0.3,
        min_success: int = 1,
        max_age_days: int = 90,
    ) -> int:
        """Delete weak patterns. Promoted ones are always kept."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=max_age_days)
        doomed = []
        for p in self.all():
            if p.promoted:
                continue
            if p.confidence < min_confidence:
                doomed.append(p.id)
            elif min_success > 0 and p.success_count < min_success:
                doomed.append(p.id)
            elif p.success_count == 0 and p.created_at:
                created = datetime.fromisoformat(p.created_at)
                if created.tzinfo is None:
                    created = created.replace(tzinfo=timezone.utc)
                if created < cutoff:
                    doomed.append(p.id)
        removed = self.store.delete_learned_patterns(doomed)
        if removed:
            logger.info("Pruned %d learned patterns", removed)
        return removed

    def stats(self) -> PatternStats:
        patterns = self.all()
        if not patterns:
            return PatternStats()
        return PatternStats(
            total=len(patterns),
            promoted=sum(1 for p in patterns if p.promoted),
            high_confidence=sum(1 for p in patterns if p.confidence >= 0.7),
            low_confidence=sum(1 for p in patterns if p.confidence < 0.3),
            avg_confidence=sum(p.confidence for p in patterns) / len(patterns),
            total_successes=sum(p.success_count for p in patterns),
            total_failures=sum(p.fail_count for p in patterns),
        )

    # ── Import / export ──────────────────────────────────────────────

    def import_json(self, path: str) -> int:
        """Import a ``learned-patterns.json`` file; returns how many were stored.

        Entries with an unknown primitive type are skipped with a warning.

        Raises:
            OSError: If the file cannot be read.
            ValueError: If the file is not a pattern export.
        """
        with open(path) as f:
            data = json.load(f)
        raw = data.get("patterns") if isinstance(data, dict) else None
        if not isinstance(raw, list):
            raise ValueError(f"{path} has no 'patterns' list")

        imported = 0
        for entry in raw:
            try:
                primitive = primitive_from_dict(entry.get("mappedPrimitive") or entry["primitive"])
                original = entry["originalText"]
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping learned pattern %r: %s", entry, e)
                continue
            success = int(entry.get("successCount", 0))
            fail = int(entry.get("failCount", 0))
            pattern = LearnedPattern(
                id=entry.get("id") or f"LP{uuid.uuid4().hex[:12]}",
                original_text=original,
                normalized_text=self.normalize(original),
                primitive=primitive,
                confidence=float(entry.get("confidence", calculate_confidence(success, fail))),
                source_journeys=list(entry.get("sourceJourneys") or []),
                success_count=success,
                fail_count=fail,
                last_used=entry.get("lastUsed"),
                created_at=entry.get("createdAt") or _now(),
                promoted=bool(entry.get("promotedToCore")),
                promoted_at=entry.get("promotedAt"),
            )
            self.store.upsert_learned_pattern(pattern.to_row())
            imported += 1
        return imported

    def export_config(self, min_confidence: float = 0.7) -> dict[str, Any]:
        """Patterns worth shipping to other projects, as trigger regexes."""
        return {
            "version": "1.0.0",
            "exportedAt": _now(),
            "patterns": [
                {
                    "id": p.id,
                    "trigger": generate_regex_from_text(p.original_text),
                    "primitive": p.primitive.to_dict(),
                    "confidence": p.confidence,
                    "sourceCount": len(p.source_journeys),
                }
                for p in self.all(include_promoted=False)
                if p.confidence >= min_confidence
            ],
        }
