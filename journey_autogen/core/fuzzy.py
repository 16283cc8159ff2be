"""Edit-distance helpers and the nearest-pattern explainer for unmatched steps."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from journey_autogen.core.patterns import ALL_PATTERNS, StepPattern


@dataclass
class NearestPattern:
    name: str
    distance: int
    similarity: float
    example: str
    mismatch_reason: str

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "distance": self.distance,
            "similarity": round(self.similarity, 3),
            "example": self.example,
            "mismatchReason": self.mismatch_reason,
        }


def levenshtein_distance(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        curr = [i]
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                curr.append(prev[j - 1])
            else:
                curr.append(1 + min(prev[j - 1], prev[j], curr[j - 1]))
        prev = curr
    return prev[-1]


def calculate_similarity(a: str, b: str) -> float:
    """1 - distance / longer length, case-insensitive. Two empty strings are identical."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a.lower(), b.lower()) / longest


def infer_required_keywords(pattern: StepPattern) -> Optional[list[str]]:
    name = pattern.name.lower()
    if "navigate" in name:
        return ["navigate", "go", "open"]
    if "click" in name:
        return ["click", "press", "tap"]
    if "fill" in name or "enter" in name:
        return ["enter", "type", "fill", "input"]
    if "see" in name or "visible" in name:
        return ["see", "visible", "shown"]
    if "wait" in name:
        return ["wait"]
    return None


def explain_mismatch(text: str, pattern: StepPattern) -> str:
    """Human-readable reasons why ``text`` did not hit ``pattern``."""
    reasons = []
    lower = text.lower()

    keywords = infer_required_keywords(pattern)
    if keywords:
        missing = [kw for kw in keywords if kw not in lower]
        if missing:
            reasons.append(f"Missing keywords: {', '.join(missing)}")

    if "(" not in text and "testid=" not in text and "role=" not in text:
        reasons.append("Missing locator hint (e.g., testid=..., role=button)")

    if pattern.primitive_type == "click" and not re.search(r"['\"].+?['\"]", text):
        reasons.append("Target element name not quoted")

    return "; ".join(reasons) if reasons else "Pattern format mismatch"


def find_nearest_pattern(
    text: str, patterns: Iterable[StepPattern] = ALL_PATTERNS
) -> Optional[NearestPattern]:
    """Pattern whose declared example is closest to ``text`` by edit distance."""
    normalized = text.lower().strip()
    best: Optional[tuple[int, StepPattern, str]] = None

    for pattern in patterns:
        for example in pattern.examples:
            distance = levenshtein_distance(normalized, example.lower())
            if best is None or distance < best[0]:
                best = (distance, pattern, example)

    if best is None:
        return None
    distance, pattern, example = best
    return NearestPattern(
        name=pattern.name,
        distance=distance,
        similarity=calculate_similarity(normalized, example),
        example=example,
        mismatch_reason=explain_mismatch(text, pattern),
    )
