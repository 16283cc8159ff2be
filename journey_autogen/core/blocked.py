"""Blocked-step analysis: categories, suggestions and pattern-gap grouping."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from journey_autogen.core.fuzzy import NearestPattern, find_nearest_pattern

CATEGORIES = ("navigation", "interaction", "assertion", "wait", "unknown")

_CATEGORY_KEYWORDS = [
    ("navigation", ("navigate", "go to", "open", "visit")),
    ("interaction", (
        "click", "fill", "enter", "type", "select", "check", "press",
        "submit", "input",
    )),
    ("assertion", (
        "see", "visible", "verify", "assert", "confirm", "should", "ensure",
        "expect", "display",
    )),
    ("wait", ("wait", "load", "until", "appear")),
]


def categorize_step_text(text: str) -> str:
    lower = text.lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(kw in lower for kw in keywords):
            return category
    return "unknown"


def normalize_for_telemetry(text: str) -> str:
    """Lowercase, drop articles, blank out quoted values. Used to group similar gaps."""
    out = text.lower().strip()
    out = re.sub(r"\b(the|a|an)\b", "", out)
    out = re.sub(r"\s+", " ", out)
    out = re.sub(r'"[^"]*"', '""', out)
    out = re.sub(r"'[^']*'", "''", out)
    return out.strip()


def infer_machine_hint(text: str) -> Optional[str]:
    quoted = re.search(r"['\"]([^'\"]+)['\"]", text)
    if not quoted:
        return None
    name = quoted.group(1)
    lower = text.lower()
    if "link" in lower:
        return f"(role=link, name={name})"
    if "button" in lower or "click" in lower:
        return f"(role=button, name={name})"
    if any(kw in lower for kw in ("field", "input", "enter", "type")):
        return f"(role=textbox, name={name})"
    if "heading" in lower:
        return f"(role=heading, name={name})"
    if "checkbox" in lower:
        return f"(role=checkbox, name={name})"
    return f"(text={name})"


@dataclass
class Suggestion:
    priority: int
    text: str
    explanation: str
    confidence: float


def _first_quoted(text: str, default: str) -> str:
    m = re.search(r"['\"]([^'\"]+)['\"]", text)
    return m.group(1) if m else default


def suggest_rewrites(text: str, category: Optional[str] = None) -> list[Suggestion]:
    """Rephrasings of a blocked step that the pattern table understands."""
    category = category or categorize_step_text(text)
    lower = text.lower()

    if category == "navigation":
        path = re.search(r"/[a-zA-Z0-9/_-]+", text)
        if path:
            return [Suggestion(1, f"User navigates to {path.group(0)}",
                               "Standard navigation pattern", 0.9)]
        return [Suggestion(1, "User navigates to /[path]", "Add explicit URL path", 0.5)]

    if category == "interaction":
        name = _first_quoted(text, "[element]")
        out = []
        if "click" in lower:
            out.append(Suggestion(
                1, f"User clicks '{name}' button (role=button, name={name})",
                "Add role=button locator hint", 0.85,
            ))
        if any(kw in lower for kw in ("fill", "enter", "type")):
            out.append(Suggestion(
                1, f"User enters 'value' in '{name}' field (role=textbox, name={name})",
                "Add role=textbox locator hint", 0.85,
            ))
        return out

    if category == "assertion":
        content = _first_quoted(text, "[content]")
        return [
            Suggestion(1, f"User should see '{content}'",
                       "Standard visibility assertion", 0.8),
            Suggestion(2, f"**Assert**: '{content}' is visible",
                       "Structured assertion format", 0.7),
        ]

    if category == "wait":
        return [
            Suggestion(1, "Wait for network idle", "Standard network wait pattern", 0.8),
            Suggestion(2, "Wait until the page is loaded", "Wait for load completion", 0.7),
        ]

    return [Suggestion(1, f"**Action**: {text}",
                       "Use structured format with Action prefix", 0.5)]


@dataclass
class BlockedStepAnalysis:
    step: str
    reason: str
    category: str
    suggestions: list[Suggestion] = field(default_factory=list)
    nearest_pattern: Optional[NearestPattern] = None
    machine_hint: Optional[str] = None


def analyze_blocked_step(
    step: str, reason: str = "No matching pattern"
) -> BlockedStepAnalysis:
    category = categorize_step_text(step)
    return BlockedStepAnalysis(
        step=step,
        reason=reason,
        category=category,
        suggestions=suggest_rewrites(step, category),
        nearest_pattern=find_nearest_pattern(step),
        machine_hint=infer_machine_hint(step),
    )


# ── Telemetry records ────────────────────────────────────────────────


@dataclass
class BlockedStepRecord:
    step_text: str
    reason: str
    journey_id: str = ""
    category: str = ""
    normalized_text: str = ""
    nearest_pattern: Optional[str] = None
    nearest_distance: Optional[int] = None
    suggested_fix: Optional[str] = None
    timestamp: str = ""

    def __post_init__(self):
        if not self.category:
            self.category = categorize_step_text(self.step_text)
        if not self.normalized_text:
            self.normalized_text = normalize_for_telemetry(self.step_text)
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()

    @classmethod
    def from_analysis(
        cls, analysis: BlockedStepAnalysis, journey_id: str = ""
    ) -> BlockedStepRecord:
        nearest = analysis.nearest_pattern
        return cls(
            step_text=analysis.step,
            reason=analysis.reason,
            journey_id=journey_id,
            category=analysis.category,
            nearest_pattern=nearest.name if nearest else None,
            nearest_distance=nearest.distance if nearest else None,
            suggested_fix=analysis.suggestions[0].text if analysis.suggestions else None,
        )


@dataclass
class PatternGap:
    example_text: str
    normalized_text: str
    count: int
    category: str
    variants: list[str]
    suggested_pattern: Optional[str]
    first_seen: str
    last_seen: str


def token_similarity(a: str, b: str) -> float:
    """Jaccard similarity of whitespace tokens."""
    ta = set(a.split())
    tb = set(b.split())
    if not ta and not tb:
        return 1.0
    if not ta or not tb:
        return 0.0
    return len(ta & tb) / len(ta | tb)


def suggest_pattern_regex(variants: list[str]) -> Optional[str]:
    if not variants:
        return None
    example = variants[0].lower()
    parts = re.split(r"(\"[^\"]+\"|'[^']+')", example)
    body = "".join(
        '"([^"]+)"' if p.startswith('"') else
        "'([^']+)'" if p.startswith("'") else
        re.escape(p)
        for p in parts if p
    )
    return rf"^(?:user\s+)?{body}$"


def find_pattern_gaps(
    records: Iterable[BlockedStepRecord],
    threshold: float = 0.7,
    limit: Optional[int] = None,
) -> list[PatternGap]:
    """Group similar blocked steps and rank the groups by frequency."""
    pending = list(records)
    gaps = []
    while pending:
        head = pending.pop(0)
        group = [head]
        rest = []
        for other in pending:
            if token_similarity(head.normalized_text, other.normalized_text) >= threshold:
                group.append(other)
            else:
                rest.append(other)
        pending = rest

        stamps = sorted(r.timestamp for r in group)
        variants = list(dict.fromkeys(r.step_text for r in group))
        gaps.append(PatternGap(
            example_text=head.step_text,
            normalized_text=head.normalized_text,
            count=len(group),
            category=head.category,
            variants=variants,
            suggested_pattern=suggest_pattern_regex(variants),
            first_seen=stamps[0],
            last_seen=stamps[-1],
        ))

    gaps.sort(key=lambda g: g.count, reverse=True)
    return gaps[:limit] if limit else gaps
