"""Glossary — synonyms, label aliases and module-method phrases for step text.

The core glossary ships with the package. A user glossary (YAML) can add
entries but never replaces a core mapping. An extended glossary exported
from the learned-pattern knowledge base (JSON) maps whole phrases to IR
primitives and sits below the core phrases in lookup precedence.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Optional

import yaml

from journey_autogen.core.ir import (
    CallModule,
    LocatorSpec,
    LocatorStrategy,
    Primitive,
    primitive_from_dict,
)

logger = logging.getLogger(__name__)


@dataclass
class GlossaryEntry:
    canonical: str
    synonyms: list[str] = field(default_factory=list)


@dataclass
class LabelAlias:
    label: str
    testid: Optional[str] = None
    role: Optional[str] = None
    selector: Optional[str] = None

    def to_locator(self) -> Optional[LocatorSpec]:
        # testid > role > css
        if self.testid:
            return LocatorSpec(LocatorStrategy.TESTID, self.testid)
        if self.role:
            return LocatorSpec(LocatorStrategy.ROLE, self.role)
        if self.selector:
            return LocatorSpec(LocatorStrategy.CSS, self.selector)
        return None


@dataclass
class ModuleMethod:
    phrase: str
    module: str
    method: str
    params: dict[str, str] = field(default_factory=dict)

    def to_primitive(self) -> CallModule:
        return CallModule(
            module=self.module,
            method=self.method,
            args=[dict(self.params)] if self.params else [],
        )


@dataclass
class Glossary:
    version: int = 1
    entries: list[GlossaryEntry] = field(default_factory=list)
    label_aliases: list[LabelAlias] = field(default_factory=list)
    module_methods: list[ModuleMethod] = field(default_factory=list)


@dataclass
class ExtendedGlossaryLoad:
    loaded: bool
    entry_count: int = 0
    exported_at: Optional[str] = None
    error: Optional[str] = None


_CORE_GLOSSARY = Glossary(
    version=1,
    label_aliases=[
        LabelAlias("email", testid="email-input", role="textbox"),
        LabelAlias("password", testid="password-input", role="textbox"),
        LabelAlias("username", testid="username-input", role="textbox"),
        LabelAlias("search", testid="search-input", role="searchbox"),
        LabelAlias("submit", testid="submit-button", role="button"),
        LabelAlias("cancel", testid="cancel-button", role="button"),
        LabelAlias("close", testid="close-button", role="button"),
    ],
    module_methods=[
        ModuleMethod("log in", "auth", "login"),
        ModuleMethod("login", "auth", "login"),
        ModuleMethod("sign in", "auth", "login"),
        ModuleMethod("log out", "auth", "logout"),
        ModuleMethod("logout", "auth", "logout"),
        ModuleMethod("sign out", "auth", "logout"),
        ModuleMethod("navigate to", "navigation", "goToPath"),
        ModuleMethod("go to", "navigation", "goToPath"),
        ModuleMethod("open", "navigation", "goToPath"),
        ModuleMethod("fill form", "forms", "fillForm"),
        ModuleMethod("submit form", "forms", "submitForm"),
        ModuleMethod("wait for", "waits", "waitForSignal"),
    ],
    entries=[
        GlossaryEntry("click", ["press", "tap", "select", "hit"]),
        GlossaryEntry("enter", ["type", "fill", "input", "write"]),
        GlossaryEntry("navigate", ["go", "open", "visit", "browse"]),
        GlossaryEntry("see", ["view", "observe", "notice", "find"]),
        GlossaryEntry("visible", ["displayed", "shown", "present"]),
        GlossaryEntry("button", ["btn", "action", "cta"]),
        GlossaryEntry("field", ["input", "textbox", "text field", "text input"]),
        GlossaryEntry(
            "dropdown", ["select", "combo", "combobox", "selector", "picker"]
        ),
        GlossaryEntry("checkbox", ["check", "tick", "toggle"]),
        GlossaryEntry("login", ["log in", "sign in", "authenticate"]),
        GlossaryEntry("logout", ["log out", "sign out", "exit"]),
        GlossaryEntry("submit", ["send", "save", "confirm", "ok"]),
        GlossaryEntry("cancel", ["close", "dismiss", "abort", "back"]),
        GlossaryEntry("success", ["passed", "completed", "done", "finished"]),
        GlossaryEntry("error", ["failure", "failed", "problem", "issue"]),
        GlossaryEntry("toast", ["notification", "message", "alert", "snackbar"]),
        GlossaryEntry("modal", ["dialog", "popup", "overlay", "lightbox"]),
        GlossaryEntry("user", ["customer", "visitor", "member", "client"]),
        GlossaryEntry("page", ["screen", "view", "section"]),
        GlossaryEntry("form", ["questionnaire", "survey", "wizard"]),
    ],
)


def core_glossary() -> Glossary:
    """Return a fresh copy of the built-in glossary."""
    return copy.deepcopy(_CORE_GLOSSARY)


def merge_glossaries(base: Glossary, extension: Glossary) -> Glossary:
    """Merge ``extension`` into ``base``.

    New entries, aliases and phrases are appended; synonyms of an existing
    canonical term are unioned. An alias or phrase already in ``base`` is
    kept as is.
    """
    merged = copy.deepcopy(base)
    merged.version = max(base.version, extension.version)

    by_canonical = {e.canonical.lower(): e for e in merged.entries}
    for entry in extension.entries:
        existing = by_canonical.get(entry.canonical.lower())
        if existing is None:
            new_entry = copy.deepcopy(entry)
            merged.entries.append(new_entry)
            by_canonical[entry.canonical.lower()] = new_entry
            continue
        for syn in entry.synonyms:
            if syn not in existing.synonyms:
                existing.synonyms.append(syn)

    labels = {a.label.lower() for a in merged.label_aliases}
    for alias in extension.label_aliases:
        if alias.label.lower() not in labels:
            merged.label_aliases.append(copy.deepcopy(alias))
            labels.add(alias.label.lower())

    phrases = {m.phrase.lower() for m in merged.module_methods}
    for mm in extension.module_methods:
        if mm.phrase.lower() not in phrases:
            merged.module_methods.append(copy.deepcopy(mm))
            phrases.add(mm.phrase.lower())

    return merged


def parse_glossary(data: Any) -> Glossary:
    """Build a Glossary from parsed YAML/JSON data.

    Raises:
        ValueError: If the data does not follow the glossary schema.
    """
    if not isinstance(data, dict):
        raise ValueError("glossary must be a mapping")
    entries_raw = data.get("entries")
    if not isinstance(entries_raw, list):
        raise ValueError("glossary 'entries' must be a list")

    try:
        entries = [
            GlossaryEntry(str(e["canonical"]), [str(s) for s in e["synonyms"]])
            for e in entries_raw
        ]
        aliases = [
            LabelAlias(
                label=str(a["label"]),
                testid=a.get("testid"),
                role=a.get("role"),
                selector=a.get("selector"),
            )
            for a in data.get("labelAliases") or []
        ]
        methods = [
            ModuleMethod(
                phrase=str(m["phrase"]),
                module=str(m["module"]),
                method=str(m["method"]),
                params={str(k): str(v) for k, v in (m.get("params") or {}).items()},
            )
            for m in data.get("moduleMethods") or []
        ]
    except (KeyError, TypeError, AttributeError) as e:
        raise ValueError(f"invalid glossary entry: {e}") from e

    return Glossary(
        version=int(data.get("version", 1)),
        entries=entries,
        label_aliases=aliases,
        module_methods=methods,
    )


def load_glossary_file(path: str) -> Glossary:
    """Load a user glossary and merge it over the core glossary.

    A missing or invalid file falls back to the core glossary.
    """
    resolved = os.path.abspath(path)
    if not os.path.exists(resolved):
        logger.warning("Glossary file not found at %s, using defaults", resolved)
        return core_glossary()
    try:
        with open(resolved) as f:
            data = yaml.safe_load(f)
        user = parse_glossary(data)
    except (OSError, yaml.YAMLError, ValueError) as e:
        logger.warning("Invalid glossary file at %s (%s), using defaults", resolved, e)
        return core_glossary()
    return merge_glossaries(core_glossary(), user)


def _word_in(phrase: str, text: str) -> bool:
    return re.search(rf"(?<!\w){re.escape(phrase)}(?!\w)", text) is not None


class GlossaryRegistry:
    """Loaded glossary plus derived lookup tables.

    Lazily initialised on first use and cached until ``reset()``.
    """

    def __init__(
        self,
        glossary: Optional[Glossary] = None,
        glossary_path: Optional[str] = None,
    ):
        self._initial = glossary
        self._path = glossary_path
        self._glossary: Optional[Glossary] = None
        self._synonyms: dict[str, str] = {}
        self._extended: dict[str, Primitive] = {}
        self._extended_meta: dict[str, Any] = {}

    # ── Lifecycle ────────────────────────────────────────────────────

    @property
    def glossary(self) -> Glossary:
        return self._ensure_loaded()

    def _ensure_loaded(self) -> Glossary:
        if self._glossary is None:
            if self._initial is not None:
                self._glossary = merge_glossaries(core_glossary(), self._initial)
            elif self._path:
                self._glossary = load_glossary_file(self._path)
            else:
                self._glossary = core_glossary()
            self._synonyms = self._build_synonym_map(self._glossary)
        return self._glossary

    def reset(self) -> None:
        """Drop the cached glossary and any extended entries."""
        self._glossary = None
        self._synonyms = {}
        self.clear_extended()

    def load(self, glossary_path: str) -> None:
        self._path = glossary_path
        self._initial = None
        self._glossary = None

    @staticmethod
    def _build_synonym_map(glossary: Glossary) -> dict[str, str]:
        mapping: dict[str, str] = {}
        for entry in glossary.entries:
            for syn in entry.synonyms:
                mapping[syn.lower()] = entry.canonical
        # Canonical terms always map to themselves
        for entry in glossary.entries:
            mapping[entry.canonical.lower()] = entry.canonical
        return mapping

    # ── Extended glossary ────────────────────────────────────────────

    def load_extended(self, path: str) -> ExtendedGlossaryLoad:
        """Load an extended glossary export (``{"entries": {...}, "meta": {...}}``)."""
        resolved = os.path.abspath(path)
        if not os.path.exists(resolved):
            return ExtendedGlossaryLoad(
                loaded=False, error=f"Glossary file not found: {resolved}"
            )
        try:
            with open(resolved) as f:
                data = json.load(f)
            raw_entries = data["entries"]
            if not isinstance(raw_entries, dict):
                raise ValueError("'entries' must be an object")
            entries = {
                term.lower().strip(): primitive_from_dict(prim)
                for term, prim in raw_entries.items()
            }
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            return ExtendedGlossaryLoad(
                loaded=False, error=f"Failed to load glossary: {e}"
            )
        self._extended = entries
        self._extended_meta = dict(data.get("meta") or {})
        return ExtendedGlossaryLoad(
            loaded=True,
            entry_count=len(entries),
            exported_at=self._extended_meta.get("exportedAt"),
        )

    def set_extended(self, entries: dict[str, Primitive]) -> None:
        self._extended = {k.lower().strip(): v for k, v in entries.items()}

    def clear_extended(self) -> None:
        self._extended = {}
        self._extended_meta = {}

    def has_extended(self) -> bool:
        return bool(self._extended)

    # ── Synonyms ─────────────────────────────────────────────────────

    def resolve_canonical(self, term: str) -> str:
        self._ensure_loaded()
        return self._synonyms.get(term.lower(), term)

    def normalize_step_text(self, text: str) -> str:
        """Replace synonyms with canonical terms, leaving quoted text alone."""
        self._ensure_loaded()
        parts = []
        for match in re.finditer(r"(['\"][^'\"]+['\"])|(\S+)", text):
            part = match.group(0)
            if part[0] in "'\"":
                parts.append(part)
            else:
                parts.append(self._synonyms.get(part.lower(), part))
        return " ".join(parts)

    def get_synonyms(self, canonical: str) -> list[str]:
        for entry in self.glossary.entries:
            if entry.canonical.lower() == canonical.lower():
                return list(entry.synonyms)
        return []

    def is_synonym_of(self, term: str, canonical: str) -> bool:
        return self.resolve_canonical(term).lower() == canonical.lower()

    # ── Labels and module methods ────────────────────────────────────

    def find_label_alias(self, label: str) -> Optional[LabelAlias]:
        wanted = label.lower().strip()
        for alias in self.glossary.label_aliases:
            if alias.label.lower() == wanted:
                return alias
        return None

    def locator_for_label(self, label: str) -> Optional[LocatorSpec]:
        alias = self.find_label_alias(label)
        return alias.to_locator() if alias else None

    def exact_module_method(self, text: str) -> Optional[ModuleMethod]:
        wanted = text.lower().strip()
        for mm in self.glossary.module_methods:
            if mm.phrase.lower() == wanted:
                return mm
        return None

    def find_module_method(self, text: str) -> Optional[ModuleMethod]:
        """Longest module-method phrase contained in ``text`` as whole words."""
        normalized = text.lower().strip()
        best: Optional[ModuleMethod] = None
        for mm in self.glossary.module_methods:
            phrase = mm.phrase.lower()
            if best is not None and len(phrase) <= len(best.phrase):
                continue
            if _word_in(phrase, normalized):
                best = mm
        return best

    # ── Lookup ───────────────────────────────────────────────────────

    def lookup_exact(self, term: str) -> Optional[Primitive]:
        """Exact phrase lookup: core phrases first, then extended entries."""
        normalized = term.lower().strip()
        core = self.exact_module_method(normalized)
        if core is not None:
            return core.to_primitive()
        extended = self._extended.get(normalized)
        if extended is not None:
            return copy.deepcopy(extended)
        return None

    def lookup_glossary(self, term: str) -> Optional[Primitive]:
        """Core exact > extended exact > core substring."""
        found = self.lookup_exact(term)
        if found is not None:
            return found
        mm = self.find_module_method(term)
        return mm.to_primitive() if mm else None

    def stats(self) -> dict[str, Any]:
        return {
            "core_entries": len(self.glossary.module_methods),
            "label_aliases": len(self.glossary.label_aliases),
            "synonym_entries": len(self.glossary.entries),
            "extended_entries": len(self._extended),
            "extended_exported_at": self._extended_meta.get("exportedAt"),
        }


# ── Default registry ─────────────────────────────────────────────────

_default_registry: Optional[GlossaryRegistry] = None


def get_default_registry() -> GlossaryRegistry:
    global _default_registry
    if _default_registry is None:
        _default_registry = GlossaryRegistry()
    return _default_registry


def reset_default_registry(glossary_path: Optional[str] = None) -> GlossaryRegistry:
    """Replace the process-wide registry, optionally from a user glossary."""
    global _default_registry
    _default_registry = GlossaryRegistry(glossary_path=glossary_path)
    return _default_registry


def normalize_step_text(text: str) -> str:
    return get_default_registry().normalize_step_text(text)


def resolve_canonical(term: str) -> str:
    return get_default_registry().resolve_canonical(term)


def find_label_alias(label: str) -> Optional[LabelAlias]:
    return get_default_registry().find_label_alias(label)


def find_module_method(text: str) -> Optional[ModuleMethod]:
    return get_default_registry().find_module_method(text)


def lookup_glossary(term: str) -> Optional[Primitive]:
    return get_default_registry().lookup_glossary(term)
