"""Machine hints embedded in step text, e.g. ``Click Save (role=button, name=Save)``."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from journey_autogen.core.ir import LocatorSpec, LocatorStrategy

logger = logging.getLogger(__name__)

_VALUE = r"(?:\"[^\"]+\"|'[^']+'|[^,)\s]+)"
HINTS_SECTION = re.compile(rf"`?\((?:[a-z]+={_VALUE}(?:,\s*)?)+\)`?", re.IGNORECASE)
HINT_PAIR = re.compile(r"([a-z]+)=(?:\"([^\"]+)\"|'([^']+)'|([^,)\s]+))", re.IGNORECASE)

KNOWN_HINTS = frozenset({
    "role", "testid", "label", "text", "name", "exact", "level",
    "signal", "module", "wait", "timeout",
})

VALID_ROLES = frozenset({
    "alert", "alertdialog", "article", "banner", "button", "cell", "checkbox",
    "columnheader", "combobox", "complementary", "contentinfo", "dialog",
    "document", "form", "grid", "gridcell", "group", "heading", "img", "link",
    "list", "listbox", "listitem", "main", "menu", "menubar", "menuitem",
    "menuitemcheckbox", "menuitemradio", "navigation", "option",
    "progressbar", "radio", "radiogroup", "region", "row", "rowheader",
    "search", "searchbox", "separator", "slider", "spinbutton", "status",
    "switch", "tab", "table", "tablist", "tabpanel", "textbox", "timer",
    "toolbar", "tooltip", "tree", "treegrid", "treeitem",
})


@dataclass
class StepHints:
    clean_text: str
    role: Optional[str] = None
    testid: Optional[str] = None
    label: Optional[str] = None
    text: Optional[str] = None
    name: Optional[str] = None
    exact: bool = False
    level: Optional[int] = None
    module: Optional[str] = None
    timeout: Optional[int] = None
    warnings: list[str] = field(default_factory=list)

    @property
    def has_locator(self) -> bool:
        return bool(self.role or self.testid or self.label or self.text)

    def to_locator(self) -> Optional[LocatorSpec]:
        """testid > role (with name/level) > label > text."""
        if self.testid:
            return LocatorSpec(LocatorStrategy.TESTID, self.testid)
        if self.role:
            options: dict = {}
            name = self.name or self.label
            if name:
                options["name"] = name
            if self.exact:
                options["exact"] = True
            if self.level is not None:
                options["level"] = self.level
            return LocatorSpec(LocatorStrategy.ROLE, self.role, options)
        extra = {"exact": True} if self.exact else {}
        if self.label:
            return LocatorSpec(LocatorStrategy.LABEL, self.label, dict(extra))
        if self.text:
            return LocatorSpec(LocatorStrategy.TEXT, self.text, dict(extra))
        return None


def extract_hints(text: str) -> Optional[StepHints]:
    """Pull hint sections out of ``text``; None when the text carries none."""
    sections = HINTS_SECTION.findall(text)
    if not sections:
        return None

    hints = StepHints(clean_text=HINTS_SECTION.sub("", text).strip())
    for section in sections:
        for m in HINT_PAIR.finditer(section):
            key = m.group(1).lower()
            value = m.group(2) or m.group(3) or m.group(4)
            if key not in KNOWN_HINTS:
                hints.warnings.append(f"Unknown hint type: {key}")
                continue
            if key == "role" and value.lower() not in VALID_ROLES:
                hints.warnings.append(f"Invalid ARIA role: {value}")
            if key == "exact":
                hints.exact = value.lower() == "true"
            elif key in ("level", "timeout"):
                if not value.isdigit():
                    hints.warnings.append(f"Expected a number for {key}: {value}")
                    continue
                setattr(hints, key, int(value))
            elif key in ("signal", "wait"):
                # Behaviour hints with no IR counterpart are accepted and dropped
                continue
            else:
                setattr(hints, key, value)

    for warning in hints.warnings:
        logger.debug("Hint warning in %r: %s", text, warning)
    return hints


def split_module_hint(value: str) -> Optional[tuple[str, str]]:
    """``"auth.login"`` -> ``("auth", "login")``."""
    module, sep, method = value.partition(".")
    if not sep or not module or not method:
        return None
    return module, method
