"""Tests for journey_autogen.core.glossary."""

from __future__ import annotations

import json

import pytest

from journey_autogen.core import glossary as glossary_mod
from journey_autogen.core.glossary import (
    Glossary,
    GlossaryEntry,
    GlossaryRegistry,
    LabelAlias,
    ModuleMethod,
    core_glossary,
    load_glossary_file,
    merge_glossaries,
    parse_glossary,
    reset_default_registry,
)
from journey_autogen.core.ir import CallModule, Click, LocatorStrategy, make_locator

USER_GLOSSARY = """\
version: 2
entries:
  - canonical: click
    synonyms: [smash]
  - canonical: cart
    synonyms: [basket, bag]
labelAliases:
  - label: email
    testid: my-email
  - label: coupon
    selector: "#coupon"
moduleMethods:
  - phrase: add to cart
    module: cart
    method: addItem
    params:
      quantity: "1"
  - phrase: log in
    module: custom
    method: signIn
"""


@pytest.fixture
def user_glossary_path(tmp_path):
    path = tmp_path / "glossary.yaml"
    path.write_text(USER_GLOSSARY)
    return str(path)


# ---------------------------------------------------------------------------
# Synonyms
# ---------------------------------------------------------------------------

class TestSynonyms:
    def test_normalize_replaces_synonyms(self, registry):
        assert registry.normalize_step_text("Customer tap the btn") == "user click the button"

    def test_normalize_keeps_quoted_text(self, registry):
        assert registry.normalize_step_text("tap 'Save Draft' btn") == "click 'Save Draft' button"

    def test_canonical_maps_to_itself(self, registry):
        assert registry.resolve_canonical("Click") == "click"
        assert registry.resolve_canonical("zebra") == "zebra"

    def test_get_synonyms(self, registry):
        assert "tap" in registry.get_synonyms("click")
        assert registry.get_synonyms("unknown") == []

    def test_is_synonym_of(self, registry):
        assert registry.is_synonym_of("visitor", "user")
        assert not registry.is_synonym_of("visitor", "page")


# ---------------------------------------------------------------------------
# Labels and module methods
# ---------------------------------------------------------------------------

class TestLabelsAndModuleMethods:
    def test_label_alias_prefers_testid(self, registry):
        locator = registry.locator_for_label("Email")
        assert locator.strategy == LocatorStrategy.TESTID
        assert locator.value == "email-input"

    def test_label_alias_missing(self, registry):
        assert registry.locator_for_label("Favourite colour") is None

    def test_alias_fallbacks(self):
        assert LabelAlias("x", role="button").to_locator().strategy == LocatorStrategy.ROLE
        assert LabelAlias("x", selector="#x").to_locator().strategy == LocatorStrategy.CSS
        assert LabelAlias("x").to_locator() is None

    def test_find_module_method_whole_words(self, registry):
        assert registry.find_module_method("User logs in quickly") is None
        mm = registry.find_module_method("Then log in as admin")
        assert (mm.module, mm.method) == ("auth", "login")

    def test_find_module_method_prefers_longest(self, registry):
        mm = registry.find_module_method("navigate to the settings page")
        assert mm.phrase == "navigate to"

    def test_find_module_method_no_partial_word(self, registry):
        assert registry.find_module_method("reopened the file") is None

    def test_module_method_params_become_args(self):
        mm = ModuleMethod("add to cart", "cart", "addItem", {"quantity": "1"})
        assert mm.to_primitive() == CallModule("cart", "addItem", [{"quantity": "1"}])


# ---------------------------------------------------------------------------
# Lookup precedence
# ---------------------------------------------------------------------------

class TestLookup:
    def test_exact_core_phrase(self, registry):
        assert registry.lookup_exact("  Log In ") == CallModule("auth", "login")

    def test_extended_entry(self, registry):
        click = Click(make_locator("testid", "buy"))
        registry.set_extended({"Buy Now": click})
        found = registry.lookup_exact("buy now")
        assert found == click
        # Returned primitives are copies
        assert found is not click

    def test_core_beats_extended(self, registry):
        registry.set_extended({"log in": Click(make_locator("text", "Log in"))})
        assert registry.lookup_exact("log in") == CallModule("auth", "login")

    def test_lookup_glossary_falls_back_to_substring(self, registry):
        assert registry.lookup_glossary("sign in with SSO") == CallModule("auth", "login")
        assert registry.lookup_glossary("frobnicate") is None

    def test_load_extended(self, registry, tmp_path):
        path = tmp_path / "extended.json"
        path.write_text(json.dumps({
            "entries": {"Buy Now": {"type": "click", "locator": {"strategy": "testid", "value": "buy"}}},
            "meta": {"exportedAt": "2026-01-01T00:00:00Z"},
        }))
        result = registry.load_extended(str(path))
        assert result.loaded is True
        assert result.entry_count == 1
        assert result.exported_at == "2026-01-01T00:00:00Z"
        assert registry.has_extended()
        assert registry.stats()["extended_entries"] == 1

    def test_load_extended_missing_file(self, registry, tmp_path):
        result = registry.load_extended(str(tmp_path / "nope.json"))
        assert result.loaded is False
        assert "not found" in result.error

    def test_load_extended_bad_primitive_keeps_previous(self, registry, tmp_path):
        registry.set_extended({"buy now": Click(make_locator("testid", "buy"))})
        path = tmp_path / "extended.json"
        path.write_text(json.dumps({"entries": {"x": {"type": "teleport"}}}))
        result = registry.load_extended(str(path))
        assert result.loaded is False
        assert "Failed to load glossary" in result.error
        assert registry.lookup_exact("buy now") is not None

    def test_reset_clears_extended(self, registry):
        registry.set_extended({"buy now": Click(make_locator("testid", "buy"))})
        registry.reset()
        assert registry.has_extended() is False


# ---------------------------------------------------------------------------
# User glossaries
# ---------------------------------------------------------------------------

class TestUserGlossary:
    def test_merge_unions_synonyms_and_adds_entries(self, user_glossary_path):
        merged = load_glossary_file(user_glossary_path)
        assert merged.version == 2
        click = next(e for e in merged.entries if e.canonical == "click")
        assert "smash" in click.synonyms and "tap" in click.synonyms
        assert any(e.canonical == "cart" for e in merged.entries)

    def test_core_alias_and_phrase_win(self, user_glossary_path):
        registry = GlossaryRegistry(glossary_path=user_glossary_path)
        assert registry.locator_for_label("email").value == "email-input"
        assert registry.locator_for_label("coupon").value == "#coupon"
        assert registry.lookup_exact("log in") == CallModule("auth", "login")
        assert registry.lookup_exact("add to cart") == CallModule("cart", "addItem", [{"quantity": "1"}])

    def test_user_synonyms_normalize(self, user_glossary_path):
        registry = GlossaryRegistry(glossary_path=user_glossary_path)
        assert registry.normalize_step_text("smash the basket") == "click the cart"

    def test_missing_file_falls_back_to_core(self, tmp_path, caplog):
        with caplog.at_level("WARNING"):
            merged = load_glossary_file(str(tmp_path / "missing.yaml"))
        assert merged == core_glossary()
        assert "not found" in caplog.text

    def test_invalid_file_falls_back_to_core(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("entries: 12\n")
        assert load_glossary_file(str(path)) == core_glossary()

    def test_parse_glossary_rejects_bad_entries(self):
        with pytest.raises(ValueError):
            parse_glossary({"entries": [{"canonical": "x"}]})
        with pytest.raises(ValueError):
            parse_glossary(["not", "a", "mapping"])

    def test_merge_does_not_mutate_inputs(self):
        base = core_glossary()
        ext = Glossary(entries=[GlossaryEntry("click", ["smash"])])
        merge_glossaries(base, ext)
        click = next(e for e in base.entries if e.canonical == "click")
        assert "smash" not in click.synonyms


# ---------------------------------------------------------------------------
# Default registry
# ---------------------------------------------------------------------------

class TestDefaultRegistry:
    def test_reset_with_path(self, user_glossary_path):
        reset_default_registry(user_glossary_path)
        assert glossary_mod.normalize_step_text("smash it") == "click it"
        reset_default_registry()
        assert glossary_mod.normalize_step_text("smash it") == "smash it"

    def test_module_wrappers(self):
        assert glossary_mod.resolve_canonical("tap") == "click"
        assert glossary_mod.find_module_method("please sign out").method == "logout"
        assert glossary_mod.lookup_glossary("logout") == CallModule("auth", "logout")
