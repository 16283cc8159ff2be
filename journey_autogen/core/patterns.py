"""Step patterns — ordered regex rules that turn step text into IR primitives.

Every rule carries example phrasings. The examples feed the nearest-pattern
diagnostic, and each one must resolve to its rule's primitive type.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Optional

from journey_autogen.core.ir import (
    AcceptAlert,
    CallModule,
    Check,
    Clear,
    Click,
    DblClick,
    DismissAlert,
    DismissModal,
    ExpectChecked,
    ExpectCount,
    ExpectDisabled,
    ExpectEnabled,
    ExpectHidden,
    ExpectText,
    ExpectTitle,
    ExpectToast,
    ExpectURL,
    ExpectValue,
    ExpectVisible,
    Fill,
    Focus,
    GoBack,
    GoForward,
    Goto,
    Hover,
    LocatorSpec,
    LocatorStrategy,
    Press,
    Primitive,
    Reload,
    RightClick,
    Select,
    Uncheck,
    ValueSpec,
    ValueType,
    WaitForHidden,
    WaitForLoadingComplete,
    WaitForNetworkIdle,
    WaitForTimeout,
    WaitForURL,
    WaitForVisible,
    make_locator,
    value_from_text,
)

PATTERN_VERSION = "1.1.0"

Extractor = Callable[[re.Match], Optional[Primitive]]


@dataclass(frozen=True)
class StepPattern:
    name: str
    regex: re.Pattern
    primitive_type: str
    extract: Extractor
    examples: tuple[str, ...] = ()
    group: str = ""
    source: str = "core"

    def try_match(self, text: str) -> Optional[Primitive]:
        """Return the extracted primitive, or None on no match or failed extraction."""
        m = self.regex.match(text)
        if m is None:
            return None
        return self.extract(m)


def _p(
    name: str,
    regex: str,
    primitive_type: str,
    extract: Extractor,
    examples: tuple[str, ...],
) -> StepPattern:
    return StepPattern(
        name=name,
        regex=re.compile(regex, re.IGNORECASE),
        primitive_type=primitive_type,
        extract=extract,
        examples=examples,
    )


def _unquote(s: str) -> str:
    return re.sub(r"[\"']", "", s)


def parse_selector_to_locator(selector: str) -> LocatorSpec:
    """Turn a loose element description ("the Save button") into a locator."""
    clean = re.sub(r"^the\s+", "", selector, flags=re.IGNORECASE).strip()

    if re.search(r"button$", clean, re.IGNORECASE):
        name = re.sub(r"\s*button$", "", clean, flags=re.IGNORECASE).strip()
        return make_locator("role", "button", name)
    if re.search(r"link$", clean, re.IGNORECASE):
        name = re.sub(r"\s*link$", "", clean, flags=re.IGNORECASE).strip()
        return make_locator("role", "link", name)
    if re.search(r"(?:input|field)$", clean, re.IGNORECASE):
        label = re.sub(r"\s*(?:input|field)$", "", clean, flags=re.IGNORECASE).strip()
        return make_locator("label", label)
    return make_locator("text", clean)


# ── Structured markdown bullets ──────────────────────────────────────

STRUCTURED_PATTERNS = [
    _p(
        "structured-action-click",
        r"^\*\*Action\*\*:\s*click\s+(?:the\s+)?['\"]?(.+?)['\"]?\s*(?:button|link)?$",
        "click",
        lambda m: Click(parse_selector_to_locator(m.group(1) + " button")),
        ("**Action**: Click the Save button",),
    ),
    _p(
        "structured-action-fill",
        r"^\*\*Action\*\*:\s*fill\s+(?:in\s+)?['\"]?(.+?)['\"]?\s+with\s+['\"]?(.+?)['\"]?$",
        "fill",
        lambda m: Fill(
            parse_selector_to_locator(m.group(1)), value_from_text(m.group(2))
        ),
        ('**Action**: Fill in the email field with "user@example.com"',),
    ),
    _p(
        "structured-action-navigate",
        r"^\*\*Action\*\*:\s*navigate\s+to\s+['\"]?(.+?)['\"]?$",
        "goto",
        lambda m: Goto(url=m.group(1), wait_for_load=True),
        ("**Action**: Navigate to /settings",),
    ),
    _p(
        "structured-wait-for-visible",
        r"^\*\*Wait for\*\*:\s*(.+?)\s+(?:to\s+)?(?:be\s+)?(?:visible|appear|load)",
        "expectVisible",
        lambda m: ExpectVisible(parse_selector_to_locator(_unquote(m.group(1)))),
        ("**Wait for**: Dashboard to load",),
    ),
    _p(
        "structured-assert-visible",
        r"^\*\*Assert\*\*:\s*(.+?)\s+(?:is\s+)?visible$",
        "expectVisible",
        lambda m: ExpectVisible(parse_selector_to_locator(_unquote(m.group(1)))),
        ("**Assert**: Welcome banner is visible",),
    ),
    _p(
        "structured-assert-text",
        r"^\*\*Assert\*\*:\s*(.+?)\s+(?:contains|has text)\s+['\"]?(.+?)['\"]?$",
        "expectText",
        lambda m: ExpectText(parse_selector_to_locator(m.group(1)), m.group(2)),
        ('**Assert**: Header contains "Welcome"',),
    ),
]

# ── Authentication ───────────────────────────────────────────────────

AUTH_PATTERNS = [
    _p(
        "user-login",
        r"^(?:user\s+)?(?:logs?\s*in|login\s+is\s+performed|authenticates?)$",
        "callModule",
        lambda m: CallModule("auth", "login"),
        ("User logs in", "Login is performed"),
    ),
    _p(
        "user-logout",
        r"^(?:user\s+)?(?:logs?\s*out|logout\s+is\s+performed|signs?\s*out)$",
        "callModule",
        lambda m: CallModule("auth", "logout"),
        ("User signs out", "User logs out"),
    ),
    _p(
        "login-as-role",
        r"^(?:user\s+)?logs?\s*in\s+as\s+(?:an?\s+)?(.+?)(?:\s+user)?$",
        "callModule",
        lambda m: CallModule("auth", "loginAs", [m.group(1).lower()]),
        ("User logs in as an admin", "Log in as editor user"),
    ),
]

# ── Toasts and status messages ───────────────────────────────────────

_TOAST_VERB = r"(?:appears?|is\s+shown|displays?)"

TOAST_PATTERNS = [
    _p(
        "success-toast-message",
        rf"^(?:a\s+)?success\s+toast\s+(?:with\s+)?[\"']([^\"']+)[\"']\s*(?:message\s+)?{_TOAST_VERB}$",
        "expectToast",
        lambda m: ExpectToast("success", m.group(1)),
        ('A success toast with "Account created" appears',),
    ),
    _p(
        "success-toast-appears-with",
        rf"^(?:a\s+)?success\s+toast\s+{_TOAST_VERB}\s+(?:with\s+)?(?:(?:message|text)\s+)?[\"']?(.+?)[\"']?$",
        "expectToast",
        lambda m: ExpectToast("success", m.group(1)),
        ("A success toast appears with Account created",),
    ),
    _p(
        "error-toast-message",
        rf"^(?:an?\s+)?error\s+toast\s+(?:with\s+)?[\"']([^\"']+)[\"']\s*(?:message\s+)?{_TOAST_VERB}$",
        "expectToast",
        lambda m: ExpectToast("error", m.group(1)),
        ('An error toast with "Invalid email" appears',),
    ),
    _p(
        "error-toast-appears-with",
        rf"^(?:an?\s+)?error\s+toast\s+{_TOAST_VERB}\s+(?:with\s+)?(?:(?:message|text)\s+)?[\"']?(.+?)[\"']?$",
        "expectToast",
        lambda m: ExpectToast("error", m.group(1)),
        ("An error toast appears with Invalid email",),
    ),
    _p(
        "toast-appears",
        rf"^(?:a\s+)?(?:(success|error|info|warning)\s+)?toast\s+(?:notification\s+)?{_TOAST_VERB}$",
        "expectToast",
        lambda m: ExpectToast((m.group(1) or "info").lower()),
        ("A toast notification appears", "A warning toast is shown"),
    ),
    _p(
        "toast-with-text",
        rf"^(?:a\s+)?(?:toast|notification)\s+(?:with\s+)?(?:(?:text|message)\s+)?[\"']?(.+?)[\"']?\s+{_TOAST_VERB}$",
        "expectToast",
        lambda m: ExpectToast("info", m.group(1)),
        ('Toast with text "Saved" appears',),
    ),
    _p(
        "status-message-visible",
        r"^(?:a\s+)?status\s+(?:message\s+)?[\"']([^\"']+)[\"']\s+(?:is\s+)?(?:visible|shown|displayed)$",
        "expectVisible",
        lambda m: ExpectVisible(make_locator("role", "status", m.group(1))),
        ('A status message "Processing" is visible',),
    ),
    _p(
        "verify-status-message",
        r"^(?:verify|check)\s+(?:that\s+)?(?:the\s+)?status\s+(?:message\s+)?(?:shows?|displays?|contains?)\s+[\"']([^\"']+)[\"']$",
        "expectVisible",
        lambda m: ExpectVisible(make_locator("role", "status", m.group(1))),
        ('Verify the status message shows "Complete"',),
    ),
]

# ── Modals and alerts ────────────────────────────────────────────────

MODAL_ALERT_PATTERNS = [
    _p(
        "dismiss-modal",
        r"^(?:dismiss|close)\s+(?:the\s+)?(?:modal|dialog)(?:\s+dialog)?$",
        "dismissModal",
        lambda m: DismissModal(),
        ("Close the modal", "Dismiss the modal dialog"),
    ),
    _p(
        "accept-alert",
        r"^(?:accept|confirm|ok)\s+(?:the\s+)?alert$",
        "acceptAlert",
        lambda m: AcceptAlert(),
        ("Accept the alert",),
    ),
    _p(
        "dismiss-alert",
        r"^(?:dismiss|cancel|close)\s+(?:the\s+)?alert$",
        "dismissAlert",
        lambda m: DismissAlert(),
        ("Dismiss the alert", "Cancel the alert"),
    ),
]

# ── Navigation ───────────────────────────────────────────────────────

EXTENDED_NAVIGATION_PATTERNS = [
    _p(
        "refresh-page",
        r"^(?:user\s+)?(?:refresh(?:es)?|reloads?)\s+(?:the\s+)?page$",
        "reload",
        lambda m: Reload(),
        ("Refresh the page", "Reload the page"),
    ),
    _p(
        "go-back",
        r"^(?:user\s+)?(?:go(?:es)?|navigates?)\s+back$",
        "goBack",
        lambda m: GoBack(),
        ("Go back", "User navigates back"),
    ),
    _p(
        "go-forward",
        r"^(?:user\s+)?(?:go(?:es)?|navigates?)\s+forward$",
        "goForward",
        lambda m: GoForward(),
        ("Navigate forward",),
    ),
]

NAVIGATION_PATTERNS = [
    _p(
        "navigate-to-url",
        r"^(?:user\s+)?(?:navigates?|go(?:es)?|opens?)\s+(?:to\s+)?(?:the\s+)?[\"']?([^\"'\s]+)[\"']?$",
        "goto",
        lambda m: Goto(url=m.group(1), wait_for_load=True),
        ("User navigates to /dashboard", "Open https://example.com/login"),
    ),
    _p(
        "navigate-to-page",
        r"^(?:user\s+)?(?:navigates?|go(?:es)?|opens?)\s+(?:to\s+)?(?:the\s+)?(.+?)\s+page$",
        "goto",
        lambda m: Goto(
            url="/" + re.sub(r"\s+", "-", m.group(1).lower()), wait_for_load=True
        ),
        ("Go to the settings page", "User opens the account details page"),
    ),
    _p(
        "wait-for-url-change",
        r"^(?:user\s+)?waits?\s+(?:for\s+)?(?:the\s+)?url\s+(?:to\s+)?(?:change\s+to|contain|include)\s+[\"']?([^\"']+)[\"']?$",
        "waitForURL",
        lambda m: WaitForURL(m.group(1)),
        ('Wait for URL to change to "/dashboard"', "Wait for the URL to contain /settings"),
    ),
]

# ── Clicks ───────────────────────────────────────────────────────────

EXTENDED_CLICK_PATTERNS = [
    _p(
        "click-on-element",
        r"^(?:user\s+)?(?:clicks?|selects?)\s+on\s+(?:the\s+)?(.+?)(?:\s+button|\s+link)?$",
        "click",
        lambda m: Click(make_locator("text", _unquote(m.group(1)))),
        ("Click on Save", "User clicks on the Profile link"),
    ),
    _p(
        "press-enter-key",
        r"^(?:user\s+)?(?:press(?:es)?|hits?)\s+(?:the\s+)?(?:enter|return)(?:\s+key)?$",
        "press",
        lambda m: Press("Enter"),
        ("Press Enter", "Hit the return key"),
    ),
    _p(
        "press-tab-key",
        r"^(?:user\s+)?(?:press(?:es)?|hits?)\s+(?:the\s+)?tab(?:\s+key)?$",
        "press",
        lambda m: Press("Tab"),
        ("Press the Tab key",),
    ),
    _p(
        "press-escape-key",
        r"^(?:user\s+)?(?:press(?:es)?|hits?)\s+(?:the\s+)?(?:escape|esc)(?:\s+key)?$",
        "press",
        lambda m: Press("Escape"),
        ("Hit Escape", "Press Esc"),
    ),
    _p(
        "double-click",
        r"^(?:user\s+)?double[-\s]?clicks?\s+(?:on\s+)?(?:the\s+)?[\"']?(.+?)[\"']?$",
        "dblclick",
        lambda m: DblClick(make_locator("text", _unquote(m.group(1)))),
        ("Double-click the row", "User double clicks on the file name"),
    ),
    _p(
        "right-click",
        r"^(?:user\s+)?right[-\s]?clicks?\s+(?:on\s+)?(?:the\s+)?[\"']?(.+?)[\"']?$",
        "rightClick",
        lambda m: RightClick(make_locator("text", _unquote(m.group(1)))),
        ("Right-click on the file",),
    ),
    _p(
        "submit-form",
        r"^(?:user\s+)?submits?\s+(?:the\s+)?form$",
        "click",
        lambda m: Click(make_locator("role", "button", "Submit")),
        ("Submit the form", "User submits form"),
    ),
]

_CLICK_VERB = r"(?:clicks?|presses?|taps?|selects?)"

CLICK_PATTERNS = [
    _p(
        "click-button-quoted",
        rf"^(?:user\s+)?{_CLICK_VERB}\s+(?:on\s+)?(?:the\s+)?[\"']([^\"']+)[\"']\s+button$",
        "click",
        lambda m: Click(make_locator("role", "button", m.group(1))),
        ('Click the "Submit" button', "User taps 'Continue' button"),
    ),
    _p(
        "click-link-quoted",
        rf"^(?:user\s+)?{_CLICK_VERB}\s+(?:on\s+)?(?:the\s+)?[\"']([^\"']+)[\"']\s+link$",
        "click",
        lambda m: Click(make_locator("role", "link", m.group(1))),
        ('Click the "Forgot password" link',),
    ),
    _p(
        "click-menuitem-quoted",
        r"^(?:user\s+)?(?:clicks?|selects?)\s+(?:on\s+)?(?:the\s+)?[\"']([^\"']+)[\"']\s+menu\s*item$",
        "click",
        lambda m: Click(make_locator("role", "menuitem", m.group(1))),
        ('Click the "Settings" menu item',),
    ),
    _p(
        "click-tab-quoted",
        r"^(?:user\s+)?(?:clicks?|selects?)\s+(?:on\s+)?(?:the\s+)?[\"']([^\"']+)[\"']\s+tab$",
        "click",
        lambda m: Click(make_locator("role", "tab", m.group(1))),
        ('Click the "Details" tab', "Select the 'Overview' tab"),
    ),
    _p(
        "click-element-quoted",
        rf"^(?:user\s+)?{_CLICK_VERB}\s+(?:on\s+)?(?:the\s+)?[\"']([^\"']+)[\"']$",
        "click",
        lambda m: Click(make_locator("text", m.group(1))),
        ('Click "Continue"',),
    ),
    _p(
        "click-element-generic",
        rf"^(?:user\s+)?{_CLICK_VERB}\s+(?:on\s+)?(?:the\s+)?(.+?)\s+(?:button|link|icon|menu|tab)$",
        "click",
        lambda m: Click(make_locator("text", m.group(1))),
        ("Click the save icon", "Tap the hamburger menu"),
    ),
]

# ── Form input ───────────────────────────────────────────────────────


def _fill_no_value(m: re.Match) -> Fill:
    field_name = _unquote(m.group(1))
    return Fill(
        make_locator("label", field_name),
        ValueSpec(ValueType.ACTOR, re.sub(r"\s+", "_", field_name.lower())),
    )


EXTENDED_FILL_PATTERNS = [
    _p(
        "fill-field-with-value",
        r"^(?:user\s+)?(?:fills?|enters?|types?|inputs?)(?:\s+in)?\s+(?:the\s+)?[\"']?([^\"']+?)[\"']?\s+(?:field|input)\s+with\s+[\"']?(.+?)[\"']?$",
        "fill",
        lambda m: Fill(
            make_locator("label", _unquote(m.group(1))),
            value_from_text(_unquote(m.group(2))),
        ),
        ("Fill the nickname field with john",),
    ),
    _p(
        "type-into-field",
        r"^(?:user\s+)?types?\s+['\"](.+?)['\"]\s+into\s+(?:the\s+)?[\"']?(.+?)[\"']?\s*(?:field|input)?$",
        "fill",
        lambda m: Fill(make_locator("label", m.group(2)), value_from_text(m.group(1))),
        ('Type "secret" into the Password field',),
    ),
    _p(
        "fill-in-field-no-value",
        r"^(?:user\s+)?fills?\s+in\s+(?:the\s+)?[\"']?(.+?)[\"']?\s*(?:field|input)?$",
        "fill",
        _fill_no_value,
        ("Fill in the email address",),
    ),
    _p(
        "clear-field",
        r"^(?:user\s+)?clears?\s+(?:the\s+)?[\"']?(.+?)[\"']?\s*(?:field|input)?$",
        "clear",
        lambda m: Clear(make_locator("label", _unquote(m.group(1)))),
        ("Clear the search field",),
    ),
    _p(
        "set-value",
        r"^(?:user\s+)?sets?\s+(?:the\s+)?(?:value\s+)?(?:of\s+)?[\"']?(.+?)[\"']?\s+to\s+['\"](.+?)['\"]$",
        "fill",
        lambda m: Fill(make_locator("label", m.group(1)), value_from_text(m.group(2))),
        ('Set the quantity to "5"',),
    ),
]

_FILL_VERB = r"(?:enters?|types?|fills?\s+in?|inputs?)"

FILL_PATTERNS = [
    _p(
        "fill-field-quoted-value",
        rf"^(?:user\s+)?{_FILL_VERB}\s+[\"']([^\"']+)[\"']\s+(?:in|into)\s+(?:the\s+)?[\"']([^\"']+)[\"']\s*(?:field|input)?$",
        "fill",
        lambda m: Fill(make_locator("label", m.group(2)), value_from_text(m.group(1))),
        ('Enter "john@example.com" in the "Email" field',),
    ),
    _p(
        "fill-field-actor-value",
        rf"^(?:user\s+)?{_FILL_VERB}\s+(\{{\{{[^}}]+\}}\}})\s+(?:in|into)\s+(?:the\s+)?[\"']([^\"']+)[\"']\s*(?:field|input)?$",
        "fill",
        lambda m: Fill(make_locator("label", m.group(2)), value_from_text(m.group(1))),
        ('Enter {{email}} into the "Email" field',),
    ),
    _p(
        "fill-placeholder-field",
        r"^(?:user\s+)?(?:enters?|types?|fills?)\s+[\"']([^\"']+)[\"']\s+(?:in|into)\s+(?:the\s+)?(?:field|input)\s+with\s+placeholder\s+[\"']([^\"']+)[\"']$",
        "fill",
        lambda m: Fill(
            make_locator("placeholder", m.group(2)), value_from_text(m.group(1))
        ),
        ('Enter "hello" into the field with placeholder "Search"',),
    ),
    _p(
        "fill-field-generic",
        rf"^(?:user\s+)?{_FILL_VERB}\s+(.+?)\s+(?:in|into)\s+(?:the\s+)?(.+?)\s*(?:field|input)?$",
        "fill",
        lambda m: Fill(
            make_locator("label", _unquote(m.group(2))),
            value_from_text(_unquote(m.group(1))),
        ),
        ("Enter john in the name field",),
    ),
]

# ── Selects ──────────────────────────────────────────────────────────


def _select_named(m: re.Match) -> Optional[Select]:
    label = _unquote(m.group(2)).strip()
    # "from the dropdown" leaves only the article behind
    if label.lower() in ("", "the"):
        return None
    return Select(make_locator("label", label), m.group(1))


EXTENDED_SELECT_PATTERNS = [
    _p(
        "select-from-named-dropdown",
        r"^(?:user\s+)?(?:selects?|chooses?)\s+[\"']([^\"']+)[\"']\s+from\s+(?:the\s+)?(.+?)\s*(?:dropdown|select|selector|menu|list)$",
        "select",
        _select_named,
        ('Select "USA" from the country dropdown',),
    ),
    _p(
        "select-from-dropdown",
        r"^(?:user\s+)?(?:selects?|chooses?)\s+['\"]([^'\"]+)['\"]\s+from\s+(?:the\s+)?dropdown$",
        "select",
        lambda m: Select(LocatorSpec(LocatorStrategy.ROLE, "combobox"), m.group(1)),
        ('Choose "Large" from the dropdown',),
    ),
    _p(
        "select-option-named",
        r"^(?:user\s+)?(?:selects?|chooses?)\s+(?:the\s+)?(?:option\s+)?(?:named\s+)?[\"']([^\"']+)[\"'](?:\s+option)?$",
        "select",
        lambda m: Select(LocatorSpec(LocatorStrategy.ROLE, "combobox"), m.group(1)),
        ('Select option "Premium"',),
    ),
]

SELECT_PATTERNS = [
    _p(
        "select-option",
        r"^(?:user\s+)?(?:selects?|chooses?)\s+[\"']([^\"']+)[\"']\s+(?:from|in)\s+(?:the\s+)?[\"']([^\"']+)[\"']\s*(?:dropdown|select|menu)?$",
        "select",
        lambda m: Select(make_locator("label", m.group(2)), m.group(1)),
        ('Choose "Blue" in the "Color" select',),
    ),
]

# ── Checkboxes ───────────────────────────────────────────────────────

CHECK_PATTERNS = [
    _p(
        "check-checkbox",
        r"^(?:user\s+)?(?:checks?|enables?|ticks?)\s+(?:the\s+)?[\"']([^\"']+)[\"']\s*(?:checkbox|option)?$",
        "check",
        lambda m: Check(make_locator("label", m.group(1))),
        ('Check "Remember me"',),
    ),
    _p(
        "check-checkbox-unquoted",
        r"^(?:user\s+)?(?:checks?|enables?|ticks?)\s+(?:the\s+)?(\w+(?:\s+\w+)*)\s+checkbox$",
        "check",
        lambda m: Check(make_locator("label", m.group(1))),
        ("Check the terms checkbox",),
    ),
    _p(
        "uncheck-checkbox",
        r"^(?:user\s+)?(?:unchecks?|disables?|unticks?)\s+(?:the\s+)?[\"']([^\"']+)[\"']\s*(?:checkbox|option)?$",
        "uncheck",
        lambda m: Uncheck(make_locator("label", m.group(1))),
        ('Uncheck "Newsletter"',),
    ),
    _p(
        "uncheck-checkbox-unquoted",
        r"^(?:user\s+)?(?:unchecks?|disables?|unticks?)\s+(?:the\s+)?(\w+(?:\s+\w+)*)\s+checkbox$",
        "uncheck",
        lambda m: Uncheck(make_locator("label", m.group(1))),
        ("Untick the marketing checkbox",),
    ),
]

# ── Assertions ───────────────────────────────────────────────────────

# Ordered most specific first: negative before positive, URL/title before
# generic "contains", state checks before generic visibility.
EXTENDED_ASSERTION_PATTERNS = [
    _p(
        "verify-not-visible",
        r"^(?:verify|confirm|check)\s+(?:that\s+)?(?:the\s+)?[\"']?(.+?)[\"']?\s+is\s+not\s+visible$",
        "expectHidden",
        lambda m: ExpectHidden(make_locator("text", m.group(1))),
        ("Verify the error banner is not visible",),
    ),
    _p(
        "element-should-not-be-visible",
        r"^(?:the\s+)?[\"']?(.+?)[\"']?\s+(?:should\s+)?(?:not\s+be|is\s+not)\s+(?:visible|displayed|shown)$",
        "expectHidden",
        lambda m: ExpectHidden(make_locator("text", m.group(1))),
        ("The spinner should not be visible", "Error message is not displayed"),
    ),
    _p(
        "verify-url-contains",
        r"^(?:verify|confirm|check)\s+(?:that\s+)?(?:the\s+)?url\s+contains?\s+[\"']([^\"']+)[\"']$",
        "expectURL",
        lambda m: ExpectURL(m.group(1)),
        ('Verify the URL contains "/dashboard"',),
    ),
    _p(
        "verify-title-is",
        r"^(?:verify|confirm|check)\s+(?:that\s+)?(?:the\s+)?(?:page\s+)?title\s+(?:is|equals?)\s+[\"']([^\"']+)[\"']$",
        "expectTitle",
        lambda m: ExpectTitle(m.group(1)),
        ('Verify the page title is "Settings"',),
    ),
    _p(
        "verify-field-value",
        r"^(?:verify|confirm|check)\s+(?:that\s+)?(?:the\s+)?[\"']?(\w+)[\"']?\s+(?:field\s+)?has\s+value\s+[\"']([^\"']+)[\"']$",
        "expectValue",
        lambda m: ExpectValue(make_locator("label", m.group(1)), m.group(2)),
        ('Verify the city field has value "Berlin"',),
    ),
    _p(
        "verify-element-enabled",
        r"^(?:verify|confirm|check)\s+(?:that\s+)?(?:the\s+)?[\"']?(.+?)[\"']?\s+(?:button\s+)?is\s+enabled$",
        "expectEnabled",
        lambda m: ExpectEnabled(make_locator("label", m.group(1))),
        ("Verify the continue button is enabled",),
    ),
    _p(
        "verify-element-disabled",
        r"^(?:verify|confirm|check)\s+(?:that\s+)?(?:the\s+)?[\"']?(.+?)[\"']?\s+(?:input\s+)?is\s+disabled$",
        "expectDisabled",
        lambda m: ExpectDisabled(make_locator("label", m.group(1))),
        ("Verify the discount input is disabled",),
    ),
    _p(
        "verify-checkbox-checked",
        r"^(?:verify|confirm|check)\s+(?:that\s+)?(?:the\s+)?[\"']?(.+?)[\"']?\s+(?:checkbox\s+)?is\s+checked$",
        "expectChecked",
        lambda m: ExpectChecked(make_locator("label", m.group(1))),
        ("Verify the terms checkbox is checked",),
    ),
    _p(
        "verify-count",
        r"^(?:verify|confirm|check)\s+(?:that\s+)?(\d+)\s+(?:items?|elements?|rows?)\s+(?:are\s+)?(?:shown|displayed|exist|visible)$",
        "expectCount",
        lambda m: ExpectCount(LocatorSpec(LocatorStrategy.TEXT, "item"), int(m.group(1))),
        ("Verify 5 items are shown", "Confirm 3 rows exist"),
    ),
    _p(
        "verify-element-showing",
        r"^(?:verify|confirm|ensure)\s+(?:that\s+)?(?:the\s+)?[\"']?(.+?)[\"']?\s+(?:is\s+)?(?:showing|displayed|visible)$",
        "expectVisible",
        lambda m: ExpectVisible(make_locator("text", m.group(1))),
        ("Verify the dashboard is displayed", "Ensure the chart is showing"),
    ),
    _p(
        "page-should-show",
        r"^(?:the\s+)?page\s+should\s+(?:show|display|contain)\s+['\"](.+?)['\"]$",
        "expectText",
        lambda m: ExpectText(LocatorSpec(LocatorStrategy.ROLE, "main"), m.group(1)),
        ('The page should show "Welcome"',),
    ),
    _p(
        "make-sure-assertion",
        r"^make\s+sure\s+(?:that\s+)?(?:the\s+)?(.+?)\s+(?:is\s+)?(?:visible|displayed|shown)$",
        "expectVisible",
        lambda m: ExpectVisible(make_locator("text", m.group(1))),
        ("Make sure the banner is visible",),
    ),
    _p(
        "confirm-that-assertion",
        r"^(?:verify|confirm)\s+(?:that\s+)?(?:the\s+)?[\"']?(.+?)[\"']?\s+(?:appears?|is\s+shown|displays?)$",
        "expectVisible",
        lambda m: ExpectVisible(make_locator("text", m.group(1))),
        ("Confirm that the message appears", "Verify success message appears"),
    ),
    _p(
        "check-element-exists",
        r"^check\s+(?:that\s+)?(?:the\s+)?[\"']?(.+?)[\"']?\s+(?:exists?|is\s+present)$",
        "expectVisible",
        lambda m: ExpectVisible(make_locator("text", m.group(1))),
        ("Check that the logo exists",),
    ),
    _p(
        "element-contains-text",
        r"^(?:the\s+)?[\"']?(.+?)[\"']?\s+(?:should\s+)?contains?\s+['\"](.+?)['\"]$",
        "expectText",
        lambda m: ExpectText(make_locator("text", m.group(1)), m.group(2)),
        ('The header contains "Welcome"',),
    ),
]

VISIBILITY_PATTERNS = [
    _p(
        "should-see-text",
        r"^(?:user\s+)?(?:should\s+)?(?:sees?|views?)\s+(?:the\s+)?[\"']([^\"']+)[\"']$",
        "expectVisible",
        lambda m: ExpectVisible(make_locator("text", m.group(1))),
        ('User should see "Welcome back"',),
    ),
    _p(
        "is-visible",
        r"^[\"']?([^\"']+)[\"']?\s+(?:is\s+)?(?:visible|displayed|shown)$",
        "expectVisible",
        lambda m: ExpectVisible(make_locator("text", m.group(1))),
        ('"Dashboard" is visible',),
    ),
    _p(
        "should-see-element",
        r"^(?:user\s+)?(?:should\s+)?(?:sees?|views?)\s+(?:the\s+)?(.+?)\s+(?:heading|button|link|form|page|element)$",
        "expectVisible",
        lambda m: ExpectVisible(make_locator("text", m.group(1))),
        ("User should see the profile heading",),
    ),
    _p(
        "page-displayed",
        r"^(?:the\s+)?(.+?)\s+(?:page|screen|view)\s+(?:is\s+)?(?:displayed|shown|visible)$",
        "expectVisible",
        lambda m: ExpectVisible(make_locator("text", m.group(1))),
        ("The settings page is displayed",),
    ),
]

URL_PATTERNS = [
    _p(
        "url-contains",
        r"^(?:the\s+)?url\s+(?:should\s+)?(?:contains?|includes?)\s+[\"']?([^\"'\s]+)[\"']?$",
        "expectURL",
        lambda m: ExpectURL(m.group(1)),
        ("URL contains /dashboard", "The URL should include /orders"),
    ),
    _p(
        "url-is",
        r"^(?:the\s+)?url\s+(?:should\s+)?(?:is|equals?|be)\s+[\"']?([^\"'\s]+)[\"']?$",
        "expectURL",
        lambda m: ExpectURL(m.group(1)),
        ("The URL should be /home",),
    ),
    _p(
        "redirected-to",
        r"^(?:user\s+)?(?:is\s+)?redirected\s+to\s+[\"']?([^\"'\s]+)[\"']?$",
        "expectURL",
        lambda m: ExpectURL(m.group(1)),
        ("User is redirected to /welcome",),
    ),
]

# ── Waits ────────────────────────────────────────────────────────────

EXTENDED_WAIT_PATTERNS = [
    _p(
        "wait-for-element-hidden",
        r"^(?:user\s+)?waits?\s+(?:for\s+)?(?:the\s+)?[\"']?(.+?)[\"']?\s+to\s+(?:disappear|be\s+hidden)$",
        "waitForHidden",
        lambda m: WaitForHidden(make_locator("text", m.group(1))),
        ("Wait for the loading spinner to disappear",),
    ),
    _p(
        "wait-for-element-appear",
        r"^(?:user\s+)?waits?\s+(?:for\s+)?(?:the\s+)?[\"']?(.+?)[\"']?\s+to\s+(?:appear|show|be\s+visible)$",
        "waitForVisible",
        lambda m: WaitForVisible(make_locator("text", m.group(1))),
        ("Wait for the modal to appear",),
    ),
    _p(
        "wait-until-loaded",
        r"^(?:user\s+)?waits?\s+until\s+(?:the\s+)?(?:page|content|data)\s+(?:is\s+)?loaded$",
        "waitForLoadingComplete",
        lambda m: WaitForLoadingComplete(),
        ("Wait until the page is loaded",),
    ),
    _p(
        "wait-seconds",
        r"^(?:user\s+)?waits?\s+(?:for\s+)?(\d+)\s+seconds?$",
        "waitForTimeout",
        lambda m: WaitForTimeout(int(m.group(1)) * 1000),
        ("Wait 3 seconds", "Wait for 2 seconds"),
    ),
    _p(
        "wait-for-network",
        r"^(?:user\s+)?waits?\s+(?:for\s+)?(?:the\s+)?network\s+(?:to\s+be\s+)?idle$",
        "waitForNetworkIdle",
        lambda m: WaitForNetworkIdle(),
        ("Wait for network idle", "Wait for the network to be idle"),
    ),
]

WAIT_PATTERNS = [
    _p(
        "wait-for-navigation",
        r"^(?:user\s+)?(?:waits?\s+)?(?:for\s+)?navigation\s+to\s+[\"']?([^\"'\s]+)[\"']?$",
        "waitForURL",
        lambda m: WaitForURL(m.group(1)),
        ("Wait for navigation to /dashboard",),
    ),
    _p(
        "wait-for-page",
        r"^(?:user\s+)?(?:waits?\s+)?(?:for\s+)?(?:the\s+)?(.+?)\s+(?:page|screen)\s+to\s+load$",
        "waitForLoadingComplete",
        lambda m: WaitForLoadingComplete(),
        ("Wait for the dashboard page to load",),
    ),
]

# ── Hover / focus ────────────────────────────────────────────────────

HOVER_PATTERNS = [
    _p(
        "hover-over-element",
        r"^(?:user\s+)?hovers?\s+(?:over|on)\s+(?:the\s+)?[\"']?(.+?)[\"']?$",
        "hover",
        lambda m: Hover(make_locator("text", _unquote(m.group(1)))),
        ("Hover over the profile menu", "User hovers on the help icon"),
    ),
    _p(
        "mouse-over",
        r"^(?:user\s+)?mouse\s*over\s+(?:the\s+)?[\"']?(.+?)[\"']?$",
        "hover",
        lambda m: Hover(make_locator("text", _unquote(m.group(1)))),
        ("Mouse over the avatar",),
    ),
]

FOCUS_PATTERNS = [
    _p(
        "focus-on-element",
        r"^(?:user\s+)?focus(?:es)?\s+(?:on\s+)?(?:the\s+)?[\"']?(.+?)[\"']?$",
        "focus",
        lambda m: Focus(make_locator("label", _unquote(m.group(1)))),
        ("Focus on the comment box",),
    ),
]


# Extended groups sit before their base group so "Go back" is not read as
# "Go to back" and "Click on X" is not read as a generic click.
PATTERN_GROUPS: list[tuple[str, list[StepPattern]]] = [
    ("structured", STRUCTURED_PATTERNS),
    ("auth", AUTH_PATTERNS),
    ("toast", TOAST_PATTERNS),
    ("modal-alert", MODAL_ALERT_PATTERNS),
    ("extended-navigation", EXTENDED_NAVIGATION_PATTERNS),
    ("navigation", NAVIGATION_PATTERNS),
    ("extended-click", EXTENDED_CLICK_PATTERNS),
    ("click", CLICK_PATTERNS),
    ("extended-fill", EXTENDED_FILL_PATTERNS),
    ("fill", FILL_PATTERNS),
    ("extended-select", EXTENDED_SELECT_PATTERNS),
    ("select", SELECT_PATTERNS),
    ("check", CHECK_PATTERNS),
    ("extended-assertion", EXTENDED_ASSERTION_PATTERNS),
    ("visibility", VISIBILITY_PATTERNS),
    ("url", URL_PATTERNS),
    ("extended-wait", EXTENDED_WAIT_PATTERNS),
    ("wait", WAIT_PATTERNS),
    ("hover", HOVER_PATTERNS),
    ("focus", FOCUS_PATTERNS),
]


def _flatten() -> tuple[StepPattern, ...]:
    out = []
    for group, patterns in PATTERN_GROUPS:
        for p in patterns:
            out.append(StepPattern(
                name=p.name,
                regex=p.regex,
                primitive_type=p.primitive_type,
                extract=p.extract,
                examples=p.examples,
                group=group,
                source=p.source,
            ))
    return tuple(out)


ALL_PATTERNS: tuple[StepPattern, ...] = _flatten()

STRUCTURED_PREFIX = re.compile(
    r"^\*\*(Action|Wait for|Assert)\*\*:\s*", re.IGNORECASE
)


def match_regex_patterns(
    text: str, patterns: tuple[StepPattern, ...] = ALL_PATTERNS
) -> Optional[tuple[StepPattern, Primitive]]:
    """First pattern whose rule matches and whose extraction succeeds."""
    for pattern in patterns:
        primitive = pattern.try_match(text)
        if primitive is not None:
            return pattern, primitive
    return None


def get_pattern(name: str) -> Optional[StepPattern]:
    for p in ALL_PATTERNS:
        if p.name == name:
            return p
    return None


def get_all_pattern_names() -> list[str]:
    return [p.name for p in ALL_PATTERNS]


def get_pattern_count_by_group() -> dict[str, int]:
    return {group: len(patterns) for group, patterns in PATTERN_GROUPS}


def find_matching_patterns(text: str) -> list[str]:
    """Names of every pattern whose regex matches ``text`` (debug aid)."""
    trimmed = text.strip()
    return [p.name for p in ALL_PATTERNS if p.regex.match(trimmed)]
