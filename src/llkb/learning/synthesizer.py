"""Candidate pattern synthesis from a discovered application profile.

Turns the auth hints, detected UI libraries and preferred selector attribute
of a ``DiscoveredProfile`` into scored, categorized ``DiscoveredPattern``
candidates using fixed template sets:

- Auth templates (only when auth was detected)
- Navigation templates (always)
- Per-UI-library templates (mui, antd, chakra, ag-grid)

Synthesis has no side effects besides identifier generation. The report
helpers at the bottom of the module persist one run's candidates as
``discovered-patterns.json``.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from llkb.core.errors import DocumentValidationError, ErrorCode, SaveResult
from llkb.core.logging import get_logger
from llkb.models import (
    AuthHints,
    DiscoveredPattern,
    DiscoveredPatternsFile,
    DiscoveredPatternsMetadata,
    DiscoveredProfile,
    SelectorHint,
    SelectorSignals,
)
from llkb.store.files import load_document, save_json_atomic
from llkb.utils.numbers import round_half_up
from llkb.utils.time import utc_now_iso

_logger = get_logger("synthesizer")

HIGH_CONFIDENCE_AUTH = 0.85
"""Confidence of an auth pattern whose role has a concrete selector.
Also the confidence of every auth selector hint."""

MEDIUM_CONFIDENCE_AUTH = 0.70
NAVIGATION_CONFIDENCE = 0.70
FRAMEWORK_PATTERN_CONFIDENCE = 0.60
"""Confidence of the selector hint attached to a UI-library pattern."""

MAX_UI_PATTERN_CONFIDENCE = 0.75

DISCOVERED_PATTERNS_FILENAME = "discovered-patterns.json"
DISCOVERED_PATTERNS_VERSION = "1.0"
DISCOVERED_PATTERNS_SOURCE = "discover-foundation:F12"


@dataclass(frozen=True)
class PatternTemplate:
    """A fixed phrase and the primitive it maps to.

    Attributes:
        text: Step phrase as a test author would write it.
        primitive: Primitive action tag (click, fill, navigate, ...).
        selector_key: Auth role whose selector backs the pattern, if any.
        component: UI-library component name the pattern targets, if any.
    """

    text: str
    primitive: str
    selector_key: str | None = None
    component: str | None = None


AUTH_PATTERN_TEMPLATES: tuple[PatternTemplate, ...] = (
    PatternTemplate("click login button", "click", selector_key="submitButton"),
    PatternTemplate("click sign in button", "click", selector_key="submitButton"),
    PatternTemplate("enter username", "fill", selector_key="usernameField"),
    PatternTemplate("enter email", "fill", selector_key="usernameField"),
    PatternTemplate("enter password", "fill", selector_key="passwordField"),
    PatternTemplate("submit login form", "click", selector_key="submitButton"),
    PatternTemplate("click logout button", "click"),
    PatternTemplate("click sign out button", "click"),
    PatternTemplate("verify logged in", "assert"),
    PatternTemplate("verify logged out", "assert"),
)

NAVIGATION_PATTERN_TEMPLATES: tuple[PatternTemplate, ...] = (
    PatternTemplate("navigate to {route}", "navigate"),
    PatternTemplate("go to {route}", "navigate"),
    PatternTemplate("open {route} page", "navigate"),
    PatternTemplate("click {item} in navigation", "click"),
    PatternTemplate("click {item} in sidebar", "click"),
    PatternTemplate("click {item} in menu", "click"),
    PatternTemplate("return to home", "navigate"),
    PatternTemplate("go back", "navigate"),
)

UI_LIBRARY_PATTERNS: dict[str, tuple[PatternTemplate, ...]] = {
    "mui": (
        PatternTemplate("click MUI button", "click", component="Button"),
        PatternTemplate("open MUI dialog", "click", component="Dialog"),
        PatternTemplate("close MUI dialog", "click", component="Dialog"),
        PatternTemplate("select MUI option", "click", component="Select"),
        PatternTemplate("fill MUI text field", "fill", component="TextField"),
        PatternTemplate("open MUI menu", "click", component="Menu"),
        PatternTemplate("click MUI tab", "click", component="Tabs"),
        PatternTemplate("toggle MUI switch", "click", component="Switch"),
        PatternTemplate("check MUI checkbox", "check", component="Checkbox"),
        PatternTemplate("dismiss MUI snackbar", "click", component="Snackbar"),
    ),
    "antd": (
        PatternTemplate("click Ant button", "click", component="Button"),
        PatternTemplate("open Ant modal", "click", component="Modal"),
        PatternTemplate("close Ant modal", "click", component="Modal"),
        PatternTemplate("select Ant option", "click", component="Select"),
        PatternTemplate("fill Ant input", "fill", component="Input"),
        PatternTemplate("click Ant table row", "click", component="Table"),
        PatternTemplate("sort Ant table column", "click", component="Table"),
        PatternTemplate("dismiss Ant message", "click", component="Message"),
    ),
    "chakra": (
        PatternTemplate("click Chakra button", "click", component="Button"),
        PatternTemplate("open Chakra modal", "click", component="Modal"),
        PatternTemplate("close Chakra modal", "click", component="Modal"),
        PatternTemplate("fill Chakra input", "fill", component="Input"),
        PatternTemplate("dismiss Chakra toast", "click", component="Toast"),
    ),
    "ag-grid": (
        PatternTemplate("click AG Grid row", "click", component="agGrid"),
        PatternTemplate("select AG Grid row", "click", component="agGrid"),
        PatternTemplate("sort AG Grid column", "click", component="agGrid"),
        PatternTemplate("filter AG Grid column", "fill", component="agGrid"),
        PatternTemplate("expand AG Grid row", "click", component="agGrid"),
        PatternTemplate("collapse AG Grid row", "click", component="agGrid"),
        PatternTemplate("edit AG Grid cell", "fill", component="agGrid"),
        PatternTemplate("clear AG Grid filter", "click", component="agGrid"),
    ),
}

_UPPERCASE = re.compile(r"([A-Z])")


def generate_pattern_id() -> str:
    """Return a fresh ``DP-xxxxxxxx`` identifier from a random UUID."""
    return f"DP-{uuid.uuid4().hex[:8]}"


def to_kebab_case(component: str) -> str:
    """Derive a selector value from a component name.

    ``TextField`` becomes ``text-field``, ``agGrid`` becomes ``ag-grid``.
    """
    return _UPPERCASE.sub(r"-\1", component).lower().lstrip("-")


def _selector_strategy(signals: SelectorSignals | None) -> str:
    return signals.primary_attribute if signals is not None else SelectorSignals().primary_attribute


def generate_auth_patterns(
    auth: AuthHints,
    signals: SelectorSignals | None,
) -> list[DiscoveredPattern]:
    """Emit one candidate per auth template.

    A template whose role has a concrete selector in ``auth.selectors`` gets
    HIGH confidence, every other template MEDIUM. The selector hint always
    carries HIGH confidence, whichever branch set the pattern's own.
    """
    selectors = auth.selectors or {}
    strategy = _selector_strategy(signals)
    patterns: list[DiscoveredPattern] = []

    for template in AUTH_PATTERN_TEMPLATES:
        selector_value = selectors.get(template.selector_key) if template.selector_key else None
        hints: list[SelectorHint] = []
        if selector_value:
            hints.append(
                SelectorHint(
                    strategy=strategy,
                    value=selector_value,
                    confidence=HIGH_CONFIDENCE_AUTH,
                )
            )

        patterns.append(
            DiscoveredPattern(
                id=generate_pattern_id(),
                normalized_text=template.text.lower(),
                original_text=template.text,
                mapped_primitive=template.primitive,
                selector_hints=hints,
                confidence=HIGH_CONFIDENCE_AUTH if selector_value else MEDIUM_CONFIDENCE_AUTH,
                layer="app-specific",
                category="auth",
                template_source="auth",
            )
        )
    return patterns


def generate_navigation_patterns() -> list[DiscoveredPattern]:
    """Emit one fixed-confidence candidate per navigation template."""
    return [
        DiscoveredPattern(
            id=generate_pattern_id(),
            normalized_text=template.text.lower(),
            original_text=template.text,
            mapped_primitive=template.primitive,
            confidence=NAVIGATION_CONFIDENCE,
            layer="app-specific",
            category="navigation",
            template_source="navigation",
        )
        for template in NAVIGATION_PATTERN_TEMPLATES
    ]


def generate_ui_library_patterns(
    templates: tuple[PatternTemplate, ...],
    signals: SelectorSignals | None,
    library_confidence: float,
) -> list[DiscoveredPattern]:
    """Emit one framework-layer candidate per template of a UI library.

    Pattern confidence is the library's detection confidence capped at
    MAX_UI_PATTERN_CONFIDENCE; the hint confidence is the fixed, lower
    FRAMEWORK_PATTERN_CONFIDENCE.
    """
    strategy = _selector_strategy(signals)
    confidence = min(library_confidence, MAX_UI_PATTERN_CONFIDENCE)
    patterns: list[DiscoveredPattern] = []

    for template in templates:
        hints: list[SelectorHint] = []
        if template.component:
            hints.append(
                SelectorHint(
                    strategy=strategy,
                    value=to_kebab_case(template.component),
                    confidence=FRAMEWORK_PATTERN_CONFIDENCE,
                )
            )
        patterns.append(
            DiscoveredPattern(
                id=generate_pattern_id(),
                normalized_text=template.text.lower(),
                original_text=template.text,
                mapped_primitive=template.primitive,
                selector_hints=hints,
                confidence=confidence,
                layer="framework",
                category="ui-interaction",
            )
        )
    return patterns


def generate_patterns(
    profile: DiscoveredProfile,
    signals: SelectorSignals | None,
) -> list[DiscoveredPattern]:
    """Synthesize all candidates for a profile.

    Args:
        profile: Discovered application profile.
        signals: Selector analysis; its primary attribute becomes the hint
            strategy. Falls back to the profile's own signals, then to
            ``data-testid``.

    Returns:
        Auth candidates (if auth was detected), then navigation candidates,
        then candidates for each detected UI library with a template set.
    """
    signals = signals or profile.selector_signals
    patterns: list[DiscoveredPattern] = []

    if profile.auth.detected:
        patterns.extend(generate_auth_patterns(profile.auth, signals))

    patterns.extend(generate_navigation_patterns())

    for library in profile.ui_libraries:
        templates = UI_LIBRARY_PATTERNS.get(library.name)
        if templates is None:
            continue
        patterns.extend(generate_ui_library_patterns(templates, signals, library.confidence))

    _logger.debug(
        "patterns_synthesized",
        count=len(patterns),
        auth=profile.auth.detected,
        ui_libraries=[lib.name for lib in profile.ui_libraries],
    )
    return patterns


# =============================================================================
# discovered-patterns.json
# =============================================================================


def create_discovered_patterns_file(
    patterns: list[DiscoveredPattern],
    profile: DiscoveredProfile,
    duration_ms: float | None = None,
) -> DiscoveredPatternsFile:
    """Build the report document for one synthesis run."""
    by_category: dict[str, int] = {}
    by_template: dict[str, int] = {}
    for pattern in patterns:
        if pattern.category:
            by_category[pattern.category] = by_category.get(pattern.category, 0) + 1
        if pattern.template_source:
            by_template[pattern.template_source] = by_template.get(pattern.template_source, 0) + 1

    average = sum(p.confidence for p in patterns) / len(patterns) if patterns else 0.0

    return DiscoveredPatternsFile(
        version=DISCOVERED_PATTERNS_VERSION,
        generated_at=utc_now_iso(),
        source=DISCOVERED_PATTERNS_SOURCE,
        patterns=list(patterns),
        metadata=DiscoveredPatternsMetadata(
            frameworks=[f.name for f in profile.frameworks],
            ui_libraries=[lib.name for lib in profile.ui_libraries],
            total_patterns=len(patterns),
            by_category=by_category,
            by_template=by_template,
            average_confidence=round_half_up(average),
            discovery_duration=duration_ms,
        ),
    )


def save_discovered_patterns(report: DiscoveredPatternsFile, root: Path) -> SaveResult:
    """Atomically write ``<root>/discovered-patterns.json``."""
    return save_json_atomic(Path(root) / DISCOVERED_PATTERNS_FILENAME, report)


def _check_report_shape(data: Any) -> str | None:
    if not isinstance(data, dict):
        return "top-level value is not an object"
    if not isinstance(data.get("patterns"), list):
        return "'patterns' is not an array"
    if not isinstance(data.get("version"), str):
        return "'version' is not a string"
    return None


def load_discovered_patterns(root: Path) -> DiscoveredPatternsFile | None:
    """Load ``<root>/discovered-patterns.json``.

    Returns:
        The validated report, or None when the file is missing or fails
        validation (a warning is logged in the latter case).
    """
    path = Path(root) / DISCOVERED_PATTERNS_FILENAME
    if not path.exists():
        return None

    try:
        report: DiscoveredPatternsFile = load_document(
            path, DiscoveredPatternsFile, precheck=_check_report_shape
        )
    except DocumentValidationError as e:
        _logger.warning(
            "discovered_patterns_invalid",
            path=str(path),
            error=e.reason,
            code=ErrorCode.DOCUMENT_INVALID.value,
        )
        return None
    except OSError as e:
        _logger.warning(
            "discovered_patterns_unreadable",
            path=str(path),
            error=str(e),
            code=ErrorCode.SOURCE_UNREADABLE.value,
        )
        return None
    return report
