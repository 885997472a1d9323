"""Tests for llkb.learning.synthesizer module."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from llkb.learning.synthesizer import (
    AUTH_PATTERN_TEMPLATES,
    DISCOVERED_PATTERNS_FILENAME,
    DISCOVERED_PATTERNS_SOURCE,
    FRAMEWORK_PATTERN_CONFIDENCE,
    HIGH_CONFIDENCE_AUTH,
    MAX_UI_PATTERN_CONFIDENCE,
    MEDIUM_CONFIDENCE_AUTH,
    NAVIGATION_CONFIDENCE,
    NAVIGATION_PATTERN_TEMPLATES,
    UI_LIBRARY_PATTERNS,
    create_discovered_patterns_file,
    generate_auth_patterns,
    generate_navigation_patterns,
    generate_pattern_id,
    generate_patterns,
    load_discovered_patterns,
    save_discovered_patterns,
    to_kebab_case,
)
from llkb.models import AuthHints, SelectorSignals

LOGIN_SELECTORS = {
    "submitButton": "login-submit",
    "usernameField": "login-user",
    "passwordField": "login-pass",
}


class TestTemplateTables:
    """Tests for the fixed template sets."""

    def test_template_counts(self):
        """Each template set has its documented size."""
        assert len(AUTH_PATTERN_TEMPLATES) == 10
        assert len(NAVIGATION_PATTERN_TEMPLATES) == 8
        assert {name: len(t) for name, t in UI_LIBRARY_PATTERNS.items()} == {
            "mui": 10,
            "antd": 8,
            "chakra": 5,
            "ag-grid": 8,
        }


class TestHelpers:
    """Tests for identifier and selector helpers."""

    def test_pattern_id_format(self):
        """Identifiers are DP- followed by eight hex characters."""
        pattern_id = generate_pattern_id()
        assert pattern_id.startswith("DP-")
        assert len(pattern_id) == 11
        int(pattern_id[3:], 16)

    @pytest.mark.parametrize(
        ("component", "expected"),
        [
            ("Button", "button"),
            ("TextField", "text-field"),
            ("agGrid", "ag-grid"),
            ("Snackbar", "snackbar"),
        ],
    )
    def test_to_kebab_case(self, component: str, expected: str):
        """Component names become kebab-case selector values."""
        assert to_kebab_case(component) == expected


class TestAuthPatterns:
    """Tests for generate_auth_patterns()."""

    def test_known_selectors_get_high_confidence(self, signals: SelectorSignals):
        """Templates backed by a concrete selector are HIGH, the rest MEDIUM."""
        patterns = generate_auth_patterns(
            AuthHints(detected=True, selectors=LOGIN_SELECTORS), signals
        )
        by_text = {p.normalized_text: p for p in patterns}

        assert by_text["click login button"].confidence == HIGH_CONFIDENCE_AUTH
        assert by_text["enter password"].confidence == HIGH_CONFIDENCE_AUTH
        assert by_text["click logout button"].confidence == MEDIUM_CONFIDENCE_AUTH
        assert by_text["verify logged in"].selector_hints == []

    def test_hint_confidence_is_always_high(self, signals: SelectorSignals):
        """Every auth selector hint carries HIGH confidence."""
        patterns = generate_auth_patterns(
            AuthHints(detected=True, selectors=LOGIN_SELECTORS), signals
        )
        hints = [h for p in patterns for h in p.selector_hints]

        assert hints
        assert all(h.confidence == HIGH_CONFIDENCE_AUTH for h in hints)
        assert all(h.strategy == "data-testid" for h in hints)

    def test_without_selectors_everything_is_medium(self):
        """No selectors means MEDIUM confidence and no hints."""
        patterns = generate_auth_patterns(AuthHints(detected=True), None)

        assert len(patterns) == 10
        assert all(p.confidence == MEDIUM_CONFIDENCE_AUTH for p in patterns)
        assert all(p.selector_hints == [] for p in patterns)

    def test_auth_pattern_fields(self, signals: SelectorSignals):
        """Auth candidates are app-specific with auth category and source."""
        pattern = generate_auth_patterns(
            AuthHints(detected=True, selectors={"usernameField": "user"}), signals
        )[2]

        assert pattern.original_text == "enter username"
        assert pattern.mapped_primitive == "fill"
        assert pattern.layer == "app-specific"
        assert pattern.category == "auth"
        assert pattern.template_source == "auth"
        assert pattern.selector_hints[0].value == "user"


class TestNavigationPatterns:
    """Tests for generate_navigation_patterns()."""

    def test_fixed_confidence(self):
        """Navigation candidates share one fixed confidence."""
        patterns = generate_navigation_patterns()
        assert len(patterns) == 8
        assert {p.confidence for p in patterns} == {NAVIGATION_CONFIDENCE}
        assert {p.category for p in patterns} == {"navigation"}
        assert {p.template_source for p in patterns} == {"navigation"}


class TestGeneratePatterns:
    """Tests for generate_patterns()."""

    def test_full_profile_order_and_counts(self, make_profile, signals):
        """Auth, then navigation, then UI-library candidates."""
        profile = make_profile(selectors=LOGIN_SELECTORS, ui_libraries=[("mui", 0.9)])

        patterns = generate_patterns(profile, signals)

        assert len(patterns) == 10 + 8 + 10
        assert [p.category for p in patterns[:10]] == ["auth"] * 10
        assert [p.category for p in patterns[10:18]] == ["navigation"] * 8
        assert [p.category for p in patterns[18:]] == ["ui-interaction"] * 10

    def test_no_auth_yields_navigation_only(self, make_profile, signals):
        """Without auth or UI libraries only navigation templates remain."""
        patterns = generate_patterns(make_profile(auth_detected=False), signals)
        assert len(patterns) == 8
        assert all(p.category == "navigation" for p in patterns)

    def test_unknown_library_contributes_nothing(self, make_profile, signals):
        """Libraries without a template set are skipped."""
        profile = make_profile(auth_detected=False, ui_libraries=[("bootstrap", 0.9)])
        assert len(generate_patterns(profile, signals)) == 8

    def test_ui_confidence_capped(self, make_profile, signals):
        """UI-library confidence is capped; hints use the framework level."""
        profile = make_profile(
            auth_detected=False, ui_libraries=[("antd", 0.95), ("chakra", 0.5)]
        )

        patterns = generate_patterns(profile, signals)
        antd = [p for p in patterns if "Ant" in p.original_text]
        chakra = [p for p in patterns if "Chakra" in p.original_text]

        assert len(antd) == 8
        assert {p.confidence for p in antd} == {MAX_UI_PATTERN_CONFIDENCE}
        assert {p.confidence for p in chakra} == {0.5}
        assert all(p.layer == "framework" for p in antd + chakra)
        hint = antd[0].selector_hints[0]
        assert hint.confidence == FRAMEWORK_PATTERN_CONFIDENCE
        assert hint.value == "button"

    def test_strategy_follows_signals(self, make_profile):
        """The primary selector attribute becomes the hint strategy."""
        profile = make_profile(selectors=LOGIN_SELECTORS, ui_libraries=[("mui", 0.9)])

        patterns = generate_patterns(profile, SelectorSignals(primary_attribute="data-qa"))

        strategies = {h.strategy for p in patterns for h in p.selector_hints}
        assert strategies == {"data-qa"}

    def test_strategy_falls_back_to_profile_signals(self, make_profile):
        """Without explicit signals the profile's own analysis is used."""
        profile = make_profile(ui_libraries=[("mui", 0.9)], auth_detected=False)
        profile = profile.model_copy(
            update={"selector_signals": SelectorSignals(primary_attribute="data-cy")}
        )

        patterns = generate_patterns(profile, None)

        assert patterns[-1].selector_hints[0].strategy == "data-cy"

    def test_identifiers_unique(self, make_profile, signals):
        """Every candidate gets its own identifier."""
        profile = make_profile(
            selectors=LOGIN_SELECTORS,
            ui_libraries=[("mui", 0.9), ("antd", 0.8), ("ag-grid", 0.7)],
        )
        patterns = generate_patterns(profile, signals)
        assert len({p.id for p in patterns}) == len(patterns)


class TestDiscoveredPatternsFile:
    """Tests for the discovered-patterns.json report."""

    def test_metadata(self, make_profile, signals):
        """Metadata summarizes categories, templates and confidence."""
        profile = make_profile(auth_detected=False, ui_libraries=[("chakra", 0.6)])
        patterns = generate_patterns(profile, signals)

        report = create_discovered_patterns_file(patterns, profile, duration_ms=12.5)

        assert report.source == DISCOVERED_PATTERNS_SOURCE
        assert report.metadata.total_patterns == 13
        assert report.metadata.by_category == {"navigation": 8, "ui-interaction": 5}
        assert report.metadata.by_template == {"navigation": 8}
        assert report.metadata.frameworks == ["react"]
        assert report.metadata.ui_libraries == ["chakra"]
        assert report.metadata.average_confidence == round((8 * 0.7 + 5 * 0.6) / 13, 2)
        assert report.metadata.discovery_duration == 12.5

    def test_empty_report(self, make_profile):
        """An empty run averages to zero."""
        report = create_discovered_patterns_file([], make_profile())
        assert report.metadata.average_confidence == 0.0
        assert report.metadata.total_patterns == 0

    def test_save_and_load(self, llkb_root: Path, make_profile, signals):
        """A saved report loads back with the same candidates."""
        profile = make_profile(selectors=LOGIN_SELECTORS)
        report = create_discovered_patterns_file(generate_patterns(profile, signals), profile)

        assert save_discovered_patterns(report, llkb_root).success is True
        data = json.loads((llkb_root / DISCOVERED_PATTERNS_FILENAME).read_text())
        assert "generatedAt" in data
        assert data["patterns"][0]["mappedPrimitive"] == "click"

        loaded = load_discovered_patterns(llkb_root)
        assert loaded is not None
        assert loaded.patterns == report.patterns

    def test_missing_report(self, llkb_root: Path):
        """A missing report loads as None."""
        assert load_discovered_patterns(llkb_root) is None

    def test_non_utf8_report_loads_as_none(self, llkb_root: Path):
        """A report that is not UTF-8 is rejected."""
        (llkb_root / DISCOVERED_PATTERNS_FILENAME).write_bytes(b"\xff\xfe{}")
        assert load_discovered_patterns(llkb_root) is None

    @pytest.mark.parametrize(
        "content",
        [
            "[]",
            '{"version": "1.0", "patterns": {}}',
            '{"version": 1, "patterns": []}',
            "{broken",
            '{"version": "1.0", "generatedAt": "x", "source": "s", "patterns": [{"id": 1}]}',
        ],
    )
    def test_invalid_report_loads_as_none(self, llkb_root: Path, content: str):
        """Reports of the wrong shape are rejected."""
        (llkb_root / DISCOVERED_PATTERNS_FILENAME).write_text(content)
        assert load_discovered_patterns(llkb_root) is None
