"""Pytest fixtures for LLKB tests."""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest
import structlog

from llkb.models import (
    AuthHints,
    DiscoveredPattern,
    DiscoveredProfile,
    FrameworkSignal,
    SelectorSignals,
    UiLibrarySignal,
)


@pytest.fixture(autouse=True)
def reset_logging_state() -> Generator[None, None, None]:
    """Reset logging and CLI state before and after each test.

    This ensures test isolation for logging configuration.
    """
    from llkb.cli import helpers as cli_helpers

    cli_helpers.reset_cli_state()
    structlog.reset_defaults()

    root_logger = logging.getLogger()
    original_handlers = root_logger.handlers[:]
    original_level = root_logger.level
    for handler in original_handlers:
        root_logger.removeHandler(handler)

    yield

    cli_helpers.reset_cli_state()
    structlog.reset_defaults()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in original_handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(original_level)


@pytest.fixture
def llkb_root(tmp_path: Path) -> Path:
    """Create an empty knowledge-base root directory."""
    root = tmp_path / ".artk" / "llkb"
    root.mkdir(parents=True)
    return root


# =============================================================================
# Factories
# =============================================================================


def _make_pattern(
    text: str = "click save button",
    primitive: str = "click",
    confidence: float = 0.7,
    **overrides: Any,
) -> DiscoveredPattern:
    """Build a DiscoveredPattern with sensible defaults."""
    fields: dict[str, Any] = {
        "id": overrides.pop("id", f"DP-{uuid.uuid4().hex[:8]}"),
        "normalized_text": text.lower(),
        "original_text": text,
        "mapped_primitive": primitive,
        "confidence": confidence,
        "layer": "app-specific",
    }
    fields.update(overrides)
    return DiscoveredPattern(**fields)


def _make_lesson(
    lesson_id: str = "L001",
    confidence: float = 0.8,
    success_rate: float = 0.9,
    occurrences: int = 5,
    category: str = "selector",
    **overrides: Any,
) -> dict[str, Any]:
    """Build a raw lesson record as it appears in lessons.json."""
    lesson: dict[str, Any] = {
        "id": lesson_id,
        "title": f"Lesson {lesson_id}",
        "pattern": "use data-testid",
        "trigger": "selector lookup",
        "category": category,
        "scope": "app-specific",
        "journeyIds": ["JRN-0001"],
        "metrics": {
            "occurrences": occurrences,
            "successRate": success_rate,
            "confidence": confidence,
            "firstSeen": "2026-01-01T00:00:00Z",
        },
        "validation": {"humanReviewed": False},
        "archived": False,
    }
    lesson.update(overrides)
    return lesson


def _make_component(
    component_id: str = "COMP001",
    total_uses: int = 5,
    category: str = "navigation",
    scope: str = "app-specific",
    extracted_at: str = "2026-01-01T00:00:00Z",
    **overrides: Any,
) -> dict[str, Any]:
    """Build a raw component record as it appears in components.json."""
    component: dict[str, Any] = {
        "id": component_id,
        "name": f"component{component_id}",
        "description": "A reusable component",
        "category": category,
        "scope": scope,
        "filePath": f"modules/{component_id}.ts",
        "metrics": {"totalUses": total_uses, "successRate": 1.0},
        "source": {
            "originalCode": "await page.click('#x');",
            "extractedFrom": "JRN-0001",
            "extractedBy": "journey-implement",
            "extractedAt": extracted_at,
        },
        "archived": False,
    }
    component.update(overrides)
    return component


def _make_profile(
    auth_detected: bool = True,
    selectors: dict[str, str] | None = None,
    ui_libraries: list[tuple[str, float]] | None = None,
) -> DiscoveredProfile:
    """Build a DiscoveredProfile for synthesis tests."""
    return DiscoveredProfile(
        frameworks=[FrameworkSignal(name="react", confidence=0.9, evidence=["package.json"])],
        ui_libraries=[
            UiLibrarySignal(name=name, confidence=confidence, evidence=["package.json"])
            for name, confidence in (ui_libraries or [])
        ],
        auth=AuthHints(detected=auth_detected, type="form", selectors=selectors),
    )


def _write_json(path: Path, data: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def signals() -> SelectorSignals:
    return SelectorSignals(primary_attribute="data-testid")


@pytest.fixture
def make_pattern() -> Any:
    """Factory for DiscoveredPattern records."""
    return _make_pattern


@pytest.fixture
def make_lesson() -> Any:
    """Factory for raw lessons.json records."""
    return _make_lesson


@pytest.fixture
def make_component() -> Any:
    """Factory for raw components.json records."""
    return _make_component


@pytest.fixture
def make_profile() -> Any:
    """Factory for DiscoveredProfile inputs."""
    return _make_profile


@pytest.fixture
def write_json() -> Any:
    """Write a JSON document, creating parent directories."""
    return _write_json
