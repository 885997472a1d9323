"""LLKB configuration models.

Defines the pydantic models for ``<root>/config.yml`` and the loader that
merges a user file over the built-in defaults.

Example YAML:
    enabled: true
    extraction:
      maxPredictivePerDay: 5
      maxPredictivePerJourney: 2
    history:
      retentionDays: 365
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from llkb.core.errors import ErrorCode
from llkb.core.logging import get_logger

_logger = get_logger("config")

DEFAULT_LLKB_ROOT = Path(".artk/llkb")
"""Documented default knowledge-base root. Every entry point takes the root
as an explicit parameter; this value is only the fallback."""

CONFIG_FILENAME = "config.yml"


class _ConfigModel(BaseModel):
    """Base for config sections: accepts camelCase or snake_case keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ExtractionConfig(_ConfigModel):
    """Automatic component extraction and its rate ceilings."""

    min_occurrences: int = Field(
        default=2,
        ge=1,
        description="Minimum occurrences before a pattern is extracted.",
    )
    predictive_extraction: bool = Field(
        default=True,
        description="Extract on first use instead of waiting for min_occurrences.",
    )
    confidence_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Minimum confidence for a pattern to be auto-applied.",
    )
    max_predictive_per_day: int = Field(
        default=5,
        ge=0,
        description="Ceiling on predictive extractions per calendar day, all journeys.",
    )
    max_predictive_per_journey: int = Field(
        default=2,
        ge=0,
        description="Ceiling on predictive extractions per journey per day.",
    )
    min_lines_for_extraction: int = Field(default=3, ge=1)
    similarity_threshold: float = Field(default=0.8, ge=0.0, le=1.0)


class RetentionConfig(_ConfigModel):
    """Staleness policies for lessons and components."""

    max_lesson_age: int = Field(default=90, ge=1, description="Days before a lesson is stale.")
    min_success_rate: float = Field(default=0.6, ge=0.0, le=1.0)
    archive_unused: int = Field(
        default=30, ge=1, description="Days before unused components are archived."
    )


class HistoryConfig(_ConfigModel):
    """History log retention."""

    retention_days: int = Field(
        default=365,
        ge=1,
        description="History files older than this many days are eligible for cleanup.",
    )


class InjectionConfig(_ConfigModel):
    prioritize_by_confidence: bool = True


class ScopesConfig(_ConfigModel):
    universal: bool = True
    framework_specific: bool = True
    app_specific: bool = True


class OverridesConfig(_ConfigModel):
    allow_user_override: bool = True
    log_overrides: bool = True
    flag_after_overrides: int = Field(default=3, ge=1)


class LLKBConfig(_ConfigModel):
    """Top-level ``config.yml`` structure."""

    version: str = "1.0.0"
    enabled: bool = True
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    injection: InjectionConfig = Field(default_factory=InjectionConfig)
    scopes: ScopesConfig = Field(default_factory=ScopesConfig)
    overrides: OverridesConfig = Field(default_factory=OverridesConfig)


def load_config(root: Path = DEFAULT_LLKB_ROOT) -> LLKBConfig:
    """Load ``<root>/config.yml`` merged over the defaults.

    Unknown keys are ignored and missing keys keep their default. A missing
    file yields the defaults silently; an unreadable or invalid file yields
    the defaults with a warning.

    Args:
        root: Knowledge-base root directory.

    Returns:
        The validated configuration.
    """
    config_path = Path(root) / CONFIG_FILENAME
    if not config_path.exists():
        return LLKBConfig()

    try:
        with open(config_path, encoding="utf-8") as f:
            data: Any = yaml.safe_load(f) or {}
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        _logger.warning(
            "config_unreadable",
            path=str(config_path),
            error=str(e),
            code=ErrorCode.SOURCE_UNREADABLE.value,
        )
        return LLKBConfig()

    if not isinstance(data, dict):
        _logger.warning(
            "config_invalid",
            path=str(config_path),
            error="top-level value is not a mapping",
            code=ErrorCode.DOCUMENT_INVALID.value,
        )
        return LLKBConfig()

    try:
        return LLKBConfig.model_validate(data)
    except ValidationError as e:
        _logger.warning(
            "config_invalid",
            path=str(config_path),
            error=str(e),
            code=ErrorCode.DOCUMENT_INVALID.value,
        )
        return LLKBConfig()
