"""Engine configuration loader.

Loads centralized configuration from data/config/engine_config_v1.yaml
(overridable with the EXAM_ENGINE_CONFIG environment variable) and merges it
over the built-in defaults.

Usage:
    from exam_engine.config.app_config import load_app_config

    config = load_app_config()
    points = config.integrity.severity_points["high"]
"""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
CONFIG_FILE = Path("data/config/engine_config_v1.yaml")
CONFIG_ENV_VAR = "EXAM_ENGINE_CONFIG"


@dataclass
class StorageConfig:
    """Where attempt documents live."""

    db_path: str = "db/exam_engine.db"


@dataclass
class GradingConfig:
    """Grading engine settings."""

    default_language: str = "en"


@dataclass
class IntegrityConfig:
    """Anti-cheating policy: severity vocabulary and thresholds."""

    severity_points: dict[str, int] = field(
        default_factory=lambda: {"low": 1, "medium": 3, "high": 5}
    )
    violation_severity: dict[str, str] = field(default_factory=dict)
    default_severity: str = "medium"
    flag_threshold: int = 5
    terminate_threshold: int = 10
    strict_live_series: bool = False


@dataclass
class AnalyticsConfig:
    """Thresholds used by the analytics generator."""

    expected_time_seconds: float = 120.0
    accuracy_cutoff: float = 70.0
    time_over_limit_cutoff: int = 5
    weak_subject_accuracy: float = 50.0
    fundamentals_recommendations: list[str] = field(default_factory=list)
    time_management_recommendations: list[str] = field(default_factory=list)
    general_recommendations: list[str] = field(default_factory=list)


@dataclass
class SelectionConfig:
    """Question pool selection settings."""

    seed: int | None = None


@dataclass
class AppConfig:
    """Engine-wide configuration."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    grading: GradingConfig = field(default_factory=GradingConfig)
    integrity: IntegrityConfig = field(default_factory=IntegrityConfig)
    analytics: AnalyticsConfig = field(default_factory=AnalyticsConfig)
    selection: SelectionConfig = field(default_factory=SelectionConfig)


# Module-level cache
_cached_config: AppConfig | None = None


def _get_defaults() -> dict[str, Any]:
    """Get default configuration values."""
    return {
        "storage": {
            "db_path": "db/exam_engine.db",
        },
        "grading": {
            "default_language": "en",
        },
        "integrity": {
            "severity_points": {"low": 1, "medium": 3, "high": 5},
            "violation_severity": {
                "mouse_leave": "low",
                "right_click": "low",
                "tab_switch": "low",
                "fullscreen_exit": "medium",
                "copy_attempt": "medium",
                "paste_attempt": "medium",
                "keyboard_shortcut": "medium",
                "window_blur": "medium",
                "developer_tools": "high",
                "screen_sharing": "high",
                "suspicious_activity": "high",
                "multiple_violations": "high",
            },
            "default_severity": "medium",
            "flag_threshold": 5,
            "terminate_threshold": 10,
            "strict_live_series": False,
        },
        "analytics": {
            "expected_time_seconds": 120,
            "accuracy_cutoff": 70,
            "time_over_limit_cutoff": 5,
            "weak_subject_accuracy": 50,
            "fundamentals_recommendations": [
                "Focus on fundamental concepts before attempting practice tests",
                "Review incorrect answers thoroughly to understand mistakes",
            ],
            "time_management_recommendations": [
                "Practice time management with timed question sets",
                "Identify question patterns that take longer and practice those specifically",
            ],
            "general_recommendations": [
                "Create a daily study schedule with regular practice sessions",
                "Use active recall and spaced repetition techniques",
            ],
        },
        "selection": {
            "seed": None,
        },
    }


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into a copy of base."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = value
    return result


def _parse_config(data: dict[str, Any]) -> AppConfig:
    """Parse a fully merged configuration dictionary into AppConfig."""
    storage = data["storage"]
    grading = data["grading"]
    integrity = data["integrity"]
    analytics = data["analytics"]
    selection = data["selection"]

    return AppConfig(
        storage=StorageConfig(db_path=str(storage["db_path"])),
        grading=GradingConfig(default_language=grading["default_language"]),
        integrity=IntegrityConfig(
            severity_points={k: int(v) for k, v in integrity["severity_points"].items()},
            violation_severity=dict(integrity["violation_severity"]),
            default_severity=integrity["default_severity"],
            flag_threshold=int(integrity["flag_threshold"]),
            terminate_threshold=int(integrity["terminate_threshold"]),
            strict_live_series=bool(integrity["strict_live_series"]),
        ),
        analytics=AnalyticsConfig(
            expected_time_seconds=float(analytics["expected_time_seconds"]),
            accuracy_cutoff=float(analytics["accuracy_cutoff"]),
            time_over_limit_cutoff=int(analytics["time_over_limit_cutoff"]),
            weak_subject_accuracy=float(analytics["weak_subject_accuracy"]),
            fundamentals_recommendations=list(analytics["fundamentals_recommendations"]),
            time_management_recommendations=list(analytics["time_management_recommendations"]),
            general_recommendations=list(analytics["general_recommendations"]),
        ),
        selection=SelectionConfig(seed=selection["seed"]),
    )


def config_from_dict(overrides: dict[str, Any] | None = None) -> AppConfig:
    """Build an AppConfig from defaults plus optional overrides.

    Args:
        overrides: Partial config dict, same shape as the YAML file.

    Returns:
        AppConfig object (not cached).
    """
    return _parse_config(_merge(_get_defaults(), overrides or {}))


def _config_path() -> Path:
    env_path = os.environ.get(CONFIG_ENV_VAR)
    return Path(env_path) if env_path else CONFIG_FILE


def load_app_config(force_reload: bool = False) -> AppConfig:
    """Load engine config, falling back to defaults.

    Args:
        force_reload: If True, ignore cached config and reload from file.

    Returns:
        AppConfig object with all settings.
    """
    global _cached_config

    if _cached_config is not None and not force_reload:
        return _cached_config

    path = _config_path()
    overrides: dict[str, Any] = {}

    if path.exists():
        logger.debug("loading_app_config", source=str(path))
        overrides = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    else:
        logger.info("using_default_config")

    _cached_config = config_from_dict(overrides)
    return _cached_config


def clear_config_cache() -> None:
    """Clear the configuration cache.

    Useful for testing or when config is modified at runtime.
    """
    global _cached_config
    _cached_config = None
