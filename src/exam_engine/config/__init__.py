"""Configuration package for the exam engine."""

from exam_engine.config.app_config import (
    AnalyticsConfig,
    AppConfig,
    GradingConfig,
    IntegrityConfig,
    SelectionConfig,
    StorageConfig,
    clear_config_cache,
    config_from_dict,
    load_app_config,
)

__all__ = [
    "AnalyticsConfig",
    "AppConfig",
    "GradingConfig",
    "IntegrityConfig",
    "SelectionConfig",
    "StorageConfig",
    "clear_config_cache",
    "config_from_dict",
    "load_app_config",
]
