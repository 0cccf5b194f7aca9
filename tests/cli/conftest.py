"""Fixtures for CLI tests."""

import pytest
import yaml

from exam_engine.config.app_config import CONFIG_ENV_VAR, clear_config_cache

from helpers import SAMPLE_QUESTIONS, SAMPLE_SERIES


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Default config and a database path under tmp_path."""
    monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "no-config.yaml"))
    clear_config_cache()
    yield str(tmp_path / "cli.db")
    clear_config_cache()


@pytest.fixture
def catalog_file(tmp_path):
    """Catalog YAML with the practice series and their questions."""
    path = tmp_path / "catalog.yaml"
    practice = [s for s in SAMPLE_SERIES if s["series_id"] in ("mock-1", "single-shot")]
    path.write_text(
        yaml.safe_dump({"questions": SAMPLE_QUESTIONS, "series": practice}),
        encoding="utf-8",
    )
    return path
