"""Shared fixtures: isolated database, sample catalog, engine with a fixed clock."""

import pytest

from exam_engine.config.app_config import config_from_dict
from exam_engine.core.engine import AttemptEngine
from exam_engine.core.models import Question, TestSeries
from exam_engine.db.catalog_repository import upsert_question, upsert_series
from exam_engine.db.database import init_db

from helpers import SAMPLE_QUESTIONS, SAMPLE_SERIES, FakeClock, RecordingNotifier


@pytest.fixture
def db_path(tmp_path):
    """Fresh SQLite database for each test."""
    return init_db(tmp_path / "exam_engine.db")


@pytest.fixture
def catalog(db_path):
    """Sample questions and series loaded into the database."""
    for data in SAMPLE_QUESTIONS:
        upsert_question(Question.from_dict(data))
    for data in SAMPLE_SERIES:
        upsert_series(TestSeries.from_dict(data))
    return db_path


@pytest.fixture
def app_config():
    return config_from_dict({"storage": {"db_path": "unused.db"}})


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def engine(catalog, app_config, clock, notifier):
    """AttemptEngine over the sample catalog with a fixed clock."""
    return AttemptEngine(config=app_config, clock=clock, notifier=notifier)

