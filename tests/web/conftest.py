"""Fixtures for Web API tests."""

import pytest
from fastapi.testclient import TestClient

from exam_engine.web.api import create_app
from exam_engine.web.dependencies import reset_engine


@pytest.fixture
def client(engine):
    """Test client over the sample-catalog engine.

    Used without `with` so the lifespan does not re-point the database.
    """
    app = create_app(engine=engine)
    yield TestClient(app)
    reset_engine()


@pytest.fixture
def started(client):
    """An in-progress attempt on mock-1 for stu-1."""
    response = client.post("/api/attempts", json={"series_id": "mock-1", "student_id": "stu-1", "seed": 7})
    assert response.status_code == 201
    return response.json()
