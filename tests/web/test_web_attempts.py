"""Tests for attempt endpoints."""


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestStartAttempt:
    """Tests for POST /api/attempts."""

    def test_start(self, started):
        assert started["attempt_no"] == 1
        assert started["time_left_seconds"] == 3600
        assert [s["title"] for s in started["bound_sections"]] == ["Physics", "Chemistry"]

    def test_second_start_conflicts(self, client, started):
        response = client.post("/api/attempts", json={"series_id": "mock-1", "student_id": "stu-1"})
        assert response.status_code == 409
        assert response.json()["error"] == "AttemptInProgressError"

    def test_unknown_series(self, client):
        response = client.post("/api/attempts", json={"series_id": "nope", "student_id": "stu-1"})
        assert response.status_code == 404

    def test_limit_exceeded(self, client):
        first = client.post("/api/attempts", json={"series_id": "single-shot", "student_id": "stu-1"}).json()
        client.post(f"/api/attempts/{first['attempt_id']}/submit", json={})

        response = client.post("/api/attempts", json={"series_id": "single-shot", "student_id": "stu-1"})
        assert response.status_code == 429

    def test_window_closed(self, client, clock):
        clock.advance(5 * 3600)
        response = client.post("/api/attempts", json={"series_id": "live-1", "student_id": "stu-1"})
        assert response.status_code == 403

    def test_missing_student_id(self, client):
        response = client.post("/api/attempts", json={"series_id": "mock-1"})
        assert response.status_code == 422


class TestProgress:
    """Tests for PUT /api/attempts/{id}/progress."""

    def test_save(self, client, started):
        attempt_id = started["attempt_id"]
        response = client.put(
            f"/api/attempts/{attempt_id}/progress",
            json={"responses": [{"question_id": "p1", "selected": ["b"], "time_spent": 30}], "time_left_seconds": 3000},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["version"] == 1
        assert data["updated"] == 1
        assert data["time_left"] == 3000

    def test_unset_fields_not_overwritten(self, client, started):
        attempt_id = started["attempt_id"]
        client.put(f"/api/attempts/{attempt_id}/progress", json={"responses": [{"question_id": "p1", "selected": ["b"]}]})
        client.put(f"/api/attempts/{attempt_id}/progress", json={"responses": [{"question_id": "p1", "flagged": True}]})

        attempt = client.get(f"/api/attempts/{attempt_id}").json()
        p1 = next(r for r in attempt["responses"] if r["question_id"] == "p1")
        assert p1["selected"] == ["b"]
        assert p1["flagged"] is True

    def test_unknown_question(self, client, started):
        response = client.put(
            f"/api/attempts/{started['attempt_id']}/progress",
            json={"responses": [{"question_id": "ghost", "selected": ["a"]}]},
        )
        assert response.status_code == 422

    def test_unknown_attempt(self, client):
        response = client.put("/api/attempts/missing/progress", json={"responses": []})
        assert response.status_code == 404


class TestSubmit:
    """Tests for POST /api/attempts/{id}/submit."""

    def test_submit_and_review(self, client, started):
        attempt_id = started["attempt_id"]
        response = client.post(
            f"/api/attempts/{attempt_id}/submit",
            json={"responses": [{"question_id": "p1", "selected": ["b"]}]},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["score"] == 4.0
        assert data["max_score"] == 16.0
        assert data["total_questions"] == 5

        review = client.get(f"/api/attempts/{attempt_id}/review")
        assert review.status_code == 200
        assert review.json()["attempt"]["status"] == "graded"

    def test_review_before_submit(self, client, started):
        response = client.get(f"/api/attempts/{started['attempt_id']}/review")
        assert response.status_code == 409

    def test_save_after_submit(self, client, started):
        attempt_id = started["attempt_id"]
        client.post(f"/api/attempts/{attempt_id}/submit", json={})

        response = client.put(f"/api/attempts/{attempt_id}/progress", json={"responses": []})
        assert response.status_code == 409

    def test_abandon(self, client, started):
        response = client.post(f"/api/attempts/{started['attempt_id']}/abandon")
        assert response.status_code == 200
        assert response.json()["status"] == "aborted"


class TestIntegrityEvents:
    """Tests for strict-mode monitoring endpoints."""

    def test_not_enabled(self, client, started):
        response = client.post(f"/api/attempts/{started['attempt_id']}/integrity-events", json={"type": "tab_switch"})
        assert response.status_code == 403

    def test_termination(self, client, started):
        attempt_id = started["attempt_id"]
        assert client.post(f"/api/attempts/{attempt_id}/strict-mode").json()["strict_mode_enabled"] is True

        client.post(f"/api/attempts/{attempt_id}/integrity-events", json={"type": "developer_tools"})
        response = client.post(f"/api/attempts/{attempt_id}/integrity-events", json={"type": "screen_sharing"})

        assert response.status_code == 200
        assert response.json()["should_terminate"] is True

        blocked = client.put(f"/api/attempts/{attempt_id}/progress", json={"responses": []})
        assert blocked.status_code == 410

        stats = client.get(f"/api/attempts/{attempt_id}/integrity").json()
        assert stats["is_terminated"] is True
        assert len(stats["events"]) == 2

        overview = client.get("/api/integrity/overview").json()
        assert overview["total_strict_attempts"] == 1
