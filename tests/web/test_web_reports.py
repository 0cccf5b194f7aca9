"""Tests for student, series and question reporting endpoints."""


def _graded(client, student_id, answers):
    started = client.post("/api/attempts", json={"series_id": "mock-1", "student_id": student_id}).json()
    client.post(f"/api/attempts/{started['attempt_id']}/submit", json={"responses": answers})
    return started["attempt_id"]


class TestStudents:
    def test_list_attempts(self, client):
        attempt_id = _graded(client, "stu-1", [])

        data = client.get("/api/students/stu-1/attempts").json()
        assert data["count"] == 1
        assert data["attempts"][0]["attempt_id"] == attempt_id

    def test_stats(self, client):
        _graded(client, "stu-1", [{"question_id": "p1", "selected": ["b"]}])

        data = client.get("/api/students/stu-1/stats").json()
        assert data["graded_attempts"] == 1
        assert data["best_percentage"] == 25.0


class TestSeries:
    def test_leaderboard(self, client, clock):
        _graded(client, "low", [])
        clock.advance(60)
        _graded(client, "high", [{"question_id": "p3", "selected": ["d"]}])

        data = client.get("/api/series/mock-1/leaderboard", params={"limit": 5}).json()
        assert [e["student_id"] for e in data["entries"]] == ["high", "low"]
        assert data["entries"][0]["rank"] == 1

    def test_leaderboard_unknown_series(self, client):
        assert client.get("/api/series/missing/leaderboard").status_code == 404

    def test_analytics(self, client):
        _graded(client, "stu-1", [])
        data = client.get("/api/series/mock-1/analytics").json()
        assert data["total_attempts"] == 1
        assert data["score_distribution"]["0-20"] == 1

    def test_attempt_info_and_reset(self, client):
        _graded(client, "stu-1", [])

        info = client.get("/api/series/mock-1/students/stu-1/attempt-info").json()
        assert info["attempt_count"] == 1
        assert info["remaining_attempts"] == 1

        reset = client.delete("/api/series/mock-1/students/stu-1/attempt-count")
        assert reset.status_code == 200
        assert reset.json()["count"] == 0


class TestQuestions:
    def test_stats(self, client):
        _graded(client, "right", [{"question_id": "p1", "selected": ["b"]}])
        _graded(client, "wrong", [{"question_id": "p1", "selected": ["c"]}])

        response = client.get("/api/questions/p1/stats")
        assert response.status_code == 200
        data = response.json()
        assert data["question_id"] == "p1"
        assert data["total_responses"] == 2
        assert data["accuracy"] == 50.0

    def test_stats_unknown_question(self, client):
        assert client.get("/api/questions/zzz/stats").status_code == 404

    def test_analytics_limit(self, client):
        _graded(client, "stu-1", [{"question_id": "p1", "selected": ["b"]}])

        data = client.get("/api/questions/analytics", params={"limit": 1}).json()
        assert data["questions_tracked"] == 5
        assert len(data["hardest"]) == 1
        assert len(data["slowest"]) == 1
        assert data["hardest"][0]["accuracy"] == 0.0

    def test_analytics_limit_validated(self, client):
        assert client.get("/api/questions/analytics", params={"limit": 0}).status_code == 422
