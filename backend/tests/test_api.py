"""API endpoint tests using FastAPI TestClient."""
import sys
import os
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from fastapi.testclient import TestClient
from main import app, quiz_store


@pytest.fixture(autouse=True)
def clear_state():
    """Clear in-memory state before each test."""
    quiz_store.clear()
    yield
    quiz_store.clear()


client = TestClient(app)


def quiz_payload(title="Test Quiz"):
    return {
        "title": title,
        "description": "Arithmetic",
        "questions": [
            {"text": "2+2?", "options": ["3", "4", "5", "6"], "correct_index": 1},
            {"text": "3*3?", "options": ["6", "8", "9", "12"], "correct_index": 2},
        ],
    }


# ---------------------------------------------------------------------------
# Health & Root
# ---------------------------------------------------------------------------

class TestHealthEndpoints:
    def test_root(self):
        res = client.get("/")
        assert res.status_code == 200
        assert "running" in res.json()["message"].lower()

    def test_health(self):
        res = client.get("/health")
        assert res.status_code == 200
        assert res.json()["status"] == "healthy"
        assert "active_sessions" in res.json()


# ---------------------------------------------------------------------------
# Quiz CRUD Tests
# ---------------------------------------------------------------------------

class TestQuizCreate:
    def test_create_quiz(self):
        res = client.post("/api/quizzes", json=quiz_payload())
        assert res.status_code == 201
        data = res.json()
        assert data["title"] == "Test Quiz"
        assert len(data["questions"]) == 2
        assert data["questions"][0]["correct_index"] == 1
        assert data["id"]

    def test_three_options_rejected(self):
        payload = quiz_payload()
        payload["questions"][0]["options"] = ["A", "B", "C"]
        res = client.post("/api/quizzes", json=payload)
        assert res.status_code == 422

    def test_bad_correct_index_rejected(self):
        payload = quiz_payload()
        payload["questions"][1]["correct_index"] = 4
        res = client.post("/api/quizzes", json=payload)
        assert res.status_code == 422

    def test_no_questions_rejected(self):
        payload = quiz_payload()
        payload["questions"] = []
        res = client.post("/api/quizzes", json=payload)
        assert res.status_code == 422

    def test_missing_title_rejected(self):
        payload = quiz_payload()
        del payload["title"]
        res = client.post("/api/quizzes", json=payload)
        assert res.status_code == 422


class TestQuizRead:
    def test_get_existing_quiz(self):
        quiz_id = client.post("/api/quizzes", json=quiz_payload()).json()["id"]
        res = client.get(f"/api/quizzes/{quiz_id}")
        assert res.status_code == 200
        assert res.json()["title"] == "Test Quiz"

    def test_get_nonexistent_quiz(self):
        res = client.get("/api/quizzes/nonexistent")
        assert res.status_code == 404

    def test_list_summaries(self):
        client.post("/api/quizzes", json=quiz_payload("First"))
        client.post("/api/quizzes", json=quiz_payload("Second"))
        res = client.get("/api/quizzes")
        assert res.status_code == 200
        summaries = res.json()
        assert {s["title"] for s in summaries} == {"First", "Second"}
        assert all(s["question_count"] == 2 for s in summaries)
        assert all("questions" not in s for s in summaries)

    def test_list_empty(self):
        assert client.get("/api/quizzes").json() == []
