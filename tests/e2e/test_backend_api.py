"""
End-to-End Tests for the HTTP API

Runs the FastAPI app in-process with in-memory stores. Quick-ask uses the
offline answers unless a test asks for the recording fake LLM.
"""

import asyncio
import logging
import pytest
import sys
import os

from fastapi.testclient import TestClient

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "levely_companion", "src"))
sys.path.insert(0, os.path.join(project_root, "backend"))

import main
from levely_companion.chat_history import ChatHistoryStore
from levely_companion.companion import LevelyCompanion
from levely_companion.engine import LevelyEngine
from levely_companion.feedback import NO_SUBMISSION_REPLY
from levely_companion.llm_client import LlmClient


class RecordingLlm(LlmClient):
    """Fake completion service that keeps the messages of every call."""

    def __init__(self):
        self.calls = []

    async def complete(self, system, context, messages):
        self.calls.append([message.content for message in messages])
        return "Jawaban Levely."


@pytest.fixture
def llm():
    return RecordingLlm()


@pytest.fixture
def companion():
    return LevelyCompanion()


@pytest.fixture
def chat_store():
    return ChatHistoryStore()


@pytest.fixture
def client(companion, chat_store):
    main.app.dependency_overrides[main.get_companion] = lambda: companion
    main.app.dependency_overrides[main.get_chat_store] = lambda: chat_store
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()


@pytest.fixture
def llm_client(llm, chat_store):
    companion = LevelyCompanion(engine=LevelyEngine(llm_client=llm))
    main.app.dependency_overrides[main.get_companion] = lambda: companion
    main.app.dependency_overrides[main.get_chat_store] = lambda: chat_store
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()


class TestProgressEndpoints:

    def test_new_learner_progress_is_empty(self, client):
        response = client.get("/api/levely/u1/progress")

        assert response.status_code == 200
        assert response.json()["points"] == 0
        assert response.json()["badges"] == []

    def test_next_question_hides_answer(self, client):
        response = client.get("/api/levely/u1/next-question", params={"topic": "Usability"})

        assert response.status_code == 200
        body = response.json()
        assert body["difficulty"] == "easy"
        assert "correctIndex" not in body

    def test_next_question_unknown_topic(self, client):
        assert client.get("/api/levely/u1/next-question", params={"topic": "Typography"}).status_code == 404

    def test_recommendation(self, client):
        response = client.get("/api/levely/u1/recommendation")
        assert response.json()["recommendation"].startswith("Mulai dengan kuis mudah dulu.")


class TestSubmissionEndpoints:

    def test_quiz_answer(self, client):
        response = client.post("/api/levely/u1/quiz", json={"questionId": "u-e-1", "selectedIndex": 1})

        assert response.status_code == 200
        body = response.json()
        assert body["pointsDelta"] == 11
        assert body["duplicate"] is False
        assert body["progress"]["correctTotal"] == 1
        assert body["answerFeedback"].startswith("Jawaban kamu sudah benar. +11 poin.")
        assert body["feedback"].startswith("Benar, akurasi topik Usability")

    def test_quiz_unknown_question(self, client):
        response = client.post("/api/levely/u1/quiz", json={"questionId": "nope", "selectedIndex": 0})
        assert response.status_code == 404

    def test_quiz_index_out_of_range(self, client):
        response = client.post("/api/levely/u1/quiz", json={"questionId": "u-e-1", "selectedIndex": 9})

        assert response.status_code == 400
        assert client.get("/api/levely/u1/progress").json()["attemptedTotal"] == 0

    def test_assessment_duplicate_callback(self, client):
        payload = {"correct": 8, "attempted": 10, "score": 80, "chapterName": "Heuristik", "referenceId": "as-1"}
        first = client.post("/api/levely/u1/assessment", json=payload).json()
        second = client.post("/api/levely/u1/assessment", json=payload).json()

        assert first["duplicate"] is False
        assert second["duplicate"] is True
        assert len(second["progress"]["history"]) == 1

    def test_assessment_counts_rejected(self, client):
        response = client.post("/api/levely/u1/assessment", json={"correct": 12, "attempted": 10, "score": 80})
        assert response.status_code == 400

    def test_assessment_score_out_of_range(self, client):
        response = client.post("/api/levely/u1/assessment", json={"correct": 1, "attempted": 10, "score": 150})
        assert response.status_code == 422

    def test_assignment_without_score(self, client):
        response = client.post("/api/levely/u1/assignment", json={"chapterName": "Riset"})

        assert response.status_code == 200
        assert response.json()["feedback"].startswith("Tugas terkirim di bab Riset.")


class TestAskEndpoint:

    def test_guardrail_reply_is_stored_in_session(self, client, chat_store):
        response = client.post("/api/levely/u1/ask", json={"prompt": "gimana progress aku?"})

        assert response.status_code == 200
        body = response.json()
        assert body["reply"] == NO_SUBMISSION_REPLY
        messages = client.get(f"/api/chat/sessions/{body['sessionId']}/messages").json()["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant"]

    def test_session_is_reused(self, client):
        first = client.post("/api/levely/u1/ask", json={"prompt": "Apa itu usability?"}).json()
        second = client.post(
            "/api/levely/u1/ask",
            json={"prompt": "Contohnya?", "sessionId": first["sessionId"], "history": [
                {"fromUser": True, "text": "Apa itu usability?"},
            ]},
        ).json()

        assert second["sessionId"] == first["sessionId"]
        messages = client.get(f"/api/chat/sessions/{first['sessionId']}/messages").json()["messages"]
        assert len(messages) == 4

    def test_long_session_sends_latest_messages(self, llm_client, llm, chat_store):
        session_id = asyncio.run(chat_store.ensure_session(user_id="u1"))
        asyncio.run(chat_store.append_messages(
            session_id, [{"role": "user", "content": f"m{i}"} for i in range(60)]
        ))

        response = llm_client.post(
            "/api/levely/u1/ask", json={"prompt": "Apa itu affordance?", "sessionId": session_id}
        )

        assert response.status_code == 200
        sent = llm.calls[-1]
        assert sent[-1] == "Apa itu affordance?"
        assert sent[:-1] == [f"m{i}" for i in range(50, 60)]

    def test_empty_history_falls_back_to_session(self, llm_client, llm):
        first = llm_client.post("/api/levely/u1/ask", json={"prompt": "Apa itu affordance?"}).json()

        llm_client.post(
            "/api/levely/u1/ask",
            json={"prompt": "Contohnya?", "sessionId": first["sessionId"], "history": []},
        )

        assert llm.calls[-1] == ["Apa itu affordance?", "Jawaban Levely.", "Contohnya?"]

    def test_stored_history_fallback_is_logged_at_debug(self, client, caplog):
        caplog.set_level(logging.DEBUG, logger="backend.main")

        client.post("/api/levely/u1/ask", json={"prompt": "Apa itu usability?"})

        debug_lines = [r.getMessage() for r in caplog.records if r.levelno == logging.DEBUG]
        assert any(line.startswith("Using stored history for session") for line in debug_lines)


class TestSubmissionLogging:

    def test_recorded_submissions_log_success(self, client, caplog):
        caplog.set_level(logging.INFO, logger="backend.main")

        client.post("/api/levely/u1/quiz", json={"questionId": "u-e-1", "selectedIndex": 1})
        client.post("/api/levely/u1/assessment", json={"correct": 8, "attempted": 10, "score": 80})
        client.post("/api/levely/u1/assignment", json={"chapterName": "Riset"})

        messages = [r.getMessage() for r in caplog.records if r.name == "backend.main"]
        assert "✅ Quiz u-e-1 recorded for u1 (+11 pts)" in messages
        assert any(m.startswith("✅ Assessment recorded for u1") for m in messages)
        assert any(m.startswith("✅ Assignment recorded for u1") for m in messages)


class TestChatSessionEndpoints:

    def test_session_lifecycle(self, client):
        created = client.post("/api/chat/sessions", json={"userId": "u1", "title": "Belajar UX"}).json()["session"]
        session_id = created["id"]

        listed = client.get("/api/chat/sessions", params={"user_id": "u1"}).json()["sessions"]
        assert [s["id"] for s in listed] == [session_id]

        renamed = client.patch(f"/api/chat/sessions/{session_id}", json={"title": "Heuristik"}).json()
        assert renamed["session"]["title"] == "Heuristik"

        assert client.delete(f"/api/chat/sessions/{session_id}").status_code == 200
        assert client.delete(f"/api/chat/sessions/{session_id}").status_code == 404

    def test_rename_unknown_session(self, client):
        assert client.patch("/api/chat/sessions/missing", json={"title": "x"}).status_code == 502


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
