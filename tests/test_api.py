"""HTTP-level tests for the JSON API."""

from __future__ import annotations

from unittest.mock import patch

from content_generation import ContentGenerationError, GeneratedContent, MediaItem

QUESTIONS = [
    {"question": "2 + 2?", "options": ["3", "4"], "correct_answer": "4", "explanation": "Basic sum."},
    {"question": "Capital of France?", "options": ["Paris", "Lyon"], "correct_answer": "Paris"},
]


class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json() == {"status": "ok"}
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Request-ID"]

    def test_request_id_echoed(self, client):
        resp = client.get("/health", headers={"X-Request-ID": "abc123"})
        assert resp.headers["X-Request-ID"] == "abc123"


class TestLearnerRoutes:
    def test_register_and_fetch(self, client):
        resp = client.post("/api/learners", json={
            "name": "Grace", "timezone": "Europe/Paris", "preferences": {"pace": "slow"},
        })
        assert resp.status_code == 201
        learner_id = resp.get_json()["id"]

        data = client.get(f"/api/learners/{learner_id}").get_json()
        assert data["name"] == "Grace"
        assert data["current_streak"] == 0
        assert data["active_session"] is None

    def test_register_validation(self, client):
        resp = client.post("/api/learners", json={"name": ""})
        assert resp.status_code == 400
        assert resp.get_json()["kind"] == "ValidationError"

    def test_non_object_body(self, client):
        resp = client.post("/api/learners", json=["Grace"])
        assert resp.status_code == 400

    def test_unknown_learner(self, client):
        resp = client.get("/api/learners/999")
        assert resp.status_code == 404
        assert resp.get_json()["kind"] == "NotFoundError"


class TestSessionRoutes:
    def test_full_lifecycle(self, client, clock):
        resp = client.post("/api/learners/1/sessions", json={"subject": "Biology"})
        assert resp.status_code == 201
        session_id = resp.get_json()["id"]

        clock.advance(minutes=10)
        assert client.post(f"/api/sessions/{session_id}/pause").get_json()["status"] == "paused"
        clock.advance(minutes=30)
        assert client.post(f"/api/sessions/{session_id}/resume").get_json()["status"] == "active"
        clock.advance(minutes=5)
        resp = client.post(f"/api/sessions/{session_id}/tick", json={"metrics": {"completed_tasks": 2}})
        assert resp.get_json()["metrics"]["completed_tasks"] == 2

        data = client.post(f"/api/sessions/{session_id}/complete").get_json()
        assert data["status"] == "completed"
        assert data["total_duration"] == 900
        assert data["streak"] == {"current": 1, "max": 1}

        sessions = client.get("/api/learners/1/sessions").get_json()["sessions"]
        assert [s["id"] for s in sessions] == [session_id]

    def test_second_open_session_conflicts(self, client):
        client.post("/api/learners/1/sessions", json={"subject": "Biology"})
        resp = client.post("/api/learners/1/sessions", json={"subject": "Chemistry"})
        assert resp.status_code == 409
        assert resp.get_json()["kind"] == "ConflictError"

    def test_invalid_transition(self, client):
        session_id = client.post("/api/learners/1/sessions", json={"subject": "Biology"}).get_json()["id"]
        resp = client.post(f"/api/sessions/{session_id}/resume")
        assert resp.status_code == 409
        assert resp.get_json()["kind"] == "InvalidStateError"

    def test_unknown_session(self, client):
        assert client.post("/api/sessions/424242/pause").status_code == 404

    def test_active_session_on_profile(self, client):
        client.post("/api/learners/1/sessions", json={"subject": "Biology"})
        data = client.get("/api/learners/1").get_json()
        assert data["active_session"]["subject"] == "Biology"


class TestQuizRoutes:
    def _create(self, client):
        resp = client.post("/api/learners/1/quizzes", json={
            "subject": "General", "difficulty": 1, "questions": QUESTIONS,
        })
        assert resp.status_code == 201
        return resp.get_json()["id"]

    def test_submit_and_results(self, client):
        quiz_id = self._create(client)
        resp = client.post(f"/api/quizzes/{quiz_id}/submit", json={
            "learner_id": 1,
            "answers": [{"question_index": 0, "selected_answer": "4"},
                        {"question_index": 1, "selected_answer": "Lyon"}],
        })
        assert resp.status_code == 200
        result = resp.get_json()
        assert result["score"] == 50
        assert result["recommendations"][0]["correct_answer"] == "Paris"

        results = client.get("/api/learners/1/quizzes/results").get_json()["results"]
        assert len(results) == 1

    def test_attempt_resubmission(self, client):
        quiz_id = self._create(client)
        attempt = client.post(f"/api/quizzes/{quiz_id}/attempts", json={"learner_id": 1})
        assert attempt.status_code == 201
        attempt_id = attempt.get_json()["attempt_id"]
        body = {"learner_id": 1, "attempt_id": attempt_id, "answers": [[0, "4"], [1, "Paris"]]}
        first = client.post(f"/api/quizzes/{quiz_id}/submit", json=body).get_json()
        second = client.post(f"/api/quizzes/{quiz_id}/submit", json=body).get_json()
        assert first["id"] == second["id"]
        assert first["score"] == 100

    def test_submit_requires_learner(self, client):
        quiz_id = self._create(client)
        resp = client.post(f"/api/quizzes/{quiz_id}/submit", json={"answers": [[0, "4"]]})
        assert resp.status_code == 400

    def test_empty_answers(self, client):
        quiz_id = self._create(client)
        resp = client.post(f"/api/quizzes/{quiz_id}/submit", json={"learner_id": 1, "answers": []})
        assert resp.status_code == 400

    def test_quiz_of_other_learner(self, client):
        quiz_id = self._create(client)
        resp = client.post(f"/api/quizzes/{quiz_id}/submit", json={"learner_id": 2, "answers": [[0, "4"]]})
        assert resp.status_code == 404


class TestFlashcardRoutes:
    def test_create_due_review(self, client):
        resp = client.post("/api/learners/1/flashcards", json={"cards": [
            {"front": "Q1", "back": "A1"}, {"front": "Q2", "back": "A2", "difficulty": 5},
        ]})
        assert resp.status_code == 201
        cards = resp.get_json()["cards"]

        due = client.get("/api/learners/1/flashcards/due").get_json()
        assert due["due_count"] == 2

        reviewed = client.post(f"/api/flashcards/{cards[0]['id']}/review", json={"outcome": "easy"}).get_json()
        assert reviewed["difficulty"] == 2
        due = client.get("/api/learners/1/flashcards/due?limit=1").get_json()
        assert due["due_count"] == 1
        assert [c["id"] for c in due["cards"]] == [cards[1]["id"]]

    def test_single_card_body(self, client):
        resp = client.post("/api/learners/1/flashcards", json={"front": "Q", "back": "A"})
        assert resp.status_code == 201
        assert len(resp.get_json()["cards"]) == 1

    def test_bad_outcome(self, client):
        card = client.post("/api/learners/1/flashcards", json={"front": "Q", "back": "A"}).get_json()["cards"][0]
        resp = client.post(f"/api/flashcards/{card['id']}/review", json={"outcome": "so-so"})
        assert resp.status_code == 400

    @patch("blueprints.flashcards.generate_flashcards")
    def test_generate(self, mock_gen, client):
        mock_gen.return_value = [{"front": "ATP?", "back": "Energy", "difficulty": 2}]
        resp = client.post("/api/learners/1/flashcards/generate",
                           json={"content": "Cells make ATP.", "subject": "Biology"})
        assert resp.status_code == 201
        card = resp.get_json()["cards"][0]
        assert card["subject"] == "Biology"
        assert card["difficulty"] == 2

    @patch("blueprints.flashcards.generate_flashcards")
    def test_generate_failure(self, mock_gen, client):
        mock_gen.side_effect = ContentGenerationError("down")
        resp = client.post("/api/learners/1/flashcards/generate", json={"content": "x"})
        assert resp.status_code == 502


class TestBadgeAndStatsRoutes:
    def test_catalog(self, client):
        badges = client.get("/api/badges").get_json()["badges"]
        assert len(badges) == 13

    def test_learner_badges_after_session(self, client):
        session_id = client.post("/api/learners/1/sessions", json={"subject": "Biology"}).get_json()["id"]
        client.post(f"/api/sessions/{session_id}/complete")
        data = client.get("/api/learners/1/badges").get_json()
        assert data["earned_count"] >= 1
        earned = {b["id"] for b in data["badges"] if b["earned"]}
        assert "quick_learner" in earned

    def test_evaluate_endpoint(self, client):
        resp = client.post("/api/learners/1/badges/evaluate", json={})
        assert resp.status_code == 200
        assert resp.get_json()["new_badges"] == []
        resp = client.post("/api/learners/1/badges/evaluate", json={"trigger": "bogus"})
        assert resp.status_code == 400

    def test_stats(self, client):
        data = client.get("/api/learners/1/stats").get_json()
        assert data["total_sessions"] == 0
        assert set(data["study_patterns"]) == {"morning", "afternoon", "evening", "night"}
        assert client.get("/api/learners/77/stats").status_code == 404


class TestIngestRoute:
    def test_event_routed(self, client):
        resp = client.post("/api/events", json={"type": "session_start", "userId": 1, "subject": "Art"})
        assert resp.status_code == 202
        data = resp.get_json()
        assert data["kind"] == "StudySession"
        assert data["result"]["subject"] == "Art"

    def test_malformed_event(self, client):
        resp = client.post("/api/events", json={"kind": "session_start"})
        assert resp.status_code == 400


class TestChatRoute:
    @patch("blueprints.chat.generate_content")
    def test_chat(self, mock_gen, client):
        mock_gen.return_value = GeneratedContent(
            text="Here is a diagram.", media=[MediaItem(kind="graph", payload="graph TD\nA-->B")],
        )
        resp = client.post("/api/learners/1/chat", json={"message": "Explain cells", "subject": "Biology"})
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["text"] == "Here is a diagram."
        assert data["media"] == [{"kind": "graph", "payload": "graph TD\nA-->B"}]
        context = mock_gen.call_args[0][1]
        assert context["preferences"].learning_style == "visual"

    def test_chat_requires_message(self, client):
        assert client.post("/api/learners/1/chat", json={"message": " "}).status_code == 400

    @patch("blueprints.chat.generate_content")
    def test_chat_provider_failure(self, mock_gen, client):
        mock_gen.side_effect = ContentGenerationError("Circuit breaker open")
        resp = client.post("/api/learners/1/chat", json={"message": "hi"})
        assert resp.status_code == 502
        assert resp.get_json()["kind"] == "ContentGenerationError"


class TestInboxRoutes:
    def test_notifications_after_badge(self, client):
        session_id = client.post("/api/learners/1/sessions", json={"subject": "Biology"}).get_json()["id"]
        client.post(f"/api/sessions/{session_id}/complete")
        data = client.get("/api/learners/1/notifications").get_json()
        assert data["unread_count"] >= 1
        notif_id = data["notifications"][0]["id"]

        assert client.post(f"/api/learners/1/notifications/{notif_id}/read").status_code == 200
        after = client.get("/api/learners/1/notifications").get_json()
        assert after["unread_count"] == data["unread_count"] - 1

    def test_push_subscribe(self, client, db):
        resp = client.post("/api/learners/1/push/subscribe", json={
            "endpoint": "https://push.example.org/x", "keys": {"p256dh": "p", "auth": "a"},
        })
        assert resp.status_code == 201
        row = db.execute("SELECT learner_id FROM push_subscriptions").fetchone()
        assert row["learner_id"] == 1

    def test_push_subscribe_requires_endpoint(self, client):
        assert client.post("/api/learners/1/push/subscribe", json={}).status_code == 400


class TestWrongJsonTypes:
    def test_subject_not_text(self, client):
        resp = client.post("/api/learners/1/sessions", json={"subject": 5})
        assert resp.status_code == 400
        assert resp.get_json()["kind"] == "ValidationError"

    def test_learner_fields_not_text(self, client):
        assert client.post("/api/learners", json={"name": "x", "timezone": 5}).status_code == 400
        assert client.post("/api/learners", json={"name": 5}).status_code == 400
        assert client.post("/api/learners", json={"name": "x", "preferences": ["slow"]}).status_code == 400

    def test_metrics_not_object(self, client):
        session_id = client.post("/api/learners/1/sessions", json={"subject": "Biology"}).get_json()["id"]
        resp = client.post(f"/api/sessions/{session_id}/tick", json={"metrics": [1]})
        assert resp.status_code == 400
        assert resp.get_json()["kind"] == "ValidationError"

    def test_attempt_id_not_integer(self, client):
        quiz_id = client.post("/api/learners/1/quizzes", json={
            "subject": "General", "difficulty": 1, "questions": QUESTIONS,
        }).get_json()["id"]
        resp = client.post(f"/api/quizzes/{quiz_id}/submit", json={
            "learner_id": 1, "attempt_id": {"x": 1}, "answers": [[0, "4"]],
        })
        assert resp.status_code == 400
        assert client.get("/api/learners/1/quizzes/results").get_json()["results"] == []

    def test_quiz_subject_not_text(self, client):
        resp = client.post("/api/learners/1/quizzes", json={
            "subject": 5, "difficulty": 1, "questions": QUESTIONS,
        })
        assert resp.status_code == 400
