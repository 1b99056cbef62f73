from __future__ import annotations

import dialect_quiz.app as app_module
from dialect_quiz.phrases import PhraseStore


def _current_answer(session_id: str) -> str:
    return app_module.sessions.get(session_id).current.correct_answer


def test_health_and_home(client):
    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "ok"

    home = client.get("/")
    assert home.status_code == 200
    assert "Dialect Quiz" in home.text


def test_phrase_browser(client):
    listing = client.get("/api/phrases", params={"difficulty": "beginner"})
    assert listing.status_code == 200
    items = listing.json()["items"]
    assert items
    assert all(item["difficulty"] == "beginner" for item in items)

    detail = client.get("/api/phrases/greet_001")
    assert detail.status_code == 200
    assert detail.json()["phrase"]["translations"]["lebanese"]["phrase"] == "مرحبا"

    assert client.get("/api/phrases/nope").status_code == 404
    assert client.get("/api/phrases", params={"difficulty": "expert"}).status_code == 400


def test_multiple_choice_flow(client, temp_db):
    start = client.post(
        "/api/quiz/start",
        json={"difficulty": "beginner", "length": 2, "target_dialect": "lebanese", "seed": 4},
    )
    assert start.status_code == 200
    data = start.json()
    session_id = data["session_id"]
    assert data["total"] == 2
    assert all("correct_answer" not in q for q in data["questions"])

    answer = _current_answer(session_id)
    first = client.post(f"/api/quiz/{session_id}/answer", json={"answer": answer})
    assert first.status_code == 200
    assert first.json()["correct"] is True
    assert first.json()["score"] == 1

    again = client.post(f"/api/quiz/{session_id}/answer", json={"answer": answer})
    assert again.status_code == 400

    nxt = client.post(f"/api/quiz/{session_id}/next")
    assert nxt.status_code == 200
    assert nxt.json()["done"] is False

    second = client.post(f"/api/quiz/{session_id}/answer", json={"answer": "definitely wrong"})
    assert second.json()["correct"] is False
    assert second.json()["streak"] == 0

    finish = client.post(f"/api/quiz/{session_id}/finish")
    assert finish.status_code == 200
    summary = finish.json()["summary"]
    assert summary["score"] == 1
    assert summary["total"] == 2
    assert summary["percentage"] == 50

    assert client.post(f"/api/quiz/{session_id}/finish").status_code == 404
    assert len(temp_db.list_quiz_attempts(1)) == 1

    progress = client.get("/api/progress", params={"refresh": True}).json()["progress"]
    assert len(progress["phrases_learned"]) == 1
    assert len(progress["quiz_scores"]) == 1


def test_word_order_flow(client):
    start = client.post(
        "/api/quiz/start",
        json={"quiz_type": "word-order", "length": 1, "target_dialect": "lebanese", "seed": 1},
    )
    assert start.status_code == 200
    session_id = start.json()["session_id"]
    question = start.json()["questions"][0]
    assert "available_words" in question

    words = _current_answer(session_id).split()
    for word in words:
        available = app_module.sessions.get(session_id).current.tokens
        picked = client.post(f"/api/quiz/{session_id}/word-order/select", json={"index": available.index(word)})
        assert picked.status_code == 200

    assert picked.json()["question"]["selected_words"] == words

    undo = client.post(f"/api/quiz/{session_id}/word-order/unselect", json={"position": len(words) - 1})
    assert undo.json()["question"]["selected_words"] == words[:-1]
    available = app_module.sessions.get(session_id).current.tokens
    client.post(f"/api/quiz/{session_id}/word-order/select", json={"index": available.index(words[-1])})

    submit = client.post(f"/api/quiz/{session_id}/word-order/submit")
    assert submit.status_code == 200
    assert submit.json()["correct"] is True

    bad = client.post(f"/api/quiz/{session_id}/word-order/select", json={"index": 0})
    assert bad.status_code == 400


def test_quiz_start_errors(client, monkeypatch):
    assert client.post("/api/quiz/start", json={"quiz_type": "essay"}).status_code == 400
    assert client.post("/api/quiz/missing/answer", json={"answer": "x"}).status_code == 404

    monkeypatch.setattr(app_module, "phrase_store", PhraseStore([]))
    empty = client.post("/api/quiz/start", json={})
    assert empty.status_code == 400
    assert empty.json()["detail"] == app_module.EMPTY_POOL_MESSAGE


def test_unknown_user_is_rejected_before_any_write(client):
    start = client.post("/api/quiz/start", json={"user_id": 42, "length": 1, "seed": 1})
    assert start.status_code == 404
    assert start.json()["detail"] == "user not found"
    assert len(app_module.sessions) == 0

    assert client.post("/api/progress/mastered", json={"user_id": 42, "phrase_id": "ask_001"}).status_code == 404
    assert client.put("/api/progress/preferences", json={"user_id": 42, "theme": "dark"}).status_code == 404


def test_mastered_and_preferences(client):
    marked = client.post("/api/progress/mastered", json={"phrase_id": "ask_001"})
    assert marked.status_code == 200
    assert marked.json()["newly_mastered"] is True
    assert client.post("/api/progress/mastered", json={"phrase_id": "ask_001"}).json()["newly_mastered"] is False
    assert client.post("/api/progress/mastered", json={"phrase_id": "nope"}).status_code == 404

    mastered = client.get("/api/progress/mastered").json()
    assert mastered["phrase_ids"] == ["ask_001"]

    prefs = client.put("/api/progress/preferences", json={"target_dialect": "syrian", "daily_goal": 20})
    assert prefs.status_code == 200
    assert prefs.json()["preferences"]["target_dialect"] == "syrian"
    assert prefs.json()["preferences"]["daily_goal"] == 20

    stats = client.get("/api/progress/stats").json()
    assert stats["stats"]["mastered_phrases"] == 1
    assert "favorite_dialect" in stats["analytics"]

    sync = client.get("/api/progress/sync").json()
    assert sync["pending"] == 0


def test_srs_due_after_wrong_answer(client):
    start = client.post("/api/quiz/start", json={"length": 1, "target_dialect": "saudi", "seed": 2})
    session_id = start.json()["session_id"]
    client.post(f"/api/quiz/{session_id}/answer", json={"answer": "wrong"})

    due = client.get("/api/srs/due").json()

    assert due["total"] == 1
    assert due["items"][0]["repetitions"] == 0
    assert due["items"][0]["phrase"]["id"] == start.json()["questions"][0]["phrase_id"]


def test_export_history(client, tmp_path):
    start = client.post("/api/quiz/start", json={"length": 1, "seed": 3})
    session_id = start.json()["session_id"]
    client.post(f"/api/quiz/{session_id}/answer", json={"answer": _current_answer(session_id)})
    client.post(f"/api/quiz/{session_id}/finish")

    csv_export = client.get("/api/progress/export")
    assert csv_export.status_code == 200
    payload = csv_export.json()
    assert payload["rows"] == 1
    assert payload["url"].startswith("/artifacts/exports/")
    written = tmp_path / "artifacts" / payload["url"].removeprefix("/artifacts/")
    assert written.read_text(encoding="utf-8").splitlines()[0].startswith("date,quiz_type")

    xlsx_export = client.get("/api/progress/export", params={"fmt": "xlsx"})
    assert xlsx_export.status_code == 200
    assert xlsx_export.json()["url"].endswith(".xlsx")

    assert client.get("/api/progress/export", params={"fmt": "pdf"}).status_code == 400


def test_auth_flow(client):
    signed = client.post("/api/auth/sign-in", json={"display_name": "Yasmine", "email": "yas@example.com"})
    assert signed.status_code == 200
    token = signed.json()["token"]
    user_id = signed.json()["user"]["id"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["user"]["email"] == "yas@example.com"

    profile = client.put("/api/auth/profile", json={"user_id": user_id, "display_name": "Yasmine B"})
    assert profile.json()["user"]["display_name"] == "Yasmine B"

    out = client.post("/api/auth/sign-out", json={"token": token})
    assert out.json()["signed_out"] is True
    assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"}).status_code == 401
    assert client.get("/api/auth/me").status_code == 401
