from __future__ import annotations

import json

import httpx
import pytest

from dialect_quiz.services.remote import RemoteError, RemoteProgressStore


def _store(handler) -> RemoteProgressStore:
    return RemoteProgressStore("https://example.supabase.co/", "anon-key", transport=httpx.MockTransport(handler))


def test_save_quiz_attempt_posts_row_with_keys():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201)

    _store(handler).save_quiz_attempt(
        3,
        {"quiz_type": "word-order", "score": 4, "total_questions": 5, "correct_phrases": ["want_001"]},
    )

    [request] = seen
    assert request.method == "POST"
    assert request.url.path == "/rest/v1/quiz_attempts"
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["authorization"] == "Bearer anon-key"
    body = json.loads(request.content)
    assert body["user_id"] == 3
    assert body["score"] == 4
    assert body["correct_phrases"] == ["want_001"]


def test_mark_mastered_upserts_phrase_progress():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201)

    _store(handler).mark_mastered(1, "greet_001")

    [request] = seen
    assert request.url.path == "/rest/v1/phrase_progress"
    assert request.url.params["on_conflict"] == "user_id,phrase_id"
    assert request.headers["prefer"] == "resolution=merge-duplicates"
    assert json.loads(request.content)["is_mastered"] is True


def test_update_phrase_progress_sends_counts():
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200)

    _store(handler).update_phrase_progress(1, "ask_001", correct_count=2, incorrect_count=1, is_mastered=True)

    assert seen == [
        {
            "user_id": 1,
            "phrase_id": "ask_001",
            "correct_count": 2,
            "incorrect_count": 1,
            "is_mastered": True,
            "last_reviewed": None,
        }
    ]


@pytest.mark.parametrize(
    ("status", "retryable"),
    [(500, True), (503, True), (429, True), (400, False), (401, False), (409, False)],
)
def test_http_errors_are_classified(status, retryable):
    store = _store(lambda request: httpx.Response(status, json={"message": "nope"}))

    with pytest.raises(RemoteError) as info:
        store.mark_mastered(1, "greet_001")

    assert info.value.status == status
    assert info.value.retryable is retryable


def test_transport_failure_is_retryable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    with pytest.raises(RemoteError) as info:
        _store(handler).save_quiz_attempt(1, {"score": 1, "total_questions": 1})

    assert info.value.status is None
    assert info.value.retryable is True


def test_from_env_without_settings_is_disabled(monkeypatch):
    import dialect_quiz.services.remote as remote_module

    monkeypatch.setattr(remote_module, "REMOTE_URL", None)

    assert RemoteProgressStore.from_env() is None
