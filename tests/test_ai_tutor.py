from __future__ import annotations

import datetime
import json

import pytest

from app.errors import NotFoundError, ServiceUnavailableError, UpstreamError
from app.repositories import tutor_repo, users_repo
from app.services import openai_client, tutor

QUIZ = {
    "questions": [
        {
            "question": "What is 2 + 2?",
            "options": ["3", "4", "5", "6"],
            "correctAnswer": "B",
            "explanation": "Two plus two is four.",
        },
        {
            "question": "Which gas do plants absorb?",
            "options": ["Oxygen", "Nitrogen", "Carbon dioxide", "Helium"],
            "correctAnswer": "Carbon dioxide",
            "explanation": "Plants use CO2 for photosynthesis.",
        },
    ]
}


@pytest.fixture()
def fake_chat(monkeypatch):
    calls: list[list[dict[str, str]]] = []

    def _reply(messages, **kwargs):
        calls.append(messages)
        return "Photosynthesis turns light into chemical energy."

    monkeypatch.setattr(openai_client, "generate_chat_reply", _reply)
    return calls


def test_build_messages_maps_model_role_and_adds_context():
    history = [{"role": "user", "text": "Hi"}, {"role": "model", "text": "Hello!"}]

    messages = tutor.build_messages(history, "What is osmosis?", "Biology", 10)

    assert messages[0]["role"] == "system"
    assert [m["role"] for m in messages[1:]] == ["user", "assistant", "user"]
    assert messages[-1]["content"] == "Subject: Biology, Grade: 10\nQuestion: What is osmosis?"


def test_session_title_truncates_long_questions():
    assert tutor.session_title("Short question") == "Short question"
    assert tutor.session_title("x" * 40) == "x" * 30 + "..."


def test_anonymous_chat_is_not_stored(app_context, fake_chat):
    result = tutor.chat(None, "Explain photosynthesis", subject="Biology", grade=9)

    assert result == {"response": "Photosynthesis turns light into chemical energy.", "session_id": None}
    assert len(fake_chat) == 1


def test_chat_creates_session_and_awards_xp(app_context, make_user, fake_chat):
    user = make_user()

    first = tutor.chat(user["id"], "Explain photosynthesis in simple words please")
    second = tutor.chat(user["id"], "And respiration?", session_id=first["session_id"])

    assert first["xp_gained"] == tutor.TUTOR_XP
    assert second["session_id"] == first["session_id"]
    session = tutor_repo.fetch_session(user["id"], first["session_id"])
    assert session["title"] == "Explain photosynthesis in simp..."
    assert [message["role"] for message in session["messages"]] == ["user", "model", "user", "model"]
    # History from the first exchange is sent with the second question.
    assert [m["role"] for m in fake_chat[1][1:]] == ["user", "assistant", "user"]
    assert users_repo.fetch_user(user["id"])["xp"] == 2 * tutor.TUTOR_XP


def test_chat_with_unknown_session(app_context, make_user, fake_chat):
    with pytest.raises(NotFoundError):
        tutor.chat(make_user()["id"], "Hello", session_id="missing")


def test_missing_api_key_maps_to_service_unavailable(app_context):
    with pytest.raises(ServiceUnavailableError):
        tutor.chat(None, "Hello")


def test_generate_practice_quiz_converts_letter_answers(app_context, make_user, monkeypatch):
    monkeypatch.setattr(openai_client, "generate_json_response", lambda messages, **kwargs: json.dumps(QUIZ))
    user = make_user()

    result = tutor.generate_practice_quiz(user["id"], subject="Mathematics", grade=9, count=2)

    assert result["xp_gained"] == tutor.QUIZ_XP
    assert result["questions"][0]["correctAnswer"] == "4"
    assert result["questions"][1]["correctAnswer"] == "Carbon dioxide"


@pytest.mark.parametrize(
    "content",
    [
        "not json",
        json.dumps({"questions": []}),
        json.dumps({"questions": [{"question": "Only three?", "options": ["a", "b", "c"],
                                   "correctAnswer": "a", "explanation": "..."}]}),
    ],
)
def test_invalid_quiz_is_an_upstream_error(app_context, make_user, monkeypatch, content):
    monkeypatch.setattr(openai_client, "generate_json_response", lambda messages, **kwargs: content)

    with pytest.raises(UpstreamError):
        tutor.generate_practice_quiz(make_user()["id"], subject="Physics", grade=11)


def test_retry_wrapper_retries_transient_failures(monkeypatch):
    attempts = {"count": 0}

    def flaky(messages, *, model, temperature, json_mode):
        attempts["count"] += 1
        if attempts["count"] < 3:
            raise openai_client.OpenAIResponseError("temporary")
        return "ok"

    monkeypatch.setenv("AI_RETRY_BACKOFF_BASE", "0")
    monkeypatch.setattr(openai_client, "_complete", flaky)

    assert openai_client.generate_chat_reply([{"role": "user", "content": "hi"}]) == "ok"
    assert attempts["count"] == 3


@pytest.mark.integration
def test_tutor_routes(client, make_user, auth_headers, fake_chat):
    user = make_user()
    headers = auth_headers(user)

    anonymous = client.post("/api/ai-tutor/chat", json={"message": "What is a prime number?"})
    assert anonymous.status_code == 200
    assert "xp_gained" not in anonymous.get_json()["data"]

    created = client.post("/api/ai-tutor/sessions", json={}, headers=headers)
    assert created.status_code == 201
    session_id = created.get_json()["data"]["id"]
    assert created.get_json()["data"]["title"] == "New Chat Session"

    chat = client.post("/api/ai-tutor/chat", json={"message": "Define a prime", "sessionId": session_id},
                       headers=headers)
    assert chat.get_json()["data"]["session_id"] == session_id

    appended = client.post(f"/api/ai-tutor/sessions/{session_id}/messages", json={"role": "robot", "text": "hi"},
                           headers=headers)
    assert appended.status_code == 400

    renamed = client.put(f"/api/ai-tutor/sessions/{session_id}", json={"title": "Primes"}, headers=headers)
    assert renamed.get_json()["data"]["title"] == "Primes"

    other = auth_headers(make_user())
    assert client.get(f"/api/ai-tutor/sessions/{session_id}", headers=other).status_code == 404
    assert client.delete(f"/api/ai-tutor/sessions/{session_id}", headers=headers).status_code == 200


PLAN = {
    "plan": [
        {"title": "Chemistry assignment", "subject": "Chemistry", "date": "2025-03-12",
         "type": "Assignment", "notes": "Balance the redox equations"},
        {"title": "Review linear equations", "subject": "Mathematics", "date": "2025-03-11",
         "type": "Revision"},
    ]
}


def test_generate_study_plan_sorts_tasks_and_awards_xp(app_context, make_user, monkeypatch):
    prompts: list[str] = []

    def _plan(messages, **kwargs):
        prompts.append(messages[-1]["content"])
        return json.dumps(PLAN)

    monkeypatch.setattr(openai_client, "generate_json_response", _plan)
    user = make_user()

    result = tutor.generate_study_plan(
        user["id"], "Maths exam on Friday, chemistry assignment due Wednesday", 11,
        today=datetime.date(2025, 3, 10),
    )

    assert [item["date"] for item in result["plan"]] == ["2025-03-11", "2025-03-12"]
    assert result["plan"][0]["notes"] == ""
    assert result["xp_gained"] == tutor.STUDY_PLAN_XP
    assert prompts[0].startswith("Today is 2025-03-10 (Monday). The student is in Grade 11.")
    assert users_repo.fetch_user(user["id"])["xp"] == tutor.STUDY_PLAN_XP


@pytest.mark.parametrize(
    "item",
    [
        {"title": "Past date", "subject": "Physics", "date": "2025-03-01", "type": "Exam"},
        {"title": "Bad type", "subject": "Physics", "date": "2025-03-20", "type": "Party"},
        {"title": "Bad date", "subject": "Physics", "date": "next week", "type": "Exam"},
        {"title": "Unknown subject", "subject": "Astrology", "date": "2025-03-20", "type": "Exam"},
    ],
)
def test_invalid_study_plan_is_an_upstream_error(app_context, make_user, monkeypatch, item):
    monkeypatch.setattr(openai_client, "generate_json_response",
                        lambda messages, **kwargs: json.dumps({"plan": [item]}))

    with pytest.raises(UpstreamError):
        tutor.generate_study_plan(make_user()["id"], "Physics exam soon", today=datetime.date(2025, 3, 10))


def test_study_plan_route_validates_input(client, make_user, auth_headers, monkeypatch):
    monkeypatch.setattr(openai_client, "generate_json_response", lambda messages, **kwargs: json.dumps(PLAN))
    headers = auth_headers(make_user())

    assert client.post("/api/ai-tutor/generate-study-plan", json={"prompt": "Exams"}).status_code == 401
    assert client.post("/api/ai-tutor/generate-study-plan", json={"prompt": ""}, headers=headers).status_code == 400
    assert client.post("/api/ai-tutor/generate-study-plan", json={"prompt": "Exams", "grade": 7},
                       headers=headers).status_code == 400
