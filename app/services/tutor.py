"""AI tutor conversations, generated practice quizzes and study plans."""

from __future__ import annotations

import datetime
import json
import logging
from typing import Any, Optional

from app.errors import NotFoundError, ServiceUnavailableError, UpstreamError, ValidationError
from app.repositories import tutor_repo
from app.services import gamification, openai_client
from app.services.openai_client import OpenAIConfigurationError, OpenAIResponseError
from app.services.planner import EVENT_TYPES, SUBJECTS
from models import utcnow
from models.table_api import to_iso

logger = logging.getLogger(__name__)

TUTOR_XP = 5
QUIZ_XP = 5
TITLE_LENGTH = 30
DEFAULT_SUBJECT = "General"
DEFAULT_GRADE = 10
DIFFICULTIES = ("Easy", "Medium", "Hard")
MAX_QUIZ_QUESTIONS = 10
OPTION_COUNT = 4
STUDY_PLAN_XP = 5
MAX_PLAN_REQUEST_LENGTH = 1000
MAX_PLAN_ITEMS = 20

SYSTEM_PROMPT = """You are SmartStudy AI Tutor for Ethiopian high-school students (Grade 9-12).

Always answer in English, whatever language the question uses.
Accuracy matters most: check your reasoning, and say so when you are unsure.

- Explain concepts simply, step by step, in plain English.
- Use examples from an Ethiopian context when they help.
- Give formulas and equations for maths and science questions.
- For multiple choice questions, explain why the right option is right and the others are wrong.
- State the final answer clearly and be encouraging."""

QUIZ_SYSTEM_PROMPT = (
    "You write multiple choice practice questions for Ethiopian high-school students. "
    "Respond with a JSON object only."
)


def _history_role(role: str) -> str:
    if role in ("user", "system"):
        return role
    return "assistant"


def build_messages(history: list[dict[str, Any]], message: str, subject: str, grade: int) -> list[dict[str, str]]:
    messages = [{"role": "system", "content": SYSTEM_PROMPT}]
    for entry in history:
        messages.append({"role": _history_role(entry.get("role", "")), "content": str(entry.get("text") or "")})
    messages.append({"role": "user", "content": f"Subject: {subject}, Grade: {grade}\nQuestion: {message}"})
    return messages


def session_title(message: str) -> str:
    if len(message) > TITLE_LENGTH:
        return message[:TITLE_LENGTH] + "..."
    return message


def _call_openai(func, messages: list[dict[str, str]]) -> str:
    try:
        return func(messages)
    except OpenAIConfigurationError as exc:
        logger.error("AI tutor unavailable: %s", exc)
        raise ServiceUnavailableError("AI tutor is not configured.") from exc
    except OpenAIResponseError as exc:
        logger.warning("AI tutor request failed: %s", exc)
        raise UpstreamError("AI tutor failed to respond. Please try again.") from exc


def _message(role: str, text: str) -> dict[str, str]:
    return {"role": role, "text": text, "timestamp": to_iso(utcnow())}


def chat(
    user_id: Optional[str],
    message: Any,
    *,
    subject: Optional[str] = None,
    grade: Optional[int] = None,
    session_id: Optional[str] = None,
) -> dict[str, Any]:
    """Answer a tutoring question, storing the exchange for signed-in users."""
    message = str(message or "").strip()
    if not message:
        raise ValidationError("Message is required.", {"message": "required"})
    subject = subject or DEFAULT_SUBJECT
    grade = grade or DEFAULT_GRADE

    if not user_id:
        reply = _call_openai(openai_client.generate_chat_reply, build_messages([], message, subject, grade))
        return {"response": reply, "session_id": None}

    if session_id:
        session = tutor_repo.fetch_session(user_id, session_id)
        if session is None:
            raise NotFoundError("Chat session not found.")
    else:
        session = tutor_repo.create_session(user_id, session_title(message))

    history = list(session.get("messages") or [])
    reply = _call_openai(openai_client.generate_chat_reply, build_messages(history, message, subject, grade))

    history.append(_message("user", message))
    history.append(_message("model", reply))
    tutor_repo.update_session(session["id"], {"messages": history})

    awarded = gamification.award_quietly(user_id, TUTOR_XP, "ai_tutor", "Used the AI tutor")
    return {
        "response": reply,
        "session_id": session["id"],
        "xp_gained": TUTOR_XP if awarded else 0,
    }


def append_message(user_id: str, session_id: str, role: Any, text: Any) -> dict[str, Any]:
    if role not in ("user", "model"):
        raise ValidationError("Role must be 'user' or 'model'.", {"role": "invalid"})
    text = str(text or "").strip()
    if not text:
        raise ValidationError("Message text is required.", {"text": "required"})
    session = tutor_repo.fetch_session(user_id, session_id)
    if session is None:
        raise NotFoundError("Chat session not found.")
    messages = list(session.get("messages") or [])
    messages.append(_message(role, text))
    return tutor_repo.update_session(session_id, {"messages": messages}) or session


def _quiz_prompt(subject: str, grade: int, difficulty: str, count: int) -> str:
    return (
        f"Generate {count} {difficulty.lower()} practice questions for {subject} at Grade {grade} level.\n"
        "Each question is multiple choice with exactly 4 options, one correct answer and a short explanation.\n"
        'Return {"questions": [{"question": "...", "options": ["...", "...", "...", "..."], '
        '"correctAnswer": "...", "explanation": "..."}]}.\n'
        "correctAnswer must be the exact text of one of the options."
    )


def normalize_question(raw: Any, position: int) -> dict[str, Any]:
    """Validate one generated question, turning a letter answer into its option text."""
    if not isinstance(raw, dict):
        raise OpenAIResponseError(f"Question {position} is not an object.")
    options = raw.get("options")
    question = raw.get("question")
    answer = raw.get("correctAnswer")
    explanation = raw.get("explanation")
    if (
        not question
        or not isinstance(options, list)
        or len(options) != OPTION_COUNT
        or not answer
        or not explanation
    ):
        raise OpenAIResponseError(f"Question {position} has invalid structure.")

    answer = str(answer)
    if len(answer) == 1 and answer.upper() in "ABCD":
        answer = str(options["ABCD".index(answer.upper())])
    return {
        "question": str(question),
        "options": [str(option) for option in options],
        "correctAnswer": answer,
        "explanation": str(explanation),
    }


def parse_quiz(content: str) -> list[dict[str, Any]]:
    try:
        payload = json.loads(content)
    except json.JSONDecodeError as exc:
        raise OpenAIResponseError("Quiz response was not valid JSON.") from exc
    questions = payload.get("questions") if isinstance(payload, dict) else payload
    if not isinstance(questions, list) or not questions:
        raise OpenAIResponseError("Quiz response contained no questions.")
    return [normalize_question(raw, index) for index, raw in enumerate(questions, start=1)]


def generate_practice_quiz(
    user_id: str,
    *,
    subject: Any,
    grade: Any,
    difficulty: str = "Medium",
    count: Any = 5,
) -> dict[str, Any]:
    subject = str(subject or "").strip()
    if not subject:
        raise ValidationError("Subject is required.", {"subject": "required"})
    try:
        grade = int(grade)
        count = int(count)
    except (TypeError, ValueError) as exc:
        raise ValidationError("Grade and count must be numbers.") from exc
    if difficulty not in DIFFICULTIES:
        raise ValidationError("Difficulty must be Easy, Medium or Hard.", {"difficulty": "invalid"})
    count = max(1, min(count, MAX_QUIZ_QUESTIONS))

    messages = [
        {"role": "system", "content": QUIZ_SYSTEM_PROMPT},
        {"role": "user", "content": _quiz_prompt(subject, grade, difficulty, count)},
    ]
    content = _call_openai(openai_client.generate_json_response, messages)
    try:
        questions = parse_quiz(content)
    except OpenAIResponseError as exc:
        logger.warning("Discarding malformed practice quiz: %s", exc)
        raise UpstreamError("AI tutor returned an invalid quiz. Please try again.") from exc

    awarded = gamification.award_quietly(user_id, QUIZ_XP, "practice_quiz", f"Generated a {subject} practice quiz")
    return {"questions": questions, "xp_gained": QUIZ_XP if awarded else 0}


STUDY_PLAN_SYSTEM_PROMPT = (
    "You turn a student's description of upcoming exams and assignments into a study plan "
    "for an Ethiopian high-school student. Respond with a JSON object only."
)


def _study_plan_prompt(request_text: str, grade: int, today: datetime.date) -> str:
    return (
        f"Today is {today.isoformat()} ({today.strftime('%A')}). The student is in Grade {grade}.\n"
        f"Request: {request_text}\n"
        'Return {"plan": [{"title": "...", "subject": "...", "date": "YYYY-MM-DD", '
        '"type": "Exam|Revision|Assignment", "notes": "..."}]}.\n'
        f"Subjects must be one of: {', '.join(SUBJECTS)}. Dates must be today or later."
    )


def normalize_plan_item(raw: Any, position: int, today: datetime.date) -> dict[str, Any]:
    """Validate one generated study task."""
    if not isinstance(raw, dict):
        raise OpenAIResponseError(f"Plan item {position} is not an object.")
    title = str(raw.get("title") or "").strip()
    subject = raw.get("subject")
    event_type = raw.get("type")
    try:
        date = datetime.date.fromisoformat(str(raw.get("date") or ""))
    except ValueError as exc:
        raise OpenAIResponseError(f"Plan item {position} has an invalid date.") from exc
    if not title or subject not in SUBJECTS or event_type not in EVENT_TYPES or date < today:
        raise OpenAIResponseError(f"Plan item {position} has invalid structure.")
    return {
        "title": title,
        "subject": subject,
        "date": date.isoformat(),
        "type": event_type,
        "notes": str(raw.get("notes") or ""),
    }


def parse_study_plan(content: str, today: datetime.date) -> list[dict[str, Any]]:
    try:
        payload = json.loads(content)
    except json.JSONDecodeError as exc:
        raise OpenAIResponseError("Study plan response was not valid JSON.") from exc
    items = payload.get("plan") if isinstance(payload, dict) else payload
    if not isinstance(items, list) or not items:
        raise OpenAIResponseError("Study plan response contained no tasks.")
    plan = [normalize_plan_item(raw, index, today) for index, raw in enumerate(items[:MAX_PLAN_ITEMS], start=1)]
    return sorted(plan, key=lambda item: item["date"])


def generate_study_plan(
    user_id: str,
    request_text: Any,
    grade: Any = None,
    *,
    today: Optional[datetime.date] = None,
) -> dict[str, Any]:
    """Ask the model for dated study tasks; the client decides which to add to the planner."""
    request_text = str(request_text or "").strip()
    if not request_text or len(request_text) > MAX_PLAN_REQUEST_LENGTH:
        raise ValidationError("Describe your study goals in 1 to 1000 characters.", {"prompt": "invalid"})
    try:
        grade = int(grade) if grade is not None else DEFAULT_GRADE
    except (TypeError, ValueError) as exc:
        raise ValidationError("Grade must be a number.", {"grade": "invalid"}) from exc
    if not 9 <= grade <= 12:
        raise ValidationError("Grade must be between 9 and 12.", {"grade": "out of range"})
    today = today or utcnow().date()

    messages = [
        {"role": "system", "content": STUDY_PLAN_SYSTEM_PROMPT},
        {"role": "user", "content": _study_plan_prompt(request_text, grade, today)},
    ]
    content = _call_openai(openai_client.generate_json_response, messages)
    try:
        plan = parse_study_plan(content, today)
    except OpenAIResponseError as exc:
        logger.warning("Discarding malformed study plan: %s", exc)
        raise UpstreamError("AI tutor returned an invalid study plan. Please try again.") from exc

    awarded = gamification.award_quietly(user_id, STUDY_PLAN_XP, "ai_planner", "Generated a study plan")
    return {"plan": plan, "xp_gained": STUDY_PLAN_XP if awarded else 0}
