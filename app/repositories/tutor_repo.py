from __future__ import annotations

from typing import Any, Optional

from models.store import get_store


def list_sessions(user_id: str) -> list[dict[str, Any]]:
    return get_store().where("chat_sessions", user_id=user_id)


def create_session(user_id: str, title: str = "New Chat Session") -> dict[str, Any]:
    return get_store().insert("chat_sessions", {"user_id": user_id, "title": title, "messages": []})


def fetch_session(user_id: str, session_id: str) -> Optional[dict[str, Any]]:
    session = get_store().get_by_id("chat_sessions", session_id)
    if session is None or session.get("user_id") != user_id:
        return None
    return session


def update_session(session_id: str, updates: dict[str, Any]) -> Optional[dict[str, Any]]:
    return get_store().update("chat_sessions", session_id, updates)


def delete_session(session_id: str) -> bool:
    return get_store().delete("chat_sessions", session_id)
