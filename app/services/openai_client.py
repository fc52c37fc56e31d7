from __future__ import annotations

import logging
from typing import List, Optional

from openai import OpenAI

from app.utils.retry import RetryPolicy, execute_with_retry
from config.settings import get_settings

logger = logging.getLogger(__name__)

_CLIENT: OpenAI | None = None


class OpenAIConfigurationError(RuntimeError):
    """Raised when OpenAI client cannot be configured."""


class OpenAIResponseError(RuntimeError):
    """Raised when OpenAI returns an invalid or empty response."""


def _get_client() -> OpenAI:
    global _CLIENT
    if _CLIENT is not None:
        return _CLIENT

    settings = get_settings()
    if not settings.OPENAI_API_KEY:
        raise OpenAIConfigurationError("OPENAI_API_KEY is not configured.")

    _CLIENT = OpenAI(api_key=settings.OPENAI_API_KEY)
    return _CLIENT


def reset_client() -> None:
    global _CLIENT
    _CLIENT = None


def _complete(
    messages: List[dict[str, str]],
    *,
    model: Optional[str],
    temperature: float,
    json_mode: bool,
) -> str:
    client = _get_client()
    kwargs = {
        "model": model or get_settings().OPENAI_MODEL,
        "temperature": temperature,
        "messages": messages,
    }
    if json_mode:
        kwargs["response_format"] = {"type": "json_object"}
    try:
        completion = client.chat.completions.create(**kwargs)
    except Exception as exc:  # pragma: no cover - network errors
        raise OpenAIResponseError("OpenAI request failed.") from exc

    if not completion.choices:
        raise OpenAIResponseError("OpenAI response contained no choices.")

    message = completion.choices[0].message
    if not message or not message.content:
        raise OpenAIResponseError("OpenAI response message was empty.")

    return message.content


def _with_retry(call) -> str:
    settings = get_settings()
    policy = RetryPolicy(
        max_attempts=settings.AI_MAX_RETRIES,
        base_delay=settings.AI_RETRY_BACKOFF_BASE,
        cap_seconds=settings.AI_RETRY_BACKOFF_CAP,
        give_up_on=(OpenAIConfigurationError,),
    )
    return execute_with_retry(call, policy, label="OpenAI request")


def generate_chat_reply(
    messages: List[dict[str, str]],
    *,
    model: Optional[str] = None,
    temperature: float = 0.7,
) -> str:
    """Return the assistant's text reply for a chat transcript."""
    return _with_retry(
        lambda: _complete(messages, model=model, temperature=temperature, json_mode=False)
    )


def generate_json_response(
    messages: List[dict[str, str]],
    *,
    model: Optional[str] = None,
    temperature: float = 0.4,
) -> str:
    """
    Call OpenAI to produce a JSON object response.

    Args:
        messages: Chat messages (system/user) describing the task.
        model: OpenAI model name; defaults to ``OPENAI_MODEL``.
        temperature: Sampling temperature (lower for deterministic output).
    """
    return _with_retry(
        lambda: _complete(messages, model=model, temperature=temperature, json_mode=True)
    )
