"""Profanity screening for user-written forum text."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from better_profanity import profanity

from config.settings import get_settings

logger = logging.getLogger(__name__)

_WORDLIST_LOADED = False


def _extra_words(path_value: Optional[str]) -> list[str]:
    if not path_value:
        return []
    path = Path(path_value)
    if not path.is_file():
        logger.warning("Extra blocked-word list %s not found", path_value)
        return []
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        logger.warning("Could not read extra blocked-word list %s", path_value)
        return []
    return [line.strip() for line in raw.splitlines() if line.strip() and not line.startswith("#")]


def _ensure_wordlist() -> None:
    global _WORDLIST_LOADED
    if _WORDLIST_LOADED:
        return
    profanity.load_censor_words()
    extra = _extra_words(get_settings().CONTENT_FILTER_EXTRA_WORDS_PATH)
    if extra:
        profanity.add_censor_words(extra)
    _WORDLIST_LOADED = True


def reset_wordlist() -> None:
    """Forget the loaded word list so the next check reloads it (used in tests)."""
    global _WORDLIST_LOADED
    _WORDLIST_LOADED = False


def contains_blocked_language(*fields: Optional[str]) -> bool:
    """True when filtering is enabled and any field contains a blocked word."""
    if not get_settings().CONTENT_FILTER_ENABLED:
        return False
    _ensure_wordlist()
    return any(field and profanity.contains_profanity(field) for field in fields)
