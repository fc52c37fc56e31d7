from __future__ import annotations

from app.services import content_filter


def test_blocked_language_is_detected(monkeypatch):
    monkeypatch.setenv("CONTENT_FILTER_ENABLED", "true")
    content_filter.reset_wordlist()

    assert content_filter.contains_blocked_language("How do I balance this equation?") is False
    assert content_filter.contains_blocked_language("Clean title", "this shit is hard") is True
    assert content_filter.contains_blocked_language(None, "") is False


def test_disabled_filter_allows_everything(monkeypatch):
    monkeypatch.setenv("CONTENT_FILTER_ENABLED", "false")

    assert content_filter.contains_blocked_language("this shit is hard") is False


def test_extra_word_list_is_loaded(monkeypatch, tmp_path):
    words = tmp_path / "blocked.txt"
    words.write_text("# local slang\nzorblax\n\n", encoding="utf-8")
    monkeypatch.setenv("CONTENT_FILTER_ENABLED", "true")
    monkeypatch.setenv("CONTENT_FILTER_EXTRA_WORDS_PATH", str(words))
    content_filter.reset_wordlist()

    try:
        assert content_filter.contains_blocked_language("what a zorblax question") is True
    finally:
        monkeypatch.delenv("CONTENT_FILTER_EXTRA_WORDS_PATH")
        content_filter.reset_wordlist()


def test_missing_extra_word_list_is_ignored(monkeypatch, tmp_path):
    monkeypatch.setenv("CONTENT_FILTER_ENABLED", "true")
    monkeypatch.setenv("CONTENT_FILTER_EXTRA_WORDS_PATH", str(tmp_path / "absent.txt"))
    content_filter.reset_wordlist()

    assert content_filter.contains_blocked_language("Photosynthesis notes") is False
    content_filter.reset_wordlist()
