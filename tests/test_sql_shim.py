from __future__ import annotations

from app.security import hash_password
from models.sql_shim import query
from models.store import get_store


def _insert_user(email: str = "shim@example.com") -> dict:
    return query(
        "INSERT INTO users (name, email, password_hash) VALUES ($1, $2, $3) RETURNING *",
        ["Shim Student", email, hash_password("Secret123!")],
    ).rows[0]


def test_insert_maps_columns_and_applies_defaults(app_context):
    row = _insert_user()

    assert row["name"] == "Shim Student"
    assert row["email"] == "shim@example.com"
    assert row["role"] == "STUDENT"
    assert row["xp"] == 0
    assert row["level"] == 1
    assert row["is_premium"] is False
    assert row["unlocked_badges"] == ["b1"]
    assert row["preferences"] == {"emailNotifications": True, "studyReminders": True}


def test_update_by_id_reports_row_count(app_context):
    row = _insert_user()
    other = _insert_user("other@example.com")

    result = query("UPDATE users SET name = $1 WHERE id = $2", ["Renamed", row["id"]])

    assert result.matched is True
    assert result.row_count == 1
    assert get_store().get_by_id("users", row["id"])["name"] == "Renamed"
    assert get_store().get_by_id("users", other["id"])["name"] == "Shim Student"


def test_insert_without_column_list_uses_table_column_order(app_context):
    user = query(
        "INSERT INTO users VALUES ($1, $2, $3) RETURNING *",
        ["Listless Student", "listless@example.com", hash_password("Secret123!")],
    ).rows[0]
    post = query(
        "INSERT INTO forum_posts VALUES ($1, $2, $3, $4, $5, $6) RETURNING *",
        ["Help with limits", "How do I start?", user["id"], "Mathematics", 11, ["calculus"]],
    ).rows[0]
    event = query(
        "INSERT INTO study_events VALUES ($1, $2, $3, $4, $5, false) RETURNING *",
        [user["id"], "Revise limits", "Mathematics", "2025-03-10T09:00:00+00:00", "study"],
    ).rows[0]

    assert (user["name"], user["email"], user["role"]) == ("Listless Student", "listless@example.com", "STUDENT")
    assert post["author_id"] == user["id"]
    assert post["grade"] == 11
    assert post["tags"] == ["calculus"]
    assert post["votes"] == 0
    assert event["user_id"] == user["id"]
    assert event["event_type"] == "study"
    assert event["is_completed"] is False
    assert event["notes"] is None


def test_placeholder_without_parameter_is_unmatched(app_context):
    _insert_user()

    result = query("SELECT * FROM users WHERE email = $2", ["shim@example.com"])

    assert result.matched is False
    assert result.rows == []


def test_tag_any_and_negated_any_conditions(app_context):
    store = get_store()
    author = _insert_user()
    store.insert("forum_posts", {"title": "Limits", "content": "x", "author_id": author["id"], "tags": ["calculus"]})
    store.insert("forum_posts", {"title": "Cells", "content": "y", "author_id": author["id"], "tags": ["biology"]})
    store.insert("forum_posts", {"title": "Untagged", "content": "z", "author_id": author["id"]})

    tagged = query("SELECT title FROM forum_posts WHERE $1 = ANY(tags)", ["calculus"]).rows
    others = query(
        "SELECT title FROM forum_posts WHERE NOT ($1 = ANY(tags)) ORDER BY title ASC", ["calculus"]
    ).rows

    assert tagged == [{"title": "Limits"}]
    assert [row["title"] for row in others] == ["Cells", "Untagged"]


def test_is_null_and_false_conditions(app_context):
    user = _insert_user()
    store = get_store()
    store.insert("tokens", {"token": "fresh", "user_id": user["id"], "type": "reset", "expires_at": "2099-01-01T00:00:00+00:00"})
    store.insert(
        "tokens",
        {
            "token": "spent",
            "user_id": user["id"],
            "type": "reset",
            "expires_at": "2099-01-01T00:00:00+00:00",
            "used_at": "2025-01-01T00:00:00+00:00",
        },
    )

    unused = query("SELECT token FROM tokens WHERE user_id = $1 AND used_at IS NULL", [user["id"]])
    nothing = query("SELECT * FROM tokens WHERE 1 = 0")

    assert unused.rows == [{"token": "fresh"}]
    assert nothing.matched is True
    assert nothing.rows == []


def test_returning_projects_the_named_columns(app_context):
    user = _insert_user()

    inserted = query(
        "INSERT INTO notifications (user_id, title, message) VALUES ($1, $2, $3) RETURNING id, title",
        [user["id"], "Welcome", "Hello there"],
    ).rows
    updated = query(
        "UPDATE notifications SET is_read = true WHERE id = $1 RETURNING is_read", [inserted[0]["id"]]
    ).rows

    assert set(inserted[0]) == {"id", "title"}
    assert inserted[0]["title"] == "Welcome"
    assert updated == [{"is_read": True}]


def test_on_conflict_on_a_unique_column_without_table_key(app_context):
    statement = (
        "INSERT INTO users (name, email, password_hash) VALUES ($1, $2, $3) "
        "ON CONFLICT (email) DO NOTHING RETURNING *"
    )
    params = ["Twice", "twice@example.com", hash_password("Secret123!")]

    first = query(statement, params)
    second = query(statement, params)

    assert first.row_count == 1
    assert second.matched is True
    assert second.row_count == 0
    assert get_store().count("users", email="twice@example.com") == 1


def test_on_conflict_on_a_non_unique_column_is_unmatched(app_context):
    result = query(
        "INSERT INTO users (name, email, password_hash) VALUES ($1, $2, $3) "
        "ON CONFLICT (name) DO NOTHING RETURNING *",
        ["Nameless", "nameless@example.com", "hash"],
    )

    assert result.matched is False
    assert get_store().count("users", email="nameless@example.com") == 0


def test_non_integer_limit_is_unmatched(app_context):
    _insert_user()

    result = query("SELECT * FROM users ORDER BY created_at DESC LIMIT $1", ["ten"])

    assert result.matched is False
    assert result.rows == []


def test_update_of_missing_row_matches_nothing(app_context):
    result = query("UPDATE users SET name = $1 WHERE id = $2", ["Nobody", "missing-id"])

    assert result.matched is True
    assert result.row_count == 0
    assert result.rows == []


def test_unrecognized_statement_returns_empty_unmatched_result(app_context):
    result = query("SELECT * FROM lessons WHERE id = $1", ["lesson-1"])

    assert result.matched is False
    assert result.rows == []
    assert result.row_count == 0


def test_select_supports_ilike_alternatives_order_and_limit(app_context):
    store = get_store()
    store.insert("documents", {"title": "Algebra Basics", "subject": "Mathematics"})
    store.insert("documents", {"title": "Cell Biology", "description": "Intro to algebraic cells"})
    store.insert("documents", {"title": "World History"})

    rows = query(
        "SELECT id, title FROM documents WHERE (title ILIKE $1 OR description ILIKE $1) "
        "ORDER BY title ASC LIMIT $2",
        ["%algebra%", 10],
    ).rows

    assert [row["title"] for row in rows] == ["Algebra Basics", "Cell Biology"]
    assert set(rows[0]) == {"id", "title"}


def test_count_statement(app_context):
    _insert_user("one@example.com")
    _insert_user("two@example.com")

    assert query("SELECT COUNT(*) FROM users").rows == [{"count": 2}]
    assert query("SELECT COUNT(*) AS total FROM users WHERE email = $1", ["one@example.com"]).rows == [
        {"total": 1}
    ]


def test_counter_update_runs_procedure(app_context):
    document = get_store().insert("documents", {"title": "Physics Notes"})

    first = query("UPDATE documents SET downloads = downloads + 1 WHERE id = $1", [document["id"]])
    second = query("UPDATE documents SET downloads = downloads + 1 WHERE id = $1", [document["id"]])

    assert first.rows[0]["downloads"] == 1
    assert second.rows[0]["downloads"] == 2


def test_bookmark_insert_does_not_duplicate(app_context):
    user = _insert_user()
    document = get_store().insert("documents", {"title": "Chemistry Notes"})
    statement = (
        "INSERT INTO bookmarks (user_id, item_id, item_type) VALUES ($1, $2, $3) "
        "ON CONFLICT (user_id, item_id, item_type) DO NOTHING RETURNING *"
    )

    first = query(statement, [user["id"], document["id"], "document"])
    second = query(statement, [user["id"], document["id"], "document"])

    assert first.row_count == 1
    assert second.row_count == 0
    assert get_store().count("bookmarks", user_id=user["id"]) == 1


def test_delete_with_compound_where(app_context):
    user = _insert_user()
    get_store().insert("bookmarks", {"user_id": user["id"], "item_id": "doc-1", "item_type": "document"})

    result = query(
        "DELETE FROM bookmarks WHERE user_id = $1 AND item_id = $2 AND item_type = $3",
        [user["id"], "doc-1", "document"],
    )

    assert result.row_count == 1
    assert get_store().count("bookmarks", user_id=user["id"]) == 0
