"""Table registry and DDL for the SmartStudy database."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Column:
    kind: str  # text | int | real | bool | json | timestamp | date
    default: Any = None
    nullable: bool = True
    unique: bool = False
    references: Optional[str] = None

    def default_value(self) -> Any:
        # Fresh containers per row; JSON defaults are mutable.
        if isinstance(self.default, (list, dict)):
            return type(self.default)(self.default)
        return self.default


def _pk() -> Column:
    return Column("text", nullable=False)


def _user_fk(nullable: bool = False) -> Column:
    return Column("text", nullable=nullable, references="users")


_CREATED = Column("timestamp", nullable=False)
_UPDATED = Column("timestamp")

DEFAULT_PREFERENCES = {"emailNotifications": True, "studyReminders": True}

TABLES: Dict[str, Dict[str, Column]] = {
    "users": {
        "id": _pk(),
        "name": Column("text", nullable=False),
        "email": Column("text", nullable=False, unique=True),
        "password_hash": Column("text"),
        "google_id": Column("text"),
        "avatar": Column("text"),
        "role": Column("text", default="STUDENT", nullable=False),
        "grade": Column("int"),
        "status": Column("text", default="active", nullable=False),
        "is_premium": Column("bool", default=False, nullable=False),
        "preferences": Column("json", default=DEFAULT_PREFERENCES),
        "unlocked_badges": Column("json", default=["b1"]),
        "xp": Column("int", default=0, nullable=False),
        "level": Column("int", default=1, nullable=False),
        "streak": Column("int", default=0, nullable=False),
        "last_active_date": Column("date"),
        "practice_attempts": Column("int", default=0, nullable=False),
        "created_at": _CREATED,
        "updated_at": _UPDATED,
    },
    "documents": {
        "id": _pk(),
        "title": Column("text", nullable=False),
        "description": Column("text"),
        "subject": Column("text"),
        "grade": Column("int"),
        "file_type": Column("text"),
        "file_url": Column("text"),
        "preview_image": Column("text"),
        "is_premium": Column("bool", default=False, nullable=False),
        "author": Column("text"),
        "tags": Column("json", default=[]),
        "downloads": Column("int", default=0, nullable=False),
        "uploaded_by": _user_fk(nullable=True),
        "created_at": _CREATED,
        "updated_at": _UPDATED,
    },
    "videos": {
        "id": _pk(),
        "title": Column("text", nullable=False),
        "description": Column("text"),
        "subject": Column("text"),
        "grade": Column("int"),
        "video_url": Column("text"),
        "thumbnail": Column("text"),
        "instructor": Column("text"),
        "duration": Column("int"),
        "is_premium": Column("bool", default=False, nullable=False),
        "views": Column("int", default=0, nullable=False),
        "likes": Column("int", default=0, nullable=False),
        "uploaded_by": _user_fk(nullable=True),
        "created_at": _CREATED,
        "updated_at": _UPDATED,
    },
    "video_likes": {
        "id": _pk(),
        "user_id": _user_fk(),
        "video_id": Column("text", nullable=False, references="videos"),
        "created_at": _CREATED,
    },
    "video_completions": {
        "id": _pk(),
        "user_id": _user_fk(),
        "video_id": Column("text", nullable=False, references="videos"),
        "xp_awarded": Column("int", default=0, nullable=False),
        "created_at": _CREATED,
    },
    "forum_posts": {
        "id": _pk(),
        "title": Column("text", nullable=False),
        "content": Column("text", nullable=False),
        "author_id": _user_fk(),
        "subject": Column("text"),
        "grade": Column("int"),
        "tags": Column("json", default=[]),
        "votes": Column("int", default=0, nullable=False),
        "views": Column("int", default=0, nullable=False),
        "is_solved": Column("bool", default=False, nullable=False),
        "created_at": _CREATED,
        "updated_at": _UPDATED,
    },
    "forum_comments": {
        "id": _pk(),
        "post_id": Column("text", nullable=False, references="forum_posts"),
        "author_id": _user_fk(),
        "content": Column("text", nullable=False),
        "votes": Column("int", default=0, nullable=False),
        "is_accepted": Column("bool", default=False, nullable=False),
        "is_edited": Column("bool", default=False, nullable=False),
        "created_at": _CREATED,
        "updated_at": _UPDATED,
    },
    "forum_votes": {
        "id": _pk(),
        "user_id": _user_fk(),
        "target_type": Column("text", nullable=False),
        "target_id": Column("text", nullable=False),
        "vote_value": Column("int", nullable=False),
        "created_at": _CREATED,
    },
    "forum_views": {
        "id": _pk(),
        "user_id": _user_fk(),
        "post_id": Column("text", nullable=False, references="forum_posts"),
        "created_at": _CREATED,
    },
    "study_events": {
        "id": _pk(),
        "user_id": _user_fk(),
        "title": Column("text", nullable=False),
        "subject": Column("text"),
        "event_date": Column("timestamp", nullable=False),
        "event_type": Column("text", nullable=False),
        "is_completed": Column("bool", default=False, nullable=False),
        "notes": Column("text"),
        "created_at": _CREATED,
        "updated_at": _UPDATED,
    },
    "practice_sessions": {
        "id": _pk(),
        "user_id": _user_fk(),
        "subject": Column("text"),
        "duration_minutes": Column("int", default=0, nullable=False),
        "score": Column("int"),
        "xp_awarded": Column("int", default=0, nullable=False),
        "created_at": _CREATED,
        "updated_at": _UPDATED,
    },
    "chat_sessions": {
        "id": _pk(),
        "user_id": _user_fk(),
        "title": Column("text", default="New Chat Session", nullable=False),
        "messages": Column("json", default=[]),
        "created_at": _CREATED,
        "updated_at": _UPDATED,
    },
    "notifications": {
        "id": _pk(),
        "user_id": _user_fk(),
        "title": Column("text", nullable=False),
        "message": Column("text", nullable=False),
        "type": Column("text", default="INFO", nullable=False),
        "is_read": Column("bool", default=False, nullable=False),
        "created_at": _CREATED,
    },
    "bookmarks": {
        "id": _pk(),
        "user_id": _user_fk(),
        "item_id": Column("text", nullable=False),
        "item_type": Column("text", nullable=False),
        "created_at": _CREATED,
    },
    "tokens": {
        "id": _pk(),
        "token": Column("text", nullable=False, unique=True),
        "user_id": _user_fk(),
        "type": Column("text", nullable=False),
        "expires_at": Column("timestamp", nullable=False),
        "used_at": Column("timestamp"),
        "created_at": _CREATED,
    },
    "xp_history": {
        "id": _pk(),
        "user_id": _user_fk(),
        "amount": Column("int", nullable=False),
        "source": Column("text"),
        "description": Column("text"),
        "created_at": _CREATED,
    },
    "badge_unlocks": {
        "id": _pk(),
        "user_id": _user_fk(),
        "badge_id": Column("text", nullable=False),
        "created_at": _CREATED,
    },
}

UNIQUE_KEYS: Dict[str, tuple[str, ...]] = {
    "video_likes": ("user_id", "video_id"),
    "video_completions": ("user_id", "video_id"),
    "forum_votes": ("user_id", "target_type", "target_id"),
    "forum_views": ("user_id", "post_id"),
    "bookmarks": ("user_id", "item_id", "item_type"),
    "badge_unlocks": ("user_id", "badge_id"),
}

INDEXES: Dict[str, tuple[str, ...]] = {
    "idx_notifications_user": ("notifications", "user_id", "is_read"),
    "idx_study_events_user_date": ("study_events", "user_id", "event_date"),
    "idx_forum_comments_post": ("forum_comments", "post_id"),
    "idx_forum_votes_target": ("forum_votes", "target_type", "target_id"),
    "idx_xp_history_user": ("xp_history", "user_id", "created_at"),
    "idx_chat_sessions_user": ("chat_sessions", "user_id"),
}

TABLES_WITH_UPDATED_AT = frozenset(
    name for name, columns in TABLES.items() if "updated_at" in columns
)

_POSTGRES_TYPES = {
    "text": "TEXT",
    "int": "INTEGER",
    "real": "DOUBLE PRECISION",
    "bool": "BOOLEAN",
    "json": "JSONB",
    "timestamp": "TIMESTAMPTZ",
    "date": "DATE",
}

_SQLITE_TYPES = {
    "text": "TEXT",
    "int": "INTEGER",
    "real": "REAL",
    "bool": "INTEGER",
    "json": "TEXT",
    "timestamp": "TEXT",
    "date": "TEXT",
}


def column_kind(table: str, column: str) -> str:
    return TABLES[table][column].kind


def create_statements(backend: str) -> list[str]:
    """Return CREATE TABLE / CREATE INDEX statements for the given backend."""
    types = _POSTGRES_TYPES if backend == "postgres" else _SQLITE_TYPES
    statements: list[str] = []
    for table, columns in TABLES.items():
        lines: list[str] = []
        for name, column in columns.items():
            parts = [name, types[column.kind]]
            if name == "id":
                parts.append("PRIMARY KEY")
            elif not column.nullable:
                parts.append("NOT NULL")
            if column.unique:
                parts.append("UNIQUE")
            if column.references:
                parts.append(f"REFERENCES {column.references}(id) ON DELETE CASCADE")
            lines.append(" ".join(parts))
        unique_key = UNIQUE_KEYS.get(table)
        if unique_key:
            lines.append(f"UNIQUE ({', '.join(unique_key)})")
        body = ",\n    ".join(lines)
        statements.append(f"CREATE TABLE IF NOT EXISTS {table} (\n    {body}\n);")

    for index_name, (table, *columns) in INDEXES.items():
        statements.append(
            f"CREATE INDEX IF NOT EXISTS {index_name} ON {table} ({', '.join(columns)});"
        )
    return statements
