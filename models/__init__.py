"""Data access layer for SmartStudy without external ORM dependencies."""

from __future__ import annotations

import contextlib
import datetime
import logging
import os
import sqlite3
import threading
import uuid
from typing import Any, Iterator, Optional
from urllib.parse import urlparse

import psycopg
from flask_login import UserMixin
from psycopg.rows import dict_row

from config.settings import get_settings

from .schema import TABLES, TABLES_WITH_UPDATED_AT, UNIQUE_KEYS, create_statements

logger = logging.getLogger(__name__)

_backend: Optional[str] = None  # "sqlite" or "postgres"
_generation = 0
_shared_sqlite: Optional[sqlite3.Connection] = None
_sqlite_lock = threading.RLock()
_registry_lock = threading.Lock()
_postgres_connections: list = []
_local = threading.local()


class User(UserMixin):
    """Flask-Login compatible user wrapper around a ``users`` row."""

    def __init__(self, row: dict[str, Any]) -> None:
        self.row = dict(row)
        self.id = row["id"]
        self.email = row["email"]
        self.name = row.get("name")
        self.role = row.get("role") or "STUDENT"
        self.password_hash = row.get("password_hash")
        self.is_premium = bool(row.get("is_premium"))
        self.xp = int(row.get("xp") or 0)
        self.level = int(row.get("level") or 1)
        self.streak = int(row.get("streak") or 0)

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"

    @property
    def is_active(self) -> bool:
        return self.row.get("status", "active") == "active"

    def to_public_dict(self) -> dict[str, Any]:
        return {key: value for key, value in self.row.items() if key != "password_hash"}

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<User id={self.id} role={self.role} email={self.email!r}>"


def _resolve_default_sqlite_path() -> str:
    root_dir = os.path.dirname(os.path.dirname(__file__))
    return os.path.join(root_dir, "smartstudy_dev.sqlite")


def _normalize_sqlite_path(database_url: str) -> str:
    parsed = urlparse(database_url)
    path = parsed.path or ""
    if path.startswith("/"):
        path = path[1:]
    if path in {"", ":memory:"}:
        return ":memory:"
    if parsed.netloc:
        path = os.path.join(parsed.netloc, path)
    return path or _resolve_default_sqlite_path()


def _thread_state() -> threading.local:
    """Per-thread connection and transaction depth, dropped after ``reset_engine``."""
    if getattr(_local, "generation", None) != _generation:
        _local.generation = _generation
        _local.connection = None
        _local.depth = 0
    return _local


def _database_url() -> str:
    database_url = get_settings().DATABASE_URL or f"sqlite:///{_resolve_default_sqlite_path()}"
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    return database_url


def get_connection():
    """
    Return the calling thread's database connection.

    PostgreSQL gets one connection per thread. SQLite keeps a single connection
    shared by every thread; :func:`transaction` serializes access to it.
    """
    global _shared_sqlite, _backend
    state = _thread_state()
    if state.connection is not None:
        return state.connection

    database_url = _database_url()
    if database_url.startswith("sqlite"):
        with _registry_lock:
            if _shared_sqlite is None:
                conn = sqlite3.connect(_normalize_sqlite_path(database_url), check_same_thread=False)
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA foreign_keys = ON;")
                _shared_sqlite = conn
            _backend = "sqlite"
            state.connection = _shared_sqlite
    else:
        conn = psycopg.connect(database_url, row_factory=dict_row)
        with _registry_lock:
            _postgres_connections.append(conn)
            _backend = "postgres"
        state.connection = conn

    return state.connection


def backend() -> str:
    """Return the active SQL dialect, opening the connection if needed."""
    get_connection()
    return _backend or "sqlite"


def close_connection(exc: Optional[BaseException] = None) -> None:
    """Close this thread's PostgreSQL connection once no transaction is open."""
    state = _thread_state()
    conn = state.connection
    if conn is None or conn is _shared_sqlite or in_transaction():
        return
    with _registry_lock:
        if conn in _postgres_connections:
            _postgres_connections.remove(conn)
    state.connection = None
    conn.close()


def reset_engine() -> None:
    """Close every open connection and forget per-thread state (used in tests)."""
    global _shared_sqlite, _backend, _generation
    with _registry_lock:
        connections = list(_postgres_connections)
        if _shared_sqlite is not None:
            connections.append(_shared_sqlite)
        _postgres_connections.clear()
        _shared_sqlite = None
        _backend = None
        _generation += 1
    for conn in connections:
        conn.close()


def init_db() -> None:
    """Create all SmartStudy tables if they do not already exist."""
    with transaction() as conn:
        cur = conn.cursor()
        try:
            for statement in create_statements(_backend or "sqlite"):
                cur.execute(statement)
        finally:
            cur.close()


@contextlib.contextmanager
def transaction() -> Iterator[object]:
    """
    Group several writes into one commit; nested blocks join the outer one.

    The depth is tracked per thread, so a write from another thread never joins
    (or rolls back with) this transaction. On SQLite the shared connection is
    held by one thread for the whole outer block.
    """
    conn = get_connection()
    state = _thread_state()
    guard = _sqlite_lock if conn is _shared_sqlite else contextlib.nullcontext()
    with guard:
        state.depth += 1
        try:
            yield conn
        except Exception:
            if state.depth == 1:
                conn.rollback()
            raise
        else:
            if state.depth == 1:
                conn.commit()
        finally:
            state.depth -= 1


def in_transaction() -> bool:
    return _thread_state().depth > 0


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def get_user_by_id(user_id: str) -> Optional[User]:
    from .store import get_store

    if not user_id:
        return None
    row = get_store().get_by_id("users", str(user_id))
    return User(row) if row else None


__all__ = [
    "TABLES",
    "TABLES_WITH_UPDATED_AT",
    "UNIQUE_KEYS",
    "User",
    "backend",
    "close_connection",
    "get_connection",
    "get_user_by_id",
    "in_transaction",
    "init_db",
    "new_id",
    "reset_engine",
    "transaction",
    "utcnow",
]
