"""Translate SQL-like statements into table client calls.

Older call sites describe their reads and writes as SQL text with ``$n``
placeholders. :func:`query` recognizes a fixed set of statement shapes and
runs them through the typed table client, so the same text works on the SQL
and Supabase backends:

* counter bumps (``views = views + 1``, ``votes = GREATEST(votes - 1, 0)``)
  and comment acceptance, which map to stored procedures;
* ``SELECT COUNT(*) [AS alias] FROM t [WHERE ...]``;
* selects of posts and comments joined with ``users``, bookmarks joined with
  their documents/videos, and users selected together with bookmarks;
* plain ``SELECT``, ``INSERT``, ``UPDATE`` and ``DELETE`` on known tables.

Statements outside that set are reported with ``matched=False`` and an empty
result instead of raising; errors raised by the database still propagate.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from . import utcnow
from .schema import TABLES, TABLES_WITH_UPDATED_AT, UNIQUE_KEYS
from .table_api import BaseTableClient, TableQuery, get_table_client

logger = logging.getLogger(__name__)

# Column order used by ``INSERT INTO t VALUES (...)`` without a column list.
INSERT_COLUMNS: dict[str, tuple[str, ...]] = {
    "users": ("name", "email", "password_hash", "google_id", "avatar"),
    "documents": (
        "title", "description", "subject", "grade", "file_type",
        "is_premium", "author", "tags", "uploaded_by", "preview_image",
    ),
    "videos": (
        "title", "description", "subject", "grade", "video_url",
        "instructor", "thumbnail", "is_premium", "uploaded_by",
    ),
    "forum_posts": ("title", "content", "author_id", "subject", "grade", "tags"),
    "forum_comments": ("post_id", "author_id", "content"),
    "study_events": (
        "user_id", "title", "subject", "event_date", "event_type", "is_completed", "notes",
    ),
    "notifications": ("user_id", "title", "message", "type", "is_read"),
    "tokens": ("token", "user_id", "type", "expires_at"),
    "video_likes": ("user_id", "video_id"),
    "video_completions": ("user_id", "video_id", "xp_awarded"),
    "forum_votes": ("user_id", "target_type", "target_id", "vote_value"),
    "forum_views": ("user_id", "post_id"),
    "bookmarks": ("user_id", "item_id", "item_type"),
}

_COUNTER_PROCEDURES: dict[tuple[str, str, str], tuple[str, str]] = {
    ("documents", "downloads", "+"): ("increment_document_downloads", "document_id"),
    ("videos", "views", "+"): ("increment_video_views", "video_id"),
    ("videos", "likes", "+"): ("increment_video_likes", "video_id"),
    ("videos", "likes", "-"): ("decrement_video_likes", "video_id"),
    ("forum_posts", "views", "+"): ("increment_post_views", "post_id"),
    ("forum_posts", "votes", "+"): ("increment_post_votes", "post_id"),
    ("forum_posts", "votes", "-"): ("decrement_post_votes", "post_id"),
    ("forum_comments", "votes", "+"): ("increment_comment_votes", "comment_id"),
    ("forum_comments", "votes", "-"): ("decrement_comment_votes", "comment_id"),
}

_BOOKMARK_ITEM_FIELDS = {
    "document": (
        "documents",
        ("id", "title", "description", "subject", "grade", "file_type", "is_premium", "preview_image"),
    ),
    "video": (
        "videos",
        ("id", "title", "description", "subject", "grade", "thumbnail", "instructor", "is_premium"),
    ),
}

_COUNTER_RE = re.compile(
    r"^update (\w+) set (\w+) = (?:greatest\( ?)?(\w+) ?([+-]) ?1(?: ?, ?0 ?\))? "
    r"where id = (\$\d+)$",
    re.IGNORECASE,
)
_ACCEPT_RE = re.compile(
    r"^update forum_comments set is_accepted = (true|false) where (id|post_id) = (\$\d+)$",
    re.IGNORECASE,
)
_COUNT_RE = re.compile(
    r"^select count\(\*\)(?: (?:as )?(\w+))? from (\w+)(?: (?:as )?(?!where\b)(\w+))?(?: where (.+))?$",
    re.IGNORECASE,
)
_INSERT_RE = re.compile(
    r"^insert into (\w+) ?(?:\(([^)]*)\))? ?values ?\(",
    re.IGNORECASE,
)
_IDENT_RE = re.compile(r"^(?:\w+\.)?(\w+)$")
_PARAM_RE = re.compile(r"^\$(\d+)$")
_NUMBER_RE = re.compile(r"^-?\d+(?:\.\d+)?$")
_COMPARE_RE = re.compile(r"^((?:\w+\.)?\w+) ?(=|!=|<>|>=|<=|>|<) ?(.+)$")
_ANY_RE = re.compile(r"^(\S+) ?= ?any ?\( ?((?:\w+\.)?\w+) ?\)$", re.IGNORECASE)
_IN_RE = re.compile(r"^((?:\w+\.)?\w+) in ?\((.*)\)$", re.IGNORECASE)
_IS_NULL_RE = re.compile(r"^((?:\w+\.)?\w+) is null$", re.IGNORECASE)
_ILIKE_RE = re.compile(r"^((?:\w+\.)?\w+) i?like (.+)$", re.IGNORECASE)
_JOIN_RE = re.compile(r"\bjoin (\w+)", re.IGNORECASE)
_ORDER_RE = re.compile(r"^((?:\w+\.)?\w+)(?: (asc|desc))?(?: nulls (?:first|last))?$", re.IGNORECASE)
_CONFLICT_RE = re.compile(r"^(?:\(([^)]*)\) ?)?do (nothing|update\b.*)$", re.IGNORECASE)


@dataclass
class QueryResult:
    rows: list[dict[str, Any]] = field(default_factory=list)
    row_count: int = 0
    matched: bool = True


class _Unrecognized(Exception):
    """Internal signal that a statement is outside the supported shapes."""


def query(
    text: str,
    params: Sequence[Any] = (),
    *,
    client: Optional[BaseTableClient] = None,
) -> QueryResult:
    """Run a SQL-like statement and return rows shaped like a driver result."""
    statement = " ".join(str(text or "").split()).rstrip(";").strip()
    translator = _Translator(client or get_table_client(admin=True), list(params))
    try:
        return translator.run(statement)
    except _Unrecognized as exc:
        logger.warning("Unrecognized SQL statement (%s): %.200s", exc, statement)
        return QueryResult(rows=[], row_count=0, matched=False)


def _top_level_positions(text: str, word: str) -> list[int]:
    """Positions of ``word`` outside quotes and parentheses."""
    lowered = text.lower()
    positions: list[int] = []
    depth = 0
    quoted = False
    i = 0
    while i < len(text):
        ch = text[i]
        if quoted:
            if ch == "'":
                if text[i + 1 : i + 2] == "'":
                    i += 2
                    continue
                quoted = False
        elif ch == "'":
            quoted = True
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif depth == 0 and lowered.startswith(word, i):
            before = lowered[i - 1] if i else " "
            after = lowered[i + len(word)] if i + len(word) < len(lowered) else " "
            if not (before.isalnum() or before == "_") and not (after.isalnum() or after == "_"):
                positions.append(i)
        i += 1
    return positions


def _split(text: str, word: str) -> list[str]:
    parts: list[str] = []
    start = 0
    for position in _top_level_positions(text, word):
        parts.append(text[start:position].strip())
        start = position + len(word)
    parts.append(text[start:].strip())
    return [part for part in parts if part]


def _split_commas(text: str) -> list[str]:
    parts: list[str] = []
    depth = 0
    quoted = False
    current: list[str] = []
    for ch in text:
        if ch == "'":
            quoted = not quoted
        elif not quoted and ch == "(":
            depth += 1
        elif not quoted and ch == ")":
            depth -= 1
        if ch == "," and depth == 0 and not quoted:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    if "".join(current).strip():
        parts.append("".join(current).strip())
    return parts


def _clauses(text: str, keywords: Sequence[str]) -> dict[str, str]:
    """Split ``text`` into a head plus the first top-level occurrence of each keyword."""
    found: list[tuple[int, str]] = []
    for keyword in keywords:
        positions = _top_level_positions(text, keyword)
        if positions:
            found.append((positions[0], keyword))
    found.sort()
    result = {"head": text[: found[0][0]].strip() if found else text.strip()}
    for index, (position, keyword) in enumerate(found):
        end = found[index + 1][0] if index + 1 < len(found) else len(text)
        result[keyword] = text[position + len(keyword) : end].strip()
    return result


def _strip_parens(text: str) -> str:
    text = text.strip()
    while text.startswith("(") and text.endswith(")"):
        inner = text[1:-1]
        # Only strip when the outer pair wraps the whole expression.
        depth = 0
        balanced = True
        for ch in inner:
            depth += ch == "("
            depth -= ch == ")"
            if depth < 0:
                balanced = False
                break
        if not balanced:
            break
        text = inner.strip()
    return text


class _Translator:
    def __init__(self, client: BaseTableClient, params: list[Any]) -> None:
        self.client = client
        self.params = params

    # Values

    def value(self, token: str) -> Any:
        token = token.strip()
        lowered = token.lower()
        param = _PARAM_RE.match(token)
        if param:
            index = int(param.group(1)) - 1
            if index < 0 or index >= len(self.params):
                raise _Unrecognized(f"placeholder {token} has no parameter")
            return self.params[index]
        if token.startswith("'") and token.endswith("'") and len(token) >= 2:
            return token[1:-1].replace("''", "'")
        if _NUMBER_RE.match(token):
            return float(token) if "." in token else int(token)
        if lowered in {"true", "false"}:
            return lowered == "true"
        if lowered == "null":
            return None
        if lowered in {"current_timestamp", "now()"}:
            return utcnow()
        if lowered == "current_date":
            return utcnow().date()
        raise _Unrecognized(f"unsupported value expression {token!r}")

    @staticmethod
    def column(table: str, token: str) -> str:
        match = _IDENT_RE.match(token.strip())
        if not match or match.group(1).lower() not in TABLES[table]:
            raise _Unrecognized(f"unknown column {token!r} for {table}")
        return match.group(1).lower()

    @staticmethod
    def table(name: str) -> str:
        name = name.lower()
        if name not in TABLES:
            raise _Unrecognized(f"unknown table {name!r}")
        return name

    # Clause helpers

    def apply_where(self, query: TableQuery, table: str, where: Optional[str]) -> TableQuery:
        if not where:
            return query
        for condition in _split(_strip_parens(where), "and"):
            self._apply_condition(query, table, _strip_parens(condition))
        return query

    def _apply_condition(self, query: TableQuery, table: str, condition: str) -> None:
        lowered = condition.lower()
        if lowered in {"1 = 0", "1=0", "false"}:
            query.match_nothing()
            return
        if lowered in {"1 = 1", "1=1", "true"}:
            return

        alternatives = _split(condition, "or")
        if len(alternatives) > 1:
            columns: list[str] = []
            patterns: set[Any] = set()
            for alternative in alternatives:
                match = _ILIKE_RE.match(_strip_parens(alternative))
                if not match:
                    raise _Unrecognized(f"unsupported OR condition {condition!r}")
                columns.append(self.column(table, match.group(1)))
                patterns.add(self.value(match.group(2)))
            if len(patterns) != 1:
                raise _Unrecognized("OR conditions must share one pattern")
            query.ilike_any(columns, patterns.pop())
            return

        if lowered.startswith("not "):
            inner = _strip_parens(condition[4:])
            match = _ANY_RE.match(inner)
            if not match:
                raise _Unrecognized(f"unsupported NOT condition {condition!r}")
            query.not_contains(self.column(table, match.group(2)), self.value(match.group(1)))
            return

        match = _ANY_RE.match(condition)
        if match:
            query.contains(self.column(table, match.group(2)), self.value(match.group(1)))
            return
        match = _IN_RE.match(condition)
        if match:
            values = [self.value(item) for item in _split_commas(match.group(2))]
            query.in_(self.column(table, match.group(1)), values)
            return
        match = _IS_NULL_RE.match(condition)
        if match:
            query.is_(self.column(table, match.group(1)), None)
            return
        match = _ILIKE_RE.match(condition)
        if match:
            query.ilike_any([self.column(table, match.group(1))], self.value(match.group(2)))
            return
        match = _COMPARE_RE.match(condition)
        if match:
            column = self.column(table, match.group(1))
            value = self.value(match.group(3))
            method = {"=": "eq", "!=": "neq", "<>": "neq", ">=": "gte", "<=": "lte", ">": "gt", "<": "lt"}
            getattr(query, method[match.group(2)])(column, value)
            return
        raise _Unrecognized(f"unsupported condition {condition!r}")

    def apply_modifiers(self, query: TableQuery, table: str, parts: dict[str, str]) -> TableQuery:
        for item in _split_commas(parts.get("order by", "")):
            match = _ORDER_RE.match(item)
            if not match:
                raise _Unrecognized(f"unsupported ORDER BY item {item!r}")
            desc = (match.group(2) or "asc").lower() == "desc"
            query.order(self.column(table, match.group(1)), desc=desc)
        for keyword in ("limit", "offset"):
            if parts.get(keyword):
                getattr(query, keyword)(self.count_value(keyword, parts[keyword]))
        return query

    def count_value(self, keyword: str, token: str) -> int:
        value = self.value(token)
        if isinstance(value, bool):
            raise _Unrecognized(f"{keyword.upper()} must be an integer")
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            raise _Unrecognized(f"{keyword.upper()} must be an integer") from exc

    def conflict_target(self, table: str, clause: str) -> tuple[tuple[str, ...], bool]:
        """Resolve an ON CONFLICT clause to (key columns, ignore duplicates)."""
        match = _CONFLICT_RE.match(clause.strip())
        if not match:
            raise _Unrecognized(f"unsupported ON CONFLICT clause {clause!r}")
        ignore = match.group(2).lower() == "nothing"
        if not match.group(1):
            keys = UNIQUE_KEYS.get(table)
            if not keys:
                raise _Unrecognized(f"{table} has no unique key for ON CONFLICT")
            return keys, ignore
        keys = tuple(self.column(table, item) for item in _split_commas(match.group(1)))
        if keys == UNIQUE_KEYS.get(table):
            return keys, ignore
        if len(keys) == 1 and TABLES[table][keys[0]].unique:
            return keys, ignore
        raise _Unrecognized(f"ON CONFLICT target {clause!r} is not a unique key of {table}")

    def projection(self, table: str, select_list: str) -> Optional[list[str]]:
        items = _split_commas(select_list)
        if any(item == "*" or item.endswith(".*") for item in items):
            return None
        return [self.column(table, item) for item in items]

    @staticmethod
    def project(rows: list[dict[str, Any]], columns: Optional[list[str]]) -> list[dict[str, Any]]:
        if columns is None:
            return rows
        return [{column: row.get(column) for column in columns} for row in rows]

    # Dispatch

    def run(self, statement: str) -> QueryResult:
        if not statement:
            raise _Unrecognized("empty statement")
        verb = statement.split(" ", 1)[0].lower()
        if verb == "select":
            return self.select(statement)
        if verb == "insert":
            return self.insert(statement)
        if verb == "update":
            return self.update(statement)
        if verb == "delete":
            return self.delete(statement)
        raise _Unrecognized(f"unsupported verb {verb!r}")

    def select(self, statement: str) -> QueryResult:
        count_match = _COUNT_RE.match(statement)
        if count_match:
            alias, table_name, _, where = count_match.groups()
            table = self.table(table_name)
            query = self.client.table(table).select("id", count="exact", head=True)
            self.apply_where(query, table, where)
            total = int(query.execute().count or 0)
            return QueryResult(rows=[{(alias or "count").lower(): total}], row_count=1)

        from_positions = _top_level_positions(statement, "from")
        if not from_positions:
            raise _Unrecognized("SELECT without FROM")
        select_list = statement[len("select") : from_positions[0]].strip()
        parts = _clauses(
            statement[from_positions[0] + len("from") :],
            ["where", "group by", "order by", "limit", "offset"],
        )
        source = parts["head"]
        table = self.table(source.split(" ", 1)[0])
        joined = {name.lower() for name in _JOIN_RE.findall(source)}

        query = self.client.table(table).select("*")
        self.apply_where(query, table, parts.get("where"))
        self.apply_modifiers(query, table, parts)

        if joined or (table == "users" and "bookmarks" in select_list.lower()):
            rows = query.execute().data
            rows = self.enrich(table, joined, select_list.lower(), rows)
            return QueryResult(rows=rows, row_count=len(rows))

        columns = self.projection(table, select_list)
        rows = self.project(query.execute().data, columns)
        return QueryResult(rows=rows, row_count=len(rows))

    def insert(self, statement: str) -> QueryResult:
        match = _INSERT_RE.match(statement)
        if not match:
            raise _Unrecognized("unsupported INSERT shape")
        table = self.table(match.group(1))
        start = match.end() - 1
        depth = 0
        end = None
        for index in range(start, len(statement)):
            depth += statement[index] == "("
            depth -= statement[index] == ")"
            if depth == 0:
                end = index
                break
        if end is None:
            raise _Unrecognized("unbalanced VALUES list")
        values = [self.value(token) for token in _split_commas(statement[start + 1 : end])]
        if match.group(2):
            columns = [self.column(table, item) for item in _split_commas(match.group(2))]
        else:
            columns = list(INSERT_COLUMNS.get(table, ()))[: len(values)]
        if len(columns) != len(values):
            raise _Unrecognized("column and value counts differ")
        record = {column: value for column, value in zip(columns, values) if value is not None}

        tail = _clauses(statement[end + 1 :], ["on conflict", "returning"])
        returning = self.projection(table, tail["returning"]) if tail.get("returning") else None
        conflict_keys: Optional[tuple[str, ...]] = UNIQUE_KEYS.get(table)
        ignore = False
        if tail.get("on conflict"):
            conflict_keys, ignore = self.conflict_target(table, tail["on conflict"])
        if conflict_keys:
            rows = (
                self.client.table(table)
                .upsert(record, on_conflict=conflict_keys, ignore_duplicates=ignore)
                .execute()
                .data
            )
        else:
            rows = self.client.table(table).insert(record).execute().data
        return QueryResult(rows=self.project(rows, returning), row_count=len(rows))

    def update(self, statement: str) -> QueryResult:
        counter = _COUNTER_RE.match(statement)
        if counter:
            table, target, source, sign, placeholder = counter.groups()
            key = (table.lower(), target.lower(), sign)
            if target.lower() != source.lower() or key not in _COUNTER_PROCEDURES:
                raise _Unrecognized("unsupported counter update")
            name, argument = _COUNTER_PROCEDURES[key]
            rows = self.client.rpc(name, {argument: self.value(placeholder)}) or []
            return QueryResult(rows=list(rows), row_count=len(rows))

        accept = _ACCEPT_RE.match(statement)
        if accept:
            flag, column, placeholder = accept.groups()
            if flag.lower() == "true" and column.lower() == "id":
                rows = self.client.rpc("accept_comment", {"comment_id": self.value(placeholder)})
            elif flag.lower() == "false" and column.lower() == "post_id":
                rows = self.client.rpc("unaccept_comments", {"post_id": self.value(placeholder)})
            else:
                raise _Unrecognized("unsupported accept statement")
            rows = list(rows or [])
            return QueryResult(rows=rows, row_count=len(rows))

        head = _clauses(statement[len("update") :], ["set", "where", "returning"])
        table = self.table(head["head"].split(" ", 1)[0])
        if not head.get("set") or not head.get("where"):
            raise _Unrecognized("UPDATE requires SET and WHERE")
        values: dict[str, Any] = {}
        for assignment in _split_commas(head["set"]):
            column, _, expression = assignment.partition("=")
            if not _:
                raise _Unrecognized(f"unsupported assignment {assignment!r}")
            values[self.column(table, column)] = self.value(expression)
        if table in TABLES_WITH_UPDATED_AT:
            values.setdefault("updated_at", utcnow())
        query = self.client.table(table).update(values)
        self.apply_where(query, table, head["where"])
        rows = query.execute().data
        returning = self.projection(table, head["returning"]) if head.get("returning") else None
        return QueryResult(rows=self.project(rows, returning), row_count=len(rows))

    def delete(self, statement: str) -> QueryResult:
        if not statement.lower().startswith("delete from "):
            raise _Unrecognized("unsupported DELETE shape")
        parts = _clauses(statement[len("delete from") :], ["where", "returning"])
        table = self.table(parts["head"].split(" ", 1)[0])
        if not parts.get("where"):
            raise _Unrecognized("DELETE without WHERE")
        query = self.client.table(table).delete()
        self.apply_where(query, table, parts["where"])
        rows = query.execute().data
        returning = self.projection(table, parts["returning"]) if parts.get("returning") else None
        return QueryResult(rows=self.project(rows, returning), row_count=len(rows))

    # Joins

    def enrich(
        self,
        table: str,
        joined: set[str],
        select_list: str,
        rows: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        if table == "forum_posts" and "users" in joined:
            return self._attach_authors(self._attach_comment_counts(rows))
        if table == "forum_comments" and "users" in joined:
            return self._attach_authors(rows)
        if table == "bookmarks" and joined & {"documents", "videos"}:
            return self._attach_bookmark_items(rows)
        if table == "users" and ("bookmarks" in joined or "bookmarks" in select_list):
            return self._attach_user_collections(rows)
        raise _Unrecognized(f"unsupported join on {table}: {sorted(joined)}")

    def _rows_by_id(self, table: str, ids: set[Any]) -> dict[Any, dict[str, Any]]:
        if not ids:
            return {}
        rows = self.client.table(table).select("*").in_("id", list(ids)).execute().data
        return {row["id"]: row for row in rows}

    def _attach_authors(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        authors = self._rows_by_id("users", {row.get("author_id") for row in rows if row.get("author_id")})
        for row in rows:
            author = authors.get(row.get("author_id"), {})
            row["author"] = author.get("name")
            row["author_role"] = author.get("role")
            row["author_avatar"] = author.get("avatar")
        return rows

    def _attach_comment_counts(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        post_ids = [row["id"] for row in rows]
        counts: Counter = Counter()
        if post_ids:
            comments = (
                self.client.table("forum_comments").select("post_id").in_("post_id", post_ids).execute().data
            )
            counts.update(comment["post_id"] for comment in comments)
        for row in rows:
            row["comment_count"] = counts.get(row["id"], 0)
        return rows

    def _attach_bookmark_items(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        for item_type, (table, fields) in _BOOKMARK_ITEM_FIELDS.items():
            ids = {row["item_id"] for row in rows if row.get("item_type") == item_type}
            items = self._rows_by_id(table, ids)
            for row in rows:
                if row.get("item_type") != item_type:
                    continue
                item = items.get(row["item_id"])
                row["item"] = {name: item.get(name) for name in fields} if item else None
        return rows

    def _attach_user_collections(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        for row in rows:
            row["bookmarks"] = (
                self.client.table("bookmarks").select("*").eq("user_id", row["id"])
                .order("created_at", desc=True).execute().data
            )
            row["notifications"] = (
                self.client.table("notifications").select("*").eq("user_id", row["id"])
                .order("created_at", desc=True).execute().data
            )
        return rows


__all__ = ["INSERT_COLUMNS", "QueryResult", "query"]
