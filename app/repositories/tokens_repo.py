from __future__ import annotations

import datetime
import secrets
from typing import Any, Optional

from models import utcnow
from models.sql_shim import query
from models.table_api import parse_timestamp


def create_token(user_id: str, token_type: str, *, ttl: datetime.timedelta) -> dict[str, Any]:
    result = query(
        """
        INSERT INTO tokens (token, user_id, type, expires_at)
        VALUES ($1, $2, $3, $4)
        RETURNING *
        """,
        [secrets.token_urlsafe(32), user_id, token_type, utcnow() + ttl],
    )
    return result.rows[0]


def fetch_valid_token(token: str, token_type: str) -> Optional[dict[str, Any]]:
    """Return an unused, unexpired token row or None."""
    result = query(
        "SELECT * FROM tokens WHERE token = $1 AND type = $2 AND used_at IS NULL",
        [token, token_type],
    )
    if not result.rows:
        return None
    row = result.rows[0]
    expires_at = parse_timestamp(row.get("expires_at"))
    if expires_at is None or expires_at <= utcnow():
        return None
    return row


def mark_used(token: str) -> None:
    query("UPDATE tokens SET used_at = CURRENT_TIMESTAMP WHERE token = $1", [token])
