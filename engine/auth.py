from __future__ import annotations

import logging
import secrets
import sqlite3
from datetime import timedelta

from engine.db import iso, parse_iso, transaction, utc_now
from engine.errors import AuthenticationMissing

logger = logging.getLogger(__name__)


def bearer_token(authorization: str | None) -> str:
    """Extract the token from an `Authorization: Bearer <token>` header."""
    raw = (authorization or "").strip()
    scheme, _, token = raw.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationMissing("missing or malformed Authorization header")
    return token


def resolve_user(conn: sqlite3.Connection, token: str) -> str:
    """Return the user id owning `token`, or raise AuthenticationMissing."""
    row = conn.execute(
        "SELECT user_id, expires_at FROM auth_tokens WHERE token = ?",
        (token,),
    ).fetchone()
    if not row:
        logger.info("Rejected unknown bearer token")
        raise AuthenticationMissing("unknown token")
    expires_at = parse_iso(row["expires_at"])
    if expires_at is not None and expires_at <= utc_now():
        logger.info("Rejected expired bearer token for user %s", row["user_id"])
        raise AuthenticationMissing("expired token")
    return str(row["user_id"])


def authenticate(conn: sqlite3.Connection, authorization: str | None) -> str:
    return resolve_user(conn, bearer_token(authorization))


def register_token(
    conn: sqlite3.Connection,
    user_id: str,
    token: str | None = None,
    ttl: timedelta | None = None,
) -> str:
    """Store a token for a user (dev tooling and tests; real tokens come from the identity provider)."""
    token = token or secrets.token_urlsafe(32)
    now = utc_now()
    with transaction(conn):
        conn.execute(
            """
            INSERT INTO auth_tokens (token, user_id, expires_at, created_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(token) DO UPDATE SET
                user_id = excluded.user_id,
                expires_at = excluded.expires_at
            """,
            (token, user_id, iso(now + ttl) if ttl else None, iso(now)),
        )
    return token
