# engine/db.py
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from engine.config import DEFAULT_DB_PATH


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.strptime(value, "%Y-%m-%dT%H:%M:%S.%fZ").replace(tzinfo=timezone.utc)


def connect(db_path: Path | str | None = None) -> sqlite3.Connection:
    """Connessione SQLite con PRAGMA utili e row_factory.

    isolation_level=None: le transazioni le apriamo noi con `transaction()`.
    """
    path = Path(db_path or DEFAULT_DB_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, isolation_level=None, timeout=10)
    conn.row_factory = sqlite3.Row

    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute("PRAGMA journal_mode = WAL;")
    conn.execute("PRAGMA synchronous = NORMAL;")
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """BEGIN IMMEDIATE ... COMMIT: le scritture sullo stesso DB sono serializzate."""
    conn.execute("BEGIN IMMEDIATE;")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK;")
        raise
    conn.execute("COMMIT;")


def ensure_schema(conn: sqlite3.Connection) -> None:
    """Crea lo schema DB (idempotente)."""
    conn.executescript(
        """
        -- =========================================
        -- Meta / migrazioni (semplice)
        -- =========================================
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version INTEGER PRIMARY KEY,
            applied_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        -- =========================================
        -- TOKEN DI ACCESSO (bearer)
        -- L'emissione avviene fuori da questo servizio; qui solo la verifica.
        -- =========================================
        CREATE TABLE IF NOT EXISTS auth_tokens (
            token TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            expires_at TEXT,                     -- NULL = non scade
            created_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_auth_tokens_user ON auth_tokens(user_id);

        -- =========================================
        -- CHARACTERS (PG), uno per riga, di proprietà di user_id
        -- =========================================
        CREATE TABLE IF NOT EXISTS characters (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,

            name TEXT NOT NULL,
            class_name TEXT NOT NULL DEFAULT '',
            level INTEGER NOT NULL DEFAULT 1,
            hp_current INTEGER NOT NULL DEFAULT 1,
            hp_max INTEGER NOT NULL DEFAULT 1,

            -- {"1": [current, max], ...}
            spell_slots_json TEXT NOT NULL DEFAULT '{}',
            -- [{"name": ..., "level": ...}, ...]
            spells_known_json TEXT NOT NULL DEFAULT '[]',
            -- blob libero del client
            character_data_json TEXT NOT NULL DEFAULT '{}',

            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_characters_user ON characters(user_id);
        """
    )

    # -------------------------
    # Migrazioni leggere (ALTER TABLE)
    # -------------------------
    # CREATE TABLE IF NOT EXISTS non aggiunge colonne nuove su DB esistenti.

    def _ensure_column(table: str, column: str, ddl: str) -> None:
        cols = [r[1] for r in conn.execute(f"PRAGMA table_info({table});").fetchall()]
        if column not in cols:
            conn.execute(f"ALTER TABLE {table} ADD COLUMN {ddl};")

    _ensure_column("characters", "share_token", "share_token TEXT")
    _ensure_column("characters", "token_expires_at", "token_expires_at TEXT")
    conn.execute("CREATE UNIQUE INDEX IF NOT EXISTS idx_characters_share_token ON characters(share_token);")
