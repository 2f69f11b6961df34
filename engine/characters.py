from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import timedelta
from typing import Any, Callable, Mapping

from engine.catalog import RulesCatalog
from engine.db import iso, parse_iso, transaction, utc_now
from engine.errors import ConfigurationError, InvalidRequest
from engine.rules import MAX_LEVEL, MIN_LEVEL, SLOT_LEVELS, SPELL_LEVELS
from engine.spellbook import normalize_spells_known

logger = logging.getLogger(__name__)

# campi che il client può scrivere
WRITABLE_FIELDS = (
    "name",
    "class_name",
    "level",
    "hp_current",
    "hp_max",
    "spell_slots",
    "spells_known",
    "character_data",
)

JSON_COLUMNS = {
    "spell_slots": "spell_slots_json",
    "spells_known": "spells_known_json",
    "character_data": "character_data_json",
}


def _loads(raw: str | None, default: Any) -> Any:
    if not raw:
        return default
    try:
        data = json.loads(raw)
    except ValueError:
        return default
    return data if isinstance(data, type(default)) else default


def _int_field(payload: Mapping[str, Any], key: str) -> int:
    value = payload[key]
    if isinstance(value, bool):
        raise InvalidRequest(f"{key} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"{key} must be an integer") from None


def _check_spells_known(value: Any) -> None:
    if not isinstance(value, list):
        raise InvalidRequest("spells_known must be an array")
    for idx, entry in enumerate(value):
        if isinstance(entry, str):
            continue
        if not isinstance(entry, Mapping) or not isinstance(entry.get("name"), str):
            raise InvalidRequest(f"spells_known[{idx}] must be a spell name or a {{name, level}} object")
        level = entry.get("level")
        if level is None:
            continue
        if isinstance(level, bool) or not isinstance(level, int) or level not in SPELL_LEVELS:
            raise InvalidRequest(f"spells_known[{idx}].level must be an integer between 0 and 9 or null")


def clean_payload(payload: Any, *, creating: bool) -> dict[str, Any]:
    """Keep writable fields and check their types; unknown keys are dropped."""
    if not isinstance(payload, Mapping):
        raise InvalidRequest("request body must be a JSON object")
    out: dict[str, Any] = {}
    for key in WRITABLE_FIELDS:
        if key not in payload:
            continue
        value = payload[key]
        if key in ("name", "class_name"):
            if value is None and key == "class_name":
                value = ""
            if not isinstance(value, str):
                raise InvalidRequest(f"{key} must be a string")
            value = value.strip()
        elif key in ("level", "hp_current", "hp_max"):
            value = _int_field(payload, key)
        elif key == "spell_slots":
            if not isinstance(value, Mapping):
                raise InvalidRequest("spell_slots must be an object")
        elif key == "spells_known":
            _check_spells_known(value)
        elif key == "character_data":
            if value is None:
                value = {}
            if not isinstance(value, Mapping):
                raise InvalidRequest("character_data must be an object")
        out[key] = value

    if "level" in out and not MIN_LEVEL <= out["level"] <= MAX_LEVEL:
        raise InvalidRequest(f"level must be between {MIN_LEVEL} and {MAX_LEVEL}")
    if creating and not out.get("name"):
        raise InvalidRequest("name is required")
    if "name" in out and not out["name"]:
        raise InvalidRequest("name cannot be empty")
    return out


def _clean_slots(raw: Mapping[str, Any]) -> dict[str, list[int]]:
    slots: dict[str, list[int]] = {}
    for key, pair in raw.items():
        k = str(key).strip()
        if k not in SLOT_LEVELS or not isinstance(pair, (list, tuple)) or len(pair) != 2:
            continue
        try:
            current, max_v = int(pair[0]), int(pair[1])
        except (TypeError, ValueError):
            continue
        max_v = max(0, max_v)
        slots[k] = [max(0, min(current, max_v)), max_v]
    return dict(sorted(slots.items(), key=lambda kv: int(kv[0])))


def normalize_character(record: dict, catalog: RulesCatalog | None = None) -> dict:
    """Clamp a character to its invariants (hp bounds, slot bounds, unique spell names)."""
    record["hp_max"] = max(1, int(record.get("hp_max") or 1))
    record["hp_current"] = max(0, min(int(record.get("hp_current") or 0), record["hp_max"]))
    record["spell_slots"] = _clean_slots(record.get("spell_slots") or {})
    record["spells_known"] = normalize_spells_known(record.get("spells_known"), catalog)
    if not isinstance(record.get("character_data"), dict):
        record["character_data"] = {}
    return record


def row_to_character(row: sqlite3.Row, catalog: RulesCatalog | None = None) -> dict:
    record = {
        "id": int(row["id"]),
        "user_id": str(row["user_id"]),
        "name": str(row["name"]),
        "class_name": str(row["class_name"] or ""),
        "level": int(row["level"]),
        "hp_current": int(row["hp_current"]),
        "hp_max": int(row["hp_max"]),
        "spell_slots": _loads(row["spell_slots_json"], {}),
        "spells_known": _loads(row["spells_known_json"], []),
        "character_data": _loads(row["character_data_json"], {}),
        "share_token": row["share_token"],
        "token_expires_at": row["token_expires_at"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }
    return normalize_character(record, catalog)


def _column_values(record: Mapping[str, Any]) -> dict[str, Any]:
    values = {}
    for key in WRITABLE_FIELDS:
        if key in JSON_COLUMNS:
            values[JSON_COLUMNS[key]] = json.dumps(record[key], ensure_ascii=False)
        else:
            values[key] = record[key]
    return values


class CharacterStore:
    """Characters of one user. Every statement is filtered by user_id."""

    def __init__(self, conn: sqlite3.Connection, user_id: str, catalog: RulesCatalog | None = None) -> None:
        self.conn = conn
        self.user_id = user_id
        self.catalog = catalog

    def _fetch(self, character_id: int) -> dict | None:
        row = self.conn.execute(
            "SELECT * FROM characters WHERE id = ? AND user_id = ?",
            (int(character_id), self.user_id),
        ).fetchone()
        return row_to_character(row, self.catalog) if row else None

    def list_characters(self) -> list[dict]:
        rows = self.conn.execute(
            """
            SELECT * FROM characters
            WHERE user_id = ?
            ORDER BY created_at DESC, id DESC
            """,
            (self.user_id,),
        ).fetchall()
        return [row_to_character(r, self.catalog) for r in rows]

    def get(self, character_id: int) -> dict | None:
        return self._fetch(character_id)

    def create(self, payload: Mapping[str, Any]) -> dict:
        """Insert a character owned by this store's user, whatever the payload says."""
        record = {
            "name": "",
            "class_name": "",
            "level": 1,
            "hp_current": 1,
            "hp_max": 1,
            "spell_slots": {},
            "spells_known": [],
            "character_data": {},
        }
        record.update(payload)
        normalize_character(record, self.catalog)
        values = _column_values(record)
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        now = iso(utc_now())
        with transaction(self.conn):
            cur = self.conn.execute(
                f"""
                INSERT INTO characters (user_id, {columns}, created_at, updated_at)
                VALUES (?, {placeholders}, ?, ?)
                """,
                (self.user_id, *values.values(), now, now),
            )
            character_id = int(cur.lastrowid)
        logger.info("Created character %s for user %s", character_id, self.user_id)
        return self._fetch(character_id)

    def update(self, character_id: int, changes: Mapping[str, Any]) -> dict | None:
        """Partial update; None when no owned row has this id."""
        return self.modify(character_id, lambda _current: changes)

    def modify(self, character_id: int, compute: Callable[[dict], Mapping[str, Any] | None]) -> dict | None:
        """Read-modify-write in one transaction.

        `compute` gets the current record and returns the changes to apply, or
        None to leave the row untouched. Returns the stored record, or None when
        no owned row has this id.
        """
        with transaction(self.conn):
            current = self._fetch(character_id)
            if current is None:
                return None
            changes = compute(dict(current))
            if changes is None:
                return current
            current.update(changes)
            normalize_character(current, self.catalog)
            values = _column_values(current)
            assignments = ", ".join(f"{col} = ?" for col in values)
            cur = self.conn.execute(
                f"UPDATE characters SET {assignments}, updated_at = ? WHERE id = ? AND user_id = ?",
                (*values.values(), iso(utc_now()), int(character_id), self.user_id),
            )
            if cur.rowcount == 0:
                return None
        return self._fetch(character_id)

    def delete(self, character_id: int) -> bool:
        with transaction(self.conn):
            cur = self.conn.execute(
                "DELETE FROM characters WHERE id = ? AND user_id = ?",
                (int(character_id), self.user_id),
            )
        deleted = cur.rowcount > 0
        if deleted:
            logger.info("Deleted character %s of user %s", character_id, self.user_id)
        return deleted


class PrivilegedStore:
    """Writes the per-user credential is not allowed to do (share tokens).

    Needs the service key; ownership is still checked on every statement.
    SQLite has no roles, so the key gates construction and the writes go
    through the same connection as the per-user store.
    """

    def __init__(self, conn: sqlite3.Connection, service_key: str | None, catalog: RulesCatalog | None = None) -> None:
        if not service_key:
            raise ConfigurationError("DND_SERVICE_KEY is not configured")
        self.service_key = service_key
        self.conn = conn
        self.catalog = catalog

    def mint_share_token(self, character_id: int, owner_id: str, ttl_days: int = 30) -> dict | None:
        token = str(uuid.uuid4())
        now = utc_now()
        expires_at = iso(now + timedelta(days=ttl_days))
        with transaction(self.conn):
            cur = self.conn.execute(
                """
                UPDATE characters
                SET share_token = ?, token_expires_at = ?, updated_at = ?
                WHERE id = ? AND user_id = ?
                """,
                (token, expires_at, iso(now), int(character_id), owner_id),
            )
        if cur.rowcount == 0:
            return None
        logger.info("Share token minted for character %s", character_id)
        return {"share_token": token, "expires_at": expires_at}

    def revoke_share_token(self, character_id: int, owner_id: str) -> bool:
        with transaction(self.conn):
            cur = self.conn.execute(
                """
                UPDATE characters
                SET share_token = NULL, token_expires_at = NULL, updated_at = ?
                WHERE id = ? AND user_id = ?
                """,
                (iso(utc_now()), int(character_id), owner_id),
            )
        if cur.rowcount:
            logger.info("Share token revoked for character %s", character_id)
        return cur.rowcount > 0

    def find_by_share_token(self, token: str) -> dict | None:
        """Character readable through a share link, without owner or token fields."""
        row = self.conn.execute("SELECT * FROM characters WHERE share_token = ?", (token,)).fetchone()
        if not row:
            return None
        expires_at = parse_iso(row["token_expires_at"])
        if expires_at is None or expires_at <= utc_now():
            return None
        record = row_to_character(row, self.catalog)
        for key in ("user_id", "share_token"):
            record.pop(key, None)
        return record
