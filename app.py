from __future__ import annotations

import logging
import sqlite3
from contextlib import closing
from typing import Any

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from engine.auth import authenticate
from engine.calc import apply_progression, features_at, progression_table, proficiency_bonus
from engine.catalog import RulesCatalog, load_catalog
from engine.characters import CharacterStore, PrivilegedStore, clean_payload
from engine.config import Settings
from engine.db import connect, ensure_schema
from engine.errors import GrimoireError, InvalidRequest, NotFoundOrForbidden, ReferenceNotFound, StorageFailure
from engine.logging_util import setup_logger
from engine.markup import parse_description
from engine.rules import class_to_dict
from engine.slots import AXES, adjust_slot, slot_rows, total_slots
from engine.spellbook import group_by_level, known_spell_names, merge_spells, remove_spell, resolve_known_spells
from engine.spells_repo import available_class_names, eligible_spells, group_by_school, is_eligible, search_spells

logger = logging.getLogger(__name__)


def settings() -> Settings:
    return g.settings


def catalog() -> RulesCatalog:
    return g.catalog


def get_db() -> sqlite3.Connection:
    if "db" not in g:
        g.db = connect(settings().db_path)
    return g.db


def current_user_id() -> str:
    return authenticate(get_db(), request.headers.get("Authorization"))


def character_store() -> CharacterStore:
    # autenticazione prima di qualsiasi lettura/scrittura
    user_id = current_user_id()
    return CharacterStore(get_db(), user_id, catalog())


def json_body() -> dict[str, Any]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise InvalidRequest("request body must be a JSON object")
    return body


def int_param(body: dict, key: str) -> int:
    value = body.get(key)
    if isinstance(value, bool) or value is None:
        raise InvalidRequest(f"{key} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"{key} must be an integer") from None


def character_view(record: dict) -> dict:
    view = dict(record)
    view["proficiency_bonus"] = proficiency_bonus(record.get("level") or 1)
    view["total_slots"] = total_slots(record.get("spell_slots"))
    return view


def _require(record: dict | None) -> dict:
    if record is None:
        raise NotFoundOrForbidden()
    return record


def create_app(app_settings: Settings | None = None, rules_catalog: RulesCatalog | None = None) -> Flask:
    app_settings = app_settings or Settings.from_env()
    setup_logger("engine", app_settings.log_level)
    setup_logger(__name__, app_settings.log_level)

    app = Flask(__name__)
    app.config["SETTINGS"] = app_settings
    app.config["CATALOG"] = rules_catalog or load_catalog(
        app_settings.classes_path,
        app_settings.spells_path,
        app_settings.supplementary_spells_path,
    )

    # Garantisce che lo schema esista all'avvio.
    with closing(connect(app_settings.db_path)) as conn:
        ensure_schema(conn)

    @app.before_request
    def _bind_request_context():
        g.settings = app.config["SETTINGS"]
        g.catalog = app.config["CATALOG"]

    @app.teardown_appcontext
    def _close_db(_exc):
        db = g.pop("db", None)
        if db is not None:
            db.close()

    # -------------------------
    # Errori -> risposte JSON
    # -------------------------
    @app.errorhandler(GrimoireError)
    def _grimoire_error(exc: GrimoireError):
        if exc.status_code >= 500:
            logger.error("%s: %s", type(exc).__name__, exc)
        return jsonify({"error": exc.public_message}), exc.status_code

    @app.errorhandler(sqlite3.Error)
    def _storage_error(exc: sqlite3.Error):
        logger.exception("Database error on %s %s", request.method, request.path)
        return jsonify({"error": StorageFailure.public_message}), StorageFailure.status_code

    @app.errorhandler(Exception)
    def _unexpected_error(exc: Exception):
        if isinstance(exc, HTTPException):
            return jsonify({"error": exc.description}), exc.code
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": "Internal server error"}), 500

    @app.get("/health")
    def health():
        return jsonify({"status": "ok", "classes": len(catalog().classes()), "spells": len(catalog())})

    # -------------------------
    # Characters
    # -------------------------
    @app.get("/characters")
    def list_characters():
        store = character_store()
        return jsonify([character_view(c) for c in store.list_characters()])

    @app.post("/characters")
    def create_character():
        store = character_store()
        payload = clean_payload(json_body(), creating=True)
        payload.setdefault("level", 1)
        if "hp_max" not in payload and "spell_slots" not in payload:
            # il client non ha calcolato nulla: deriviamo da classe e livello
            apply_progression(payload, catalog())
        record = store.create(payload)
        return jsonify(character_view(record)), 201

    @app.get("/characters/<int:character_id>")
    def get_character(character_id: int):
        store = character_store()
        return jsonify(character_view(_require(store.get(character_id))))

    @app.put("/characters/<int:character_id>")
    def update_character(character_id: int):
        store = character_store()
        changes = clean_payload(json_body(), creating=False)
        return jsonify(character_view(_require(store.update(character_id, changes))))

    @app.delete("/characters/<int:character_id>")
    def delete_character(character_id: int):
        store = character_store()
        store.delete(character_id)
        return jsonify({"message": "Character deleted successfully"})

    @app.post("/characters/<int:character_id>/progression")
    def recompute_progression(character_id: int):
        store = character_store()
        body = clean_payload(json_body(), creating=False)
        requested = {k: body[k] for k in ("class_name", "level") if k in body}

        def compute(current: dict) -> dict:
            draft = {
                "class_name": requested.get("class_name", current["class_name"]),
                "level": requested.get("level", current["level"]),
            }
            # classe sconosciuta: hp e slot restano quelli di prima
            apply_progression(draft, catalog())
            return draft

        return jsonify(character_view(_require(store.modify(character_id, compute))))

    @app.post("/characters/<int:character_id>/spell-slots")
    def update_spell_slots(character_id: int):
        store = character_store()
        body = json_body()
        axis = str(body.get("axis") or "current").strip().lower()
        if axis not in AXES:
            raise InvalidRequest(f"axis must be one of: {', '.join(AXES)}")
        level = int_param(body, "level")
        delta = int_param(body, "delta")

        def compute(current: dict) -> dict | None:
            slots = adjust_slot(current["spell_slots"], level, axis, delta)
            if slots == current["spell_slots"]:
                return None
            return {"spell_slots": slots}

        record = _require(store.modify(character_id, compute))
        view = character_view(record)
        view["slot_rows"] = slot_rows(record["spell_slots"])
        return jsonify(view)

    @app.post("/characters/<int:character_id>/share")
    def share_character(character_id: int):
        user_id = current_user_id()
        privileged = PrivilegedStore(get_db(), settings().service_key, catalog())
        minted = privileged.mint_share_token(character_id, user_id, settings().share_ttl_days)
        return jsonify(_require(minted))

    @app.delete("/characters/<int:character_id>/share")
    def unshare_character(character_id: int):
        user_id = current_user_id()
        privileged = PrivilegedStore(get_db(), settings().service_key, catalog())
        if not privileged.revoke_share_token(character_id, user_id):
            raise NotFoundOrForbidden()
        return jsonify({"message": "Share token revoked"})

    @app.get("/shared/<token>")
    def shared_character(token: str):
        privileged = PrivilegedStore(get_db(), settings().service_key, catalog())
        record = privileged.find_by_share_token(token)
        if record is None:
            raise ReferenceNotFound()
        return jsonify(character_view(record))

    # -------------------------
    # Grimoire
    # -------------------------
    @app.get("/characters/<int:character_id>/grimoire")
    def get_grimoire(character_id: int):
        store = character_store()
        record = _require(store.get(character_id))
        resolved = resolve_known_spells(catalog(), record["spells_known"])
        resolved_names = {sp.name for sp in resolved}
        levels = group_by_level(resolved)
        return jsonify(
            {
                "character_id": record["id"],
                "levels": {str(lv): [sp.to_dict() for sp in spells] for lv, spells in levels.items()},
                "unresolved": [n for n in known_spell_names(record["spells_known"]) if n not in resolved_names],
                "slot_rows": slot_rows(record["spell_slots"]),
            }
        )

    @app.post("/characters/<int:character_id>/grimoire")
    def add_to_grimoire(character_id: int):
        store = character_store()
        names = json_body().get("spells")
        if not isinstance(names, list) or not names or not all(isinstance(n, str) for n in names):
            raise InvalidRequest("spells must be a non-empty array of spell names")

        selected = [catalog().spell_by_name(n) for n in names]
        unknown = [n for n, sp in zip(names, selected) if sp is None]
        if unknown:
            raise InvalidRequest(f"Unknown spells: {', '.join(unknown)}")

        outcome: dict[str, Any] = {"added": 0}

        def compute(current: dict) -> dict | None:
            dnd_class = catalog().class_by_name(current["class_name"])
            ineligible = [sp.name for sp in selected if dnd_class is None or not is_eligible(sp, dnd_class)]
            if ineligible:
                raise InvalidRequest(f"Not available to {current['class_name'] or 'this character'}: {', '.join(ineligible)}")
            result = merge_spells(current["spells_known"], selected)
            outcome["added"] = result.added
            if result.nothing_added:
                return None
            return {"spells_known": result.spells_known}

        record = _require(store.modify(character_id, compute))
        body: dict[str, Any] = {"added": outcome["added"], "character": character_view(record)}
        if not outcome["added"]:
            body["message"] = "All selected spells are already in the grimoire"
        return jsonify(body)

    @app.delete("/characters/<int:character_id>/grimoire/<path:spell_name>")
    def remove_from_grimoire(character_id: int, spell_name: str):
        store = character_store()

        def compute(current: dict) -> dict | None:
            remaining = remove_spell(current["spells_known"], spell_name)
            if len(remaining) == len(current["spells_known"]):
                return None
            return {"spells_known": remaining}

        return jsonify(character_view(_require(store.modify(character_id, compute))))

    # -------------------------
    # Reference data
    # -------------------------
    @app.get("/classes")
    def list_classes():
        return jsonify(
            [
                {
                    "name": c.name,
                    "hit_die": c.hit_die,
                    "primary_ability": list(c.primary_ability),
                    "spellcaster": c.spellcasting is not None,
                }
                for c in catalog().classes()
            ]
        )

    @app.get("/classes/<class_name>")
    def class_detail(class_name: str):
        dnd_class = catalog().class_by_name(class_name)
        if dnd_class is None:
            raise ReferenceNotFound()
        data = class_to_dict(dnd_class)
        data["progression"] = progression_table(dnd_class)
        level = request.args.get("level", type=int)
        if level:
            data["features_at_level"] = [f.name for f in features_at(dnd_class, level)]
        return jsonify(data)

    @app.get("/classes/<class_name>/spells")
    def class_spells(class_name: str):
        dnd_class = catalog().class_by_name(class_name)
        if dnd_class is None:
            raise ReferenceNotFound()
        spells = eligible_spells(catalog(), dnd_class)
        if request.args.get("group") == "school":
            return jsonify({school: [sp.to_dict() for sp in items] for school, items in group_by_school(spells).items()})
        return jsonify([sp.to_dict() for sp in spells])

    @app.get("/spells")
    def spells():
        q = request.args.get("q") or ""
        class_name = request.args.get("class") or None
        level = request.args.get("level", type=int)
        results = search_spells(catalog(), q=q, class_name=class_name, level=level)
        return jsonify(
            {
                "spells": [sp.to_dict() for sp in results],
                "classes": available_class_names(catalog().all_spells()),
            }
        )

    @app.get("/spells/<path:spell_name>")
    def spell_detail(spell_name: str):
        spell = catalog().spell_by_name(spell_name)
        if spell is None:
            raise ReferenceNotFound()
        data = spell.to_dict()
        data["description_segments"] = parse_description(spell.description)
        return jsonify(data)

    return app


if __name__ == "__main__":
    env_settings = Settings.from_env()
    create_app(env_settings).run(host=env_settings.host, port=env_settings.port, debug=True)
