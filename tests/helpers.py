"""Small in-code catalog and app factory shared by the test modules."""

from __future__ import annotations

from contextlib import closing
from pathlib import Path

from engine.auth import register_token
from engine.catalog import RulesCatalog
from engine.config import Settings
from engine.db import connect
from engine.rules import DndClass, Spell

FULL_CASTER_SLOTS = {
    "1": [2, 3, 4, 4, 4, 4, 4, 4, 4, 4, 4, 4, 4, 4, 4, 4, 4, 4, 4, 4],
    "2": [0, 0, 2, 3, 3, 3, 3, 3, 3, 3, 3, 3, 3, 3, 3, 3, 3, 3, 3, 3],
    "3": [0, 0, 0, 0, 2, 3, 3, 3, 3, 3, 3, 3, 3, 3, 3, 3, 3, 3, 3, 3],
    "4": [0, 0, 0, 0, 0, 0, 1, 2, 3, 3, 3, 3, 3, 3, 3, 3, 3, 3, 3, 3],
    "5": [0, 0, 0, 0, 0, 0, 0, 0, 1, 2, 2, 2, 2, 2, 2, 2, 2, 3, 3, 3],
    "6": [0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 1, 1, 1, 1, 1, 1, 1, 1, 2, 2],
    "7": [0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 1, 1, 1, 1, 1, 1, 1, 2],
    "8": [0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 1, 1, 1, 1, 1, 1],
    "9": [0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 1, 1, 1, 1],
}

CLASSES = [
    {
        "name": "Wizard",
        "hitDie": "d6",
        "primaryAbility": ["Intelligence"],
        "classFeatures": [
            {"level": 1, "name": "Spellcasting"},
            {"level": 1, "name": "Arcane Recovery"},
            {"level": 2, "name": "Arcane Tradition"},
        ],
        "spellcasting": {
            "ability": "Intelligence",
            "cantripsKnown": [3, 3, 3, 4, 4, 4, 4, 4, 4, 5, 5, 5, 5, 5, 5, 5, 5, 5, 5, 5],
            "spellSlots": FULL_CASTER_SLOTS,
        },
        "subclasses": ["School of Evocation"],
    },
    {
        "name": "Cleric",
        "hitDie": "d8",
        "classFeatures": [{"level": 1, "name": "Spellcasting"}, {"level": 2, "name": "Channel Divinity"}],
        "spellcasting": {"ability": "Wisdom", "spellSlots": FULL_CASTER_SLOTS},
        "subclasses": [{"name": "Life Domain", "features": [{"level": 1, "name": "Disciple of Life"}]}],
    },
    {
        "name": "Fighter",
        "hitDie": "d10",
        "classFeatures": [{"level": 1, "name": "Second Wind"}, {"level": 2, "name": "Action Surge"}],
        "subclasses": ["Champion", "Eldritch Knight"],
    },
]

SPELLS = [
    {"name": "Fire Bolt", "level": 0, "school": "Evocation", "classes": ["Sorcerer", "Wizard"]},
    {"name": "Sacred Flame", "level": 0, "school": "Evocation", "classes": ["Cleric"]},
    {"name": "Magic Missile", "level": 1, "school": "Evocation", "classes": ["Sorcerer", "Wizard"]},
    {"name": "Cure Wounds", "level": 1, "school": "Evocation", "classes": ["Bard", "Cleric"]},
    {
        "name": "Shield",
        "level": 1,
        "school": "Abjuration",
        "classes": ["Sorcerer", "Wizard"],
        "subclasses": ["Eldritch Knight"],
    },
    {
        "name": "Fireball",
        "level": 3,
        "school": "Evocation",
        "classes": ["Sorcerer", "Wizard"],
        "description": "A bright streak.<br>Each creature takes **8d6** fire damage.",
    },
]


def make_catalog() -> RulesCatalog:
    return RulesCatalog(
        [DndClass.from_dict(c) for c in CLASSES],
        [Spell.from_dict(s) for s in SPELLS],
    )


def make_settings(tmpdir: str, service_key: str | None = "test-service-key") -> Settings:
    return Settings(
        db_path=Path(tmpdir) / "test.sqlite3",
        data_dir=Path(tmpdir),
        supplementary_spells_path=None,
        service_key=service_key,
    )


def add_token(db_path: Path, user_id: str, token: str) -> str:
    with closing(connect(db_path)) as conn:
        return register_token(conn, user_id, token)


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
