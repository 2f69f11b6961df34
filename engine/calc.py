# engine/calc.py
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from engine.catalog import RulesCatalog
from engine.rules import MAX_LEVEL, DndClass, ClassFeature, clamp_level

# Modificatore di COS fisso: non modelliamo i punteggi di caratteristica.
ASSUMED_CON_MOD = 2


@dataclass(frozen=True)
class Progression:
    class_name: str
    level: int
    hp_max: int
    spell_slots: dict[str, list[int]] = field(default_factory=dict)
    proficiency_bonus: int = 2


def hit_die_value(hit_die: str) -> int:
    """'d8' -> 8."""
    digits = "".join(ch for ch in str(hit_die) if ch.isdigit())
    return int(digits) if digits else 0


def avg_roll(die: int) -> int:
    # media arrotondata per eccesso: d8 -> 5, d6 -> 4, d10 -> 6, d12 -> 7
    return (die // 2) + 1


def hp_max(hit_die: str | int, level: int) -> int:
    """Max die at level 1, average roll afterwards, +2 CON on every level."""
    d = hit_die if isinstance(hit_die, int) else hit_die_value(hit_die)
    lv = clamp_level(level)
    return d + ASSUMED_CON_MOD + (lv - 1) * (avg_roll(d) + ASSUMED_CON_MOD)


def proficiency_bonus(level: int) -> int:
    return math.ceil(clamp_level(level) / 4) + 1


def spell_slots_for(dnd_class: DndClass, level: int) -> dict[str, list[int]]:
    """Full [current, max] slots for a class at a level; zero-count levels are left out."""
    sc = dnd_class.spellcasting
    if sc is None:
        return {}
    idx = clamp_level(level) - 1
    slots: dict[str, list[int]] = {}
    for slot_level, counts in sc.spell_slots.items():
        value = counts[idx] if idx < len(counts) else 0
        if value > 0:
            slots[slot_level] = [value, value]
    return slots


def derive_progression(catalog: RulesCatalog, class_name: str | None, level: int) -> Progression | None:
    dnd_class = catalog.class_by_name(class_name)
    if dnd_class is None:
        return None
    lv = clamp_level(level)
    return Progression(
        class_name=dnd_class.name,
        level=lv,
        hp_max=hp_max(dnd_class.hit_die, lv),
        spell_slots=spell_slots_for(dnd_class, lv),
        proficiency_bonus=proficiency_bonus(lv),
    )


def apply_progression(character: dict, catalog: RulesCatalog) -> bool:
    """Recompute hp_max / hp_current / spell_slots in place.

    Every recompute is a full heal and a full slot refill. Returns False (and
    leaves the character alone) when class_name matches no catalog class.
    """
    progression = derive_progression(catalog, character.get("class_name"), character.get("level") or 1)
    if progression is None:
        return False
    character["level"] = progression.level
    character["hp_max"] = progression.hp_max
    character["hp_current"] = progression.hp_max
    character["spell_slots"] = progression.spell_slots
    return True


def features_at(dnd_class: DndClass, level: int) -> list[ClassFeature]:
    lv = clamp_level(level)
    return [f for f in dnd_class.features if f.level <= lv]


def progression_table(dnd_class: DndClass) -> list[dict[str, Any]]:
    """One row per character level, as shown on the class detail page."""
    sc = dnd_class.spellcasting
    rows = []
    for lv in range(1, MAX_LEVEL + 1):
        idx = lv - 1
        row: dict[str, Any] = {"level": lv, "proficiency_bonus": proficiency_bonus(lv)}
        if sc is not None:
            if sc.cantrips_known:
                row["cantrips"] = sc.cantrips_known[idx]
            if sc.spells_known:
                row["spells_known"] = sc.spells_known[idx]
            for slot_level, counts in sorted(sc.spell_slots.items(), key=lambda kv: int(kv[0])):
                row[f"spell_{slot_level}"] = counts[idx]
        row["features"] = [f.name for f in dnd_class.features if f.level == lv]
        rows.append(row)
    return rows
