from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

MIN_LEVEL = 1
MAX_LEVEL = 20
SPELL_LEVELS = range(0, 10)  # 0 = trucchetto (cantrip)
SLOT_LEVELS = [str(i) for i in range(1, 10)]

ABILITIES = ["Strength", "Dexterity", "Constitution", "Intelligence", "Wisdom", "Charisma"]


class SpellSchool(str, Enum):
    ABJURATION = "Abjuration"
    CONJURATION = "Conjuration"
    DIVINATION = "Divination"
    ENCHANTMENT = "Enchantment"
    EVOCATION = "Evocation"
    ILLUSION = "Illusion"
    NECROMANCY = "Necromancy"
    TRANSMUTATION = "Transmutation"

    @classmethod
    def parse(cls, raw: Any) -> "SpellSchool":
        key = str(raw or "").strip().lower()
        school = SCHOOL_ALIASES.get(key)
        if school is None:
            raise ValueError(f"unknown spell school: {raw!r}")
        return school


# nomi inglesi + quelli del manuale del giocatore tradotto (fonte supplementare)
SCHOOL_ALIASES: dict[str, SpellSchool] = {s.value.lower(): s for s in SpellSchool}
SCHOOL_ALIASES.update(
    {
        "abjuração": SpellSchool.ABJURATION,
        "conjuração": SpellSchool.CONJURATION,
        "adivinhação": SpellSchool.DIVINATION,
        "encantamento": SpellSchool.ENCHANTMENT,
        "evocação": SpellSchool.EVOCATION,
        "ilusão": SpellSchool.ILLUSION,
        "necromancia": SpellSchool.NECROMANCY,
        "transmutação": SpellSchool.TRANSMUTATION,
    }
)


def clamp_level(level: Any) -> int:
    try:
        lv = int(level)
    except (TypeError, ValueError):
        lv = MIN_LEVEL
    return max(MIN_LEVEL, min(MAX_LEVEL, lv))


def _str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(v).strip() for v in value if str(v).strip()]


def _first(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass(frozen=True)
class ClassFeature:
    level: int
    name: str
    description: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ClassFeature":
        return cls(
            level=clamp_level(data.get("level")),
            name=str(data.get("name") or "").strip(),
            description=str(data.get("description") or ""),
        )


@dataclass(frozen=True)
class Subclass:
    """A subclass; reference data lists them either as a bare name or as an object."""

    name: str
    description: str = ""
    features: tuple[ClassFeature, ...] = ()

    @classmethod
    def parse(cls, raw: Any) -> "Subclass":
        if isinstance(raw, str):
            return cls(name=raw.strip())
        if isinstance(raw, Mapping) and str(raw.get("name") or "").strip():
            return cls(
                name=str(raw["name"]).strip(),
                description=str(raw.get("description") or ""),
                features=tuple(ClassFeature.from_dict(f) for f in raw.get("features") or []),
            )
        raise ValueError(f"subclass without a name: {raw!r}")


@dataclass(frozen=True)
class Spellcasting:
    ability: str
    spell_slots: dict[str, tuple[int, ...]]
    ritual_casting: bool = False
    focus: str | None = None
    cantrips_known: tuple[int, ...] | None = None
    spells_known: tuple[int, ...] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Spellcasting":
        slots_raw = _first(data, "spellSlots", "spell_slots", default={}) or {}
        spell_slots = {}
        for slot_level, counts in slots_raw.items():
            key = str(slot_level).strip()
            if key not in SLOT_LEVELS:
                raise ValueError(f"invalid spell slot level: {slot_level!r}")
            spell_slots[key] = _progression(counts)
        cantrips = _first(data, "cantripsKnown", "cantrips_known")
        known = _first(data, "spellsKnown", "spells_known")
        return cls(
            ability=str(_first(data, "ability", "spellcastingAbility", default="")),
            spell_slots=spell_slots,
            ritual_casting=bool(_first(data, "ritualCasting", "ritual_casting", default=False)),
            focus=_first(data, "spellcastingFocus", "focus"),
            cantrips_known=_progression(cantrips) if cantrips is not None else None,
            spells_known=_progression(known) if known is not None else None,
        )


def _progression(values: Any) -> tuple[int, ...]:
    """Per-level table: index 0 = level 1 ... index 19 = level 20."""
    out = tuple(int(v or 0) for v in values)
    if len(out) != MAX_LEVEL:
        raise ValueError(f"progression table must have {MAX_LEVEL} entries, got {len(out)}")
    return out


@dataclass(frozen=True)
class DndClass:
    id: str
    name: str
    hit_die: str
    primary_ability: tuple[str, ...] = ()
    saving_throws: tuple[str, ...] = ()
    armor_proficiencies: tuple[str, ...] = ()
    weapon_proficiencies: tuple[str, ...] = ()
    tool_proficiencies: tuple[str, ...] = ()
    skill_proficiencies: tuple[str, ...] = ()
    features: tuple[ClassFeature, ...] = ()
    spellcasting: Spellcasting | None = None
    subclasses: tuple[Subclass, ...] = ()

    @property
    def subclass_names(self) -> list[str]:
        return [s.name for s in self.subclasses]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DndClass":
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValueError("class without a name")
        sc = data.get("spellcasting")
        return cls(
            id=str(data.get("id") or name.lower()),
            name=name,
            hit_die=str(_first(data, "hitDie", "hit_die", default="d8")),
            primary_ability=tuple(_str_list(_first(data, "primaryAbility", "primary_ability"))),
            saving_throws=tuple(_str_list(_first(data, "savingThrowProficiencies", "saving_throws"))),
            armor_proficiencies=tuple(_str_list(_first(data, "armorProficiencies", "armor_proficiencies"))),
            weapon_proficiencies=tuple(_str_list(_first(data, "weaponProficiencies", "weapon_proficiencies"))),
            tool_proficiencies=tuple(_str_list(_first(data, "toolProficiencies", "tool_proficiencies"))),
            skill_proficiencies=tuple(_str_list(_first(data, "skillProficiencies", "skill_proficiencies"))),
            features=tuple(ClassFeature.from_dict(f) for f in _first(data, "classFeatures", "features", default=[])),
            spellcasting=Spellcasting.from_dict(sc) if isinstance(sc, Mapping) else None,
            subclasses=tuple(Subclass.parse(s) for s in data.get("subclasses") or []),
        )


@dataclass(frozen=True)
class Spell:
    id: str
    name: str
    level: int
    school: SpellSchool
    casting_time: str = ""
    range: str = ""
    components: str = ""
    duration: str = ""
    description: str = ""
    source: str = ""
    classes: tuple[str, ...] = ()
    subclasses: tuple[str, ...] = ()

    @property
    def is_cantrip(self) -> bool:
        return self.level == 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Spell":
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValueError("spell without a name")
        level = int(data.get("level") or 0)
        if level not in SPELL_LEVELS:
            raise ValueError(f"spell {name!r}: level {level} out of range")
        return cls(
            id=str(data.get("id") or name.lower().replace(" ", "-")),
            name=name,
            level=level,
            school=SpellSchool.parse(data.get("school")),
            casting_time=str(_first(data, "castingTime", "casting_time", default="")),
            range=str(data.get("range") or ""),
            components=str(data.get("components") or ""),
            duration=str(data.get("duration") or ""),
            description=str(data.get("description") or ""),
            source=str(data.get("source") or ""),
            classes=tuple(_str_list(data.get("classes"))),
            subclasses=tuple(_str_list(data.get("subclasses"))),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "level": self.level,
            "school": self.school.value,
            "casting_time": self.casting_time,
            "range": self.range,
            "components": self.components,
            "duration": self.duration,
            "description": self.description,
            "source": self.source,
            "classes": list(self.classes),
            "subclasses": list(self.subclasses),
        }


def class_to_dict(dnd_class: DndClass) -> dict:
    sc = dnd_class.spellcasting
    return {
        "id": dnd_class.id,
        "name": dnd_class.name,
        "hit_die": dnd_class.hit_die,
        "primary_ability": list(dnd_class.primary_ability),
        "saving_throws": list(dnd_class.saving_throws),
        "armor_proficiencies": list(dnd_class.armor_proficiencies),
        "weapon_proficiencies": list(dnd_class.weapon_proficiencies),
        "tool_proficiencies": list(dnd_class.tool_proficiencies),
        "skill_proficiencies": list(dnd_class.skill_proficiencies),
        "features": [{"level": f.level, "name": f.name, "description": f.description} for f in dnd_class.features],
        "spellcasting": None
        if sc is None
        else {
            "ability": sc.ability,
            "ritual_casting": sc.ritual_casting,
            "focus": sc.focus,
            "cantrips_known": list(sc.cantrips_known) if sc.cantrips_known else None,
            "spells_known": list(sc.spells_known) if sc.spells_known else None,
            "spell_slots": {k: list(v) for k, v in sc.spell_slots.items()},
        },
        "subclasses": [
            {
                "name": s.name,
                "description": s.description,
                "features": [{"level": f.level, "name": f.name, "description": f.description} for f in s.features],
            }
            for s in dnd_class.subclasses
        ],
    }
