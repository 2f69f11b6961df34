from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from engine.catalog import RulesCatalog
from engine.rules import SPELL_LEVELS, Spell


@dataclass(frozen=True)
class MergeResult:
    spells_known: list
    added: int

    @property
    def nothing_added(self) -> bool:
        return self.added == 0


def entry_name(entry: Any) -> str | None:
    """Name of a grimoire entry: a bare string or a {name, level} mapping."""
    if isinstance(entry, str):
        return entry
    if isinstance(entry, Mapping):
        name = entry.get("name")
        return name if isinstance(name, str) else None
    return None


def known_spell_names(spells_known: Iterable[Any] | None) -> list[str]:
    return [n for n in (entry_name(e) for e in spells_known or []) if n is not None]


def merge_spells(spells_known: list | None, selected: Iterable[Spell]) -> MergeResult:
    """Append the selected spells the grimoire does not know yet.

    Existing entries are kept as they are; new ones are added as
    {name, level} in selection order. Names compare exactly.
    """
    current = list(spells_known or [])
    known = set(known_spell_names(current))
    new_entries = []
    for spell in selected:
        if spell.name in known:
            continue
        known.add(spell.name)
        new_entries.append({"name": spell.name, "level": spell.level})

    if not new_entries:
        return MergeResult(spells_known=current, added=0)
    return MergeResult(spells_known=current + new_entries, added=len(new_entries))


def remove_spell(spells_known: list | None, name: str) -> list:
    return [e for e in spells_known or [] if entry_name(e) != name]


def _spell_level(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    try:
        level = int(raw)
    except (TypeError, ValueError):
        return None
    return level if level in SPELL_LEVELS else None


def normalize_spells_known(raw: Any, catalog: RulesCatalog | None = None) -> list[dict]:
    """Bring a stored grimoire to the canonical [{name, level}] shape.

    Bare names, and entries whose level is not 0-9, take their level from the
    catalog when it knows them.
    Unnamed entries and repeated names are dropped.
    """
    if not isinstance(raw, list):
        return []
    out: list[dict] = []
    seen: set[str] = set()
    for entry in raw:
        name = entry_name(entry)
        if not name or name in seen:
            continue
        seen.add(name)
        level = _spell_level(entry.get("level")) if isinstance(entry, Mapping) else None
        if level is None and catalog is not None:
            spell = catalog.spell_by_name(name)
            level = spell.level if spell else None
        out.append({"name": name, "level": level})
    return out


def resolve_known_spells(catalog: RulesCatalog, spells_known: Iterable[Any] | None) -> list[Spell]:
    """Full spell records for a grimoire; names missing from the catalog are skipped."""
    out = []
    for name in known_spell_names(spells_known):
        spell = catalog.spell_by_name(name)
        if spell is not None:
            out.append(spell)
    return out


def group_by_level(spells: Iterable[Spell]) -> dict[int, list[Spell]]:
    """Bucket 0-9 (cantrips first), alphabetical inside each bucket. Display only."""
    buckets: dict[int, list[Spell]] = {lv: [] for lv in SPELL_LEVELS}
    for spell in spells:
        buckets[spell.level].append(spell)
    for lv in buckets:
        buckets[lv].sort(key=lambda sp: sp.name.lower())
    return buckets
