from __future__ import annotations

from typing import Iterable

from engine.catalog import RulesCatalog
from engine.rules import DndClass, Spell


def _norm(name: str | None) -> str:
    return (name or "").strip().lower()


def is_eligible(spell: Spell, dnd_class: DndClass) -> bool:
    """Class list match, or any subclass of the class listed on the spell."""
    class_name = _norm(dnd_class.name)
    if any(_norm(c) == class_name for c in spell.classes):
        return True
    subclass_names = {_norm(n) for n in dnd_class.subclass_names}
    spell_subclasses = {_norm(n) for n in spell.subclasses}
    return bool(subclass_names & spell_subclasses)


def eligible_spells(catalog: RulesCatalog, dnd_class: DndClass | str | None) -> list[Spell]:
    """Spells castable by a class, in catalog order."""
    if isinstance(dnd_class, str) or dnd_class is None:
        dnd_class = catalog.class_by_name(dnd_class)
        if dnd_class is None:
            return []
    return [sp for sp in catalog.all_spells() if is_eligible(sp, dnd_class)]


def sort_spells(spells: Iterable[Spell]) -> list[Spell]:
    return sorted(spells, key=lambda sp: (sp.level, sp.name.lower()))


def search_spells(
    catalog: RulesCatalog,
    q: str = "",
    class_name: str | None = None,
    level: int | None = None,
) -> list[Spell]:
    """Name search with optional class / level filters, sorted by level then name."""
    needle = _norm(q)
    wanted_class = _norm(class_name)
    out = []
    for sp in catalog.all_spells():
        if needle and needle not in sp.name.lower():
            continue
        if wanted_class and not any(_norm(c) == wanted_class for c in sp.classes):
            continue
        if level is not None and sp.level != int(level):
            continue
        out.append(sp)
    return sort_spells(out)


def available_class_names(spells: Iterable[Spell]) -> list[str]:
    names = {c.strip() for sp in spells for c in sp.classes if c and c.strip()}
    return sorted(names)


def group_by_school(spells: Iterable[Spell]) -> dict[str, list[Spell]]:
    groups: dict[str, list[Spell]] = {}
    for sp in spells:
        groups.setdefault(sp.school.value, []).append(sp)
    return {school: sort_spells(items) for school, items in sorted(groups.items())}
