"""Rules catalog: classes and spells loaded once from the bundled JSON files.

The catalog is read-only. It is built by `load_catalog()` at startup and
handed to whatever needs it (the Flask app keeps it in `app.config`), so
tests can build small catalogs in code instead of reading the data dir.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable

from engine.errors import CatalogError
from engine.rules import DndClass, Spell

logger = logging.getLogger(__name__)


class RulesCatalog:
    def __init__(self, classes: Iterable[DndClass], spells: Iterable[Spell]) -> None:
        self._classes = tuple(classes)
        self._spells = tuple(spells)
        self._classes_by_name = {c.name: c for c in self._classes}
        self._spells_by_name: dict[str, Spell] = {}
        for spell in self._spells:
            # primo vince se ci sono omonimi
            self._spells_by_name.setdefault(spell.name, spell)

    def class_by_name(self, name: str | None) -> DndClass | None:
        if not name:
            return None
        return self._classes_by_name.get(name)

    def classes(self) -> list[DndClass]:
        return list(self._classes)

    def class_names(self) -> list[str]:
        return [c.name for c in self._classes]

    def all_spells(self) -> list[Spell]:
        return list(self._spells)

    def spell_by_name(self, name: str | None) -> Spell | None:
        if not name:
            return None
        return self._spells_by_name.get(name)

    def __len__(self) -> int:
        return len(self._spells)


def _read_json(path: Path) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _parse_all(raw: Any, factory, what: str) -> list:
    if not isinstance(raw, list):
        raise CatalogError(f"{what}: expected a JSON array")
    out = []
    for idx, item in enumerate(raw):
        if not isinstance(item, dict):
            raise CatalogError(f"{what}[{idx}]: expected an object")
        try:
            out.append(factory(item))
        except (TypeError, ValueError) as exc:
            raise CatalogError(f"{what}[{idx}]: {exc}") from exc
    return out


# Supplementary spell source: export of the translated Player's Handbook.
# Keys may be Portuguese or English; classes may be a list or "Mago, Clérigo".
SUPPLEMENTARY_KEYS = {
    "id": ("id", "slug"),
    "name": ("nome", "name"),
    "level": ("nivel", "nível", "level"),
    "school": ("escola", "school"),
    "castingTime": ("tempo_de_conjuracao", "tempo_conjuracao", "casting_time", "castingTime"),
    "range": ("alcance", "range"),
    "components": ("componentes", "components"),
    "duration": ("duracao", "duração", "duration"),
    "description": ("descricao", "descrição", "description"),
    "source": ("fonte", "source"),
    "classes": ("classes",),
    "subclasses": ("subclasses", "subclasse"),
}


def _level_from_text(value: Any) -> Any:
    # "Truque" / "cantrip" -> 0, "3º círculo" -> 3
    if isinstance(value, str):
        text = value.strip().lower()
        if text.startswith(("truque", "cantrip")):
            return 0
        digits = "".join(ch for ch in text if ch.isdigit())
        return int(digits) if digits else value
    return value


def adapt_supplementary_spells(raw: Any) -> list[Spell]:
    """Map the supplementary export to canonical Spell records.

    Raises CatalogError when the payload cannot be adapted.
    """
    if isinstance(raw, dict):
        raw = raw.get("magias") or raw.get("spells")
    if not isinstance(raw, list):
        raise CatalogError("supplementary spells: expected a JSON array")

    canonical = []
    for item in raw:
        if not isinstance(item, dict):
            raise CatalogError("supplementary spells: expected objects")
        entry: dict[str, Any] = {}
        for target, candidates in SUPPLEMENTARY_KEYS.items():
            for key in candidates:
                if item.get(key) is not None:
                    entry[target] = item[key]
                    break
        if "level" in entry:
            entry["level"] = _level_from_text(entry["level"])
        canonical.append(entry)
    return _parse_all(canonical, Spell.from_dict, "supplementary spells")


def _load_supplementary(path: Path | None) -> list[Spell] | None:
    if path is None or not Path(path).exists():
        logger.debug("No supplementary spell source at %s", path)
        return None
    try:
        spells = adapt_supplementary_spells(_read_json(path))
    except (OSError, ValueError, CatalogError) as exc:
        logger.warning("Supplementary spells at %s not usable, keeping baseline list: %s", path, exc)
        return None
    if not spells:
        logger.warning("Supplementary spells at %s are empty, keeping baseline list", path)
        return None
    return spells


def load_catalog(classes_path: Path, spells_path: Path, supplementary_path: Path | None = None) -> RulesCatalog:
    """Load the reference data; the supplementary spell list wins when usable."""
    try:
        classes = _parse_all(_read_json(classes_path), DndClass.from_dict, "classes")
        spells = _parse_all(_read_json(spells_path), Spell.from_dict, "spells")
    except (OSError, json.JSONDecodeError) as exc:
        raise CatalogError(f"cannot read reference data: {exc}") from exc

    supplementary = _load_supplementary(supplementary_path)
    if supplementary is not None:
        logger.info("Using supplementary spell source (%d spells)", len(supplementary))
        spells = supplementary

    logger.info("Rules catalog loaded: %d classes, %d spells", len(classes), len(spells))
    return RulesCatalog(classes, spells)
