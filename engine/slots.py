from __future__ import annotations

from typing import Any, Mapping

AXES = ("current", "max")


def _pair(raw: Any) -> list[int] | None:
    if isinstance(raw, (list, tuple)) and len(raw) == 2:
        try:
            return [int(raw[0]), int(raw[1])]
        except (TypeError, ValueError):
            return None
    return None


def adjust_slot(spell_slots: Mapping[str, Any] | None, level: int | str, axis: str, delta: int) -> dict[str, list[int]]:
    """Return a copy of spell_slots with one level's [current, max] adjusted.

    current: clamped to [0, max]. max: floored at 0, current pulled down to it.
    A level the map does not have is left alone.
    """
    if axis not in AXES:
        raise ValueError(f"axis must be one of {AXES}, got {axis!r}")

    slots = {str(k): list(v) if isinstance(v, (list, tuple)) else v for k, v in (spell_slots or {}).items()}
    key = str(level)
    pair = _pair(slots.get(key))
    if pair is None:
        return slots

    current, max_v = pair
    if axis == "current":
        current = max(0, min(max_v, current + int(delta)))
    else:
        max_v = max(0, max_v + int(delta))
        current = min(current, max_v)
    slots[key] = [current, max_v]
    return slots


def slot_rows(spell_slots: Mapping[str, Any] | None) -> list[dict[str, int]]:
    rows = []
    for key, raw in (spell_slots or {}).items():
        pair = _pair(raw)
        if pair is None or not str(key).isdigit():
            continue
        rows.append({"level": int(key), "current": pair[0], "max": pair[1]})
    rows.sort(key=lambda r: r["level"])
    return rows


def total_slots(spell_slots: Mapping[str, Any] | None) -> int:
    return sum(r["current"] for r in slot_rows(spell_slots))
