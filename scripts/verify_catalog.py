import argparse
import sys
from collections import Counter
from pathlib import Path

# Root del progetto (così trova "engine")
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from engine.catalog import load_catalog  # noqa: E402
from engine.config import Settings  # noqa: E402
from engine.errors import CatalogError  # noqa: E402
from engine.spells_repo import eligible_spells  # noqa: E402


def main() -> int:
    settings = Settings.from_env()
    ap = argparse.ArgumentParser(description="Controlla i dati di riferimento (classi e spell).")
    ap.add_argument("--data-dir", default=str(settings.data_dir), help=f"Cartella dati (default: {settings.data_dir})")
    ap.add_argument(
        "--supplementary",
        default=str(settings.supplementary_spells_path or ""),
        help="File spell supplementare (vuoto = nessuno)",
    )
    args = ap.parse_args()
    data_dir = Path(args.data_dir)

    try:
        catalog = load_catalog(
            data_dir / "classes.json",
            data_dir / "spells.json",
            Path(args.supplementary) if args.supplementary else None,
        )
    except CatalogError as exc:
        print(f"ERRORE: {exc}")
        return 1

    spells = catalog.all_spells()
    print(f"Classi: {len(catalog.classes())}")
    print(f"Spell: {len(spells)}")

    # 1) Nomi duplicati: vince il primo, gli altri non sono raggiungibili
    dup = [name for name, n in Counter(sp.name for sp in spells).items() if n > 1]
    print(f"Nomi duplicati: {len(dup)}")
    for name in dup:
        print(f"- {name}")

    # 2) Spell senza classi né sottoclassi
    orphans = [sp.name for sp in spells if not sp.classes and not sp.subclasses]
    if orphans:
        print(f"\nSpell senza classi/sottoclassi: {len(orphans)}")
        for name in orphans:
            print(f"- {name}")

    # 3) Distribuzione livelli
    print("\nDistribuzione per livello:")
    for lvl, cnt in sorted(Counter(sp.level for sp in spells).items()):
        print(f"- Livello {lvl}: {cnt}")

    # 4) Spell disponibili per classe
    print("\nSpell per classe:")
    for dnd_class in catalog.classes():
        caster = "incantatore" if dnd_class.spellcasting else "non incantatore"
        print(f"- {dnd_class.name} ({dnd_class.hit_die}, {caster}): {len(eligible_spells(catalog, dnd_class))}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
