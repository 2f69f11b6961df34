# engine/config.py
"""Configurazione da variabili d'ambiente.

Variabili riconosciute:
    - DND_DB_PATH               percorso del DB SQLite
    - DND_DATA_DIR              cartella con classes.json / spells.json
    - DND_SUPPLEMENTARY_SPELLS  file spell supplementare (opzionale)
    - DND_SERVICE_KEY           credenziale elevata per i token di condivisione
    - DND_SHARE_TTL_DAYS        durata dei token di condivisione (giorni)
    - DND_LOG_LEVEL             livello di log (INFO, DEBUG, ...)
    - DND_HOST / DND_PORT       bind del server di sviluppo
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_DB_PATH = PROJECT_ROOT / "db" / "dnd_grimoire.sqlite3"
DEFAULT_DATA_DIR = PROJECT_ROOT / "data"
SUPPLEMENTARY_SPELLS_FILENAME = "spells_supplementary.json"


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    db_path: Path
    data_dir: Path
    supplementary_spells_path: Path | None
    service_key: str | None = None
    share_ttl_days: int = 30
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8090

    @property
    def classes_path(self) -> Path:
        return self.data_dir / "classes.json"

    @property
    def spells_path(self) -> Path:
        return self.data_dir / "spells.json"

    @classmethod
    def from_env(cls) -> "Settings":
        data_dir = Path(os.getenv("DND_DATA_DIR") or DEFAULT_DATA_DIR)
        supplementary = os.getenv("DND_SUPPLEMENTARY_SPELLS")
        return cls(
            db_path=Path(os.getenv("DND_DB_PATH") or DEFAULT_DB_PATH),
            data_dir=data_dir,
            supplementary_spells_path=Path(supplementary) if supplementary else data_dir / SUPPLEMENTARY_SPELLS_FILENAME,
            service_key=(os.getenv("DND_SERVICE_KEY") or "").strip() or None,
            share_ttl_days=max(1, _env_int("DND_SHARE_TTL_DAYS", 30)),
            log_level=(os.getenv("DND_LOG_LEVEL") or "INFO").strip().upper(),
            host=(os.getenv("DND_HOST") or "127.0.0.1").strip(),
            port=_env_int("DND_PORT", 8090),
        )
