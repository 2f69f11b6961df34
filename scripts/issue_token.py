"""Registra un bearer token per un utente (solo sviluppo locale).

In produzione i token arrivano dal provider di identità; questo script serve
per provare l'API in locale:

    python scripts/issue_token.py alice --days 7
    curl -H "Authorization: Bearer <token>" http://127.0.0.1:8090/characters
"""

import argparse
import sys
from datetime import timedelta
from pathlib import Path

# Root del progetto (così trova "engine")
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from engine.auth import register_token  # noqa: E402
from engine.config import Settings  # noqa: E402
from engine.db import connect, ensure_schema  # noqa: E402


def main() -> None:
    settings = Settings.from_env()
    ap = argparse.ArgumentParser(description="Registra un bearer token nel DB.")
    ap.add_argument("user_id", help="Id dell'utente proprietario del token")
    ap.add_argument("--token", default=None, help="Token da usare (default: generato)")
    ap.add_argument("--days", type=int, default=0, help="Durata in giorni (0 = non scade)")
    ap.add_argument("--db", default=str(settings.db_path), help=f"Percorso DB (default: {settings.db_path})")
    args = ap.parse_args()

    conn = connect(args.db)
    try:
        ensure_schema(conn)
        token = register_token(conn, args.user_id, args.token, timedelta(days=args.days) if args.days > 0 else None)
    finally:
        conn.close()

    print(f"OK: token per {args.user_id}: {token}")


if __name__ == "__main__":
    main()
