"""Run database migrations against the configured Postgres database.

Creates the page_metadata table, the artifact buckets and the scrape queue.
Requires DATABASE_URL in .env or .env.local (Postgres connection string from
Supabase Dashboard → Database → Connection string).

Usage:
    python -m src.db.migrate
"""

import os
from pathlib import Path

import psycopg
from dotenv import load_dotenv

# Project root (parent of src/)
_project_root = Path(__file__).resolve().parent.parent.parent
MIGRATIONS_DIR = _project_root / "migrations"


def _connection_hint(error: Exception) -> str:
    err_str = str(error)
    if "No route to host" in err_str or "2600:" in err_str:
        return (
            "\n\nIf you used the 'Direct' connection string, your network may not reach Supabase over IPv6. "
            "Use the 'Session' or 'Transaction' pooler connection string instead."
        )
    if "password authentication failed" in err_str:
        return (
            "\n\nUse your database password (not the service key). "
            "If it contains # @ % or :, percent-encode it (e.g. # → %23)."
        )
    return ""


def run_migrations(migrations_dir: Path = MIGRATIONS_DIR) -> list[str]:
    """Apply migration SQL files in lexicographic order.

    Returns:
        Names of the applied files
    """
    # Load .env and .env.local so DATABASE_URL is available without full app config
    load_dotenv(_project_root / ".env")
    load_dotenv(_project_root / ".env.local")

    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        raise SystemExit(
            "DATABASE_URL is not set. Add your Postgres connection string to .env or .env.local."
        )

    if not migrations_dir.is_dir():
        raise SystemExit(f"Migrations directory not found: {migrations_dir}")

    sql_files = sorted(migrations_dir.glob("*.sql"))
    if not sql_files:
        raise SystemExit(f"No .sql files found in {migrations_dir}")

    applied: list[str] = []
    try:
        with psycopg.connect(database_url, autocommit=True) as conn:
            with conn.cursor() as cur:
                for path in sql_files:
                    print(f"Applying {path.name}...")
                    cur.execute(path.read_text())
                    applied.append(path.name)
                    print(f"  OK {path.name}")
    except psycopg.OperationalError as e:
        raise SystemExit(f"Database connection failed: {e}{_connection_hint(e)}") from e

    print("Migrations complete.")
    return applied


if __name__ == "__main__":
    run_migrations()
