"""Create the persistent store's schema in the configured Postgres database.

Requires DATABASE_URL in .env or .env.local.

Usage:
    python -m crawlrag.db.migrate
"""

from pathlib import Path

import psycopg
import typer
from dotenv import load_dotenv

from crawlrag.db.postgres_store import schema_statements
from crawlrag.logging_config import redact_dsn

# Project root (parent of crawlrag/)
_project_root = Path(__file__).resolve().parent.parent.parent


def run_migrations(database_url: str, embedding_dimensions: int) -> None:
    """Apply the schema statements in order. Safe to run repeatedly."""
    if not database_url:
        raise SystemExit(
            "DATABASE_URL is not set. Add your Postgres connection string to .env or .env.local."
        )

    try:
        with psycopg.connect(database_url, autocommit=True) as conn:
            with conn.cursor() as cur:
                for statement in schema_statements(embedding_dimensions):
                    name = " ".join(statement.split()[:6])
                    typer.echo(f"Applying {name}...")
                    cur.execute(statement)
    except psycopg.OperationalError as e:
        hint = ""
        err_str = str(e)
        if "password authentication failed" in err_str:
            hint = (
                "\n\nCheck the database password. If it contains # @ % or :, "
                "percent-encode it (e.g. # → %23)."
            )
        elif 'extension "vector"' in err_str or "could not open extension" in err_str:
            hint = "\n\nThe pgvector extension must be installed on the server."
        raise SystemExit(
            f"Database connection failed ({redact_dsn(database_url)}): {e}{hint}"
        ) from e

    typer.echo("Migrations complete.")


if __name__ == "__main__":
    # Load .env and .env.local so DATABASE_URL is available without full app config
    load_dotenv(_project_root / ".env")
    load_dotenv(_project_root / ".env.local")

    from crawlrag.config import get_settings

    settings = get_settings()
    run_migrations(settings.database_url or "", settings.embedding_dimensions)
