"""
Release phase: bring the schema to the Alembic head, confirm it landed, then
make sure the super admin row exists.

Environment:
    DATABASE_URL   required; sqlite is refused when ENV=production
    SKIP_SEED=1    migrate only

Usage:
    python scripts/release.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from alembic import command  # noqa: E402
from alembic.config import Config  # noqa: E402
from alembic.runtime.migration import MigrationContext  # noqa: E402
from alembic.script import ScriptDirectory  # noqa: E402

from scripts._db_utils import create_script_engine  # noqa: E402


def alembic_config(db_url: str) -> Config:
    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    return cfg


def current_revisions(db_url: str) -> set[str]:
    engine = create_script_engine(db_url)
    try:
        with engine.connect() as conn:
            return set(MigrationContext.configure(conn).get_current_heads())
    finally:
        engine.dispose()


def release_database_url() -> str:
    db_url = (os.environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("DATABASE_URL is required for the release phase.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to release against sqlite in production; point DATABASE_URL at Postgres.")
    return db_url


def run_release(*, seed: bool | None = None) -> None:
    db_url = release_database_url()
    if seed is None:
        seed = (os.environ.get("SKIP_SEED") or "").strip() != "1"

    cfg = alembic_config(db_url)
    heads = set(ScriptDirectory.from_config(cfg).get_heads())
    print(f"Upgrading schema to {', '.join(sorted(heads))}...", flush=True)
    command.upgrade(cfg, "head")

    applied = current_revisions(db_url)
    if applied != heads:
        raise RuntimeError(f"Schema is at {sorted(applied)} after upgrade, expected {sorted(heads)}.")
    print("Schema up to date.", flush=True)

    if not seed:
        print("SKIP_SEED=1; super admin not seeded.", flush=True)
        return

    from scripts import init_db

    init_db.seed_only(database_url=db_url)


def main() -> None:
    run_release()


if __name__ == "__main__":
    main()
