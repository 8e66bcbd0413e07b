import pytest
from sqlalchemy import func, select, text

from app.tutoria.models import University, User
from scripts import init_db, release
from scripts._db_utils import create_script_engine, resolve_database_url, script_session


def test_database_url_resolution(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    assert resolve_database_url() == "sqlite:///tutoria.db"
    monkeypatch.setenv("DATABASE_URL", " sqlite:///from-env.db ")
    assert resolve_database_url() == "sqlite:///from-env.db"
    assert resolve_database_url("sqlite:///explicit.db") == "sqlite:///explicit.db"


def test_script_engine_enforces_foreign_keys(tmp_path):
    engine = create_script_engine(f"sqlite:///{tmp_path/'fk.db'}")
    try:
        with engine.connect() as conn:
            assert conn.execute(text("PRAGMA foreign_keys")).scalar_one() == 1
    finally:
        engine.dispose()


def test_seed_is_idempotent(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path/'seed.db'}"
    monkeypatch.setenv("ADMIN_EMAIL", "Root@Example.com")
    monkeypatch.setenv("SEED_DEMO", "1")

    init_db.create_tables(database_url=db_url)
    init_db.seed_only(database_url=db_url)
    init_db.seed_only(database_url=db_url)

    with script_session(db_url) as s:
        admins = s.execute(select(User).where(User.user_type == "super_admin")).scalars().all()
        assert [u.email for u in admins] == ["root@example.com"]
        assert s.execute(select(func.count()).select_from(University)).scalar_one() == 1


@pytest.mark.parametrize(
    "env",
    [
        {},
        {"DATABASE_URL": "sqlite:///prod.db", "ENV": "production"},
    ],
)
def test_release_refuses_unsafe_database(monkeypatch, env):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("ENV", raising=False)
    for k, v in env.items():
        monkeypatch.setenv(k, v)
    with pytest.raises(RuntimeError):
        release.release_database_url()
