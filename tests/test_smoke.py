import pytest
from flask import g

from app.tutoria import create_app
from scripts.start import gunicorn_argv


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_healthz_is_plain_text(client, login):
    login("sam")
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.get_data(as_text=True) == "ok"


def test_blueprints_registered(app):
    assert {"catalog", "access_tokens", "professor_agents", "widget"} <= set(app.blueprints)
    assert app.config["TOKEN_MAX_TTL_DAYS"] == 3650


def test_request_id_is_assigned(app):
    with app.test_request_context("/api/modules"):
        app.preprocess_request()
        assert len(g.request_id) == 32
        assert g.principal is None


@pytest.mark.parametrize(
    "env",
    [
        {"DATABASE_URL": "sqlite:///prod.db", "SECRET_KEY": "s3cr3t"},
        {"DATABASE_URL": "postgresql+psycopg://u:p@db/tutoria", "SECRET_KEY": "change-me"},
    ],
)
def test_production_guardrails(monkeypatch, env):
    monkeypatch.setenv("ENV", "production")
    for k, v in env.items():
        monkeypatch.setenv(k, v)
    with pytest.raises(RuntimeError):
        create_app()


def test_gunicorn_command():
    argv = gunicorn_argv(8080, 3)
    assert argv[:2] == ["gunicorn", "app.wsgi:app"]
    assert "0.0.0.0:8080" in argv
    assert argv[argv.index("--workers") + 1] == "3"
