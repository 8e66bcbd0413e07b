import threading
from datetime import datetime, timedelta

import pytest
from sqlalchemy import text

from app.tutoria.db import session_scope
from app.tutoria.errors import CapabilityDenied
from app.tutoria.modules.access_tokens import service as tokens
from app.tutoria.modules.access_tokens import usage
from app.tutoria.modules.access_tokens.models import CapabilityToken
from app.tutoria.principal import Principal, Role

T0 = datetime(2026, 3, 2, 12, 0, 0)


def _committed_token(app) -> tuple[int, str]:
    alice = Principal(id=10, role=Role.professor(), university_id=1)
    with session_scope(app) as s:
        token = tokens.issue_token(s, alice, "module", 42, "Shared widget", now=T0)
        return token.id, token.token


def test_concurrent_validations_count_every_use(app):
    token_id, value = _committed_token(app)
    workers = 8
    barrier = threading.Barrier(workers)
    errors = []

    def validate(i):
        s = app.extensions["sqlalchemy_sessionmaker"]()
        try:
            barrier.wait()
            tokens.validate_token(s, value, "chat", now=T0 + timedelta(seconds=i))
            s.commit()
        except Exception as e:  # surfaced by the assertion below
            errors.append(e)
        finally:
            s.close()

    threads = [threading.Thread(target=validate, args=(i,)) for i in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    with session_scope(app) as s:
        token = s.get(CapabilityToken, token_id)
        assert token.usage_count == workers
        assert token.last_used_at == T0 + timedelta(seconds=workers - 1)


def test_last_used_at_never_moves_backwards(session, people):
    token = tokens.issue_token(session, people.alice, "module", 42, "Widget", now=T0)
    later, earlier = T0 + timedelta(minutes=5), T0 + timedelta(minutes=1)

    assert usage.record_usage(session, token.id, later) is True
    assert usage.record_usage(session, token.id, earlier) is True

    session.expire(token)
    assert token.usage_count == 2
    assert token.last_used_at == later


def test_validation_bumps_usage(session, people):
    token = tokens.issue_token(session, people.alice, "module", 42, "Widget", now=T0)
    tokens.validate_token(session, token.token, "chat", now=T0 + timedelta(seconds=30))

    session.expire(token)
    assert token.usage_count == 1
    assert token.last_used_at == T0 + timedelta(seconds=30)


def test_failed_validation_does_not_count(session, people):
    token = tokens.issue_token(session, people.alice, "module", 42, "Widget", now=T0)
    with pytest.raises(CapabilityDenied):
        tokens.validate_token(session, token.token, "file_access", now=T0)

    session.expire(token)
    assert token.usage_count == 0
    assert token.last_used_at is None


def test_usage_failure_does_not_fail_validation(session, people, monkeypatch, caplog):
    token = tokens.issue_token(session, people.alice, "module", 42, "Widget", now=T0)
    monkeypatch.setattr(usage, "usage_statement", lambda token_id, now: text("UPDATE no_such_table SET hits = 1"))

    result = tokens.validate_token(session, token.token, "chat", now=T0)

    assert result.resource_id == 42
    assert "Usage tracking failed" in caplog.text
    session.expire(token)
    assert token.usage_count == 0
