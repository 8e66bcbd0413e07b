import re
from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from app.tutoria.errors import (
    AuthorizationError,
    CapabilityDenied,
    InvalidRequest,
    ResourceNotFound,
    ScopeViolation,
    TokenExpired,
    TokenNotFound,
)
from app.tutoria.models import AuditEvent
from app.tutoria.modules.access_tokens import service as tokens
from app.tutoria.modules.access_tokens.models import Capability, CapabilityToken

T0 = datetime(2026, 3, 2, 12, 0, 0)


def _issue(s, principal, module_id=42, **kwargs):
    kwargs.setdefault("now", T0)
    return tokens.issue_token(s, principal, "module", module_id, kwargs.pop("name", "Widget"), **kwargs)


def test_module_42_chat_only_token(session, people):
    token = _issue(session, people.alice, allow_chat=True, allow_file_access=False, ttl=timedelta(days=7))

    result = tokens.validate_token(session, token.token, "chat", now=T0 + timedelta(hours=1))
    assert result.resource_type == "module"
    assert result.resource_id == 42
    assert result.allow_chat is True

    with pytest.raises(CapabilityDenied):
        tokens.validate_token(session, token.token, "fileAccess", now=T0 + timedelta(hours=1))


def test_new_token_shape(session, people):
    token = _issue(session, people.alice)
    assert re.fullmatch(r"[A-Za-z0-9_-]{43}", token.token)
    assert token.status == "Active"
    assert token.usage_count == 0
    assert token.last_used_at is None
    assert token.issued_by_user_id == 10
    assert token.module_id == 42
    assert token.expires_at is None


def test_zero_ttl_expires_immediately(session, people):
    token = _issue(session, people.alice, ttl=timedelta(0))
    assert token.expires_at == T0
    with pytest.raises(TokenExpired):
        tokens.validate_token(session, token.token, Capability.CHAT, now=T0 + timedelta(seconds=1))


def test_past_expiry_fails_without_any_sweep(session, people):
    token = _issue(session, people.alice, ttl=timedelta(days=1))
    token.expires_at = T0 - timedelta(minutes=5)
    session.flush()

    for _ in range(2):
        with pytest.raises(TokenExpired):
            tokens.validate_token(session, token.token, "chat", now=T0)
    assert token.status == "Active"
    assert tokens.effective_status(token, T0) == tokens.EFFECTIVE_EXPIRED


def test_unknown_and_blank_tokens_are_not_found(session):
    for value in ("does-not-exist", "", None):
        with pytest.raises(TokenNotFound):
            tokens.validate_token(session, value, "chat", now=T0)


def test_token_bound_to_other_resource_kind_is_not_found(session, people):
    token = _issue(session, people.alice)
    with pytest.raises(TokenNotFound):
        tokens.validate_token(session, token.token, "chat", resource_type="professor_agent", now=T0)


def test_unknown_capability_is_rejected(session, people):
    token = _issue(session, people.alice)
    with pytest.raises(InvalidRequest):
        tokens.validate_token(session, token.token, "teleport", now=T0)


def test_issue_requires_professor_and_scope(session, people):
    with pytest.raises(AuthorizationError):
        _issue(session, people.sam)
    with pytest.raises(ScopeViolation):
        _issue(session, people.bob)
    with pytest.raises(ScopeViolation):
        _issue(session, people.ada, module_id=44)
    with pytest.raises(ResourceNotFound):
        _issue(session, people.alice, module_id=999)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"allow_chat": False, "allow_file_access": False},
        {"ttl": timedelta(seconds=-1)},
        {"ttl": timedelta(days=3651)},
        {"name": "   "},
    ],
)
def test_issue_rejects_invalid_requests(session, people, kwargs):
    with pytest.raises(InvalidRequest):
        _issue(session, people.alice, **kwargs)


def test_issue_retries_on_value_collision(session, people, monkeypatch, caplog):
    existing = _issue(session, people.alice)
    values = iter([existing.token, "fresh-value-" + "x" * 31])
    monkeypatch.setattr(tokens, "generate_token_value", lambda: next(values))

    token = _issue(session, people.alice, name="Second")
    assert token.token == "fresh-value-" + "x" * 31
    assert "collision" in caplog.text
    count = session.execute(select(func.count()).select_from(CapabilityToken)).scalar_one()
    assert count == 2


def test_issue_gives_up_after_bounded_attempts(session, people, monkeypatch):
    existing = _issue(session, people.alice)
    monkeypatch.setattr(tokens, "generate_token_value", lambda: existing.token)
    with pytest.raises(RuntimeError):
        _issue(session, people.alice, name="Doomed")


def test_revoke_is_idempotent(session, people):
    token = _issue(session, people.alice)
    later = T0 + timedelta(minutes=10)

    tokens.revoke_token(session, token.id, people.alice, now=later)
    tokens.revoke_token(session, token.id, people.alice, now=later + timedelta(minutes=10))

    assert token.status == "Inactive"
    assert token.revoked_at == later
    assert token.revoked_by_user_id == 10
    revokes = session.execute(
        select(func.count()).select_from(AuditEvent).where(AuditEvent.action == "token.revoke")
    ).scalar_one()
    assert revokes == 1
    with pytest.raises(TokenNotFound):
        tokens.validate_token(session, token.token, "chat", now=later)


def test_revoke_permissions(session, people):
    token = _issue(session, people.alice)

    # In scope but neither issuer nor admin -> forbidden.
    with pytest.raises(AuthorizationError):
        tokens.revoke_token(session, token.id, people.carol)
    # Admin of another university -> masked as not found.
    with pytest.raises(ScopeViolation):
        tokens.revoke_token(session, token.id, people.zed)
    # Unassigned professor of the same university -> not found.
    with pytest.raises(ScopeViolation):
        tokens.revoke_token(session, token.id, people.bob)
    with pytest.raises(ResourceNotFound):
        tokens.revoke_token(session, 9999, people.alice)

    tokens.revoke_token(session, token.id, people.ada)
    assert token.status == "Inactive"
    assert token.revoked_by_user_id == 13


def test_update_edits_metadata_only(session, people):
    token = _issue(session, people.alice)
    value = token.token

    tokens.update_token(session, token.id, people.alice, name="Renamed", allow_file_access=True, description="  ")
    assert token.name == "Renamed"
    assert token.allow_file_access is True
    assert token.description is None
    assert token.token == value


def test_update_deactivation_revokes_and_cannot_be_undone(session, people):
    token = _issue(session, people.alice)
    tokens.update_token(session, token.id, people.alice, is_active=False)
    assert token.status == "Inactive"
    assert token.revoked_at is not None

    with pytest.raises(InvalidRequest):
        tokens.update_token(session, token.id, people.alice, is_active=True)
    assert token.status == "Inactive"


def test_update_cannot_remove_every_capability(session, people):
    token = _issue(session, people.alice)
    with pytest.raises(InvalidRequest):
        tokens.update_token(session, token.id, people.alice, allow_chat=False)


def test_get_and_list_are_scoped(session, people):
    mine = _issue(session, people.alice)
    other = _issue(session, people.ada, module_id=43)
    revoked = _issue(session, people.alice, name="Old")
    tokens.revoke_token(session, revoked.id, people.alice)

    rows, meta = tokens.list_tokens(session, people.alice, now=T0)
    assert sorted(t.id for t in rows) == sorted([mine.id, revoked.id])
    assert meta["total"] == 2

    rows, _ = tokens.list_tokens(session, people.alice, is_active=True, now=T0)
    assert [t.id for t in rows] == [mine.id]
    rows, _ = tokens.list_tokens(session, people.alice, is_active=False, now=T0)
    assert [t.id for t in rows] == [revoked.id]

    rows, _ = tokens.list_tokens(session, people.ada, module_id=43, now=T0)
    assert [t.id for t in rows] == [other.id]
    rows, _ = tokens.list_tokens(session, people.zed, now=T0)
    assert rows == []

    with pytest.raises(ScopeViolation):
        tokens.get_token(session, people.alice, other.id)
    assert tokens.get_token(session, people.ada, mine.id).id == mine.id


def test_list_pagination_bounds(session, people):
    for i in range(3):
        _issue(session, people.alice, name=f"T{i}")
    rows, meta = tokens.list_tokens(session, people.alice, page=0, size=2, now=T0)
    assert len(rows) == 2
    assert meta == {"total": 3, "page": 1, "size": 2, "pages": 2}
    _, meta = tokens.list_tokens(session, people.alice, size=1000, now=T0)
    assert meta["size"] == 100


def test_delete_is_admin_only(session, people):
    token = _issue(session, people.alice)
    with pytest.raises(AuthorizationError):
        tokens.delete_token(session, token.id, people.alice)
    tokens.delete_token(session, token.id, people.ada)
    assert session.get(CapabilityToken, token.id) is None


def test_parse_ttl():
    assert tokens.parse_ttl({}) is None
    assert tokens.parse_ttl({"expiresInDays": 0}) == timedelta(0)
    assert tokens.parse_ttl({"expiresInDays": "7"}) == timedelta(days=7)
    assert tokens.parse_ttl({"expiresAt": "2026-03-03T12:00:00Z"}, now=T0) == timedelta(days=1)
    with pytest.raises(InvalidRequest):
        tokens.parse_ttl({"expiresInDays": "soon"})
