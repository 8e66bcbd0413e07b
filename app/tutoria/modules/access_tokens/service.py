from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from flask import current_app, has_app_context
from sqlalchemy import and_, not_, or_, select
from sqlalchemy.exc import IntegrityError

from app.tutoria.audit import record_event
from app.tutoria.errors import (
    AuthorizationError,
    CapabilityDenied,
    InvalidRequest,
    ResourceNotFound,
    ScopeViolation,
    TokenExpired,
    TokenNotFound,
)
from app.tutoria.modules.access_tokens.models import (
    RESOURCE_MODULE,
    RESOURCE_PROFESSOR_AGENT,
    STATUS_ACTIVE,
    STATUS_INACTIVE,
    SUPPORTED_CAPABILITIES,
    Capability,
    CapabilityToken,
    TokenValidation,
)
from app.tutoria.modules.access_tokens.usage import record_usage
from app.tutoria.principal import ADMIN_PROFESSOR, Principal
from app.tutoria.rbac import Policy, can_perform, ensure_authorized
from app.tutoria.scoping import get_in_scope, is_in_scope, scoped_select
from app.tutoria.utils import clean_text, iso, paginate, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

DEFAULT_MAX_TTL_DAYS = 3650
DEFAULT_ISSUE_ATTEMPTS = 5

EFFECTIVE_ACTIVE = "Active"
EFFECTIVE_EXPIRED = "Expired"
EFFECTIVE_INACTIVE = "Inactive"

# Resource type of the bound resource -> scope filter type of its tokens.
_TOKEN_SCOPE = {
    RESOURCE_MODULE: "module_token",
    RESOURCE_PROFESSOR_AGENT: "agent_token",
}

# Spellings accepted for capabilities coming from clients.
_CAPABILITY_ALIASES = {
    "chat": Capability.CHAT,
    "allowchat": Capability.CHAT,
    "file_access": Capability.FILE_ACCESS,
    "fileaccess": Capability.FILE_ACCESS,
    "allowfileaccess": Capability.FILE_ACCESS,
}


def _config_int(key: str, default: int) -> int:
    if has_app_context():
        value = current_app.config.get(key)
        if value is not None:
            return int(value)
    return default


def generate_token_value() -> str:
    """32 random bytes, URL-safe base64 without padding (43 characters)."""
    return secrets.token_urlsafe(32)


def parse_capability(value: Capability | str) -> Capability:
    if isinstance(value, Capability):
        return value
    key = str(value or "").strip().replace("-", "_").lower()
    cap = _CAPABILITY_ALIASES.get(key) or _CAPABILITY_ALIASES.get(key.replace("_", ""))
    if cap is None:
        raise InvalidRequest(f"Unknown capability {value!r}.")
    return cap


def token_scope_type(resource_type: str) -> str:
    try:
        return _TOKEN_SCOPE[resource_type]
    except KeyError:
        raise InvalidRequest(f"Unsupported resource type {resource_type!r}.") from None


def requested_capabilities(allow_chat: bool, allow_file_access: bool) -> frozenset[Capability]:
    caps = set()
    if allow_chat:
        caps.add(Capability.CHAT)
    if allow_file_access:
        caps.add(Capability.FILE_ACCESS)
    return frozenset(caps)


def validate_capabilities(resource_type: str, allow_chat: bool, allow_file_access: bool) -> None:
    supported = SUPPORTED_CAPABILITIES.get(resource_type)
    if supported is None:
        raise InvalidRequest(f"Unsupported resource type {resource_type!r}.")
    requested = requested_capabilities(allow_chat, allow_file_access)
    if not requested:
        raise InvalidRequest("A token must grant at least one capability.")
    unsupported = requested - supported
    if unsupported:
        names = ", ".join(sorted(c.value for c in unsupported))
        raise InvalidRequest(f"A {resource_type} token cannot grant: {names}.")


def effective_status(token: CapabilityToken, now: datetime | None = None) -> str:
    """Active, Expired (still flagged Active but past expires_at) or Inactive."""
    if token.status != STATUS_ACTIVE:
        return EFFECTIVE_INACTIVE
    now = now or utcnow()
    if token.expires_at is not None and token.expires_at <= now:
        return EFFECTIVE_EXPIRED
    return EFFECTIVE_ACTIVE


def token_tenant_id(token: CapabilityToken) -> int | None:
    if token.resource_type == RESOURCE_MODULE and token.module is not None:
        return token.module.course.university_id
    if token.resource_type == RESOURCE_PROFESSOR_AGENT and token.professor_agent is not None:
        return token.professor_agent.university_id
    return None


def _load_bound_resource(s: "Session", principal: Principal, resource_type: str, resource_id: int):
    if resource_type == RESOURCE_MODULE:
        return get_in_scope(s, principal, "module", resource_id)
    if resource_type == RESOURCE_PROFESSOR_AGENT:
        agent = get_in_scope(s, principal, "professor_agent", resource_id)
        if not agent.is_active:
            raise InvalidRequest("Professor agent is inactive.")
        return agent
    raise InvalidRequest(f"Unsupported resource type {resource_type!r}.")


def _validate_ttl(ttl: timedelta | None) -> None:
    if ttl is None:
        return
    if ttl < timedelta(0):
        raise InvalidRequest("Token lifetime cannot be negative.")
    max_days = _config_int("TOKEN_MAX_TTL_DAYS", DEFAULT_MAX_TTL_DAYS)
    if ttl > timedelta(days=max_days):
        raise InvalidRequest(f"Token lifetime cannot exceed {max_days} days.")


def _clean_name(name: str | None) -> str:
    name = clean_text(name, "Name")
    if not name:
        raise InvalidRequest("Name is required.")
    if len(name) > 255:
        raise InvalidRequest("Name must be at most 255 characters.")
    return name


def _value_taken(s: "Session", value: str) -> bool:
    return s.execute(select(CapabilityToken.id).where(CapabilityToken.token == value)).first() is not None


def issue_token(
    s: "Session",
    principal: Principal,
    resource_type: str,
    resource_id: int,
    name: str,
    *,
    description: str | None = None,
    allow_chat: bool = True,
    allow_file_access: bool = False,
    ttl: timedelta | None = None,
    now: datetime | None = None,
) -> CapabilityToken:
    """
    Issue a new Active token bound to one module or professor agent.

    The bound resource must be inside the issuer's scope. A value collision on
    insert is retried with a fresh value.
    """
    ensure_authorized(principal, Policy.PROFESSOR_OR_ABOVE)
    name = _clean_name(name)
    validate_capabilities(resource_type, allow_chat, allow_file_access)
    _validate_ttl(ttl)
    _load_bound_resource(s, principal, resource_type, resource_id)

    now = now or utcnow()
    max_attempts = max(1, _config_int("TOKEN_ISSUE_MAX_ATTEMPTS", DEFAULT_ISSUE_ATTEMPTS))
    token: CapabilityToken | None = None
    for attempt in range(1, max_attempts + 1):
        value = generate_token_value()
        candidate = CapabilityToken(
            token=value,
            name=name,
            description=clean_text(description, "Description"),
            resource_type=resource_type,
            resource_id=resource_id,
            module_id=resource_id if resource_type == RESOURCE_MODULE else None,
            professor_agent_id=resource_id if resource_type == RESOURCE_PROFESSOR_AGENT else None,
            issued_by_user_id=principal.user_id,
            allow_chat=bool(allow_chat),
            allow_file_access=bool(allow_file_access),
            status=STATUS_ACTIVE,
            expires_at=now + ttl if ttl is not None else None,
            usage_count=0,
            last_used_at=None,
            created_at=now,
            updated_at=now,
        )
        try:
            with s.begin_nested():
                s.add(candidate)
                s.flush()
        except IntegrityError:
            if not _value_taken(s, value):
                raise
            logger.warning("Token value collision (attempt %s/%s); regenerating.", attempt, max_attempts)
            continue
        token = candidate
        break

    if token is None:
        raise RuntimeError(f"Could not generate a unique access token after {max_attempts} attempts.")

    record_event(
        s,
        actor=principal,
        action="token.issue",
        entity_type="CapabilityToken",
        entity_id=token.id,
        metadata={
            "resource_type": resource_type,
            "resource_id": resource_id,
            "allow_chat": token.allow_chat,
            "allow_file_access": token.allow_file_access,
            "expires_at": token.expires_at,
        },
    )
    s.flush()
    logger.info("Issued %s token %s for %s %s by %s", resource_type, token.id, resource_type, resource_id, principal.label)
    return token


def validate_token(
    s: "Session",
    token_value: str | None,
    capability: Capability | str,
    *,
    resource_type: str | None = None,
    now: datetime | None = None,
) -> TokenValidation:
    """
    Check a presented token for one capability.

    TokenNotFound when no Active token has this value, TokenExpired once
    `expires_at` has been reached, CapabilityDenied when the flag is off,
    ResourceNotFound when the bound professor agent has been deactivated.
    `resource_type` restricts the lookup to tokens bound to that kind of resource.
    On success the usage counters are bumped; the caller commits.
    """
    capability = parse_capability(capability)
    value = (token_value or "").strip()
    if not value:
        raise TokenNotFound()

    now = now or utcnow()
    stmt = select(CapabilityToken).where(
        CapabilityToken.token == value,
        CapabilityToken.status == STATUS_ACTIVE,
    )
    if resource_type is not None:
        stmt = stmt.where(CapabilityToken.resource_type == resource_type)
    token = s.execute(stmt).scalar_one_or_none()
    if token is None:
        raise TokenNotFound()
    if token.expires_at is not None and token.expires_at <= now:
        raise TokenExpired()
    if not token.grants(capability):
        raise CapabilityDenied()
    if token.resource_type == RESOURCE_PROFESSOR_AGENT and (
        token.professor_agent is None or not token.professor_agent.is_active
    ):
        raise ResourceNotFound("Professor agent is not available.")

    result = TokenValidation(
        token_id=token.id,
        resource_type=token.resource_type,
        resource_id=token.resource_id,
        allow_chat=token.allow_chat,
        allow_file_access=token.allow_file_access,
        expires_at=token.expires_at,
    )
    record_usage(s, token.id, now)
    return result


def _load_token(s: "Session", token_id: int) -> CapabilityToken:
    token = s.get(CapabilityToken, token_id)
    if token is None:
        raise ResourceNotFound("Access token not found.")
    return token


def get_token(s: "Session", principal: Principal, token_id: int) -> CapabilityToken:
    ensure_authorized(principal, Policy.PROFESSOR_OR_ABOVE)
    token = _load_token(s, token_id)
    return get_in_scope(s, principal, token_scope_type(token.resource_type), token.id)


def _may_manage(principal: Principal, token: CapabilityToken) -> bool:
    if principal.user_id is not None and principal.user_id == token.issued_by_user_id:
        return True
    if not can_perform(principal, ADMIN_PROFESSOR):
        return False
    if principal.is_super_admin:
        return True
    tenant = token_tenant_id(token)
    return tenant is not None and tenant == principal.university_id


def _ensure_can_manage(s: "Session", principal: Principal, token: CapabilityToken) -> None:
    """Issuer or AdminOrAbove over the token's tenant; otherwise 404 out of scope, 403 in scope."""
    if _may_manage(principal, token):
        return
    if is_in_scope(s, principal, token_scope_type(token.resource_type), token.id):
        raise AuthorizationError("Only the issuer or an administrator can change this token.")
    logger.warning("Scope violation: principal=%s resource=access_token id=%s", principal.label, token.id)
    raise ScopeViolation("Access token not found.")


def revoke_token(
    s: "Session",
    token_id: int,
    principal: Principal,
    *,
    reason: str | None = None,
    now: datetime | None = None,
) -> CapabilityToken:
    """Deactivate a token for good. Revoking an Inactive token is a no-op."""
    ensure_authorized(principal, Policy.PROFESSOR_OR_ABOVE)
    token = _load_token(s, token_id)
    _ensure_can_manage(s, principal, token)

    if token.status == STATUS_INACTIVE:
        return token

    now = now or utcnow()
    token.status = STATUS_INACTIVE
    token.revoked_at = now
    token.revoked_by_user_id = principal.user_id
    token.updated_at = now

    record_event(
        s,
        actor=principal,
        action="token.revoke",
        entity_type="CapabilityToken",
        entity_id=token.id,
        reason=reason,
        metadata={"resource_type": token.resource_type, "resource_id": token.resource_id},
    )
    s.flush()
    logger.info("Revoked token %s by %s", token.id, principal.label)
    return token


def update_token(
    s: "Session",
    token_id: int,
    principal: Principal,
    *,
    name: str | None = None,
    description: str | None = None,
    allow_chat: bool | None = None,
    allow_file_access: bool | None = None,
    is_active: bool | None = None,
    now: datetime | None = None,
) -> CapabilityToken:
    """
    Metadata edits only. The token value never changes after issue.
    is_active=False revokes; reactivating an Inactive token is refused.
    """
    ensure_authorized(principal, Policy.PROFESSOR_OR_ABOVE)
    token = _load_token(s, token_id)
    _ensure_can_manage(s, principal, token)
    now = now or utcnow()

    if is_active is True and token.status == STATUS_INACTIVE:
        raise InvalidRequest("A revoked token cannot be reactivated. Issue a new token instead.")

    new_chat = token.allow_chat if allow_chat is None else bool(allow_chat)
    new_files = token.allow_file_access if allow_file_access is None else bool(allow_file_access)
    validate_capabilities(token.resource_type, new_chat, new_files)

    changes = {}
    if name is not None:
        new_name = _clean_name(name)
        if new_name != token.name:
            changes["name"] = {"old": token.name, "new": new_name}
            token.name = new_name
    if description is not None:
        new_description = clean_text(description, "Description")
        if new_description != token.description:
            changes["description"] = {"old": token.description, "new": new_description}
            token.description = new_description
    if new_chat != token.allow_chat:
        changes["allow_chat"] = {"old": token.allow_chat, "new": new_chat}
        token.allow_chat = new_chat
    if new_files != token.allow_file_access:
        changes["allow_file_access"] = {"old": token.allow_file_access, "new": new_files}
        token.allow_file_access = new_files

    if changes:
        token.updated_at = now
        record_event(
            s,
            actor=principal,
            action="token.edit",
            entity_type="CapabilityToken",
            entity_id=token.id,
            metadata={"changes": changes},
        )
        s.flush()

    if is_active is False:
        revoke_token(s, token.id, principal, now=now)
    return token


def delete_token(s: "Session", token_id: int, principal: Principal) -> None:
    """Explicit administrative removal of a token record."""
    ensure_authorized(principal, Policy.ADMIN_OR_ABOVE)
    token = get_token(s, principal, token_id)
    record_event(
        s,
        actor=principal,
        action="token.delete",
        entity_type="CapabilityToken",
        entity_id=token.id,
        metadata={
            "resource_type": token.resource_type,
            "resource_id": token.resource_id,
            "usage_count": token.usage_count,
        },
    )
    s.delete(token)
    s.flush()
    logger.info("Deleted token %s by %s", token_id, principal.label)


def _active_clause(now: datetime):
    t = CapabilityToken
    return and_(t.status == STATUS_ACTIVE, or_(t.expires_at.is_(None), t.expires_at > now))


def list_tokens(
    s: "Session",
    principal: Principal,
    *,
    resource_type: str = RESOURCE_MODULE,
    module_id: int | None = None,
    professor_agent_id: int | None = None,
    university_id: int | None = None,
    is_active: bool | None = None,
    page: int | None = None,
    size: int | None = None,
    now: datetime | None = None,
) -> tuple[list[CapabilityToken], dict]:
    """Scoped, filtered, newest-first listing. `is_active` filters on effective status."""
    from app.tutoria.models import Course, Module
    from app.tutoria.modules.professor_agents.models import ProfessorAgent

    ensure_authorized(principal, Policy.PROFESSOR_OR_ABOVE)
    t = CapabilityToken
    stmt = scoped_select(s, principal, token_scope_type(resource_type))

    if module_id is not None:
        stmt = stmt.where(t.module_id == module_id)
    if professor_agent_id is not None:
        stmt = stmt.where(t.professor_agent_id == professor_agent_id)
    if university_id is not None:
        if resource_type == RESOURCE_MODULE:
            stmt = stmt.where(t.module.has(Module.course.has(Course.university_id == university_id)))
        else:
            stmt = stmt.where(t.professor_agent.has(ProfessorAgent.university_id == university_id))
    if is_active is not None:
        active = _active_clause(now or utcnow())
        stmt = stmt.where(active if is_active else not_(active))

    stmt = stmt.order_by(t.created_at.desc(), t.id.desc())
    return paginate(s, stmt, page=page, size=size)


def parse_ttl(payload: dict, *, now: datetime | None = None) -> timedelta | None:
    """
    Lifetime from a request payload: `expiresInDays` (0 expires immediately)
    or an absolute ISO `expiresAt`. Neither means the token never expires.
    """
    days = payload.get("expiresInDays")
    expires_at = payload.get("expiresAt")
    if days is not None and days != "":
        if isinstance(days, bool):
            raise InvalidRequest("expiresInDays must be an integer.")
        try:
            days = int(days)
        except (TypeError, ValueError) as e:
            raise InvalidRequest("expiresInDays must be an integer.") from e
        max_days = _config_int("TOKEN_MAX_TTL_DAYS", DEFAULT_MAX_TTL_DAYS)
        if not -max_days <= days <= max_days:
            raise InvalidRequest(f"Token lifetime cannot exceed {max_days} days.")
        return timedelta(days=days)
    if expires_at:
        try:
            when = datetime.fromisoformat(str(expires_at).replace("Z", "+00:00"))
        except ValueError as e:
            raise InvalidRequest("expiresAt must be an ISO 8601 timestamp.") from e
        if when.tzinfo is not None:
            when = when.astimezone(timezone.utc).replace(tzinfo=None)
        return when - (now or utcnow())
    return None


def token_to_dict(token: CapabilityToken, *, now: datetime | None = None) -> dict:
    return {
        "id": token.id,
        "token": token.token,
        "name": token.name,
        "description": token.description,
        "resourceType": token.resource_type,
        "resourceId": token.resource_id,
        "moduleId": token.module_id,
        "professorAgentId": token.professor_agent_id,
        "issuedByUserId": token.issued_by_user_id,
        "allowChat": token.allow_chat,
        "allowFileAccess": token.allow_file_access,
        "status": token.status,
        "effectiveStatus": effective_status(token, now),
        "isActive": effective_status(token, now) == EFFECTIVE_ACTIVE,
        "expiresAt": iso(token.expires_at),
        "usageCount": token.usage_count,
        "lastUsedAt": iso(token.last_used_at),
        "revokedAt": iso(token.revoked_at),
        "createdAt": iso(token.created_at),
        "updatedAt": iso(token.updated_at),
    }
