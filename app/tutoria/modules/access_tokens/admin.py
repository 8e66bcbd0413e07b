from __future__ import annotations

from flask import Blueprint, request

from app.tutoria.db import db_session
from app.tutoria.errors import InvalidRequest
from app.tutoria.modules.access_tokens import service as tokens
from app.tutoria.modules.access_tokens.models import RESOURCE_MODULE
from app.tutoria.rbac import Policy, current_principal, require_policy
from app.tutoria.utils import json_payload, page_args, page_response, parse_bool, parse_int, utcnow

bp = Blueprint("access_tokens", __name__, url_prefix="/api/module-access-tokens")


def _optional_flag(payload: dict, key: str) -> bool | None:
    if key not in payload or payload[key] is None:
        return None
    value = parse_bool(payload[key])
    if value is None:
        raise InvalidRequest(f"{key} must be a boolean.")
    return value


# ---------- List ----------
@bp.get("")
@require_policy(Policy.PROFESSOR_OR_ABOVE)
def tokens_list():
    page, size = page_args(request.args)
    now = utcnow()
    rows, meta = tokens.list_tokens(
        db_session(),
        current_principal(),
        resource_type=RESOURCE_MODULE,
        module_id=parse_int(request.args.get("moduleId")),
        university_id=parse_int(request.args.get("universityId")),
        is_active=parse_bool(request.args.get("isActive")),
        page=page,
        size=size,
        now=now,
    )
    return page_response([tokens.token_to_dict(t, now=now) for t in rows], meta)


# ---------- Issue ----------
@bp.post("")
@require_policy(Policy.PROFESSOR_OR_ABOVE)
def tokens_create():
    payload = json_payload()
    module_id = parse_int(payload.get("moduleId"))
    if module_id is None:
        raise InvalidRequest("moduleId is required.")

    s = db_session()
    now = utcnow()
    allow_chat = _optional_flag(payload, "allowChat")
    allow_files = _optional_flag(payload, "allowFileAccess")
    token = tokens.issue_token(
        s,
        current_principal(),
        RESOURCE_MODULE,
        module_id,
        payload.get("name") or "",
        description=payload.get("description"),
        allow_chat=True if allow_chat is None else allow_chat,
        allow_file_access=bool(allow_files),
        ttl=tokens.parse_ttl(payload, now=now),
        now=now,
    )
    s.commit()
    return tokens.token_to_dict(token, now=now), 201


# ---------- Detail ----------
@bp.get("/<int:token_id>")
@require_policy(Policy.PROFESSOR_OR_ABOVE)
def token_detail(token_id: int):
    token = tokens.get_token(db_session(), current_principal(), token_id)
    return tokens.token_to_dict(token)


# ---------- Update ----------
@bp.put("/<int:token_id>")
@require_policy(Policy.PROFESSOR_OR_ABOVE)
def token_update(token_id: int):
    payload = json_payload()
    if "token" in payload:
        raise InvalidRequest("The token value cannot be changed.")
    s = db_session()
    token = tokens.update_token(
        s,
        token_id,
        current_principal(),
        name=payload.get("name"),
        description=payload.get("description"),
        allow_chat=_optional_flag(payload, "allowChat"),
        allow_file_access=_optional_flag(payload, "allowFileAccess"),
        is_active=_optional_flag(payload, "isActive"),
    )
    s.commit()
    return tokens.token_to_dict(token)


# ---------- Revoke ----------
@bp.post("/<int:token_id>/revoke")
@require_policy(Policy.PROFESSOR_OR_ABOVE)
def token_revoke(token_id: int):
    payload = json_payload()
    s = db_session()
    token = tokens.revoke_token(s, token_id, current_principal(), reason=(payload.get("reason") or "").strip() or None)
    s.commit()
    return tokens.token_to_dict(token)


# ---------- Delete ----------
@bp.delete("/<int:token_id>")
@require_policy(Policy.ADMIN_OR_ABOVE)
def token_delete(token_id: int):
    s = db_session()
    tokens.delete_token(s, token_id, current_principal())
    s.commit()
    return "", 204
