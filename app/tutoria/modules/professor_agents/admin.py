from __future__ import annotations

from flask import Blueprint, request

from app.tutoria.db import db_session
from app.tutoria.errors import InvalidRequest
from app.tutoria.modules.access_tokens import service as tokens
from app.tutoria.modules.professor_agents import service as agents
from app.tutoria.modules.professor_agents.models import ProfessorAgent
from app.tutoria.rbac import Policy, current_principal, require_policy
from app.tutoria.utils import iso, json_payload, page_args, page_response, parse_bool, parse_int, utcnow

bp = Blueprint("professor_agents", __name__, url_prefix="/api")


def agent_to_dict(agent: ProfessorAgent) -> dict:
    return {
        "id": agent.id,
        "professorId": agent.professor_id,
        "universityId": agent.university_id,
        "name": agent.name,
        "description": agent.description,
        "systemPrompt": agent.system_prompt,
        "tutorLanguage": agent.tutor_language,
        "isActive": agent.is_active,
        "createdAt": iso(agent.created_at),
        "updatedAt": iso(agent.updated_at),
    }


# ---------- Own agent ----------
@bp.get("/professor-agents/my-agent")
@require_policy(Policy.PROFESSOR_OR_ABOVE)
def my_agent():
    agent = agents.get_my_agent(db_session(), current_principal())
    return agent_to_dict(agent)


# ---------- Administration ----------
@bp.get("/professor-agents")
@require_policy(Policy.ADMIN_OR_ABOVE)
def agents_list():
    page, size = page_args(request.args)
    rows, meta = agents.list_agents(
        db_session(),
        current_principal(),
        university_id=parse_int(request.args.get("universityId")),
        is_active=parse_bool(request.args.get("isActive")),
        page=page,
        size=size,
    )
    return page_response([agent_to_dict(a) for a in rows], meta)


@bp.get("/professor-agents/status")
@require_policy(Policy.ADMIN_OR_ABOVE)
def agents_status():
    return {"items": agents.agent_status(db_session(), current_principal())}


@bp.post("/professor-agents")
@require_policy(Policy.ADMIN_OR_ABOVE)
def agents_create():
    payload = json_payload()
    professor_id = parse_int(payload.get("professorId"))
    if professor_id is None:
        raise InvalidRequest("professorId is required.")
    s = db_session()
    agent = agents.create_agent(
        s,
        current_principal(),
        professor_id,
        payload.get("name") or "",
        description=payload.get("description"),
        system_prompt=payload.get("systemPrompt"),
        tutor_language=payload.get("tutorLanguage"),
    )
    s.commit()
    return agent_to_dict(agent), 201


@bp.get("/professor-agents/<int:agent_id>")
@require_policy(Policy.PROFESSOR_OR_ABOVE)
def agent_detail(agent_id: int):
    agent = agents.get_agent(db_session(), current_principal(), agent_id)
    return agent_to_dict(agent)


@bp.put("/professor-agents/<int:agent_id>")
@require_policy(Policy.ADMIN_OR_ABOVE)
def agent_update(agent_id: int):
    payload = json_payload()
    s = db_session()
    agent = agents.update_agent(
        s,
        current_principal(),
        agent_id,
        name=payload.get("name"),
        description=payload.get("description"),
        system_prompt=payload.get("systemPrompt"),
        tutor_language=payload.get("tutorLanguage"),
    )
    s.commit()
    return agent_to_dict(agent)


@bp.post("/professor-agents/<int:agent_id>/activate")
@require_policy(Policy.ADMIN_OR_ABOVE)
def agent_activate(agent_id: int):
    s = db_session()
    agent = agents.set_agent_active(s, current_principal(), agent_id, True)
    s.commit()
    return agent_to_dict(agent)


@bp.post("/professor-agents/<int:agent_id>/deactivate")
@require_policy(Policy.ADMIN_OR_ABOVE)
def agent_deactivate(agent_id: int):
    s = db_session()
    agent = agents.set_agent_active(s, current_principal(), agent_id, False)
    s.commit()
    return agent_to_dict(agent)


# ---------- Agent tokens ----------
@bp.get("/professor-agents/<int:agent_id>/tokens")
@require_policy(Policy.PROFESSOR_OR_ABOVE)
def agent_tokens_list(agent_id: int):
    page, size = page_args(request.args)
    now = utcnow()
    rows, meta = agents.list_agent_tokens(
        db_session(),
        current_principal(),
        agent_id,
        is_active=parse_bool(request.args.get("isActive")),
        page=page,
        size=size,
    )
    return page_response([tokens.token_to_dict(t, now=now) for t in rows], meta)


@bp.post("/professor-agents/<int:agent_id>/tokens")
@require_policy(Policy.PROFESSOR_OR_ABOVE)
def agent_tokens_create(agent_id: int):
    payload = json_payload()
    if parse_bool(payload.get("allowFileAccess")):
        raise InvalidRequest("Professor agent tokens cannot grant file access.")
    s = db_session()
    now = utcnow()
    token = agents.issue_agent_token(
        s,
        current_principal(),
        agent_id,
        payload.get("name") or "",
        description=payload.get("description"),
        ttl=tokens.parse_ttl(payload, now=now),
        now=now,
    )
    s.commit()
    return tokens.token_to_dict(token, now=now), 201


@bp.post("/professor-agent-tokens/<int:token_id>/revoke")
@require_policy(Policy.PROFESSOR_OR_ABOVE)
def agent_token_revoke(token_id: int):
    s = db_session()
    token = tokens.revoke_token(s, token_id, current_principal())
    s.commit()
    return tokens.token_to_dict(token)
