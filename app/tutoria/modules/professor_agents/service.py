from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.tutoria.audit import record_event
from app.tutoria.errors import InvalidRequest, ResourceNotFound
from app.tutoria.modules.access_tokens import service as token_service
from app.tutoria.modules.access_tokens.models import RESOURCE_PROFESSOR_AGENT
from app.tutoria.modules.professor_agents.models import VALID_LANGUAGES, ProfessorAgent
from app.tutoria.principal import Principal
from app.tutoria.rbac import Policy, ensure_authorized
from app.tutoria.scoping import get_in_scope, scoped_select
from app.tutoria.utils import clean_text, paginate, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.tutoria.modules.access_tokens.models import CapabilityToken

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful tutoring assistant. Guide students towards understanding, "
    "ask clarifying questions and avoid handing out complete solutions."
)


def _clean_language(value: str | None) -> str | None:
    lang = clean_text(value, "Tutor language")
    if lang is None:
        return None
    lang = lang.lower()
    if lang not in VALID_LANGUAGES:
        raise InvalidRequest(f"Invalid tutor language {value!r}. Valid languages are: {', '.join(VALID_LANGUAGES)}")
    return lang


def _required_text(value: str | None, field: str) -> str | None:
    if value is None:
        return None
    cleaned = clean_text(value, field)
    if cleaned is None:
        raise InvalidRequest(f"{field} cannot be empty.")
    return cleaned


def create_agent(
    s: "Session",
    principal: Principal,
    professor_id: int,
    name: str,
    *,
    description: str | None = None,
    system_prompt: str | None = None,
    tutor_language: str | None = None,
) -> ProfessorAgent:
    """Create the single agent of a professor inside the administrator's scope."""
    ensure_authorized(principal, Policy.ADMIN_OR_ABOVE)
    from app.tutoria.models import User

    professor = s.get(User, professor_id)
    if professor is None or professor.user_type != "professor":
        raise ResourceNotFound("Professor not found.")
    if professor.university_id is None:
        raise InvalidRequest("Professor must be associated with a university.")
    if not principal.is_super_admin and professor.university_id != principal.university_id:
        logger.warning("Scope violation: principal=%s resource=professor id=%s", principal.label, professor_id)
        raise ResourceNotFound("Professor not found.")

    clean_name = _required_text(name or "", "Agent name")
    existing = s.execute(select(ProfessorAgent.id).where(ProfessorAgent.professor_id == professor_id)).first()
    if existing is not None:
        raise InvalidRequest("Professor already has an agent.")

    now = utcnow()
    agent = ProfessorAgent(
        professor_id=professor_id,
        university_id=professor.university_id,
        name=clean_name,
        description=clean_text(description, "Description"),
        system_prompt=_required_text(system_prompt, "System prompt") or DEFAULT_SYSTEM_PROMPT,
        tutor_language=_clean_language(tutor_language) or "pt-br",
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    try:
        with s.begin_nested():
            s.add(agent)
            s.flush()
    except IntegrityError as e:
        # Lost a race against a concurrent create for the same professor.
        raise InvalidRequest("Professor already has an agent.") from e

    record_event(
        s,
        actor=principal,
        action="professor_agent.create",
        entity_type="ProfessorAgent",
        entity_id=agent.id,
        metadata={"professor_id": professor_id, "university_id": agent.university_id, "name": agent.name},
    )
    s.flush()
    return agent


def get_my_agent(s: "Session", principal: Principal) -> ProfessorAgent:
    ensure_authorized(principal, Policy.PROFESSOR_OR_ABOVE)
    agent = s.execute(
        select(ProfessorAgent).where(ProfessorAgent.professor_id == principal.user_id)
    ).scalar_one_or_none()
    if agent is None:
        raise ResourceNotFound("You do not have a professor agent yet.")
    return agent


def get_agent(s: "Session", principal: Principal, agent_id: int) -> ProfessorAgent:
    ensure_authorized(principal, Policy.PROFESSOR_OR_ABOVE)
    return get_in_scope(s, principal, "professor_agent", agent_id)


def list_agents(
    s: "Session",
    principal: Principal,
    *,
    university_id: int | None = None,
    is_active: bool | None = None,
    page: int | None = None,
    size: int | None = None,
) -> tuple[list[ProfessorAgent], dict]:
    ensure_authorized(principal, Policy.ADMIN_OR_ABOVE)
    stmt = scoped_select(s, principal, "professor_agent")
    if university_id is not None:
        stmt = stmt.where(ProfessorAgent.university_id == university_id)
    if is_active is not None:
        stmt = stmt.where(ProfessorAgent.is_active.is_(is_active))
    stmt = stmt.order_by(ProfessorAgent.name, ProfessorAgent.id)
    return paginate(s, stmt, page=page, size=size)


def agent_status(s: "Session", principal: Principal) -> list[dict]:
    """Every professor in scope with whether an agent exists for them."""
    ensure_authorized(principal, Policy.ADMIN_OR_ABOVE)
    from app.tutoria.models import User

    stmt = select(User).where(User.user_type == "professor")
    if not principal.is_super_admin:
        stmt = stmt.where(User.university_id == principal.university_id)
    professors = s.execute(stmt.order_by(User.last_name, User.first_name, User.id)).scalars().all()

    agents = {a.professor_id: a for a in s.execute(scoped_select(s, principal, "professor_agent")).scalars().all()}
    out = []
    for prof in professors:
        agent = agents.get(prof.id)
        out.append(
            {
                "professorId": prof.id,
                "professorName": prof.full_name,
                "professorEmail": prof.email,
                "hasAgent": agent is not None,
                "agentId": agent.id if agent else None,
                "agentName": agent.name if agent else None,
                "agentIsActive": agent.is_active if agent else None,
            }
        )
    return out


def update_agent(
    s: "Session",
    principal: Principal,
    agent_id: int,
    *,
    name: str | None = None,
    description: str | None = None,
    system_prompt: str | None = None,
    tutor_language: str | None = None,
) -> ProfessorAgent:
    ensure_authorized(principal, Policy.ADMIN_OR_ABOVE)
    agent = get_in_scope(s, principal, "professor_agent", agent_id)

    changes = {}
    new_name = _required_text(name, "Agent name")
    if new_name is not None and new_name != agent.name:
        changes["name"] = {"old": agent.name, "new": new_name}
        agent.name = new_name
    if description is not None:
        new_description = clean_text(description, "Description")
        if new_description != agent.description:
            changes["description"] = {"old": agent.description, "new": new_description}
            agent.description = new_description
    new_prompt = _required_text(system_prompt, "System prompt")
    if new_prompt is not None and new_prompt != agent.system_prompt:
        changes["system_prompt"] = {"changed": True}
        agent.system_prompt = new_prompt
    new_language = _clean_language(tutor_language)
    if new_language is not None and new_language != agent.tutor_language:
        changes["tutor_language"] = {"old": agent.tutor_language, "new": new_language}
        agent.tutor_language = new_language

    if changes:
        agent.updated_at = utcnow()
        record_event(
            s,
            actor=principal,
            action="professor_agent.edit",
            entity_type="ProfessorAgent",
            entity_id=agent.id,
            metadata={"changes": changes},
        )
        s.flush()
    return agent


def set_agent_active(s: "Session", principal: Principal, agent_id: int, active: bool) -> ProfessorAgent:
    """Only administrators toggle agents; the owning professor can use but not manage theirs."""
    ensure_authorized(principal, Policy.ADMIN_OR_ABOVE)
    agent = get_in_scope(s, principal, "professor_agent", agent_id)
    if agent.is_active == active:
        return agent
    agent.is_active = active
    agent.updated_at = utcnow()
    record_event(
        s,
        actor=principal,
        action="professor_agent.activate" if active else "professor_agent.deactivate",
        entity_type="ProfessorAgent",
        entity_id=agent.id,
    )
    s.flush()
    return agent


def issue_agent_token(
    s: "Session",
    principal: Principal,
    agent_id: int,
    name: str,
    *,
    description: str | None = None,
    allow_chat: bool = True,
    ttl: timedelta | None = None,
    now: datetime | None = None,
) -> "CapabilityToken":
    """Chat token for an agent. Open to the owning professor and administrators in scope."""
    return token_service.issue_token(
        s,
        principal,
        RESOURCE_PROFESSOR_AGENT,
        agent_id,
        name,
        description=description,
        allow_chat=allow_chat,
        allow_file_access=False,
        ttl=ttl,
        now=now,
    )


def list_agent_tokens(
    s: "Session",
    principal: Principal,
    agent_id: int,
    *,
    is_active: bool | None = None,
    page: int | None = None,
    size: int | None = None,
) -> tuple[list["CapabilityToken"], dict]:
    get_agent(s, principal, agent_id)
    return token_service.list_tokens(
        s,
        principal,
        resource_type=RESOURCE_PROFESSOR_AGENT,
        professor_agent_id=agent_id,
        is_active=is_active,
        page=page,
        size=size,
    )
