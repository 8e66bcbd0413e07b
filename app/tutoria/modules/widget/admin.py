from __future__ import annotations

from flask import Blueprint, request
from sqlalchemy import select

from app.tutoria.db import db_session
from app.tutoria.errors import ResourceNotFound
from app.tutoria.models import File, Module
from app.tutoria.modules.access_tokens.models import RESOURCE_MODULE, RESOURCE_PROFESSOR_AGENT, Capability
from app.tutoria.modules.access_tokens.service import validate_token
from app.tutoria.modules.catalog.service import file_to_dict
from app.tutoria.modules.professor_agents.models import ProfessorAgent
from app.tutoria.utils import iso

bp = Blueprint("widget", __name__, url_prefix="/api/widget")

TOKEN_HEADER = "X-Access-Token"


def _presented_token() -> str | None:
    return request.headers.get(TOKEN_HEADER) or request.args.get("token")


def _access_dict(result) -> dict:
    return {
        "allowChat": result.allow_chat,
        "allowFileAccess": result.allow_file_access,
        "expiresAt": iso(result.expires_at),
    }


@bp.get("/module")
def widget_module():
    s = db_session()
    result = validate_token(s, _presented_token(), Capability.CHAT, resource_type=RESOURCE_MODULE)
    module = s.get(Module, result.resource_id)
    if module is None:
        raise ResourceNotFound("Module not found.")
    s.commit()
    return {
        "module": {
            "id": module.id,
            "name": module.name,
            "code": module.code,
            "description": module.description,
            "tutorLanguage": module.tutor_language,
            "courseId": module.course_id,
            "courseName": module.course.name,
        },
        "access": _access_dict(result),
    }


@bp.get("/files")
def widget_files():
    s = db_session()
    result = validate_token(s, _presented_token(), Capability.FILE_ACCESS, resource_type=RESOURCE_MODULE)
    files = (
        s.execute(
            select(File)
            .where(File.module_id == result.resource_id, File.status == "completed")
            .order_by(File.file_name, File.id)
        )
        .scalars()
        .all()
    )
    s.commit()
    return {"moduleId": result.resource_id, "items": [file_to_dict(f) for f in files]}


@bp.get("/agent")
def widget_agent():
    s = db_session()
    result = validate_token(s, _presented_token(), Capability.CHAT, resource_type=RESOURCE_PROFESSOR_AGENT)
    agent = s.get(ProfessorAgent, result.resource_id)
    s.commit()
    return {
        "agent": {
            "id": agent.id,
            "name": agent.name,
            "description": agent.description,
            "tutorLanguage": agent.tutor_language,
            "professorName": agent.professor.full_name,
        },
        "access": _access_dict(result),
    }
