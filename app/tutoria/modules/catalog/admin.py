from __future__ import annotations

from flask import Blueprint, request

from app.tutoria.db import db_session
from app.tutoria.modules.catalog import service as catalog
from app.tutoria.rbac import Policy, current_principal, require_policy
from app.tutoria.utils import page_args, page_response, parse_int

bp = Blueprint("catalog", __name__, url_prefix="/api")


def _search() -> str | None:
    return (request.args.get("search") or request.args.get("q") or "").strip() or None


# ---------- Universities ----------
@bp.get("/universities")
@require_policy(Policy.PROFESSOR_OR_ABOVE)
def universities_list():
    page, size = page_args(request.args)
    rows, meta = catalog.list_universities(db_session(), current_principal(), search=_search(), page=page, size=size)
    return page_response([catalog.university_to_dict(u) for u in rows], meta)


@bp.get("/universities/<int:university_id>")
@require_policy(Policy.PROFESSOR_OR_ABOVE)
def university_detail(university_id: int):
    u = catalog.get_university(db_session(), current_principal(), university_id)
    return catalog.university_to_dict(u)


# ---------- Courses ----------
@bp.get("/courses")
@require_policy(Policy.PROFESSOR_OR_ABOVE)
def courses_list():
    page, size = page_args(request.args)
    rows, meta = catalog.list_courses(
        db_session(),
        current_principal(),
        university_id=parse_int(request.args.get("universityId")),
        search=_search(),
        page=page,
        size=size,
    )
    return page_response([catalog.course_to_dict(c) for c in rows], meta)


@bp.get("/courses/<int:course_id>")
@require_policy(Policy.PROFESSOR_OR_ABOVE)
def course_detail(course_id: int):
    c = catalog.get_course(db_session(), current_principal(), course_id)
    return catalog.course_to_dict(c)


# ---------- Modules ----------
@bp.get("/modules")
@require_policy(Policy.PROFESSOR_OR_ABOVE)
def modules_list():
    page, size = page_args(request.args)
    rows, meta = catalog.list_modules(
        db_session(),
        current_principal(),
        course_id=parse_int(request.args.get("courseId")),
        search=_search(),
        page=page,
        size=size,
    )
    return page_response([catalog.module_to_dict(m) for m in rows], meta)


@bp.get("/modules/<int:module_id>")
@require_policy(Policy.PROFESSOR_OR_ABOVE)
def module_detail(module_id: int):
    m = catalog.get_module(db_session(), current_principal(), module_id)
    return catalog.module_to_dict(m)


# ---------- Files ----------
@bp.get("/files")
@require_policy(Policy.PROFESSOR_OR_ABOVE)
def files_list():
    page, size = page_args(request.args)
    rows, meta = catalog.list_files(
        db_session(),
        current_principal(),
        module_id=parse_int(request.args.get("moduleId")),
        search=_search(),
        page=page,
        size=size,
    )
    return page_response([catalog.file_to_dict(f) for f in rows], meta)


@bp.get("/files/<int:file_id>")
@require_policy(Policy.PROFESSOR_OR_ABOVE)
def file_detail(file_id: int):
    f = catalog.get_file(db_session(), current_principal(), file_id)
    return catalog.file_to_dict(f)


# ---------- Students ----------
@bp.get("/students")
@require_policy(Policy.PROFESSOR_OR_ABOVE)
def students_list():
    page, size = page_args(request.args)
    rows, meta = catalog.list_students(
        db_session(),
        current_principal(),
        course_id=parse_int(request.args.get("courseId")),
        search=_search(),
        page=page,
        size=size,
    )
    return page_response([catalog.student_to_dict(u) for u in rows], meta)


@bp.get("/students/<int:student_id>")
@require_policy(Policy.PROFESSOR_OR_ABOVE)
def student_detail(student_id: int):
    u = catalog.get_student(db_session(), current_principal(), student_id)
    return catalog.student_to_dict(u)
