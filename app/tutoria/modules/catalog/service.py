from __future__ import annotations

from typing import TYPE_CHECKING

from app.tutoria.models import Course, File, Module, StudentCourse, University, User
from app.tutoria.principal import Principal
from app.tutoria.rbac import Policy, ensure_authorized
from app.tutoria.scoping import get_in_scope, scoped_select
from app.tutoria.utils import iso, paginate

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


def _search(stmt, search: str | None, *columns):
    search = (search or "").strip()
    if not search:
        return stmt
    like = f"%{search}%"
    clause = columns[0].ilike(like)
    for col in columns[1:]:
        clause = clause | col.ilike(like)
    return stmt.where(clause)


# ---------- Universities ----------
def list_universities(s: "Session", principal: Principal, *, search: str | None = None, page=None, size=None):
    ensure_authorized(principal, Policy.PROFESSOR_OR_ABOVE)
    stmt = scoped_select(s, principal, "university")
    stmt = _search(stmt, search, University.name, University.code)
    return paginate(s, stmt.order_by(University.name, University.id), page=page, size=size)


def get_university(s: "Session", principal: Principal, university_id: int) -> University:
    ensure_authorized(principal, Policy.PROFESSOR_OR_ABOVE)
    return get_in_scope(s, principal, "university", university_id)


# ---------- Courses ----------
def list_courses(
    s: "Session",
    principal: Principal,
    *,
    university_id: int | None = None,
    search: str | None = None,
    page=None,
    size=None,
):
    ensure_authorized(principal, Policy.PROFESSOR_OR_ABOVE)
    stmt = scoped_select(s, principal, "course")
    if university_id is not None:
        stmt = stmt.where(Course.university_id == university_id)
    stmt = _search(stmt, search, Course.name, Course.code)
    return paginate(s, stmt.order_by(Course.name, Course.id), page=page, size=size)


def get_course(s: "Session", principal: Principal, course_id: int) -> Course:
    ensure_authorized(principal, Policy.PROFESSOR_OR_ABOVE)
    return get_in_scope(s, principal, "course", course_id)


# ---------- Modules ----------
def list_modules(
    s: "Session",
    principal: Principal,
    *,
    course_id: int | None = None,
    search: str | None = None,
    page=None,
    size=None,
):
    ensure_authorized(principal, Policy.PROFESSOR_OR_ABOVE)
    stmt = scoped_select(s, principal, "module")
    if course_id is not None:
        stmt = stmt.where(Module.course_id == course_id)
    stmt = _search(stmt, search, Module.name, Module.code)
    return paginate(s, stmt.order_by(Module.name, Module.id), page=page, size=size)


def get_module(s: "Session", principal: Principal, module_id: int) -> Module:
    ensure_authorized(principal, Policy.PROFESSOR_OR_ABOVE)
    return get_in_scope(s, principal, "module", module_id)


# ---------- Files ----------
def list_files(
    s: "Session",
    principal: Principal,
    *,
    module_id: int | None = None,
    search: str | None = None,
    page=None,
    size=None,
):
    ensure_authorized(principal, Policy.PROFESSOR_OR_ABOVE)
    stmt = scoped_select(s, principal, "file")
    if module_id is not None:
        stmt = stmt.where(File.module_id == module_id)
    stmt = _search(stmt, search, File.file_name)
    return paginate(s, stmt.order_by(File.created_at.desc(), File.id.desc()), page=page, size=size)


def get_file(s: "Session", principal: Principal, file_id: int) -> File:
    ensure_authorized(principal, Policy.PROFESSOR_OR_ABOVE)
    return get_in_scope(s, principal, "file", file_id)


# ---------- Students ----------
def list_students(
    s: "Session",
    principal: Principal,
    *,
    course_id: int | None = None,
    search: str | None = None,
    page=None,
    size=None,
):
    ensure_authorized(principal, Policy.PROFESSOR_OR_ABOVE)
    stmt = scoped_select(s, principal, "student")
    if course_id is not None:
        stmt = stmt.where(User.enrollments.any(StudentCourse.course_id == course_id))
    stmt = _search(stmt, search, User.first_name, User.last_name, User.email)
    return paginate(s, stmt.order_by(User.last_name, User.first_name, User.id), page=page, size=size)


def get_student(s: "Session", principal: Principal, student_id: int) -> User:
    ensure_authorized(principal, Policy.PROFESSOR_OR_ABOVE)
    return get_in_scope(s, principal, "student", student_id)


# ---------- Serialization ----------
def university_to_dict(u: University) -> dict:
    return {
        "id": u.id,
        "name": u.name,
        "code": u.code,
        "description": u.description,
        "createdAt": iso(u.created_at),
        "updatedAt": iso(u.updated_at),
    }


def course_to_dict(c: Course) -> dict:
    return {
        "id": c.id,
        "name": c.name,
        "code": c.code,
        "description": c.description,
        "universityId": c.university_id,
        "createdAt": iso(c.created_at),
        "updatedAt": iso(c.updated_at),
    }


def module_to_dict(m: Module) -> dict:
    return {
        "id": m.id,
        "name": m.name,
        "code": m.code,
        "description": m.description,
        "semester": m.semester,
        "year": m.year,
        "tutorLanguage": m.tutor_language,
        "courseId": m.course_id,
        "createdAt": iso(m.created_at),
        "updatedAt": iso(m.updated_at),
    }


def file_to_dict(f: File) -> dict:
    return {
        "id": f.id,
        "fileName": f.file_name,
        "contentType": f.content_type,
        "size": f.size,
        "status": f.status,
        "moduleId": f.module_id,
        "createdAt": iso(f.created_at),
    }


def student_to_dict(u: User) -> dict:
    return {
        "id": u.id,
        "username": u.username,
        "email": u.email,
        "firstName": u.first_name,
        "lastName": u.last_name,
        "universityId": u.university_id,
        "isActive": u.is_active,
        "courseIds": sorted(e.course_id for e in u.enrollments),
    }
