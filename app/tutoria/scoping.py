"""
Tenant scope filter.

Every tenant-owned entity registers its ownership path once: the relationship
hops from the entity to the owning course id and university id (and, for
per-professor resources such as agents, to the owning professor id). Handlers
never write their own tenant filters; they ask for a scoped query here.

    SuperAdmin       unrestricted
    AdminProfessor   resolved university_id == principal.university_id
    Professor        resolved course_id in the assigned courses, or owner == principal
                     (types without a course or owner path are denied outright)
    Student, client  denied (student self-service is a separate surface)

An explicit reference to an out-of-scope resource raises ScopeViolation, which
renders exactly like ResourceNotFound (404) for every entity type.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from flask import current_app, has_app_context
from sqlalchemy import false, or_, select
from sqlalchemy.orm import Session

from app.tutoria.errors import ResourceNotFound, ScopeViolation
from app.tutoria.principal import Principal, RoleKind

logger = logging.getLogger(__name__)

DEFAULT_COURSE_LIMIT = 1000

Q = TypeVar("Q")


@dataclass(frozen=True)
class OwnershipPath:
    resource_type: str
    model: type
    university: tuple[str, ...]
    course: tuple[str, ...] | None = None
    owner: tuple[str, ...] | None = None
    where: Callable[[type], Any] | None = None
    label: str = ""


_REGISTRY: dict[str, OwnershipPath] = {}


def register_ownership(
    resource_type: str,
    model: type,
    *,
    university: tuple[str, ...],
    course: tuple[str, ...] | None = None,
    owner: tuple[str, ...] | None = None,
    where: Callable[[type], Any] | None = None,
    label: str | None = None,
) -> OwnershipPath:
    if resource_type in _REGISTRY:
        raise ValueError(f"Ownership path for {resource_type!r} is already registered.")
    if not university:
        raise ValueError(f"{resource_type!r} must declare a university path.")
    path = OwnershipPath(
        resource_type=resource_type,
        model=model,
        university=tuple(university),
        course=tuple(course) if course else None,
        owner=tuple(owner) if owner else None,
        where=where,
        label=label or resource_type.replace("_", " ").capitalize(),
    )
    _REGISTRY[resource_type] = path
    return path


def ownership_path(resource_type: str) -> OwnershipPath:
    try:
        return _REGISTRY[resource_type]
    except KeyError:
        raise LookupError(f"No ownership path registered for {resource_type!r}.") from None


def registered_types() -> list[str]:
    return sorted(_REGISTRY)


def _path_criterion(model: type, path: tuple[str, ...], predicate: Callable[[Any], Any]):
    head, rest = path[0], path[1:]
    attr = getattr(model, head)
    if not rest:
        return predicate(attr)
    prop = attr.property
    inner = _path_criterion(prop.mapper.class_, rest, predicate)
    return attr.any(inner) if prop.uselist else attr.has(inner)


def _course_limit() -> int:
    if has_app_context():
        return int(current_app.config.get("PROFESSOR_COURSE_LIMIT") or DEFAULT_COURSE_LIMIT)
    return DEFAULT_COURSE_LIMIT


def assigned_course_ids(s: Session, principal: Principal) -> frozenset[int]:
    """Course ids assigned to a professor. Loaded once per principal."""
    cached = principal._memo.get("course_ids")
    if cached is not None:
        return cached

    from app.tutoria.models import ProfessorCourse

    if not principal.is_professor or principal.user_id is None:
        ids: frozenset[int] = frozenset()
    else:
        limit = _course_limit()
        rows = (
            s.execute(
                select(ProfessorCourse.course_id)
                .where(ProfessorCourse.professor_id == principal.user_id)
                .order_by(ProfessorCourse.course_id)
                .limit(limit)
            )
            .scalars()
            .all()
        )
        if len(rows) >= limit:
            logger.warning(
                "Professor %s reached the course assignment limit of %s; results may be truncated.",
                principal.id,
                limit,
            )
        ids = frozenset(rows)
    principal._memo["course_ids"] = ids
    return ids


def scope_criterion(s: Session, principal: Principal, resource_type: str):
    """
    SQL criterion restricting `resource_type` to what the principal may access.
    Returns None when unrestricted.
    """
    path = ownership_path(resource_type)
    model = path.model
    role = principal.role

    if role.kind is RoleKind.SUPER_ADMIN:
        return None

    if role.kind is RoleKind.PROFESSOR and role.is_admin:
        if principal.university_id is None:
            return false()
        tenant = principal.university_id
        return _path_criterion(model, path.university, lambda col: col == tenant)

    if role.kind is RoleKind.PROFESSOR:
        clauses = []
        if path.course is not None:
            course_ids = sorted(assigned_course_ids(s, principal))
            clauses.append(_path_criterion(model, path.course, lambda col: col.in_(course_ids)))
        if path.owner is not None:
            owner_id = principal.user_id
            clauses.append(_path_criterion(model, path.owner, lambda col: col == owner_id))
        if not clauses:
            return false()
        return or_(*clauses) if len(clauses) > 1 else clauses[0]

    return false()


def scope_query(s: Session, principal: Principal, resource_type: str, base_query: Q) -> Q:
    """Narrow a SELECT (or legacy Query) over `resource_type` to the principal's scope."""
    criterion = scope_criterion(s, principal, resource_type)
    if criterion is None:
        return base_query
    return base_query.where(criterion)  # type: ignore[attr-defined]


def scoped_select(s: Session, principal: Principal, resource_type: str):
    """select(<model>) for `resource_type`, already narrowed to the principal's scope."""
    path = ownership_path(resource_type)
    stmt = select(path.model)
    if path.where is not None:
        stmt = stmt.where(path.where(path.model))
    return scope_query(s, principal, resource_type, stmt)


def get_in_scope(s: Session, principal: Principal, resource_type: str, resource_id: int):
    """
    Load one resource by id within the principal's scope.
    Missing -> ResourceNotFound; exists but out of scope -> ScopeViolation (also a 404).
    """
    path = ownership_path(resource_type)
    model = path.model
    obj = s.execute(scoped_select(s, principal, resource_type).where(model.id == resource_id)).scalar_one_or_none()
    if obj is not None:
        return obj

    exists_stmt = select(model.id).where(model.id == resource_id)
    if path.where is not None:
        exists_stmt = exists_stmt.where(path.where(model))
    if s.execute(exists_stmt).first() is None:
        raise ResourceNotFound(f"{path.label} not found.")

    logger.warning(
        "Scope violation: principal=%s resource=%s id=%s",
        principal.label,
        resource_type,
        resource_id,
    )
    raise ScopeViolation(f"{path.label} not found.")


def is_in_scope(s: Session, principal: Principal, resource_type: str, resource_id: int) -> bool:
    model = ownership_path(resource_type).model
    stmt = scoped_select(s, principal, resource_type).where(model.id == resource_id)
    return s.execute(stmt).first() is not None
