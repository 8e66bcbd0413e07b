import logging

import pytest
from sqlalchemy import select

from app.tutoria.errors import ResourceNotFound, ScopeViolation
from app.tutoria.models import Module, ProfessorCourse, University
from app.tutoria.scoping import (
    assigned_course_ids,
    get_in_scope,
    is_in_scope,
    register_ownership,
    registered_types,
    scope_query,
    scoped_select,
)


def _ids(s, principal, resource_type):
    return sorted(obj.id for obj in s.execute(scoped_select(s, principal, resource_type)).scalars().all())


def test_every_tenant_entity_is_registered():
    assert set(registered_types()) >= {
        "university",
        "course",
        "module",
        "file",
        "student",
        "professor_agent",
        "module_token",
        "agent_token",
    }


def test_registering_twice_is_rejected():
    with pytest.raises(ValueError):
        register_ownership("module", Module, university=("course", "university_id"))


def test_alice_sees_only_course_5(session, people):
    # Alice is assigned to course 5 only; module 43 sits in course 6 of her own university.
    assert _ids(session, people.alice, "module") == [42]
    assert _ids(session, people.alice, "course") == [5]
    assert _ids(session, people.alice, "file") == [100, 103]
    assert _ids(session, people.alice, "student") == [20]

    with pytest.raises(ScopeViolation):
        get_in_scope(session, people.alice, "module", 43)
    with pytest.raises(ScopeViolation):
        get_in_scope(session, people.alice, "module", 44)
    assert get_in_scope(session, people.alice, "module", 42).id == 42


def test_out_of_scope_and_missing_are_both_not_found(session, people):
    with pytest.raises(ResourceNotFound) as out_of_scope:
        get_in_scope(session, people.alice, "course", 7)
    with pytest.raises(ResourceNotFound) as missing:
        get_in_scope(session, people.alice, "course", 999)
    assert type(missing.value) is ResourceNotFound
    assert out_of_scope.value.status_code == missing.value.status_code == 404
    assert out_of_scope.value.to_dict() == missing.value.to_dict()


def test_professor_without_assignments_sees_nothing(session, people):
    assert assigned_course_ids(session, people.bob) == frozenset()
    for resource_type in ("course", "module", "file", "student", "module_token"):
        assert _ids(session, people.bob, resource_type) == []


def test_professor_is_denied_types_without_course_path(session, people):
    assert _ids(session, people.carol, "university") == []
    assert not is_in_scope(session, people.carol, "university", 1)


def test_admin_professor_is_bounded_by_university(session, people):
    assert _ids(session, people.ada, "university") == [1]
    assert _ids(session, people.ada, "course") == [5, 6]
    assert _ids(session, people.ada, "module") == [42, 43]
    assert _ids(session, people.ada, "file") == [100, 101, 103]
    assert _ids(session, people.ada, "student") == [20, 21]
    with pytest.raises(ScopeViolation):
        get_in_scope(session, people.ada, "module", 44)

    assert _ids(session, people.zed, "module") == [44]


def test_super_admin_is_unrestricted(session, people):
    assert _ids(session, people.root, "university") == [1, 2]
    assert _ids(session, people.root, "module") == [42, 43, 44]
    assert _ids(session, people.root, "student") == [20, 21, 22]


def test_student_and_api_client_are_denied(session, people):
    for principal in (people.sam, people.client_app):
        for resource_type in ("university", "course", "module", "file", "student"):
            assert _ids(session, principal, resource_type) == []


def test_student_type_excludes_non_students(session, people):
    # Professors share the users table but are never returned as students.
    with pytest.raises(ResourceNotFound):
        get_in_scope(session, people.root, "student", 10)


def test_scope_query_narrows_an_existing_select(session, people):
    stmt = select(Module).where(Module.code.like("M4%"))
    rows = session.execute(scope_query(session, people.carol, "module", stmt)).scalars().all()
    assert sorted(m.id for m in rows) == [42, 43]

    stmt = select(University)
    assert scope_query(session, people.root, "university", stmt) is stmt


def test_assigned_course_ids_are_loaded_once(session, people):
    first = assigned_course_ids(session, people.carol)
    assert first == frozenset({5, 6})

    session.add(ProfessorCourse(professor_id=12, course_id=7))
    session.flush()
    assert assigned_course_ids(session, people.carol) is first


def test_course_assignment_limit_truncates_with_warning(app, session, people, caplog):
    with app.app_context():
        app.config["PROFESSOR_COURSE_LIMIT"] = 1
        with caplog.at_level(logging.WARNING, logger="app.tutoria.scoping"):
            ids = assigned_course_ids(session, people.carol)
    assert len(ids) == 1
    assert "course assignment limit" in caplog.text
