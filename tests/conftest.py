"""
Shared fixtures: an app on a temporary SQLite file seeded with two universities.

    University 1                           University 2
      Course 5: Module 42 (files 100, 103)   Course 7: Module 44 (file 102)
      Course 6: Module 43 (file 101)

    super admin 1
    professors  alice 10 (course 5), bob 11 (none), carol 12 (courses 5, 6),
                ada 13 (admin, U1), zed 14 (admin, U2), dave 15 (course 7)
    students    20 (course 5), 21 (course 6), 22 (course 7)
"""
from types import SimpleNamespace

import pytest

from app.tutoria import create_app
from app.tutoria.db import session_scope
from app.tutoria.models import Base, Course, File, Module, ProfessorCourse, StudentCourse, University, User
from app.tutoria.principal import Principal, Role


def _user(uid, username, user_type, university_id=None, is_admin=False):
    return User(
        id=uid,
        username=username,
        email=f"{username}@example.com",
        first_name=username.capitalize(),
        last_name="Tester",
        user_type=user_type,
        university_id=university_id,
        is_admin=is_admin,
        is_active=True,
    )


def seed_tenants(s) -> None:
    s.add_all(
        [
            University(id=1, name="Universidade Um", code="U1"),
            University(id=2, name="Universidade Dois", code="U2"),
        ]
    )
    s.flush()
    s.add_all(
        [
            Course(id=5, name="Algorithms", code="ALG", university_id=1),
            Course(id=6, name="Databases", code="DB", university_id=1),
            Course(id=7, name="Networks", code="NET", university_id=2),
        ]
    )
    s.add_all(
        [
            _user(1, "root", "super_admin"),
            _user(10, "alice", "professor", 1),
            _user(11, "bob", "professor", 1),
            _user(12, "carol", "professor", 1),
            _user(13, "ada", "professor", 1, is_admin=True),
            _user(14, "zed", "professor", 2, is_admin=True),
            _user(15, "dave", "professor", 2),
            _user(20, "sam", "student", 1),
            _user(21, "tess", "student", 1),
            _user(22, "uma", "student", 2),
        ]
    )
    s.flush()
    s.add_all(
        [
            Module(id=42, name="Sorting", code="M42", course_id=5, tutor_language="en"),
            Module(id=43, name="Indexes", code="M43", course_id=6),
            Module(id=44, name="Routing", code="M44", course_id=7),
        ]
    )
    s.flush()
    s.add_all(
        [
            File(id=100, file_name="quicksort.pdf", blob_name="m42/quicksort.pdf", module_id=42, status="completed"),
            File(id=103, file_name="draft.pdf", blob_name="m42/draft.pdf", module_id=42, status="pending"),
            File(id=101, file_name="btree.pdf", blob_name="m43/btree.pdf", module_id=43, status="completed"),
            File(id=102, file_name="bgp.pdf", blob_name="m44/bgp.pdf", module_id=44, status="completed"),
            ProfessorCourse(professor_id=10, course_id=5),
            ProfessorCourse(professor_id=12, course_id=5),
            ProfessorCourse(professor_id=12, course_id=6),
            ProfessorCourse(professor_id=15, course_id=7),
            StudentCourse(student_id=20, course_id=5),
            StudentCourse(student_id=21, course_id=6),
            StudentCourse(student_id=22, course_id=7),
        ]
    )


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    for k in ("TOKEN_MAX_TTL_DAYS", "TOKEN_ISSUE_MAX_ATTEMPTS", "PROFESSOR_COURSE_LIMIT"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    app.config["TESTING"] = True

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        seed_tenants(s)

    yield app
    engine.dispose()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def session(app):
    s = app.extensions["sqlalchemy_sessionmaker"]()
    try:
        yield s
    finally:
        s.rollback()
        s.close()


@pytest.fixture()
def people():
    """Fresh principals per test (the assigned-course memo lives on the principal)."""
    return SimpleNamespace(
        root=Principal(id=1, role=Role.super_admin()),
        alice=Principal(id=10, role=Role.professor(), university_id=1),
        bob=Principal(id=11, role=Role.professor(), university_id=1),
        carol=Principal(id=12, role=Role.professor(), university_id=1),
        ada=Principal(id=13, role=Role.professor(is_admin=True), university_id=1),
        zed=Principal(id=14, role=Role.professor(is_admin=True), university_id=2),
        dave=Principal(id=15, role=Role.professor(), university_id=2),
        sam=Principal(id=20, role=Role.student(), university_id=1),
        client_app=Principal(id="widget-backend", role=Role.api_client(), scopes=frozenset({"api.read"})),
    )


CLAIMS = {
    "root": {"type": "super_admin", "user_id": 1},
    "alice": {"type": "professor", "user_id": 10, "university_id": 1, "isAdmin": False},
    "bob": {"type": "professor", "user_id": 11, "university_id": 1, "isAdmin": False},
    "carol": {"type": "professor", "user_id": 12, "university_id": 1, "isAdmin": "false"},
    "ada": {"type": "professor", "user_id": 13, "university_id": 1, "isAdmin": True},
    "zed": {"type": "professor", "user_id": 14, "university_id": 2, "isAdmin": "true"},
    "sam": {"type": "student", "user_id": 20, "university_id": 1},
}


@pytest.fixture()
def login(client):
    def _login(who: str) -> None:
        with client.session_transaction() as sess:
            sess["claims"] = dict(CLAIMS[who])

    return _login
