import os
import sys
from pathlib import Path

from sqlalchemy import select

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.tutoria.models import Base, Course, Module, ProfessorCourse, University, User  # noqa: E402
from scripts._db_utils import create_script_engine, resolve_database_url, script_session  # noqa: E402


def _ensure_user(s, *, username: str, email: str, user_type: str, **fields) -> User:
    user = s.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if not user:
        user = User(username=username, email=email, user_type=user_type, is_active=True, **fields)
        s.add(user)
        s.flush()
    return user


def _seed_demo(s) -> None:
    """Small demo tenant: one university, course, module and an admin professor assigned to it."""
    uni = s.execute(select(University).where(University.code == "DEMO")).scalar_one_or_none()
    if not uni:
        uni = University(name="Demo University", code="DEMO", description="Seeded demo tenant")
        s.add(uni)
        s.flush()

    course = s.execute(
        select(Course).where(Course.university_id == uni.id, Course.code == "DEMO-101")
    ).scalar_one_or_none()
    if not course:
        course = Course(name="Introduction to Tutoring", code="DEMO-101", university_id=uni.id)
        s.add(course)
        s.flush()

    module = s.execute(
        select(Module).where(Module.course_id == course.id, Module.code == "M1")
    ).scalar_one_or_none()
    if not module:
        s.add(Module(name="Getting Started", code="M1", course_id=course.id, tutor_language="en"))

    prof = _ensure_user(
        s,
        username="demo.admin",
        email="demo.admin@example.com",
        user_type="professor",
        first_name="Demo",
        last_name="Admin",
        university_id=uni.id,
        is_admin=True,
    )
    if s.get(ProfessorCourse, (prof.id, course.id)) is None:
        s.add(ProfessorCourse(professor_id=prof.id, course_id=course.id))


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the super admin user (and optionally a demo tenant) in an idempotent way.
    Credentials live in the external identity layer; only the user row is created here.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@tutoria.local").strip().lower()
    admin_username = (os.environ.get("ADMIN_USERNAME") or "superadmin").strip()
    seed_demo = (os.environ.get("SEED_DEMO") or "").strip() == "1"

    # Direct engine/session so this can run in release without importing app.wsgi.
    with script_session(database_url) as s:
        admin = _ensure_user(
            s,
            username=admin_username,
            email=admin_email,
            user_type="super_admin",
            first_name="Super",
            last_name="Admin",
        )
        if seed_demo:
            _seed_demo(s)
        admin_id = admin.id

    print("Initialized database (seed_only).")
    print(f"Super admin: {admin_email} (user_id={admin_id})")
    if seed_demo:
        print("Demo tenant seeded (university code DEMO).")


def create_tables(*, database_url: str | None = None) -> None:
    """Create every table directly (local development without Alembic)."""
    engine = create_script_engine(resolve_database_url(database_url))
    try:
        Base.metadata.create_all(engine)
    finally:
        engine.dispose()


def main() -> None:
    if "--create-tables" in sys.argv[1:]:
        create_tables(database_url=None)
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
