"""
Principal resolution.

The credential layer (login / JWT minting) is external: by the time a request
reaches us, its claims have already been verified. `resolve_principal` turns
that claim mapping into a typed `Principal` once, at the boundary. Everything
downstream receives the principal explicitly; nothing re-derives the role.

Claim names follow the issued tokens:
    type           "super_admin" | "professor" | "student" | "client"
    user_id / sub  numeric user id (client id string for API clients)
    university_id  tenant id (required for professors and students)
    isAdmin        bool or "true"/"false" (professors only)
    scope          list of scopes or a space separated string (API clients)
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from app.tutoria.errors import AuthenticationError


class RoleKind(str, Enum):
    SUPER_ADMIN = "super_admin"
    PROFESSOR = "professor"
    STUDENT = "student"
    API_CLIENT = "client"


@dataclass(frozen=True)
class Role:
    kind: RoleKind
    is_admin: bool = False

    @classmethod
    def super_admin(cls) -> "Role":
        return cls(RoleKind.SUPER_ADMIN)

    @classmethod
    def professor(cls, is_admin: bool = False) -> "Role":
        return cls(RoleKind.PROFESSOR, is_admin=is_admin)

    @classmethod
    def student(cls) -> "Role":
        return cls(RoleKind.STUDENT)

    @classmethod
    def api_client(cls) -> "Role":
        return cls(RoleKind.API_CLIENT)

    @property
    def rank(self) -> int:
        # SuperAdmin > AdminProfessor > Professor > Student; API clients sit outside the ladder.
        if self.kind is RoleKind.SUPER_ADMIN:
            return 3
        if self.kind is RoleKind.PROFESSOR:
            return 2 if self.is_admin else 1
        if self.kind is RoleKind.STUDENT:
            return 0
        return -1

    @property
    def label(self) -> str:
        if self.kind is RoleKind.PROFESSOR and self.is_admin:
            return "admin_professor"
        return self.kind.value

    def __ge__(self, other: "Role") -> bool:
        return self.rank >= other.rank

    def __gt__(self, other: "Role") -> bool:
        return self.rank > other.rank

    def __le__(self, other: "Role") -> bool:
        return self.rank <= other.rank

    def __lt__(self, other: "Role") -> bool:
        return self.rank < other.rank


SUPER_ADMIN = Role.super_admin()
ADMIN_PROFESSOR = Role.professor(is_admin=True)
PROFESSOR = Role.professor(is_admin=False)
STUDENT = Role.student()
API_CLIENT = Role.api_client()


@dataclass(frozen=True)
class Principal:
    id: int | str
    role: Role
    university_id: int | None = None
    scopes: frozenset[str] = frozenset()
    # Filled lazily by the scope filter (assigned course ids of a non-admin professor).
    _memo: dict = field(default_factory=dict, compare=False, repr=False, hash=False)

    @property
    def user_id(self) -> int | None:
        return self.id if isinstance(self.id, int) else None

    @property
    def is_super_admin(self) -> bool:
        return self.role.kind is RoleKind.SUPER_ADMIN

    @property
    def is_admin_professor(self) -> bool:
        return self.role.kind is RoleKind.PROFESSOR and self.role.is_admin

    @property
    def is_professor(self) -> bool:
        return self.role.kind is RoleKind.PROFESSOR

    @property
    def label(self) -> str:
        return f"{self.role.label}:{self.id}"

    def has_scope(self, scope: str) -> bool:
        return scope in self.scopes


def _claim(claims: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        value = claims.get(name)
        if value is not None and value != "":
            return value
    return None


def _parse_int_claim(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise AuthenticationError(f"Claim {name!r} must be an integer.")
    try:
        return int(str(value).strip())
    except (TypeError, ValueError) as e:
        raise AuthenticationError(f"Claim {name!r} must be an integer.") from e


def _parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() == "true"


def _parse_scopes(value: Any) -> frozenset[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        return frozenset(p for p in value.split() if p)
    return frozenset(str(p) for p in value if p)


def resolve_principal(claims: Mapping[str, Any] | None) -> Principal:
    """Build a Principal from verified claims. Raises AuthenticationError on missing or unknown claims."""
    if not claims:
        raise AuthenticationError("No credentials presented.")

    raw_type = _claim(claims, "type", "user_type")
    if raw_type is None:
        raise AuthenticationError("Missing role claim.")
    try:
        kind = RoleKind(str(raw_type).strip().lower())
    except ValueError as e:
        raise AuthenticationError(f"Unrecognised role claim {raw_type!r}.") from e

    subject = _claim(claims, "user_id", "sub")
    if subject is None:
        raise AuthenticationError("Missing subject claim.")

    scopes = _parse_scopes(_claim(claims, "scope", "scopes"))

    if kind is RoleKind.API_CLIENT:
        return Principal(id=str(subject).strip(), role=Role.api_client(), scopes=scopes)

    user_id = _parse_int_claim(subject, "user_id")
    raw_university = _claim(claims, "university_id")
    university_id = _parse_int_claim(raw_university, "university_id") if raw_university is not None else None

    if kind is RoleKind.SUPER_ADMIN:
        role = Role.super_admin()
    elif kind is RoleKind.PROFESSOR:
        role = Role.professor(is_admin=_parse_flag(_claim(claims, "isAdmin", "is_admin")))
    else:
        role = Role.student()

    if kind is not RoleKind.SUPER_ADMIN and university_id is None:
        raise AuthenticationError(f"A {role.label} principal requires a university_id claim.")

    return Principal(id=user_id, role=role, university_id=university_id, scopes=scopes)
