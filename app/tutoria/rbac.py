from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from functools import wraps
from typing import Any

from flask import g

from app.tutoria.errors import AuthenticationError, AuthorizationError
from app.tutoria.principal import ADMIN_PROFESSOR, PROFESSOR, SUPER_ADMIN, Principal, Role, RoleKind


class Policy(Enum):
    SUPER_ADMIN_ONLY = SUPER_ADMIN
    ADMIN_OR_ABOVE = ADMIN_PROFESSOR
    PROFESSOR_OR_ABOVE = PROFESSOR

    @property
    def minimum_role(self) -> Role:
        return self.value


def can_perform(principal: Principal | None, minimum_role: Role) -> bool:
    if principal is None:
        return False
    # API clients are outside the human role ladder and never pass an "or above" check.
    if principal.role.kind is RoleKind.API_CLIENT:
        return False
    return principal.role >= minimum_role


def authorize(principal: Principal | None, policy: Policy) -> bool:
    return can_perform(principal, policy.minimum_role)


def ensure_authorized(principal: Principal | None, policy: Policy) -> Principal:
    if principal is None:
        raise AuthenticationError()
    if not authorize(principal, policy):
        raise AuthorizationError(f"Requires {policy.name.lower()}.")
    return principal


def current_principal() -> Principal:
    """The principal resolved at the request boundary. Only for use in view functions."""
    principal: Principal | None = getattr(g, "principal", None)
    if principal is None:
        raise AuthenticationError()
    return principal


def require_policy(policy: Policy) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            principal: Principal | None = getattr(g, "principal", None)
            # Unauthenticated -> 401, authenticated but below threshold -> 403.
            if principal is None:
                raise AuthenticationError()
            if not authorize(principal, policy):
                g.missing_policy = policy.name
                raise AuthorizationError(f"Requires {policy.name.lower()}.")
            return fn(*args, **kwargs)

        return wrapped

    return decorator

