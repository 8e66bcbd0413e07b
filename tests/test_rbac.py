import pytest

from app.tutoria.errors import AuthenticationError, AuthorizationError
from app.tutoria.principal import ADMIN_PROFESSOR, PROFESSOR, STUDENT, SUPER_ADMIN, Principal, Role
from app.tutoria.rbac import Policy, authorize, can_perform, ensure_authorized


def _p(role, university_id=1):
    return Principal(id=99, role=role, university_id=university_id)


@pytest.mark.parametrize(
    "role, super_only, admin_or_above, professor_or_above",
    [
        (SUPER_ADMIN, True, True, True),
        (ADMIN_PROFESSOR, False, True, True),
        (PROFESSOR, False, False, True),
        (STUDENT, False, False, False),
    ],
)
def test_policy_matrix(role, super_only, admin_or_above, professor_or_above):
    p = _p(role)
    assert authorize(p, Policy.SUPER_ADMIN_ONLY) is super_only
    assert authorize(p, Policy.ADMIN_OR_ABOVE) is admin_or_above
    assert authorize(p, Policy.PROFESSOR_OR_ABOVE) is professor_or_above


def test_api_client_never_passes_a_role_policy():
    client = Principal(id="svc", role=Role.api_client(), scopes=frozenset({"api.admin"}))
    for policy in Policy:
        assert not authorize(client, policy)
    assert not can_perform(client, STUDENT)


def test_missing_principal_is_unauthenticated():
    assert not can_perform(None, STUDENT)
    with pytest.raises(AuthenticationError):
        ensure_authorized(None, Policy.PROFESSOR_OR_ABOVE)


def test_below_threshold_is_forbidden():
    with pytest.raises(AuthorizationError):
        ensure_authorized(_p(PROFESSOR), Policy.ADMIN_OR_ABOVE)
    assert ensure_authorized(_p(ADMIN_PROFESSOR), Policy.ADMIN_OR_ABOVE).role == ADMIN_PROFESSOR
