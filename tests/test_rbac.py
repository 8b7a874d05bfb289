import pytest

from gatehouse.models.user import Role
from gatehouse.services import rbac
from gatehouse.services.errors import InsufficientRoleError, NotResourceOwnerError


@pytest.mark.parametrize(
    "actual, required, allowed",
    [
        (Role.ADMIN, Role.ADMIN, True),
        (Role.ADMIN, Role.MODERATOR, True),
        (Role.ADMIN, Role.USER, True),
        (Role.MODERATOR, Role.ADMIN, False),
        (Role.MODERATOR, Role.MODERATOR, True),
        (Role.MODERATOR, Role.USER, True),
        (Role.USER, Role.ADMIN, False),
        (Role.USER, Role.MODERATOR, False),
        (Role.USER, Role.USER, True),
    ],
)
def test_has_role_follows_hierarchy(actual, required, allowed):
    assert rbac.has_role(actual, required) is allowed


def test_has_role_accepts_stored_strings():
    assert rbac.has_role("moderator", "user") is True
    assert rbac.has_role("user", "moderator") is False


def test_unknown_role_is_rejected():
    with pytest.raises(ValueError):
        rbac.has_role("superuser", Role.USER)


def test_owner_or_admin_rule():
    assert rbac.can_access_owned(Role.USER, "u1", "u1") is True
    assert rbac.can_access_owned(Role.USER, "u1", "u2") is False
    # Moderator outranks user but is not an owner override
    assert rbac.can_access_owned(Role.MODERATOR, "m1", "u2") is False
    assert rbac.can_access_owned(Role.ADMIN, "a1", "u2") is True


def test_ensure_helpers_raise_typed_errors():
    rbac.ensure_role(Role.ADMIN, Role.MODERATOR)
    rbac.ensure_owner_or_admin(Role.USER, "u1", "u1")

    with pytest.raises(InsufficientRoleError) as role_error:
        rbac.ensure_role(Role.USER, Role.ADMIN)
    assert role_error.value.status_code == 403
    assert role_error.value.message == "Insufficient permissions"

    with pytest.raises(NotResourceOwnerError) as owner_error:
        rbac.ensure_owner_or_admin(Role.MODERATOR, "m1", "u2")
    assert owner_error.value.status_code == 403
