"""Role hierarchy and ownership checks.

The hierarchy is a strict total order, Admin > Moderator > User. It cannot
express capabilities that cut across roles (for example "moderators may
delete comments but not ban users"); that would need a separate permission
model.
"""
from gatehouse.models.user import Role
from gatehouse.services.errors import InsufficientRoleError, NotResourceOwnerError


def has_role(actual: Role | str, required: Role | str) -> bool:
    """True when ``actual`` ranks at or above ``required``."""
    return Role(actual).rank >= Role(required).rank


def can_access_owned(actual_role: Role | str, actual_id, owner_id) -> bool:
    """Owner-or-admin rule for mutating a user's own resources."""
    return Role(actual_role) is Role.ADMIN or actual_id == owner_id


def ensure_role(actual: Role | str, required: Role | str) -> None:
    if not has_role(actual, required):
        raise InsufficientRoleError(reason=f"{Role(actual).value} below {Role(required).value}")


def ensure_owner_or_admin(actual_role: Role | str, actual_id, owner_id) -> None:
    if not can_access_owned(actual_role, actual_id, owner_id):
        raise NotResourceOwnerError(
            "Access denied: you can only access your own resources",
            reason="not owner",
        )
