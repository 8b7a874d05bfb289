"""User management endpoints."""
from fastapi import APIRouter, Depends, Query, Request

from gatehouse.api.deps import get_client_ip, get_current_user, get_user_service, require_role
from gatehouse.models.user import Role, User
from gatehouse.schemas.user import RoleUpdate, StatusUpdate, UserResponse, UserUpdate
from gatehouse.services import rbac
from gatehouse.services.users import UserService

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=list[UserResponse])
def list_users(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    users: UserService = Depends(get_user_service),
    current_user: User = Depends(require_role(Role.MODERATOR)),
):
    """List accounts (moderators and admins)."""
    return users.list_users(skip=skip, limit=limit)


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: str,
    users: UserService = Depends(get_user_service),
    current_user: User = Depends(get_current_user),
):
    rbac.ensure_owner_or_admin(current_user.role, current_user.id, user_id)
    return users.get_user(user_id)


@router.patch("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: str,
    data: UserUpdate,
    users: UserService = Depends(get_user_service),
    current_user: User = Depends(get_current_user),
):
    rbac.ensure_owner_or_admin(current_user.role, current_user.id, user_id)
    user = users.get_user(user_id)
    return users.update_profile(user, current_user, **data.model_dump(exclude_unset=True))


@router.put("/{user_id}/role", response_model=UserResponse)
def change_role(
    user_id: str,
    data: RoleUpdate,
    request: Request,
    users: UserService = Depends(get_user_service),
    current_user: User = Depends(require_role(Role.ADMIN)),
):
    """Assign a role. The target's sessions are revoked."""
    return users.change_role(current_user, user_id, data.role, ip_address=get_client_ip(request))


@router.put("/{user_id}/status", response_model=UserResponse)
def change_status(
    user_id: str,
    data: StatusUpdate,
    request: Request,
    users: UserService = Depends(get_user_service),
    current_user: User = Depends(require_role(Role.ADMIN)),
):
    return users.set_active(current_user, user_id, data.is_active, ip_address=get_client_ip(request))


@router.post("/{user_id}/unlock", response_model=UserResponse)
def unlock_user(
    user_id: str,
    request: Request,
    users: UserService = Depends(get_user_service),
    current_user: User = Depends(require_role(Role.ADMIN)),
):
    return users.unlock(current_user, user_id, ip_address=get_client_ip(request))
