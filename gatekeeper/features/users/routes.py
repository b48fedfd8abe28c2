"""
Actor management routes.
"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.core import config
from gatekeeper.core.database.engine import get_db
from gatekeeper.features.permissions.dependencies import get_role_registry, require_route_permission
from gatekeeper.features.permissions.errors import UnknownRoleError
from gatekeeper.features.permissions.models import Role
from gatekeeper.features.permissions.registry import RoleRegistry
from gatekeeper.features.permissions.schemas import RoleResponse
from gatekeeper.features.users.dependencies import get_current_user
from gatekeeper.features.users.models import User
from gatekeeper.features.users.schemas import UserCreate, UserResponse, UserTypeUpdate
from gatekeeper.features.users.service import create_user, get_user, set_user_type
from gatekeeper.utils import get_logger


log = get_logger(__name__)
router = APIRouter()

USERS_MODEL = {"x-rbac-model": "Users"}
USER_ROLES = {"x-rbac-model": "Users", "x-rbac-relationship": "roles"}


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    """Return the acting user with their roles."""
    return current_user


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_route_permission)],
    openapi_extra=USERS_MODEL,
)
async def create_actor(
    payload: UserCreate,
    db: AsyncSession = Depends(get_db),
    registry: RoleRegistry = Depends(get_role_registry),
):
    """Create an actor; its role link is derived from user_type."""
    try:
        user = await create_user(db, registry, payload.email, payload.name, payload.user_type)
        await db.commit()
    except UnknownRoleError as e:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User with this email already exists"
        )
    return user


@router.get(
    "/{user_id}",
    response_model=UserResponse,
    dependencies=[Depends(require_route_permission)],
    openapi_extra=USERS_MODEL,
)
async def get_actor(user_id: str, db: AsyncSession = Depends(get_db)):
    user = await get_user(db, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.put(
    "/{user_id}/type",
    response_model=UserResponse,
    dependencies=[Depends(require_route_permission)],
    openapi_extra=USERS_MODEL,
)
async def update_actor_type(
    user_id: str,
    payload: UserTypeUpdate,
    db: AsyncSession = Depends(get_db),
    registry: RoleRegistry = Depends(get_role_registry),
):
    """Re-classify an actor and re-derive its role link."""
    user = await get_user(db, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    try:
        await set_user_type(db, registry, user, payload.user_type)
    except UnknownRoleError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    await db.commit()
    return user


async def _load_user(db: AsyncSession, user_id: str) -> User:
    user = await get_user(db, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get(
    "/{user_id}/link/roles",
    response_model=List[RoleResponse],
    dependencies=[Depends(require_route_permission)],
    openapi_extra=USER_ROLES,
)
async def list_actor_roles(user_id: str, db: AsyncSession = Depends(get_db)):
    user = await _load_user(db, user_id)
    return user.roles


@router.put(
    "/{user_id}/link/roles/{related_id}",
    response_model=UserResponse,
    dependencies=[Depends(require_route_permission)],
    openapi_extra=USER_ROLES,
)
async def link_actor_role(
    user_id: str,
    related_id: str,
    db: AsyncSession = Depends(get_db),
    registry: RoleRegistry = Depends(get_role_registry),
):
    """
    Link an actor to a role.

    An actor holds exactly one role, so linking re-classifies it with the
    role's name and replaces the previous link.
    """
    user = await _load_user(db, user_id)
    role = await db.get(Role, related_id)
    if role is None:
        raise HTTPException(status_code=404, detail="Role not found")

    await set_user_type(db, registry, user, role.name)
    await db.commit()
    return user


@router.delete(
    "/{user_id}/link/roles/{related_id}",
    response_model=UserResponse,
    dependencies=[Depends(require_route_permission)],
    openapi_extra=USER_ROLES,
)
async def unlink_actor_role(
    user_id: str,
    related_id: str,
    db: AsyncSession = Depends(get_db),
    registry: RoleRegistry = Depends(get_role_registry),
):
    """Remove a role link; the actor falls back to the default role."""
    user = await _load_user(db, user_id)
    if not any(role.id == related_id for role in user.roles):
        raise HTTPException(status_code=404, detail="Role not linked to user")

    try:
        await set_user_type(db, registry, user, config.DEFAULT_ROLE)
    except UnknownRoleError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    await db.commit()
    return user
