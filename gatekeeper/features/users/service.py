"""
Actor role synchronization.

An actor's role links are derived from its ``user_type``: on every change the
existing links are removed and a single link to the matching role is created.
"""
from typing import Optional

from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.core import config
from gatekeeper.features.permissions.models import user_roles
from gatekeeper.features.permissions.registry import RoleRef, RoleRegistry
from gatekeeper.features.users.models import User
from gatekeeper.utils import get_logger


log = get_logger(__name__)


async def sync_actor_roles(db: AsyncSession, registry: RoleRegistry, user: User) -> RoleRef:
    """
    Replace the user's role links with one link to the role named by user_type.

    Raises UnknownRoleError (links left untouched) if no such role exists.
    """
    role_name = user.user_type or config.DEFAULT_ROLE
    role = await registry.get_by_name(db, role_name)

    await db.execute(delete(user_roles).where(user_roles.c.user_id == user.id))
    await db.execute(insert(user_roles).values(user_id=user.id, role_id=role.id))
    await db.flush()
    await db.refresh(user, ["roles"])

    log.info(f"Synchronized roles for user {user.id}: {role_name}")
    return role


async def create_user(
    db: AsyncSession,
    registry: RoleRegistry,
    email: str,
    name: str,
    user_type: Optional[str] = None,
) -> User:
    user = User(email=email, name=name, user_type=user_type or config.DEFAULT_ROLE)
    db.add(user)
    await db.flush()
    await sync_actor_roles(db, registry, user)
    return user


async def set_user_type(db: AsyncSession, registry: RoleRegistry, user: User, user_type: str) -> User:
    """Re-classify ``user`` and re-derive its role links."""
    previous = user.user_type
    # Resolve first so an unknown classification changes nothing.
    await registry.get_by_name(db, user_type)
    user.user_type = user_type
    await sync_actor_roles(db, registry, user)
    if previous != user_type:
        log.info(f"User {user.id} re-classified: {previous} -> {user_type}")
    return user


async def get_user(db: AsyncSession, user_id: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()
