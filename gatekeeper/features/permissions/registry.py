"""
Cached role lookup by name.
"""
from dataclasses import dataclass
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.features.permissions.errors import StoreUnavailableError, UnknownRoleError
from gatekeeper.features.permissions.models import Role
from gatekeeper.utils import get_logger


log = get_logger(__name__)


@dataclass(frozen=True)
class RoleRef:
    """
    Plain copy of a role's identity.

    Cached entries outlive the session that loaded them, so they must not be
    ORM instances: a rollback in that session would expire them.
    """
    id: str
    name: str


class RoleRegistry:
    """
    Role lookups with a process-local cache.

    Only successful lookups are cached. Anything that renames or deletes a role
    must call ``invalidate()``.
    """

    def __init__(self):
        self._roles: Dict[str, RoleRef] = {}

    async def get_by_name(self, db: AsyncSession, name: str) -> RoleRef:
        cached = self._roles.get(name)
        if cached is not None:
            return cached

        try:
            result = await db.execute(select(Role.id, Role.name).where(Role.name == name))
            row = result.first()
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Failed to look up role {name!r}: {e}") from e

        if row is None:
            raise UnknownRoleError(name)

        role = RoleRef(id=row.id, name=row.name)
        self._roles[name] = role
        log.debug(f"Retrieved and cached role '{name}' ({role.id})")
        return role

    def invalidate(self, name: Optional[str] = None) -> None:
        if name is None:
            self._roles.clear()
            log.info("Role cache cleared")
        else:
            self._roles.pop(name, None)
            log.info(f"Role '{name}' evicted from cache")

    def __contains__(self, name: str) -> bool:
        return name in self._roles
