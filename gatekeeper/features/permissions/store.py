"""
Persisted (component, action) permission records and their role links.
"""
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import select, delete, insert, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.features.permissions.components import Component
from gatekeeper.features.permissions.errors import StoreUnavailableError
from gatekeeper.features.permissions.models import Permission, Role, role_permissions
from gatekeeper.utils import get_logger


log = get_logger(__name__)

# (component_kind, component, action, role_name)
StoreEntry = Tuple[str, str, str, str]


class PermissionStore:
    """
    Thin query layer over ``permissions`` and ``role_permissions``.

    Every database error is re-raised as StoreUnavailableError. The store never
    commits; transaction boundaries belong to the caller.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def clear(self) -> None:
        """Delete every role link and every permission record."""
        try:
            await self.db.execute(delete(role_permissions))
            await self.db.execute(delete(Permission).execution_options(synchronize_session=False))
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Failed to clear permission store: {e}") from e
        log.info("Cleared permission store")

    async def find_permission(self, component: Component, action: str) -> Optional[Permission]:
        try:
            result = await self.db.execute(
                select(Permission).where(
                    and_(
                        Permission.component_kind == component.kind.value,
                        Permission.component == component.name,
                        Permission.action == action,
                    )
                )
            )
            return result.scalars().first()
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Failed to read permission {action} on {component}: {e}") from e

    async def get_or_create_permission(self, component: Component, action: str) -> Permission:
        existing = await self.find_permission(component, action)
        if existing is not None:
            return existing

        permission = Permission(
            component_kind=component.kind.value,
            component=component.name,
            action=action,
            description=f"Auto-generated permission for {action} on {component.name}",
        )
        try:
            self.db.add(permission)
            await self.db.flush()
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Failed to create permission {action} on {component}: {e}") from e

        log.debug(f"Created permission record {action} on {component} ({permission.id})")
        return permission

    async def link(self, permission_id: str, role_id: str) -> bool:
        """
        Link a permission to a role.

        Returns False when the link already exists; that is not an error.
        """
        try:
            result = await self.db.execute(
                select(role_permissions.c.role_id).where(
                    and_(
                        role_permissions.c.role_id == role_id,
                        role_permissions.c.permission_id == permission_id,
                    )
                )
            )
            if result.first() is not None:
                return False
            await self.db.execute(
                insert(role_permissions).values(role_id=role_id, permission_id=permission_id)
            )
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Failed to link permission {permission_id} to role {role_id}: {e}") from e
        return True

    async def role_has_permission(self, role_id: str, component: Component, action: str) -> bool:
        stmt = (
            select(Permission.id)
            .join(role_permissions, role_permissions.c.permission_id == Permission.id)
            .where(
                and_(
                    role_permissions.c.role_id == role_id,
                    Permission.component_kind == component.kind.value,
                    Permission.component == component.name,
                    Permission.action == action,
                )
            )
            .limit(1)
        )
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Failed to check {action} on {component} for role {role_id}: {e}") from e
        return result.first() is not None

    async def list_permissions(
        self,
        component: Optional[str] = None,
        action: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Permission]:
        stmt = select(Permission).order_by(Permission.component_kind, Permission.component, Permission.action)
        if component:
            stmt = stmt.where(Permission.component == component)
        if action:
            stmt = stmt.where(Permission.action == action)
        stmt = stmt.offset(skip).limit(limit)
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Failed to list permissions: {e}") from e
        return list(result.scalars().all())

    async def grants_for_roles(self, role_ids: Iterable[str]) -> Dict[str, List[str]]:
        """Map of "kind:component" -> sorted actions granted to any of ``role_ids``."""
        role_ids = list(role_ids)
        if not role_ids:
            return {}
        stmt = (
            select(Permission.component_kind, Permission.component, Permission.action)
            .join(role_permissions, role_permissions.c.permission_id == Permission.id)
            .where(role_permissions.c.role_id.in_(role_ids))
            .distinct()
        )
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Failed to read grants: {e}") from e

        grants: Dict[str, Set[str]] = {}
        for kind, component, action in result.all():
            grants.setdefault(f"{kind}:{component}", set()).add(action)
        return {key: sorted(actions) for key, actions in grants.items()}

    async def snapshot(self) -> Set[StoreEntry]:
        """
        Content of the store without generated ids; two compilations of the
        same definitions yield equal snapshots.
        """
        stmt = (
            select(Permission.component_kind, Permission.component, Permission.action, Role.name)
            .select_from(Permission)
            .outerjoin(role_permissions, role_permissions.c.permission_id == Permission.id)
            .outerjoin(Role, Role.id == role_permissions.c.role_id)
        )
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Failed to snapshot permission store: {e}") from e
        return {(kind, component, action, role_name or "") for kind, component, action, role_name in result.all()}
