"""
Idempotent creation of the default roles.
"""
from typing import Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.features.permissions.models import Role
from gatekeeper.features.permissions.registry import RoleRegistry
from gatekeeper.utils import get_logger


log = get_logger(__name__)


async def seed_roles(db: AsyncSession, roles: Dict[str, str], registry: RoleRegistry | None = None) -> List[Role]:
    """
    Create any of ``roles`` (name -> description) that do not exist yet.

    Returns the roles that were created.
    """
    created = []
    for name, description in roles.items():
        result = await db.execute(select(Role).where(Role.name == name))
        if result.scalars().first() is not None:
            log.debug(f"Role '{name}' already exists, skipping")
            continue

        role = Role(name=name, description=description)
        db.add(role)
        created.append(role)
        log.info(f"Created role: {name}")

    await db.commit()
    if created and registry is not None:
        registry.invalidate()
    return created
