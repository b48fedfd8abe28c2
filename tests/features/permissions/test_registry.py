"""Tests for cached role lookup."""

import pytest
from sqlalchemy import delete

from gatekeeper.features.permissions.errors import UnknownRoleError
from gatekeeper.features.permissions.models import Role


async def test_get_by_name_returns_role(db, roles, role_registry):
    role = await role_registry.get_by_name(db, "manager")

    assert role.name == "manager"
    assert role.id == roles["manager"].id


async def test_unknown_role_raises(db, roles, role_registry):
    with pytest.raises(UnknownRoleError) as exc_info:
        await role_registry.get_by_name(db, "auditor")

    assert exc_info.value.role_name == "auditor"
    assert "auditor" not in role_registry


async def test_lookup_is_cached_until_invalidated(db, roles, role_registry):
    await role_registry.get_by_name(db, "guest")
    await db.execute(delete(Role).where(Role.name == "guest"))
    await db.commit()

    # Served from the cache even though the row is gone
    assert (await role_registry.get_by_name(db, "guest")).name == "guest"

    role_registry.invalidate("guest")
    with pytest.raises(UnknownRoleError):
        await role_registry.get_by_name(db, "guest")


async def test_invalidate_all(db, roles, role_registry):
    assert "admin" in role_registry

    role_registry.invalidate()

    assert "admin" not in role_registry


async def test_cached_roles_survive_rollback(db, roles, role_registry, session_factory):
    cached = await role_registry.get_by_name(db, "user")
    await db.rollback()

    assert cached.name == "user"
    async with session_factory() as other:
        role = await role_registry.get_by_name(other, "user")
        stored = await other.get(Role, role.id)

    assert role == cached
    assert stored.name == "user"
