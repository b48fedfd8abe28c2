"""Tests for the permission store query layer."""

from gatekeeper.features.permissions.components import Component
from gatekeeper.features.permissions.store import PermissionStore


MOVIES = Component.model("Movies")


async def test_get_or_create_reuses_existing_record(db, roles):
    store = PermissionStore(db)

    first = await store.get_or_create_permission(MOVIES, "read")
    second = await store.get_or_create_permission(MOVIES, "read")

    assert first.id == second.id
    assert len(await store.list_permissions(component="Movies")) == 1


async def test_same_name_different_kind_are_separate_records(db, roles):
    store = PermissionStore(db)

    model = await store.get_or_create_permission(MOVIES, "read")
    controller = await store.get_or_create_permission(Component.controller("Movies"), "read")

    assert model.id != controller.id


async def test_link_is_idempotent(db, roles):
    store = PermissionStore(db)
    permission = await store.get_or_create_permission(MOVIES, "update")

    assert await store.link(permission.id, roles["manager"].id) is True
    assert await store.link(permission.id, roles["manager"].id) is False
    assert await store.role_has_permission(roles["manager"].id, MOVIES, "update") is True
    assert await store.role_has_permission(roles["user"].id, MOVIES, "update") is False


async def test_grants_for_roles(db, roles):
    store = PermissionStore(db)
    for action in ("read", "list"):
        permission = await store.get_or_create_permission(MOVIES, action)
        await store.link(permission.id, roles["user"].id)
    controller = await store.get_or_create_permission(Component.controller("AuthController"), "me")
    await store.link(controller.id, roles["guest"].id)

    grants = await store.grants_for_roles([roles["user"].id, roles["guest"].id])

    assert grants == {
        "model:Movies": ["list", "read"],
        "controller:AuthController": ["me"],
    }
    assert await store.grants_for_roles([]) == {}


async def test_snapshot_and_clear(db, roles):
    store = PermissionStore(db)
    linked = await store.get_or_create_permission(MOVIES, "delete")
    await store.link(linked.id, roles["admin"].id)
    await store.get_or_create_permission(MOVIES, "list")

    assert await store.snapshot() == {
        ("model", "Movies", "delete", "admin"),
        ("model", "Movies", "list", ""),
    }

    await store.clear()

    assert await store.snapshot() == set()
    assert await store.role_has_permission(roles["admin"].id, MOVIES, "delete") is False
