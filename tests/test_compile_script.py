"""Tests for the permission compilation command."""

from unittest.mock import AsyncMock

from scripts import compile_permissions

from gatekeeper.features.permissions.compiler import STATUS_FAILED, CompilationReport, CompilationResult
from gatekeeper.features.permissions.components import Component
from gatekeeper.features.permissions.store import PermissionStore


async def test_builds_store_with_default_roles(monkeypatch, session_factory):
    monkeypatch.setattr(compile_permissions, "AsyncSessionLocal", session_factory)
    monkeypatch.setattr(compile_permissions, "init_db", AsyncMock())

    assert await compile_permissions.main() == 0

    async with session_factory() as db:
        snapshot = await PermissionStore(db).snapshot()
    assert ("controller", "PermissionsController", "execute", "admin") in snapshot
    assert ("model", "Books", "read", "guest") in snapshot
    assert not any(entry[1] == "HealthController" for entry in snapshot)


async def test_failures_give_nonzero_exit(monkeypatch, session_factory):
    class FailingCompiler:
        def __init__(self, *args, **kwargs):
            pass

        async def compile_all(self):
            return CompilationReport([CompilationResult(Component.model("Movies"), status=STATUS_FAILED, error="disk full")])

    monkeypatch.setattr(compile_permissions, "AsyncSessionLocal", session_factory)
    monkeypatch.setattr(compile_permissions, "init_db", AsyncMock())
    monkeypatch.setattr(compile_permissions, "PermissionCompiler", FailingCompiler)

    assert await compile_permissions.main() == 1
