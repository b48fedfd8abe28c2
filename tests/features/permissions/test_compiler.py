"""Tests for permission compilation into the store."""

import logging

import pytest
from sqlalchemy.exc import OperationalError

from gatekeeper.features.permissions.authorization import AuthorizationEngine
from gatekeeper.features.permissions.compiler import (
    STATUS_FAILED,
    STATUS_OK,
    STATUS_PARTIAL,
    STATUS_SKIPPED,
    PermissionCompiler,
)
from gatekeeper.features.permissions.components import Component
from gatekeeper.features.permissions.descriptors import ResourceRegistry
from gatekeeper.features.permissions.errors import CompilationError, StoreUnavailableError
from gatekeeper.features.permissions.store import PermissionStore
from gatekeeper.features.users.service import create_user


def _entries_for(snapshot, component):
    return {entry for entry in snapshot if entry[1] == component}


class TestCompileAll:
    async def test_default_matrix_is_materialized(self, db, movie_resources, compile_resources):
        report = await compile_resources(movie_resources)

        assert report.ok
        movies = report.get(Component.model("Movies"))
        # admin 5 + manager 5 + user 5 + guest 0
        assert movies.status == STATUS_OK
        assert movies.pairs == 15

        snapshot = await PermissionStore(db).snapshot()
        movie_entries = _entries_for(snapshot, "Movies")
        assert ("model", "Movies", "delete", "user") in movie_entries
        assert not any(entry[3] == "guest" for entry in movie_entries)

    async def test_records_are_deduplicated(self, db, movie_resources, compile_resources):
        await compile_resources(movie_resources)

        records = await PermissionStore(db).list_permissions(component="Movies", limit=1000)

        assert sorted(record.action for record in records) == ["create", "delete", "list", "read", "update"]

    async def test_compile_all_is_idempotent(self, db, movie_resources, compile_resources):
        await compile_resources(movie_resources)
        first = await PermissionStore(db).snapshot()

        await compile_resources(movie_resources)
        second = await PermissionStore(db).snapshot()

        assert first == second
        assert len(first) > 0

    async def test_recompile_drops_stale_permissions(self, db, roles, role_registry, compile_resources):
        before = ResourceRegistry()
        before.register_model("Movies")
        await compile_resources(before)

        after = ResourceRegistry()
        after.register_model("Books")
        await compile_resources(after)

        snapshot = await PermissionStore(db).snapshot()
        assert _entries_for(snapshot, "Movies") == set()
        assert _entries_for(snapshot, "Books")

    async def test_override_replaces_default_actions(self, db, roles, compile_resources):
        resources = ResourceRegistry()
        resources.register_model("Movies", override={"user": ["read"]})
        await compile_resources(resources)

        engine = AuthorizationEngine(db)

        assert await engine.decide("Movies", "create", [roles["user"]]) is False
        assert await engine.decide("Movies", "read", [roles["user"]]) is True
        assert await engine.decide("Movies", "create", [roles["manager"]]) is True

    async def test_malformed_override_keeps_default(self, db, roles, compile_resources, caplog):
        resources = ResourceRegistry()
        resources.register_model("Movies", override={"user": "read"})

        with caplog.at_level(logging.WARNING):
            report = await compile_resources(resources)

        result = report.get(Component.model("Movies"))
        assert result.status == STATUS_PARTIAL
        assert result.warnings
        assert report.ok
        assert await AuthorizationEngine(db).decide("Movies", "delete", [roles["user"]]) is True
        assert any("Invalid override" in record.message for record in caplog.records)

    async def test_unknown_role_only_affects_its_resource(self, db, roles, compile_resources, caplog):
        resources = ResourceRegistry()
        resources.register_model("Movies", override={"auditor": ["read"]})
        resources.register_model("Books")

        with caplog.at_level(logging.WARNING):
            report = await compile_resources(resources)

        movies = report.get(Component.model("Movies"))
        books = report.get(Component.model("Books"))
        assert movies.status == STATUS_PARTIAL
        assert "auditor" in movies.warnings[0]
        assert movies.pairs == 15
        assert books.status == STATUS_OK
        assert report.ok
        assert report.partial == [movies]
        assert await AuthorizationEngine(db).decide("Movies", "read", [roles["user"]]) is True

    async def test_sensitive_resource_is_admin_only(self, db, roles, movie_resources, compile_resources):
        await compile_resources(movie_resources)
        engine = AuthorizationEngine(db)

        assert await engine.decide("Permissions", "list", [roles["user"]]) is False
        assert await engine.decide("Permissions", "list", [roles["manager"]]) is False
        assert await engine.decide("Permissions", "list", [roles["admin"]]) is True

    async def test_persistence_failure_aborts_only_that_resource(self, db, roles, role_registry):
        resources = ResourceRegistry()
        resources.register_model("Movies")
        resources.register_model("Books")
        compiler = PermissionCompiler(db, role_registry, resources)

        real_get_or_create = compiler.store.get_or_create_permission

        async def failing_get_or_create(component, action):
            # Fail part-way through Movies so some rows were already written
            if component.name == "Movies" and action == "delete":
                raise StoreUnavailableError("disk full")
            return await real_get_or_create(component, action)

        compiler.store.get_or_create_permission = failing_get_or_create

        report = await compiler.compile_all()

        movies = report.get(Component.model("Movies"))
        assert movies.status == STATUS_FAILED
        assert "disk full" in movies.error
        assert report.get(Component.model("Books")).status == STATUS_OK
        assert not report.ok
        assert report.failed == [movies]

        snapshot = await PermissionStore(db).snapshot()
        assert _entries_for(snapshot, "Movies") == set()
        assert _entries_for(snapshot, "Books")

        with pytest.raises(CompilationError) as exc_info:
            report.raise_for_failures()
        assert exc_info.value.report is report


class TestRebuildIsolation:
    async def test_failed_commit_can_be_retried(
        self, db, roles, role_registry, session_factory, movie_resources, monkeypatch
    ):
        async def locked_commit():
            raise OperationalError("COMMIT", None, Exception("database is locked"))

        monkeypatch.setattr(db, "commit", locked_commit)
        with pytest.raises(StoreUnavailableError):
            await PermissionCompiler(db, role_registry, movie_resources).compile_all()

        # Roles cached before the rollback stay usable from a new session
        async with session_factory() as retry:
            report = await PermissionCompiler(retry, role_registry, movie_resources).compile_all()
            user = await create_user(retry, role_registry, "after@example.com", "After", "manager")
            await retry.commit()

            assert report.ok
            assert [role.name for role in user.roles] == ["manager"]
            assert await AuthorizationEngine(retry).decide("Movies", "update", user.roles) is True

    async def test_readers_see_previous_store_during_rebuild(
        self, db, roles, role_registry, session_factory, movie_resources, compile_resources
    ):
        await compile_resources(movie_resources)
        compiler = PermissionCompiler(db, role_registry, movie_resources)
        real_link = compiler.store.link
        observed = []

        async def link_and_read(permission_id, role_id):
            if not observed:
                # The rebuild has cleared the store but not committed yet
                async with session_factory() as reader:
                    observed.append(await AuthorizationEngine(reader).decide("Movies", "read", [roles["user"]]))
                observed.append(await AuthorizationEngine(db).decide("Movies", "read", [roles["user"]]))
            return await real_link(permission_id, role_id)

        compiler.store.link = link_and_read
        report = await compiler.compile_all()

        assert report.ok
        assert observed == [True, False]
        assert await AuthorizationEngine(db).decide("Movies", "read", [roles["user"]]) is True


class TestControllers:
    async def test_controller_without_matrix_is_skipped(self, db, roles, compile_resources):
        resources = ResourceRegistry()
        resources.register_controller("HealthController", {})

        report = await compile_resources(resources)

        result = report.get(Component.controller("HealthController"))
        assert result.status == STATUS_SKIPPED
        assert result.pairs == 0
        assert report.ok

    async def test_controller_matrix_is_taken_verbatim(self, db, roles, compile_resources):
        resources = ResourceRegistry()
        resources.register_controller("AuthController", {"user": ["me", "logout"], "guest": ["read"]})

        report = await compile_resources(resources)
        engine = AuthorizationEngine(db)
        auth = Component.controller("AuthController")

        assert report.get(auth).pairs == 3
        assert await engine.decide(auth, "me", [roles["user"]]) is True
        assert await engine.decide(auth, "read", [roles["user"]]) is False
        # No defaults are merged in for controllers
        assert await engine.decide(auth, "me", [roles["admin"]]) is False

    async def test_controller_wildcard_grants_execute(self, db, roles, compile_resources):
        resources = ResourceRegistry()
        resources.register_controller("PermissionsController", {"admin": ["*"], "manager": ["check"]})

        await compile_resources(resources)
        engine = AuthorizationEngine(db)
        controller = Component.controller("PermissionsController")

        assert await engine.decide(controller, "execute", [roles["admin"]]) is True
        assert await engine.decide(controller, "check", [roles["admin"]]) is True
        assert await engine.decide(controller, "execute", [roles["manager"]]) is False

    async def test_model_and_controller_names_do_not_collide(self, db, roles, compile_resources):
        resources = ResourceRegistry()
        resources.register_model("Movies", override={"user": []})
        resources.register_controller("Movies", {"user": ["read"]})

        await compile_resources(resources)
        engine = AuthorizationEngine(db)

        assert await engine.decide(Component.controller("Movies"), "read", [roles["user"]]) is True
        assert await engine.decide(Component.model("Movies"), "read", [roles["user"]]) is False


class TestSingleResource:
    async def test_compile_resource_returns_pair_count(self, db, roles, role_registry):
        resources = ResourceRegistry()
        resources.register_model("Movies", override={"user": ["read"]})
        compiler = PermissionCompiler(db, role_registry, resources)

        assert await compiler.compile_resource("Movies") == 11

    async def test_compile_resource_twice_links_idempotently(self, db, roles, role_registry):
        resources = ResourceRegistry()
        resources.register_model("Movies")
        compiler = PermissionCompiler(db, role_registry, resources)

        await compiler.compile_resource("Movies")
        first = await PermissionStore(db).snapshot()
        await compiler.compile_resource("Movies")
        second = await PermissionStore(db).snapshot()

        assert first == second

    async def test_compile_unknown_resource_raises(self, db, roles, role_registry):
        compiler = PermissionCompiler(db, role_registry, ResourceRegistry())

        with pytest.raises(CompilationError):
            await compiler.compile_resource("Nope")
        with pytest.raises(CompilationError):
            await compiler.compile_controller("Nope")

    async def test_compile_empty_controller_returns_zero(self, db, roles, role_registry):
        resources = ResourceRegistry()
        resources.register_controller("HealthController")
        compiler = PermissionCompiler(db, role_registry, resources)

        assert await compiler.compile_controller("HealthController") == 0
