"""Pytest configuration for async database tests.

Every test gets its own SQLite file, engine and session so tests never share
state. Role and resource registries are built per test as well.
"""

import pytest
import pytest_asyncio

from gatekeeper.core.database.engine import build_engine, build_session_factory, init_db
from gatekeeper.features.permissions.compiler import PermissionCompiler
from gatekeeper.features.permissions.descriptors import ResourceRegistry
from gatekeeper.features.permissions.registry import RoleRegistry
from gatekeeper.features.permissions.seed import seed_roles
from gatekeeper.resources import DEFAULT_ROLES


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Engine bound to a throwaway SQLite file with all tables created."""
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def role_registry():
    return RoleRegistry()


@pytest_asyncio.fixture
async def roles(db, role_registry):
    """The default roles (admin, manager, user, guest) keyed by name."""
    await seed_roles(db, DEFAULT_ROLES)
    return {name: await role_registry.get_by_name(db, name) for name in DEFAULT_ROLES}


@pytest.fixture
def movie_resources():
    """Movies <-> Movie_Quotes, plus the admin-only Permissions resource."""
    registry = ResourceRegistry()
    registry.register_model("Movies", relationships={"quotes": "Movie_Quotes"})
    registry.register_model("Movie_Quotes", relationships={"movie": "Movies"})
    registry.register_model("Permissions", override={"admin": ["*"]}, sensitive=True)
    return registry


@pytest.fixture
def compile_resources(db, role_registry, roles):
    """Run a full compilation for a resource registry and return the report."""

    async def _compile(resources: ResourceRegistry):
        return await PermissionCompiler(db, role_registry, resources).compile_all()

    return _compile
