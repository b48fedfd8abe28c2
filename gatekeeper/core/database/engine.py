"""
Async engine and session factories for the permission store.

SQLite via aiosqlite by default; any SQLAlchemy async URL works.

Permission compilation writes each resource inside a SAVEPOINT. pysqlite/aiosqlite
emit their own BEGIN lazily, which breaks SAVEPOINT handling, so for SQLite the
engine turns that off and issues BEGIN itself.
"""
from collections.abc import AsyncGenerator
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from gatekeeper.core import config


def build_engine(url: str) -> AsyncEngine:
    """
    Create an async engine for ``url``.

    SQLite engines get NullPool and explicit BEGIN handling so nested
    transactions behave the same as on PostgreSQL.
    """
    is_sqlite = url.startswith("sqlite")
    new_engine = create_async_engine(
        url,
        # NullPool for SQLite to avoid connection pool issues
        poolclass=NullPool if is_sqlite else None,
        echo=False,  # Set to True for SQL query logging during development
        future=True,
    )

    if is_sqlite:
        @event.listens_for(new_engine.sync_engine, "connect")
        def _disable_driver_begin(dbapi_connection, _connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(new_engine.sync_engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return new_engine


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


engine = build_engine(config.SQLALCHEMY_DATABASE_URL)
AsyncSessionLocal = build_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session. Commits when the handler returns, rolls back if it
    raises.

    Usage in FastAPI routes:
        @router.get("/roles")
        async def list_roles(db: AsyncSession = Depends(get_db)):
            result = await db.execute(select(Role))
            return result.scalars().all()
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db(bind: AsyncEngine | None = None):
    """
    Create every table on ``bind`` (the module engine by default).
    """
    from gatekeeper.core.database.base import Base

    # Import all models to ensure they're registered with SQLAlchemy
    from gatekeeper.features.users.models import User  # noqa: F401
    from gatekeeper.features.permissions.models import Permission, Role  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
