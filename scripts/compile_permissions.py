"""
Rebuild the permission store from the registered resource declarations.

Run this after deployment or whenever resource matrices change:
- Creates database tables if missing
- Creates the default roles
- Clears and recompiles every permission record and role link

Usage:
    python -m scripts.compile_permissions
"""
import asyncio
import sys

from gatekeeper.core.database.engine import AsyncSessionLocal, init_db
from gatekeeper.features.permissions.compiler import PermissionCompiler
from gatekeeper.features.permissions.errors import CompilationError
from gatekeeper.features.permissions.registry import RoleRegistry
from gatekeeper.features.permissions.seed import seed_roles
from gatekeeper.resources import DEFAULT_ROLES, build_resource_registry
from gatekeeper.utils import get_logger


log = get_logger(__name__)


async def main() -> int:
    """Compile permissions; returns the process exit code."""
    log.info("Starting permission compilation...")

    log.info("Initializing database tables...")
    await init_db()

    registry = RoleRegistry()
    resources = build_resource_registry()

    async with AsyncSessionLocal() as db:
        try:
            await seed_roles(db, DEFAULT_ROLES, registry)
            report = await PermissionCompiler(db, registry, resources).compile_all()
        except Exception as e:
            log.error(f"Error compiling permissions: {e}", exc_info=True)
            await db.rollback()
            raise

    for result in report.results:
        log.info(f"  - {result.component}: {result.status} ({result.pairs} pairs)")
        for warning in result.warnings:
            log.warning(f"      {warning}")

    try:
        report.raise_for_failures()
    except CompilationError as e:
        log.error(str(e))
        return 1

    log.info("Permission compilation completed successfully!")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
