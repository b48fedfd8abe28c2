"""
Materializes declarative permission matrices into the permission store.

A full run (``compile_all``) clears and rebuilds the store inside one
transaction. Each resource is written under its own SAVEPOINT: a persistence
failure rolls back that resource only and is recorded in the report, and
other resources keep compiling. Concurrent readers see the previous store
until the rebuild commits.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.features.permissions.components import Component
from gatekeeper.features.permissions.descriptors import ResourceRegistry
from gatekeeper.features.permissions.errors import (
    CompilationError,
    ConfigurationError,
    StoreUnavailableError,
    UnknownRoleError,
)
from gatekeeper.features.permissions.matrix import CANONICAL_ACTIONS, PermissionMatrixResolver, RoleActionMap
from gatekeeper.features.permissions.registry import RoleRegistry
from gatekeeper.features.permissions.store import PermissionStore
from gatekeeper.utils import get_logger


log = get_logger(__name__)

STATUS_OK = "ok"
STATUS_PARTIAL = "partial"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"


@dataclass
class CompilationResult:
    component: Component
    status: str = STATUS_OK
    pairs: int = 0
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status != STATUS_FAILED

    def as_dict(self) -> Dict[str, Any]:
        return {
            "component": self.component.name,
            "kind": self.component.kind.value,
            "status": self.status,
            "pairs": self.pairs,
            "warnings": list(self.warnings),
            "error": self.error,
        }


@dataclass
class CompilationReport:
    results: List[CompilationResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(result.succeeded for result in self.results)

    @property
    def failed(self) -> List[CompilationResult]:
        return [result for result in self.results if result.status == STATUS_FAILED]

    @property
    def partial(self) -> List[CompilationResult]:
        return [result for result in self.results if result.status == STATUS_PARTIAL]

    @property
    def total_pairs(self) -> int:
        return sum(result.pairs for result in self.results)

    def get(self, component: Component) -> Optional[CompilationResult]:
        for result in self.results:
            if result.component == component:
                return result
        return None

    def raise_for_failures(self) -> None:
        if self.failed:
            names = ", ".join(str(result.component) for result in self.failed)
            raise CompilationError(f"Permission compilation failed for: {names}", report=self)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "total_pairs": self.total_pairs,
            "results": [result.as_dict() for result in self.results],
        }


class PermissionCompiler:
    def __init__(
        self,
        db: AsyncSession,
        roles: RoleRegistry,
        resources: ResourceRegistry,
        resolver: Optional[PermissionMatrixResolver] = None,
    ):
        self.db = db
        self.roles = roles
        self.resources = resources
        self.resolver = resolver or PermissionMatrixResolver()
        self.store = PermissionStore(db)

    async def compile_all(self) -> CompilationReport:
        """
        Clear the store and rebuild it from every registered resource and
        controller. Commits once at the end.

        Raises StoreUnavailableError only when the store cannot be cleared or
        the rebuild cannot be committed; the transaction is rolled back and the
        previous contents stay in place.
        """
        log.info(
            f"Starting permission build for {len(self.resources.models())} models "
            f"and {len(self.resources.controllers())} controllers"
        )
        report = CompilationReport()

        try:
            await self.store.clear()
        except StoreUnavailableError:
            await self.db.rollback()
            log.error("Failed to clear existing permissions", exc_info=True)
            raise

        for descriptor in self.resources.models():
            report.results.append(await self._compile_model_result(descriptor.name))

        for descriptor in self.resources.controllers():
            report.results.append(await self._compile_controller_result(descriptor.name))

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreUnavailableError(f"Failed to commit compiled permissions: {e}") from e

        if report.ok:
            log.info(f"Successfully built all permissions: {report.total_pairs} role/action pairs")
        else:
            log.error(
                f"Permission build finished with failures: "
                f"{[str(result.component) for result in report.failed]}"
            )
        return report

    async def compile_resource(self, resource_id: str) -> int:
        """
        Compile one model resource without clearing the store.

        Returns the number of (role, action) pairs processed. Raises
        CompilationError if the resource is unknown or could not be written.
        """
        result = await self._compile_model_result(resource_id)
        if not result.succeeded:
            raise CompilationError(result.error or f"Failed to compile {resource_id}", report=CompilationReport([result]))
        return result.pairs

    async def compile_controller(self, controller_id: str) -> int:
        result = await self._compile_controller_result(controller_id)
        if not result.succeeded:
            raise CompilationError(result.error or f"Failed to compile {controller_id}", report=CompilationReport([result]))
        return result.pairs

    async def _compile_model_result(self, resource_id: str) -> CompilationResult:
        component = Component.model(resource_id)
        result = CompilationResult(component)

        descriptor = self.resources.get_model(resource_id)
        if descriptor is None:
            result.status = STATUS_FAILED
            result.error = f"Unknown model resource: {resource_id}"
            log.error(result.error)
            return result

        issues: List[ConfigurationError] = []
        matrix = self.resolver.resolve(descriptor.defaults, descriptor.override, resource_id, issues)
        result.warnings.extend(str(issue) for issue in issues)

        await self._write_matrix(component, matrix, list(CANONICAL_ACTIONS), result)
        return result

    async def _compile_controller_result(self, controller_id: str) -> CompilationResult:
        component = Component.controller(controller_id)
        result = CompilationResult(component)

        descriptor = self.resources.get_controller(controller_id)
        if descriptor is None:
            result.status = STATUS_FAILED
            result.error = f"Unknown controller: {controller_id}"
            log.error(result.error)
            return result

        if not descriptor.roles_and_actions:
            log.debug(f"Controller {controller_id} declares no permission matrix, skipping")
            result.status = STATUS_SKIPPED
            return result

        # Controllers declare their matrix outright; there are no defaults to merge.
        issues: List[ConfigurationError] = []
        matrix = self.resolver.resolve({}, descriptor.roles_and_actions, controller_id, issues)
        result.warnings.extend(str(issue) for issue in issues)

        wildcard_actions = self.resolver.controller_actions(matrix)
        await self._write_matrix(component, matrix, wildcard_actions, result)
        return result

    async def _write_matrix(
        self,
        component: Component,
        matrix: RoleActionMap,
        wildcard_actions: List[str],
        result: CompilationResult,
    ) -> None:
        log.debug(f"Building permissions for {component}")
        pairs = 0
        try:
            async with self.db.begin_nested():
                for role_name, actions in matrix.items():
                    try:
                        role = await self.roles.get_by_name(self.db, role_name)
                    except UnknownRoleError as e:
                        log.warning(f"Skipping role '{role_name}' for {component}: {e}")
                        result.warnings.append(str(e))
                        continue

                    for action in self.resolver.expand_wildcard(actions, wildcard_actions):
                        permission = await self.store.get_or_create_permission(component, action)
                        await self.store.link(permission.id, role.id)
                        pairs += 1
        except (StoreUnavailableError, SQLAlchemyError) as e:
            result.status = STATUS_FAILED
            result.pairs = 0
            result.error = str(e)
            log.error(f"Failed to build permissions for {component}: {e}")
            return

        result.pairs = pairs
        if result.warnings:
            result.status = STATUS_PARTIAL
        log.debug(f"Built {pairs} permissions for {component}")
