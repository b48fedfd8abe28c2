"""
Permission API routes.

Provides endpoints for rebuilding the permission store, inspecting it and
asking for decisions.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.core import config
from gatekeeper.core.database.engine import get_db
from gatekeeper.core.rate_limit import limiter
from gatekeeper.features.permissions.authorization import AuthorizationEngine, load_actor_roles
from gatekeeper.features.permissions.compiler import PermissionCompiler
from gatekeeper.features.permissions.components import Component
from gatekeeper.features.permissions.dependencies import (
    get_authorization_engine,
    get_relationship_resolver,
    get_resource_registry,
    get_role_registry,
    require_permission,
)
from gatekeeper.features.permissions.descriptors import ResourceRegistry
from gatekeeper.features.permissions.models import Role
from gatekeeper.features.permissions.registry import RoleRegistry
from gatekeeper.features.permissions.relationships import RelationshipPermissionResolver
from gatekeeper.features.permissions.schemas import (
    ActorPermissionsResponse,
    CompilationReportResponse,
    PermissionCheckRequest,
    PermissionCheckResponse,
    PermissionResponse,
    RelationshipCheckRequest,
    RoleWithPermissions,
)
from gatekeeper.features.permissions.store import PermissionStore
from gatekeeper.features.users.models import User
from gatekeeper.utils import get_logger


log = get_logger(__name__)
router = APIRouter()

PERMISSIONS_CONTROLLER = Component.controller("PermissionsController")

# Same component/action as each route's guard, for the docs filter
COMPILE_ROUTE = {"x-rbac-controller": "PermissionsController", "x-rbac-action": "execute"}
CHECK_ROUTE = {"x-rbac-controller": "PermissionsController", "x-rbac-action": "check"}


# ============================================================================
# Compilation
# ============================================================================

@router.post("/compile", response_model=CompilationReportResponse, openapi_extra=COMPILE_ROUTE)
@limiter.limit(config.COMPILE_RATE_LIMIT)
async def compile_permissions(
    request: Request,
    db: AsyncSession = Depends(get_db),
    roles: RoleRegistry = Depends(get_role_registry),
    resources: ResourceRegistry = Depends(get_resource_registry),
    current_user: User = Depends(require_permission(PERMISSIONS_CONTROLLER, "execute")),
):
    """
    Clear and rebuild the permission store.

    Per-resource failures are reported in the body, not raised. A store that
    cannot be cleared or committed surfaces as 503.
    """
    log.info(f"Permission rebuild requested by {current_user.id}")
    report = await PermissionCompiler(db, roles, resources).compile_all()
    return report.as_dict()


# ============================================================================
# Inspection
# ============================================================================

@router.get(
    "",
    response_model=List[PermissionResponse],
    openapi_extra={"x-rbac-model": "Permissions", "x-rbac-action": "list"},
)
async def list_permissions(
    skip: int = 0,
    limit: int = 100,
    component: Optional[str] = None,
    action: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission(Component.model("Permissions"), "list")),
):
    """List compiled permissions with optional filtering."""
    return await PermissionStore(db).list_permissions(component, action, skip, limit)


@router.get(
    "/roles",
    response_model=List[RoleWithPermissions],
    openapi_extra={"x-rbac-model": "Roles", "x-rbac-action": "list"},
)
async def list_roles(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission(Component.model("Roles"), "list")),
):
    """List roles with the permissions linked to them."""
    result = await db.execute(select(Role).order_by(Role.name))
    return result.scalars().all()


@router.get(
    "/actors/{actor_id}",
    response_model=ActorPermissionsResponse,
    openapi_extra={"x-rbac-model": "Permissions", "x-rbac-action": "read"},
)
async def get_actor_permissions(
    actor_id: str,
    db: AsyncSession = Depends(get_db),
    engine: AuthorizationEngine = Depends(get_authorization_engine),
    current_user: User = Depends(require_permission(Component.model("Permissions"), "read")),
):
    """Everything an actor is granted, grouped by component."""
    roles = await load_actor_roles(db, actor_id)
    grants = await engine.permissions_for_actor(actor_id)
    return ActorPermissionsResponse(
        actor_id=actor_id,
        roles=sorted(role.name for role in roles),
        permissions=grants,
    )


# ============================================================================
# Decisions
# ============================================================================

@router.post("/check", response_model=PermissionCheckResponse, openapi_extra=CHECK_ROUTE)
async def check_permission(
    check: PermissionCheckRequest,
    engine: AuthorizationEngine = Depends(get_authorization_engine),
    current_user: User = Depends(require_permission(PERMISSIONS_CONTROLLER, "check")),
):
    """Decide one (component, action) for an actor."""
    allowed = await engine.decide_for_actor(Component(check.kind, check.component), check.action, check.actor_id)
    return PermissionCheckResponse(
        allowed=allowed,
        actor_id=check.actor_id,
        component=check.component,
        action=check.action,
    )


@router.post("/check-relationship", response_model=PermissionCheckResponse, openapi_extra=CHECK_ROUTE)
async def check_relationship_permission(
    check: RelationshipCheckRequest,
    resolver: RelationshipPermissionResolver = Depends(get_relationship_resolver),
    current_user: User = Depends(require_permission(PERMISSIONS_CONTROLLER, "check")),
):
    """Decide a relationship traversal (both sides must be granted)."""
    allowed = await resolver.decide_relationship_for_actor(
        check.component, check.relationship, check.operation, check.actor_id
    )
    return PermissionCheckResponse(
        allowed=allowed,
        actor_id=check.actor_id,
        component=check.component,
        action=check.operation.value,
    )
