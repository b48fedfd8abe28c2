"""
FastAPI dependencies for route protection.

Implements:
- Access to the app-wide role and resource registries
- Per-request authorization engine and relationship resolver
- require_permission / require_route_permission guards
"""
from typing import Annotated
from fastapi import Depends, HTTPException, status, Request
from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.core.database.engine import get_db
from gatekeeper.features.permissions.authorization import AuthorizationEngine, RequestContext
from gatekeeper.features.permissions.components import Component
from gatekeeper.features.permissions.descriptors import ResourceRegistry
from gatekeeper.features.permissions.registry import RoleRegistry
from gatekeeper.features.permissions.relationships import RelationshipPermissionResolver
from gatekeeper.features.users.dependencies import get_current_user
from gatekeeper.features.users.models import User
from gatekeeper.utils import get_logger


log = get_logger(__name__)


def get_role_registry(request: Request) -> RoleRegistry:
    return request.app.state.role_registry


def get_resource_registry(request: Request) -> ResourceRegistry:
    return request.app.state.resource_registry


def get_authorization_engine(db: Annotated[AsyncSession, Depends(get_db)]) -> AuthorizationEngine:
    return AuthorizationEngine(db)


def get_relationship_resolver(
    engine: Annotated[AuthorizationEngine, Depends(get_authorization_engine)],
    resources: Annotated[ResourceRegistry, Depends(get_resource_registry)],
) -> RelationshipPermissionResolver:
    return RelationshipPermissionResolver(engine, resources)


def _forbidden(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def require_permission(component: "Component | str", action: str):
    """
    FastAPI dependency to require a specific permission.

    Usage:
        @router.post("/compile")
        async def compile_permissions(
            user: User = Depends(require_permission(Component.controller("PermissionsController"), "execute"))
        ):
            pass

    Returns:
        Dependency function that returns the current user if they have permission

    Raises:
        HTTPException: 403 if user doesn't have permission
    """
    async def permission_dependency(
        current_user: User = Depends(get_current_user),
        engine: AuthorizationEngine = Depends(get_authorization_engine),
    ) -> User:
        if not await engine.decide(component, action, current_user.roles, actor_id=current_user.id):
            raise _forbidden(f"Permission denied: {action} on {component}")
        return current_user

    return permission_dependency


def request_context(request: Request) -> RequestContext:
    """
    Describe the matched route for the engine.

    Routes may carry an explicit action via ``openapi_extra={"x-rbac-action": ...}``
    and the addressed component via ``x-rbac-model`` or ``x-rbac-controller``.
    Relationship routes add ``x-rbac-relationship``; a ``related_id`` path
    parameter marks them as link/unlink of one record.
    """
    route = request.scope.get("route")
    extra = getattr(route, "openapi_extra", None) or {}
    return RequestContext(
        method=request.method,
        path=request.url.path,
        rbac_action=extra.get("x-rbac-action"),
        model_name=extra.get("x-rbac-model"),
        controller=extra.get("x-rbac-controller"),
        relationship=extra.get("x-rbac-relationship"),
        targets_record="related_id" in request.path_params,
    )


async def require_route_permission(
    request: Request,
    current_user: User = Depends(get_current_user),
    engine: AuthorizationEngine = Depends(get_authorization_engine),
    resolver: RelationshipPermissionResolver = Depends(get_relationship_resolver),
) -> User:
    """
    Guard for annotated routes: derives the component and action from the
    request. Relationship routes need both sides of the relationship granted.
    """
    context = request_context(request)
    allowed = await resolver.authorize_context(context, current_user.roles, actor_id=current_user.id)
    if allowed is None:
        allowed = await engine.authorize(context, current_user.id)
    if not allowed:
        raise _forbidden("Permission denied")
    return current_user
