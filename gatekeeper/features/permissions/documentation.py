"""
Route filtering for generated API documentation.

Documentation only advertises operations the documentation role may perform.
A deny means "omit the route"; it is never treated as an error. Routes without
an ``x-rbac-*`` annotation are public and always listed.
"""
from typing import Iterable, List, Optional

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi
from fastapi.routing import APIRoute
from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.features.permissions.authorization import ActorRole, AuthorizationEngine, RequestContext
from gatekeeper.features.permissions.descriptors import ResourceRegistry
from gatekeeper.features.permissions.errors import UnknownRoleError
from gatekeeper.features.permissions.registry import RoleRegistry
from gatekeeper.features.permissions.relationships import RelationshipPermissionResolver
from gatekeeper.utils import get_logger


log = get_logger(__name__)

DOCS_ACTOR = "api-docs"

RBAC_KEYS = ("x-rbac-model", "x-rbac-controller", "x-rbac-relationship", "x-rbac-action")


def is_guarded(route: APIRoute) -> bool:
    extra = route.openapi_extra or {}
    return any(key in extra for key in RBAC_KEYS)


def route_context(route: APIRoute, method: str) -> RequestContext:
    """Describe a declared route the way the request guard sees it when matched."""
    extra = route.openapi_extra or {}
    return RequestContext(
        method=method,
        path=route.path_format,
        rbac_action=extra.get("x-rbac-action"),
        model_name=extra.get("x-rbac-model"),
        controller=extra.get("x-rbac-controller"),
        relationship=extra.get("x-rbac-relationship"),
        targets_record="{related_id}" in route.path_format,
    )


async def accessible_routes(
    engine: AuthorizationEngine,
    resolver: RelationshipPermissionResolver,
    routes: Iterable[RequestContext],
    roles: Iterable[ActorRole],
) -> List[RequestContext]:
    roles = list(roles)
    visible = []
    for route in routes:
        allowed = await resolver.authorize_context(route, roles, actor_id=DOCS_ACTOR)
        if allowed is None:
            allowed = await engine.authorize_roles(route, roles, actor_id=DOCS_ACTOR)
        if allowed:
            visible.append(route)
    return visible


async def filtered_openapi(
    app: FastAPI,
    db: AsyncSession,
    role_registry: RoleRegistry,
    resources: ResourceRegistry,
    role_name: str,
) -> dict:
    """
    OpenAPI document for ``app`` without the operations ``role_name`` is not
    granted. Paths left with no operations are dropped.
    """
    schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )

    roles: List[ActorRole] = []
    try:
        roles = [await role_registry.get_by_name(db, role_name)]
    except UnknownRoleError:
        log.warning(f"Documentation role '{role_name}' does not exist; hiding every guarded route")

    engine = AuthorizationEngine(db)
    resolver = RelationshipPermissionResolver(engine, resources)

    guarded = {}
    for route in app.routes:
        if not isinstance(route, APIRoute) or not route.include_in_schema or not is_guarded(route):
            continue
        for method in route.methods:
            guarded[(route.path_format, method.lower())] = route_context(route, method)

    visible = await accessible_routes(engine, resolver, guarded.values(), roles)
    allowed = {(context.path, context.method.lower()) for context in visible}

    paths = schema.get("paths", {})
    hidden = 0
    for (path, method) in guarded:
        if (path, method) in allowed:
            continue
        operations: Optional[dict] = paths.get(path)
        if operations is not None and operations.pop(method, None) is not None:
            hidden += 1
        if operations is not None and not operations:
            del paths[path]

    log.info(f"API docs for role '{role_name}': {hidden} operation(s) hidden")
    return schema
