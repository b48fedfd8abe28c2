"""
Runtime authorization decisions.

Decisions are read-only and fail secure: any error while deriving the
component/action, loading roles or querying the store results in a deny.
Every decision is logged for audit.
"""
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.features.permissions.components import Component, as_component
from gatekeeper.features.permissions.errors import ConfigurationError, StoreUnavailableError
from gatekeeper.features.permissions.models import Role, user_roles
from gatekeeper.features.permissions.registry import RoleRef
from gatekeeper.features.permissions.store import PermissionStore
from gatekeeper.utils import get_logger


log = get_logger(__name__)

# Loaded ORM roles or cached RoleRef values; only id and name are read
ActorRole = Union[Role, RoleRef]

METHOD_ACTIONS = {
    "GET": "read",
    "POST": "create",
    "PUT": "update",
    "PATCH": "update",
    "DELETE": "delete",
}
DEFAULT_ACTION = "read"


@dataclass(frozen=True)
class RequestContext:
    """What the routing layer knows about an inbound call."""
    method: str = "GET"
    path: str = ""
    # Explicit action annotation on the matched route
    rbac_action: Optional[str] = None
    # Model resource addressed by the request, if any
    model_name: Optional[str] = None
    # Controller bound to the matched route
    controller: Optional[str] = None
    # Relationship traversed from model_name, for link routes
    relationship: Optional[str] = None
    # True when the route also names the related record (link/unlink)
    targets_record: bool = False


def derive_action(context: RequestContext) -> str:
    if context.rbac_action:
        return context.rbac_action
    return METHOD_ACTIONS.get((context.method or "").upper(), DEFAULT_ACTION)


def derive_component(context: RequestContext) -> Component:
    if context.model_name:
        return Component.model(context.model_name)
    if context.controller:
        return Component.controller(context.controller)
    raise ConfigurationError(f"Request to {context.path or 'unknown path'} names no model or controller")


async def load_actor_roles(db: AsyncSession, actor_id: str) -> List[Role]:
    try:
        result = await db.execute(
            select(Role)
            .join(user_roles, user_roles.c.role_id == Role.id)
            .where(user_roles.c.user_id == actor_id)
        )
    except SQLAlchemyError as e:
        raise StoreUnavailableError(f"Failed to load roles for actor {actor_id}: {e}") from e
    return list(result.scalars().all())


def _role_names(roles: Sequence[ActorRole]) -> List[str]:
    return sorted(role.name for role in roles)


class AuthorizationEngine:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.store = PermissionStore(db)

    async def decide(
        self,
        component: "Component | str",
        action: str,
        actor_roles: Iterable[ActorRole],
        actor_id: Optional[str] = None,
    ) -> bool:
        """
        True if any of ``actor_roles`` is linked to the (component, action)
        permission. No roles means deny without touching the store.
        """
        try:
            roles = list(actor_roles or [])
            if not roles:
                log.info(f"DENY {action} on {component} actor={actor_id}: no roles")
                return False

            target = as_component(component)
            for role in roles:
                if await self.store.role_has_permission(role.id, target, action):
                    log.info(
                        f"ALLOW {action} on {target} actor={actor_id} via role '{role.name}' "
                        f"(roles={_role_names(roles)})"
                    )
                    return True

            log.info(f"DENY {action} on {target} actor={actor_id}: no matching permission (roles={_role_names(roles)})")
            return False
        except Exception:
            log.error(f"DENY {action} on {component} actor={actor_id}: error during permission check", exc_info=True)
            return False

    async def decide_for_actor(self, component: "Component | str", action: str, actor_id: str) -> bool:
        try:
            roles = await load_actor_roles(self.db, actor_id)
        except Exception:
            log.error(f"DENY {action} on {component} actor={actor_id}: failed to load roles", exc_info=True)
            return False
        return await self.decide(component, action, roles, actor_id=actor_id)

    def _derive(self, context: RequestContext, actor_id: Optional[str]) -> Optional[Tuple[Component, str]]:
        try:
            return derive_component(context), derive_action(context)
        except Exception:
            log.error(
                f"DENY {context.method} {context.path} actor={actor_id}: cannot derive component/action",
                exc_info=True,
            )
            return None

    async def authorize(self, context: RequestContext, actor_id: Optional[str]) -> bool:
        """Derive component and action from ``context`` and decide for the actor."""
        derived = self._derive(context, actor_id)
        if derived is None:
            return False
        component, action = derived

        if not actor_id:
            log.info(f"DENY {action} on {component}: no actor")
            return False
        return await self.decide_for_actor(component, action, actor_id)

    async def authorize_roles(
        self,
        context: RequestContext,
        actor_roles: Iterable[ActorRole],
        actor_id: Optional[str] = None,
    ) -> bool:
        """Like ``authorize`` but for an already loaded role set."""
        derived = self._derive(context, actor_id)
        if derived is None:
            return False
        component, action = derived
        return await self.decide(component, action, actor_roles, actor_id=actor_id)

    async def permissions_for_actor(self, actor_id: str) -> dict:
        """Every (component -> actions) grant reachable through the actor's roles."""
        roles = await load_actor_roles(self.db, actor_id)
        return await self.store.grants_for_roles(role.id for role in roles)
