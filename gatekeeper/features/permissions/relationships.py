"""
Permission checks for operations that traverse a relationship.

Each operation needs one action on the primary model and one on the related
model; it is allowed only when both checks pass. There is no fallback: if the
related model cannot be determined, the operation is denied.
"""
import re
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

from gatekeeper.features.permissions.authorization import ActorRole, AuthorizationEngine, RequestContext, load_actor_roles
from gatekeeper.features.permissions.components import Component
from gatekeeper.features.permissions.descriptors import ResourceRegistry
from gatekeeper.features.permissions.errors import RelationshipResolutionError
from gatekeeper.utils import get_logger


log = get_logger(__name__)


class RelationshipOperation(str, Enum):
    LIST_RELATED = "list-related"
    CREATE_AND_LINK = "create-and-link"
    LINK = "link"
    UNLINK = "unlink"


# operation -> (primary action, related action)
RELATIONSHIP_ACTIONS: Dict[RelationshipOperation, Tuple[str, str]] = {
    RelationshipOperation.LIST_RELATED: ("read", "list"),
    RelationshipOperation.CREATE_AND_LINK: ("read", "create"),
    RelationshipOperation.LINK: ("update", "read"),
    RelationshipOperation.UNLINK: ("update", "read"),
}

# /{model}/{id}/link/{relationship}[/{other_id}]
_LINK_ROUTE = re.compile(r"^/(?P<model>[^/]+)/[^/]+/link/(?P<relationship>[^/{}]+)(?P<other>/[^/]+)?/?$")


def operation_for_method(method: str, targets_record: bool) -> Optional[RelationshipOperation]:
    """
    Relationship operation for an HTTP method. ``targets_record`` is True when
    the route names the related record (link/unlink).
    """
    method = (method or "").upper()
    if targets_record:
        return {"PUT": RelationshipOperation.LINK, "DELETE": RelationshipOperation.UNLINK}.get(method)
    return {"GET": RelationshipOperation.LIST_RELATED, "POST": RelationshipOperation.CREATE_AND_LINK}.get(method)


def relationship_operation_for(method: str, path: str) -> Optional[Tuple[str, str, RelationshipOperation]]:
    """
    Recognize a relationship route.

    Returns (model, relationship, operation), or None when the method/path pair
    is not a relationship operation. Generic templates such as
    ``/{model}/{id}/link/{relationshipName}`` are not recognized.
    """
    match = _LINK_ROUTE.match(path or "")
    if match is None:
        return None

    operation = operation_for_method(method, targets_record=match.group("other") is not None)
    if operation is None:
        return None
    return match.group("model"), match.group("relationship"), operation


class RelationshipPermissionResolver:
    def __init__(self, engine: AuthorizationEngine, resources: ResourceRegistry):
        self.engine = engine
        self.resources = resources

    async def decide_relationship(
        self,
        primary_component: str,
        relationship_name: str,
        operation: "RelationshipOperation | str",
        actor_roles: Iterable[ActorRole],
        actor_id: Optional[str] = None,
    ) -> bool:
        label = getattr(operation, "value", operation)
        try:
            related_component = self.resources.related_model(primary_component, relationship_name)
        except RelationshipResolutionError as e:
            log.warning(f"DENY {label} {primary_component}.{relationship_name} actor={actor_id}: {e}")
            return False

        try:
            operation = RelationshipOperation(operation)
        except ValueError:
            log.warning(
                f"DENY {label} {primary_component}.{relationship_name} actor={actor_id}: "
                f"unrecognized relationship operation"
            )
            return False

        primary_action, related_action = RELATIONSHIP_ACTIONS[operation]
        roles = list(actor_roles or [])

        # Both checks always run so the audit log has both outcomes.
        primary_allowed = await self.engine.decide(
            Component.model(primary_component), primary_action, roles, actor_id=actor_id
        )
        related_allowed = await self.engine.decide(
            Component.model(related_component), related_action, roles, actor_id=actor_id
        )

        allowed = primary_allowed and related_allowed
        log.info(
            f"{'ALLOW' if allowed else 'DENY'} {operation.value} {primary_component}.{relationship_name} "
            f"actor={actor_id}: {primary_action} on {primary_component}="
            f"{'granted' if primary_allowed else 'denied'}, {related_action} on {related_component}="
            f"{'granted' if related_allowed else 'denied'}"
        )
        return allowed

    async def decide_relationship_for_actor(
        self,
        primary_component: str,
        relationship_name: str,
        operation: "RelationshipOperation | str",
        actor_id: str,
    ) -> bool:
        try:
            roles = await load_actor_roles(self.engine.db, actor_id)
        except Exception:
            log.error(f"DENY {operation} {primary_component}.{relationship_name} actor={actor_id}: failed to load roles", exc_info=True)
            return False
        return await self.decide_relationship(primary_component, relationship_name, operation, roles, actor_id=actor_id)

    async def authorize_context(
        self, context: RequestContext, actor_roles: Iterable[ActorRole], actor_id: Optional[str] = None
    ) -> Optional[bool]:
        """
        Decide a relationship route, or return None if ``context`` is not one.

        Routes annotated with a relationship name are decided from the
        annotation; anything else falls back to matching the concrete path.
        """
        if context.relationship:
            operation = operation_for_method(context.method, context.targets_record)
            if operation is None or not context.model_name:
                log.warning(
                    f"DENY {context.method} {context.path} actor={actor_id}: "
                    f"relationship route without a recognizable operation"
                )
                return False
            return await self.decide_relationship(
                context.model_name, context.relationship, operation, actor_roles, actor_id=actor_id
            )

        recognized = relationship_operation_for(context.method, context.path)
        if recognized is None:
            return None
        model, relationship, operation = recognized
        return await self.decide_relationship(model, relationship, operation, actor_roles, actor_id=actor_id)
