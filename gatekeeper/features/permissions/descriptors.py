"""
Explicit registry of authorization-relevant resource definitions.

Model resources and controllers are registered once at startup; the compiler
and the relationship resolver read from it and never mutate it.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from gatekeeper.features.permissions.components import Component
from gatekeeper.features.permissions.errors import ConfigurationError, RelationshipResolutionError
from gatekeeper.features.permissions.matrix import (
    DEFAULT_MODEL_MATRIX,
    SENSITIVE_MODEL_MATRIX,
    RoleActionMap,
    copy_matrix,
)


@dataclass(frozen=True)
class ResourceDescriptor:
    """A model resource: optional matrix override and named relationships."""
    name: str
    override: Optional[Dict[str, Any]] = None
    # relationship name -> related model resource name
    relationships: Dict[str, str] = field(default_factory=dict)
    sensitive: bool = False

    @property
    def component(self) -> Component:
        return Component.model(self.name)

    @property
    def defaults(self) -> RoleActionMap:
        return copy_matrix(SENSITIVE_MODEL_MATRIX if self.sensitive else DEFAULT_MODEL_MATRIX)


@dataclass(frozen=True)
class ControllerDescriptor:
    """A non-model endpoint. An empty matrix means no custom permissions."""
    name: str
    roles_and_actions: Dict[str, Any] = field(default_factory=dict)

    @property
    def component(self) -> Component:
        return Component.controller(self.name)


class ResourceRegistry:
    def __init__(self):
        self._models: Dict[str, ResourceDescriptor] = {}
        self._controllers: Dict[str, ControllerDescriptor] = {}

    def register_model(
        self,
        name: str,
        override: Optional[Dict[str, Any]] = None,
        relationships: Optional[Dict[str, str]] = None,
        sensitive: bool = False,
    ) -> ResourceDescriptor:
        if not name:
            raise ConfigurationError("Model resource name must not be empty")
        if name in self._models:
            raise ConfigurationError(f"Model resource already registered: {name}")
        if override is not None and not isinstance(override, dict):
            raise ConfigurationError(f"Override for {name} must be a mapping of role -> actions")
        descriptor = ResourceDescriptor(
            name=name,
            override=override,
            relationships=dict(relationships or {}),
            sensitive=sensitive,
        )
        self._models[name] = descriptor
        return descriptor

    def register_controller(self, name: str, roles_and_actions: Optional[Dict[str, Any]] = None) -> ControllerDescriptor:
        if not name:
            raise ConfigurationError("Controller name must not be empty")
        if name in self._controllers:
            raise ConfigurationError(f"Controller already registered: {name}")
        descriptor = ControllerDescriptor(name=name, roles_and_actions=dict(roles_and_actions or {}))
        self._controllers[name] = descriptor
        return descriptor

    def get_model(self, name: str) -> Optional[ResourceDescriptor]:
        return self._models.get(name)

    def get_controller(self, name: str) -> Optional[ControllerDescriptor]:
        return self._controllers.get(name)

    def models(self) -> List[ResourceDescriptor]:
        return list(self._models.values())

    def controllers(self) -> List[ControllerDescriptor]:
        return list(self._controllers.values())

    def related_model(self, model_name: str, relationship: str) -> str:
        """
        Name of the model on the other side of ``relationship``.

        Raises RelationshipResolutionError when the model, the relationship or
        its target is not registered.
        """
        descriptor = self._models.get(model_name)
        if descriptor is None:
            raise RelationshipResolutionError(model_name, relationship, "unknown model resource")
        related = descriptor.relationships.get(relationship)
        if not related:
            raise RelationshipResolutionError(model_name, relationship, "relationship not declared")
        if related not in self._models:
            raise RelationshipResolutionError(model_name, relationship, f"related model {related!r} not registered")
        return related

    def __iter__(self) -> Iterator[ResourceDescriptor]:
        return iter(self._models.values())

    def __len__(self) -> int:
        return len(self._models) + len(self._controllers)
