"""
Authorization-addressable components.

A component is either a model resource (e.g. "Movies") or a controller
(e.g. "PermissionsController"). The kind is part of the identity so the two
namespaces never collide.
"""
from dataclasses import dataclass
from enum import Enum


class ComponentKind(str, Enum):
    MODEL = "model"
    CONTROLLER = "controller"


@dataclass(frozen=True)
class Component:
    kind: ComponentKind
    name: str

    @classmethod
    def model(cls, name: str) -> "Component":
        return cls(ComponentKind.MODEL, name)

    @classmethod
    def controller(cls, name: str) -> "Component":
        return cls(ComponentKind.CONTROLLER, name)

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.name}"


def as_component(value: "Component | str") -> Component:
    """Coerce a plain string to a model component."""
    if isinstance(value, Component):
        return value
    if not isinstance(value, str) or not value:
        raise ValueError(f"Invalid component: {value!r}")
    return Component.model(value)
