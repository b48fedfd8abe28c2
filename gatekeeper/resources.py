"""
Resource and controller declarations for this deployment.

Models get the framework matrix unless they override it per role (the
override replaces that role's list). Sensitive models start from an
admin-only matrix. Controllers declare their matrix outright; an empty
matrix means the controller has no custom permissions.
"""
from gatekeeper.features.permissions.descriptors import ResourceRegistry


DEFAULT_ROLES = {
    "admin": "System Administrator",
    "manager": "Manager",
    "user": "Regular User",
    "guest": "Guest User",
}


def build_resource_registry() -> ResourceRegistry:
    registry = ResourceRegistry()

    registry.register_model(
        "Movies",
        relationships={"quotes": "Movie_Quotes"},
    )
    registry.register_model(
        "Movie_Quotes",
        override={"guest": ["list", "read"]},
        relationships={"movie": "Movies"},
    )
    registry.register_model(
        "Books",
        override={"user": ["list", "read"], "guest": ["list", "read"]},
    )
    registry.register_model(
        "Users",
        override={"manager": ["list", "read", "update"], "user": ["read"]},
        relationships={"roles": "Roles"},
    )
    registry.register_model("Roles", sensitive=True, relationships={"permissions": "Permissions"})
    registry.register_model("Permissions", override={"admin": ["*"]}, sensitive=True)

    registry.register_controller(
        "PermissionsController",
        {
            "admin": ["*"],
            "manager": ["check"],
        },
    )
    registry.register_controller(
        "AuthController",
        {
            "admin": ["list", "read", "create", "update", "delete", "logout", "me"],
            "manager": ["list", "read", "create", "update", "delete", "logout", "me"],
            "user": ["list", "read", "create", "update", "delete", "logout", "me"],
            "guest": ["read", "create"],
        },
    )
    registry.register_controller("HealthController", {})

    return registry
