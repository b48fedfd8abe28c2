"""
Authorization error taxonomy.

Decision-time code never lets these escape as an allow: the engine catches
them and denies. Compile-time code records them in the CompilationReport.
"""
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gatekeeper.features.permissions.compiler import CompilationReport


class AuthorizationError(Exception):
    """Base class for every error raised by the permission subsystem."""


class ConfigurationError(AuthorizationError):
    """A permission matrix or descriptor entry is malformed."""


class UnknownRoleError(AuthorizationError):
    def __init__(self, role_name: str):
        super().__init__(f"Role not found: {role_name}")
        self.role_name = role_name


class RelationshipResolutionError(AuthorizationError):
    def __init__(self, component: str, relationship: str, reason: str = "unknown relationship"):
        super().__init__(f"Cannot resolve relationship {relationship!r} on {component}: {reason}")
        self.component = component
        self.relationship = relationship


class StoreUnavailableError(AuthorizationError):
    """The permission store could not be read or written."""


class CompilationError(AuthorizationError):
    """One or more resources failed to compile; ``report`` has the details."""

    def __init__(self, message: str, report: "CompilationReport | None" = None):
        super().__init__(message)
        self.report = report
