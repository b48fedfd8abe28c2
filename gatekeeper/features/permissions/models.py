"""
Role and Permission models for compiled RBAC.

- Roles are created administratively and looked up by name
- Permissions are (component, action) records materialized by the compiler
- role_permissions links the two; it is rebuilt on every full compilation
"""
from sqlalchemy import String, ForeignKey, Table, Column, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gatekeeper.core.database.base import Base, TimestampMixin, UlidPrimaryKeyMixin


# ============================================================================
# Association Tables for Many-to-Many Relationships
# ============================================================================

# Role-Permission relationship
role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", String(26), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", String(26), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)

# Actor-Role relationship, derived from the actor's user_type
user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", String(26), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", String(26), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


# ============================================================================
# Core Models
# ============================================================================

class Permission(Base, UlidPrimaryKeyMixin, TimestampMixin):
    """
    Compiled permission: one action on one component.

    Examples:
    - component_kind="model", component="Movies", action="create"
    - component_kind="controller", component="PermissionsController", action="execute"
    """
    __tablename__ = "permissions"
    __table_args__ = (
        UniqueConstraint("component_kind", "component", "action", name="uq_permissions_component_action"),
    )

    component_kind: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    component: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    roles: Mapped[list["Role"]] = relationship(
        "Role",
        secondary=role_permissions,
        back_populates="permissions",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return (
            f"<Permission(id={self.id}, component={self.component_kind}:{self.component}, "
            f"action={self.action})>"
        )


class Role(Base, UlidPrimaryKeyMixin, TimestampMixin):
    """
    Role model for grouping permissions.

    Examples: admin, manager, user, guest
    """
    __tablename__ = "roles"

    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    permissions: Mapped[list["Permission"]] = relationship(
        "Permission",
        secondary=role_permissions,
        back_populates="roles",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name={self.name!r})>"
