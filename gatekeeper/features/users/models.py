"""
User (actor) model with ULID primary keys.
"""
from sqlalchemy import String, Boolean
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gatekeeper.core.database.base import Base, TimestampMixin, UlidPrimaryKeyMixin
from gatekeeper.features.permissions.models import user_roles


class User(Base, UlidPrimaryKeyMixin, TimestampMixin):
    """
    User model representing actors that hold roles.

    Role links are derived from ``user_type`` and re-synchronized whenever it
    changes (see ``gatekeeper.features.users.service``).
    """
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Classification the role link is derived from (admin, manager, user, ...)
    user_type: Mapped[str] = mapped_column(String(50), nullable=False, default="user")

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    roles: Mapped[list["Role"]] = relationship(  # type: ignore
        "Role",
        secondary=user_roles,
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r}, user_type={self.user_type!r})>"
