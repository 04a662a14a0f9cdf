"""User model for the warehouse admin API."""

from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import ActiveFlagMixin, BaseModel


class User(ActiveFlagMixin, BaseModel):
    """User model representing a system user.

    Attributes:
        id: Unique identifier (UUID string)
        email: User email address (unique)
        full_name: Display name
        is_active: Whether user account is active
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(nullable=False, unique=True, index=True)
    full_name: Mapped[str] = mapped_column(nullable=False, default="")

    # Relationships
    roles: Mapped[list["Role"]] = relationship(
        "Role",
        secondary="user_roles",
        back_populates="users",
        lazy="selectin",
    )
