"""Role model with the user_roles and role_warehouse_rules association tables."""

from sqlalchemy import ForeignKey, Table, Column
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import ActiveFlagMixin, Base, BaseModel

# Association table for many-to-many relationship between User and Role
user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)

# Warehouses a role is bound to; ignored when can_see_all_warehouses is set
role_warehouse_rules = Table(
    "role_warehouse_rules",
    Base.metadata,
    Column("role_id", ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("warehouse_id", ForeignKey("warehouses.id", ondelete="CASCADE"), primary_key=True),
)


class Role(ActiveFlagMixin, BaseModel):
    """Role model for role-based access control (RBAC).

    Attributes:
        id: Unique identifier (UUID string)
        name: Role name (unique)
        description: Role description
        can_see_all_warehouses: Grants global warehouse visibility
        is_active: Inactive roles grant nothing
    """

    __tablename__ = "roles"

    name: Mapped[str] = mapped_column(nullable=False, unique=True, index=True)
    description: Mapped[str] = mapped_column(nullable=False, default="")
    can_see_all_warehouses: Mapped[bool] = mapped_column(default=False)

    # Relationships
    users: Mapped[list["User"]] = relationship(
        "User",
        secondary=user_roles,
        back_populates="roles",
        lazy="selectin",
    )
    permissions: Mapped[list["Permission"]] = relationship(
        "Permission",
        secondary="role_permissions",
        back_populates="roles",
        lazy="selectin",
    )
    warehouses: Mapped[list["Warehouse"]] = relationship(
        "Warehouse",
        secondary=role_warehouse_rules,
        lazy="selectin",
    )
