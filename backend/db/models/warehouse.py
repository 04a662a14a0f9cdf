"""Warehouse and warehouse location models."""

from typing import Optional

from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from db.base import ActiveFlagMixin, BaseModel


class Warehouse(ActiveFlagMixin, BaseModel):
    """A physical warehouse, addressed by id or by its short code.

    Attributes:
        code: Short business code (e.g. 'WH1'), unique
        name: Display name
    """

    __tablename__ = "warehouses"

    code: Mapped[str] = mapped_column(nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(nullable=False)


class WarehouseLocation(ActiveFlagMixin, BaseModel):
    """A named bin/shelf location inside a warehouse."""

    __tablename__ = "warehouse_locations"

    warehouse_id: Mapped[str] = mapped_column(
        ForeignKey("warehouses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(nullable=False)
    description: Mapped[Optional[str]] = mapped_column(nullable=True)
