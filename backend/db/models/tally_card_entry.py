"""Per-user tally card count entries (stock adjustments)."""

from typing import Optional

from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class TallyCardEntry(BaseModel):
    """A counted quantity recorded by a user against a tally card.

    Attributes:
        user_id: Owner of the entry
        tally_card_id: Card being counted
        tally_card_number: Denormalized card number for search
        warehouse_id: Warehouse the count was taken in
        qty: Counted quantity
        location: Bin/shelf where the count was taken
        note: Free-form note
    """

    __tablename__ = "tally_card_entries"

    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tally_card_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("tally_cards.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    tally_card_number: Mapped[str] = mapped_column(nullable=False, index=True)
    warehouse_id: Mapped[str] = mapped_column(
        ForeignKey("warehouses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    qty: Mapped[Optional[int]] = mapped_column(nullable=True)
    location: Mapped[Optional[str]] = mapped_column(nullable=True)
    note: Mapped[Optional[str]] = mapped_column(nullable=True)
