"""Tally card and tally card history models."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column

from db.base import ActiveFlagMixin, BaseModel


class TallyCard(ActiveFlagMixin, BaseModel):
    """A stock tally card pinned to one item in one warehouse.

    Attributes:
        tally_card_number: Business identifier printed on the card
        warehouse: Warehouse code the card belongs to
        item_number: Item the card counts
        note: Free-form note
    """

    __tablename__ = "tally_cards"

    tally_card_number: Mapped[str] = mapped_column(nullable=False, index=True)
    warehouse: Mapped[str] = mapped_column(nullable=False, index=True)
    item_number: Mapped[int] = mapped_column(nullable=False)
    note: Mapped[Optional[str]] = mapped_column(nullable=True)


class TallyCardHistory(BaseModel):
    """One change record for a tally card (item or warehouse move)."""

    __tablename__ = "tally_card_history"

    tally_card_id: Mapped[str] = mapped_column(
        ForeignKey("tally_cards.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    action: Mapped[str] = mapped_column(nullable=False)
    from_item_number: Mapped[Optional[int]] = mapped_column(nullable=True)
    to_item_number: Mapped[Optional[int]] = mapped_column(nullable=True)
    from_warehouse: Mapped[Optional[str]] = mapped_column(nullable=True)
    to_warehouse: Mapped[Optional[str]] = mapped_column(nullable=True)
    note: Mapped[Optional[str]] = mapped_column(nullable=True)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), index=True
    )
