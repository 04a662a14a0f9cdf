"""Tally cards, with their change history as an on-demand relation."""

from access.config import (
    FieldSpec,
    OneToMany,
    OwnershipScope,
    ResourceConfig,
    SortSpec,
    WarehouseScope,
)
from access.definitions.common import as_int, iso, pick, strip_text

WRITABLE = ("tally_card_number", "warehouse", "item_number", "note", "is_active")


def history_to_domain(row: dict) -> dict:
    return {
        "id": row.get("id"),
        "action": row.get("action"),
        "from_item_number": as_int(row.get("from_item_number")),
        "to_item_number": as_int(row.get("to_item_number")),
        "from_warehouse": row.get("from_warehouse"),
        "to_warehouse": row.get("to_warehouse"),
        "note": row.get("note"),
        "changed_at": iso(row.get("changed_at")),
    }


def to_domain(row: dict) -> dict:
    card = {
        "id": row["id"],
        "tally_card_number": row["tally_card_number"],
        "warehouse": row["warehouse"],
        "item_number": as_int(row.get("item_number")),
        "note": row.get("note"),
        "is_active": bool(row.get("is_active")),
        "created_at": iso(row.get("created_at")),
    }
    if "history" in row:
        card["history"] = [history_to_domain(entry) for entry in row["history"]]
    return card


def from_input(data: dict) -> dict:
    return strip_text(pick(data, WRITABLE), "tally_card_number", "warehouse")


def to_row(card: dict) -> dict:
    """Table shape for list screens."""
    row = {
        "id": card["id"],
        "tally_card_number": card["tally_card_number"],
        "warehouse": card["warehouse"],
        "item_number": card["item_number"],
        "note": card["note"] or "",
        "status": "active" if card["is_active"] else "inactive",
        "created_at": card["created_at"],
    }
    if "history" in card:
        row["history_count"] = len(card["history"])
    return row


TALLY_CARDS = ResourceConfig(
    table="tally_cards",
    primary_key="id",
    select="id, tally_card_number, warehouse, item_number, note, is_active, created_at",
    searchable_columns=("tally_card_number", "warehouse", "note"),
    active_flag_column="is_active",
    default_sort=SortSpec("tally_card_number"),
    warehouse_scope=WarehouseScope(mode="column", column="warehouse", key_kind="code"),
    ownership_scope=OwnershipScope.none(),
    field_schema={
        "id": FieldSpec("uuid", readonly=True),
        "tally_card_number": FieldSpec("text"),
        "warehouse": FieldSpec("text"),
        "item_number": FieldSpec("int"),
        "note": FieldSpec("text", nullable=True),
        "is_active": FieldSpec("bool"),
        "created_at": FieldSpec("timestamp", nullable=True, readonly=True),
    },
    to_domain=to_domain,
    from_input=from_input,
    relations=(
        OneToMany(
            name="history",
            target_table="tally_card_history",
            foreign_key="tally_card_id",
            target_select=(
                "id, tally_card_id, action, from_item_number, to_item_number, "
                "from_warehouse, to_warehouse, note, changed_at"
            ),
            order_by=SortSpec("changed_at", descending=True),
        ),
    ),
)
