"""Per-user tally card entries, exposed as stock adjustments.

Scoped twice: to the caller's warehouses and to the caller's own entries
unless they hold an ``*:read:any`` permission.
"""

from access.config import (
    FieldSpec,
    ManyToOne,
    OwnershipScope,
    ResourceConfig,
    SortSpec,
    WarehouseScope,
)
from access.definitions.common import as_int, iso, pick, strip_text

BYPASS_PERMISSIONS = ("entries:read:any", "admin:read:any")


def to_domain(row: dict) -> dict:
    entry = {
        "id": row["id"],
        "user_id": row["user_id"],
        "tally_card_id": row.get("tally_card_id"),
        "tally_card_number": row["tally_card_number"],
        "warehouse_id": row["warehouse_id"],
        "qty": as_int(row.get("qty")),
        "location": row.get("location"),
        "note": row.get("note"),
        "updated_at": iso(row.get("updated_at")),
    }
    if "tally_card" in row:
        entry["tally_card"] = row["tally_card"]
    return entry


def from_input(data: dict) -> dict:
    return strip_text(
        pick(data, ("tally_card_id", "tally_card_number", "warehouse_id", "qty", "location", "note")),
        "tally_card_number",
        "location",
    )


def to_row(entry: dict) -> dict:
    card = entry.get("tally_card") or {}
    return {
        "id": entry["id"],
        "tally_card_number": entry["tally_card_number"],
        "item_number": card.get("item_number"),
        "warehouse": card.get("warehouse"),
        "qty": entry["qty"],
        "location": entry["location"] or "",
        "note": entry["note"] or "",
        "updated_at": entry["updated_at"],
    }


TALLY_CARD_ENTRIES = ResourceConfig(
    table="tally_card_entries",
    primary_key="id",
    select="id, user_id, tally_card_id, tally_card_number, warehouse_id, qty, location, note, updated_at",
    searchable_columns=("tally_card_number", "location", "note"),
    default_sort=SortSpec("updated_at", descending=True),
    warehouse_scope=WarehouseScope(mode="column", column="warehouse_id", key_kind="id"),
    ownership_scope=OwnershipScope(
        mode="self",
        column="user_id",
        bypass_permissions=BYPASS_PERMISSIONS,
    ),
    field_schema={
        "id": FieldSpec("uuid", readonly=True),
        "user_id": FieldSpec("uuid", writable=False),
        "tally_card_id": FieldSpec("uuid", nullable=True),
        "tally_card_number": FieldSpec("text"),
        "warehouse_id": FieldSpec("uuid"),
        "qty": FieldSpec("int", nullable=True),
        "location": FieldSpec("text", nullable=True),
        "note": FieldSpec("text", nullable=True),
        "updated_at": FieldSpec("timestamp", nullable=True, readonly=True),
    },
    to_domain=to_domain,
    from_input=from_input,
    relations=(
        ManyToOne(
            name="tally_card",
            local_key="tally_card_id",
            target_table="tally_cards",
            target_select="id, tally_card_number, warehouse, item_number",
            include_by_default=True,
        ),
    ),
)
