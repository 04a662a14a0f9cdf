"""Warehouses and warehouse locations."""

from access.config import (
    FieldSpec,
    ManyToOne,
    OwnershipScope,
    ResourceConfig,
    SortSpec,
    WarehouseScope,
)
from access.definitions.common import ADMIN_WRITE_PERMISSIONS, iso, pick, strip_text


def warehouse_to_domain(row: dict) -> dict:
    return {
        "id": row["id"],
        "code": row["code"],
        "name": row["name"],
        "is_active": bool(row.get("is_active")),
        "created_at": iso(row.get("created_at")),
    }


def warehouse_from_input(data: dict) -> dict:
    return strip_text(pick(data, ("code", "name", "is_active")), "code", "name")


# Scoped on the primary key itself, so the key kind is stated explicitly
WAREHOUSES = ResourceConfig(
    table="warehouses",
    primary_key="id",
    select="id, code, name, is_active, created_at",
    searchable_columns=("code", "name"),
    active_flag_column="is_active",
    default_sort=SortSpec("code"),
    warehouse_scope=WarehouseScope(mode="column", column="id", key_kind="id"),
    ownership_scope=OwnershipScope.none(),
    field_schema={
        "id": FieldSpec("uuid", readonly=True),
        "code": FieldSpec("text"),
        "name": FieldSpec("text"),
        "is_active": FieldSpec("bool"),
        "created_at": FieldSpec("timestamp", nullable=True, readonly=True),
    },
    to_domain=warehouse_to_domain,
    from_input=warehouse_from_input,
    write_permissions=ADMIN_WRITE_PERMISSIONS,
)


def location_to_domain(row: dict) -> dict:
    location = {
        "id": row["id"],
        "warehouse_id": row["warehouse_id"],
        "name": row["name"],
        "description": row.get("description"),
        "is_active": bool(row.get("is_active")),
        "created_at": iso(row.get("created_at")),
        "updated_at": iso(row.get("updated_at")),
    }
    if "warehouse" in row:
        location["warehouse"] = row["warehouse"]
    return location


def location_from_input(data: dict) -> dict:
    return strip_text(pick(data, ("warehouse_id", "name", "description", "is_active")), "name")


def location_post_process(locations: list) -> list:
    for location in locations:
        if "warehouse" not in location:
            continue
        warehouse = location["warehouse"] or {}
        location["warehouse_code"] = warehouse.get("code")
        location["warehouse_name"] = warehouse.get("name")
    return locations


WAREHOUSE_LOCATIONS = ResourceConfig(
    table="warehouse_locations",
    primary_key="id",
    select="id, warehouse_id, name, description, is_active, created_at, updated_at",
    searchable_columns=("name", "description"),
    active_flag_column="is_active",
    default_sort=SortSpec("name"),
    warehouse_scope=WarehouseScope(mode="column", column="warehouse_id"),
    ownership_scope=OwnershipScope.none(),
    field_schema={
        "id": FieldSpec("uuid", readonly=True),
        "warehouse_id": FieldSpec("uuid"),
        "warehouse_code": FieldSpec("text", nullable=True, readonly=True),
        "warehouse_name": FieldSpec("text", nullable=True, readonly=True),
        "name": FieldSpec("text"),
        "description": FieldSpec("text", nullable=True),
        "is_active": FieldSpec("bool"),
        "created_at": FieldSpec("timestamp", nullable=True, readonly=True),
        "updated_at": FieldSpec("timestamp", nullable=True, readonly=True),
    },
    to_domain=location_to_domain,
    from_input=location_from_input,
    post_process=location_post_process,
    relations=(
        ManyToOne(
            name="warehouse",
            local_key="warehouse_id",
            target_table="warehouses",
            target_select="id, code, name",
            include_by_default=True,
        ),
    ),
)
