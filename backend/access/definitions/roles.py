"""Roles and their warehouse bindings.

A role with no rows in ``role_warehouse_rules`` is unrestricted; that
reading of an empty junction lives here in ``post_process``, not in the
hydrator. The label is taken from the bound ids; the hydrated warehouse
objects only include those the caller can see.

Writing roles needs ``admin:write:any``.
"""

from access.config import (
    FieldSpec,
    ManyToMany,
    OwnershipScope,
    ResourceConfig,
    SortSpec,
    WarehouseScope,
)
from access.definitions.common import ADMIN_WRITE_PERMISSIONS, iso, pick, strip_text

ROLE_WAREHOUSES = ManyToMany(
    name="warehouses",
    via_table="role_warehouse_rules",
    this_key="role_id",
    that_key="warehouse_id",
    target_table="warehouses",
    on_empty_policy="ALL",
    target_select="id, code, name",
    include_by_default=True,
)
ROLE_WAREHOUSE_IDS = ManyToMany(
    name="warehouse_ids",
    via_table="role_warehouse_rules",
    this_key="role_id",
    that_key="warehouse_id",
    target_table="warehouses",
    on_empty_policy="ALL",
    resolve_as="ids",
    include_by_default=True,
)


def to_domain(row: dict) -> dict:
    role = {
        "id": row["id"],
        "name": row["name"],
        "description": row.get("description") or "",
        "can_see_all_warehouses": bool(row.get("can_see_all_warehouses")),
        "is_active": bool(row.get("is_active")),
        "created_at": iso(row.get("created_at")),
    }
    for name in ("warehouses", "warehouse_ids"):
        if name in row:
            role[name] = list(row[name])
    return role


def from_input(data: dict) -> dict:
    return strip_text(
        pick(data, ("name", "description", "can_see_all_warehouses", "is_active")),
        "name",
    )


def warehouse_scope_label(warehouses: list, policy: str) -> str:
    """``ALL`` / ``NONE`` for an empty binding list per policy, else ``RESTRICTED``."""
    if warehouses:
        return "RESTRICTED"
    return policy


def post_process(roles: list) -> list:
    for role in roles:
        bound = role.get("warehouse_ids", role.get("warehouses"))
        if bound is None:
            continue
        scope = warehouse_scope_label(bound, ROLE_WAREHOUSE_IDS.on_empty_policy)
        role["warehouses_scope"] = scope
        role["has_warehouse_restrictions"] = scope == "RESTRICTED"
    return roles


ROLES = ResourceConfig(
    table="roles",
    primary_key="id",
    select="id, name, description, can_see_all_warehouses, is_active, created_at",
    searchable_columns=("name", "description"),
    active_flag_column="is_active",
    default_sort=SortSpec("name"),
    warehouse_scope=WarehouseScope.none(),
    ownership_scope=OwnershipScope.none(),
    field_schema={
        "id": FieldSpec("uuid", readonly=True),
        "name": FieldSpec("text"),
        "description": FieldSpec("text"),
        "can_see_all_warehouses": FieldSpec("bool"),
        "is_active": FieldSpec("bool"),
        "created_at": FieldSpec("timestamp", nullable=True, readonly=True),
    },
    to_domain=to_domain,
    from_input=from_input,
    post_process=post_process,
    relations=(ROLE_WAREHOUSES, ROLE_WAREHOUSE_IDS),
    write_permissions=ADMIN_WRITE_PERMISSIONS,
)
