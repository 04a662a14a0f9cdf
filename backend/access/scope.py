"""Warehouse and ownership scope guards.

Each guard has two halves with identical semantics:
- ``apply_*`` narrows a ``TableQuery`` before it reaches storage
- ``assert_row_in_*`` re-checks a fetched row and raises
  ``ScopeViolationError`` (403)

Both fail closed: an empty allow-list or a missing owner matches nothing.
"""

from typing import Any, Mapping

import structlog

from access.config import OwnershipScope, ResourceConfig, WarehouseScope
from access.context import AuthorizationContext
from core.exceptions import ScopeViolationError

logger = structlog.get_logger(__name__)

# Membership in this list can never match a real warehouse key
NO_ALLOWED_WAREHOUSES = "__NO_ALLOWED_WAREHOUSES__"
NO_AUTHENTICATED_USER = "__NO_AUTHENTICATED_USER__"

WAREHOUSE_VIOLATION = "forbidden_out_of_scope_warehouse"
OWNER_VIOLATION = "forbidden_out_of_scope_owner"


# ─── Warehouse ────────────────────────────────────────────


def warehouse_scope_applies(cfg: WarehouseScope, ctx: AuthorizationContext) -> bool:
    if cfg.mode == "none":
        return False
    if ctx.can_see_all_warehouses and not cfg.require_binding:
        return False
    return True


def allowed_warehouse_keys(cfg: WarehouseScope, ctx: AuthorizationContext) -> tuple[str, ...]:
    """The allow-list for ``cfg.column``: ids or codes, else the legacy list."""
    return ctx.warehouse_keys(use_ids=cfg.uses_ids)


def apply_warehouse_scope(query, cfg: WarehouseScope, ctx: AuthorizationContext):
    """Restrict ``cfg.column`` to the caller's warehouses."""
    if not warehouse_scope_applies(cfg, ctx):
        return query
    allowed = allowed_warehouse_keys(cfg, ctx)
    if not allowed:
        return query.in_(cfg.column, [NO_ALLOWED_WAREHOUSES])
    return query.in_(cfg.column, list(allowed))


def assert_row_in_warehouse_scope(
    row: Mapping[str, Any],
    cfg: WarehouseScope,
    ctx: AuthorizationContext,
) -> None:
    """Raise ``ScopeViolationError`` unless the row's warehouse is allowed."""
    if not warehouse_scope_applies(cfg, ctx):
        return
    value = row.get(cfg.column)
    allowed = allowed_warehouse_keys(cfg, ctx)
    if value is None or value == "" or str(value) not in {str(key) for key in allowed}:
        logger.warning(
            "scope_violation",
            guard="warehouse",
            column=cfg.column,
            value=value,
            user_id=ctx.user_id,
        )
        raise ScopeViolationError(WAREHOUSE_VIOLATION)


# ─── Ownership ────────────────────────────────────────────


def ownership_scope_applies(cfg: OwnershipScope, ctx: AuthorizationContext) -> bool:
    if cfg.mode == "none":
        return False
    return not ctx.has_any_permission(cfg.bypass_permissions)


def apply_ownership_scope(query, cfg: OwnershipScope, ctx: AuthorizationContext):
    """Restrict ``cfg.column`` to the caller's user id."""
    if not ownership_scope_applies(cfg, ctx):
        return query
    return query.eq(cfg.column, ctx.user_id or NO_AUTHENTICATED_USER)


def assert_row_in_ownership_scope(
    row: Mapping[str, Any],
    cfg: OwnershipScope,
    ctx: AuthorizationContext,
) -> None:
    """Raise ``ScopeViolationError`` unless the caller owns the row.

    A row with no owner is never visible.
    """
    if not ownership_scope_applies(cfg, ctx):
        return
    owner = row.get(cfg.column)
    if owner is None or owner == "" or not ctx.user_id or str(owner) != str(ctx.user_id):
        logger.warning(
            "scope_violation",
            guard="ownership",
            column=cfg.column,
            user_id=ctx.user_id,
        )
        raise ScopeViolationError(OWNER_VIOLATION)


# ─── Both ─────────────────────────────────────────────────


def apply_scopes(query, config: ResourceConfig, ctx: AuthorizationContext):
    query = apply_warehouse_scope(query, config.warehouse_scope, ctx)
    return apply_ownership_scope(query, config.ownership_scope, ctx)


def assert_row_in_scope(
    row: Mapping[str, Any],
    config: ResourceConfig,
    ctx: AuthorizationContext,
) -> None:
    assert_row_in_warehouse_scope(row, config.warehouse_scope, ctx)
    assert_row_in_ownership_scope(row, config.ownership_scope, ctx)
