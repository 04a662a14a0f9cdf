"""Per-request authorization context."""

from dataclasses import dataclass
from typing import Iterable, Optional


@dataclass(frozen=True)
class AuthorizationContext:
    """Who is asking and which warehouses they are bound to.

    Built by the identity layer for each request, never from the request
    body. ``allowed_warehouse_codes`` / ``allowed_warehouse_ids`` are
    ``None`` when unknown, in which case the legacy ``allowed_warehouses``
    list is used.
    """

    user_id: Optional[str] = None
    permissions: frozenset = frozenset()
    can_see_all_warehouses: bool = False
    allowed_warehouse_codes: Optional[tuple[str, ...]] = None
    allowed_warehouse_ids: Optional[tuple[str, ...]] = None
    allowed_warehouses: tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "permissions", frozenset(self.permissions))
        object.__setattr__(self, "allowed_warehouses", tuple(self.allowed_warehouses))
        for name in ("allowed_warehouse_codes", "allowed_warehouse_ids"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, tuple(value))

    def has_any_permission(self, permissions: Iterable[str]) -> bool:
        return not self.permissions.isdisjoint(permissions)

    def warehouse_keys(self, use_ids: bool) -> tuple[str, ...]:
        preferred = self.allowed_warehouse_ids if use_ids else self.allowed_warehouse_codes
        if preferred is not None:
            return preferred
        return self.allowed_warehouses
