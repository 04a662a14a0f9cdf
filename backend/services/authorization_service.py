"""Builds the per-request AuthorizationContext from roles and bindings."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from access.context import AuthorizationContext
from core.exceptions import UnauthorizedError
from db.models import (
    Permission,
    Role,
    User,
    Warehouse,
    role_permissions,
    role_warehouse_rules,
    user_roles,
)

logger = logging.getLogger(__name__)


class AuthorizationService:
    """Resolve a user's permissions and warehouse bindings."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def build_context(self, user_id: str) -> AuthorizationContext:
        """Load active roles, their permission codes and warehouse bindings.

        ``can_see_all_warehouses`` is granted by any active role carrying the
        flag. Bindings to inactive warehouses are ignored.

        Raises:
            UnauthorizedError: Unknown or inactive user
        """
        result = await self.db.execute(
            select(User.id, User.is_active).where(User.id == user_id)
        )
        user = result.first()
        if not user or not user.is_active:
            raise UnauthorizedError("User not found or inactive")

        result = await self.db.execute(
            select(Role.id, Role.can_see_all_warehouses)
            .join(user_roles, user_roles.c.role_id == Role.id)
            .where(
                user_roles.c.user_id == user_id,
                Role.is_active == True,  # noqa: E712
            )
        )
        roles = result.all()
        role_ids = [role.id for role in roles]

        permissions: set[str] = set()
        codes: set[str] = set()
        ids: set[str] = set()
        if role_ids:
            result = await self.db.execute(
                select(Permission.code)
                .join(role_permissions, role_permissions.c.permission_id == Permission.id)
                .where(role_permissions.c.role_id.in_(role_ids))
            )
            permissions = set(result.scalars().all())

            result = await self.db.execute(
                select(Warehouse.id, Warehouse.code)
                .join(role_warehouse_rules, role_warehouse_rules.c.warehouse_id == Warehouse.id)
                .where(
                    role_warehouse_rules.c.role_id.in_(role_ids),
                    Warehouse.is_active == True,  # noqa: E712
                )
            )
            for warehouse in result.all():
                ids.add(warehouse.id)
                codes.add(warehouse.code)

        context = AuthorizationContext(
            user_id=user_id,
            permissions=frozenset(permissions),
            can_see_all_warehouses=any(role.can_see_all_warehouses for role in roles),
            allowed_warehouse_codes=tuple(sorted(codes)),
            allowed_warehouse_ids=tuple(sorted(ids)),
        )
        logger.debug(
            "Authorization context for %s: %d role(s), %d warehouse(s), global=%s",
            user_id,
            len(roles),
            len(ids),
            context.can_see_all_warehouses,
        )
        return context
