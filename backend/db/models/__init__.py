"""Database models for the warehouse admin API.

This module imports all models to ensure they are registered
with SQLAlchemy's declarative base.
"""

from db.models.user import User
from db.models.role import Role, user_roles, role_warehouse_rules
from db.models.permission import Permission, role_permissions
from db.models.warehouse import Warehouse, WarehouseLocation
from db.models.tally_card import TallyCard, TallyCardHistory
from db.models.tally_card_entry import TallyCardEntry

__all__ = [
    "User",
    "Role",
    "user_roles",
    "role_warehouse_rules",
    "Permission",
    "role_permissions",
    "Warehouse",
    "WarehouseLocation",
    "TallyCard",
    "TallyCardHistory",
    "TallyCardEntry",
]
