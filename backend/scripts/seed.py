"""Database seed script: creates warehouses, roles, users and sample inventory.

Run: python -m scripts.seed
"""

import asyncio
import sys
import os

# Ensure project root is in path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


async def seed():
    """Seed the database with default data."""
    from db.database import init_db
    from db.database import AsyncSessionLocal
    from db.models import (
        Permission,
        Role,
        TallyCard,
        TallyCardEntry,
        TallyCardHistory,
        User,
        Warehouse,
        WarehouseLocation,
    )
    from core.security import create_access_token
    from sqlalchemy import select

    # Initialize DB tables
    await init_db()

    async with AsyncSessionLocal() as db:
        # 1. Warehouses
        warehouse_defs = [
            ("WH1", "Main Warehouse"),
            ("WH2", "North Depot"),
            ("WH3", "Overflow Yard"),
        ]
        warehouses = {}
        for code, name in warehouse_defs:
            result = await db.execute(select(Warehouse).where(Warehouse.code == code))
            warehouse = result.scalar_one_or_none()
            if not warehouse:
                warehouse = Warehouse(code=code, name=name)
                db.add(warehouse)
            warehouses[code] = warehouse

        await db.flush()
        print(f"[seed] {len(warehouses)} warehouses ready")

        # 2. Permissions
        permission_defs = [
            ("entries:read:any", "Read stock adjustments of every user"),
            ("admin:read:any", "Read every user's records"),
            ("admin:write:any", "Create, change and retire roles and warehouses"),
        ]
        permissions = {}
        for code, description in permission_defs:
            result = await db.execute(select(Permission).where(Permission.code == code))
            perm = result.scalar_one_or_none()
            if not perm:
                perm = Permission(code=code, description=description)
                db.add(perm)
            permissions[code] = perm

        await db.flush()
        print(f"[seed] {len(permissions)} permissions ready")

        # 3. Roles; an empty warehouse list means unrestricted
        role_defs = {
            "admin": {
                "description": "Sees every warehouse and every user's entries",
                "can_see_all_warehouses": True,
                "permissions": list(permissions),
                "warehouses": [],
            },
            "auditor": {
                "description": "Reads all entries in WH1 and WH2",
                "can_see_all_warehouses": False,
                "permissions": ["entries:read:any"],
                "warehouses": ["WH1", "WH2"],
            },
            "clerk": {
                "description": "Records counts in WH1",
                "can_see_all_warehouses": False,
                "permissions": [],
                "warehouses": ["WH1"],
            },
        }
        roles = {}
        for name, role_def in role_defs.items():
            result = await db.execute(select(Role).where(Role.name == name))
            role = result.scalar_one_or_none()
            if not role:
                role = Role(
                    name=name,
                    description=role_def["description"],
                    can_see_all_warehouses=role_def["can_see_all_warehouses"],
                    permissions=[permissions[code] for code in role_def["permissions"]],
                    warehouses=[warehouses[code] for code in role_def["warehouses"]],
                )
                db.add(role)
            roles[name] = role

        await db.flush()
        print(f"[seed] {len(roles)} roles ready")

        # 4. Users
        users = {}
        for name in role_defs:
            email = f"{name}@warehouse.local"
            result = await db.execute(select(User).where(User.email == email))
            user = result.scalar_one_or_none()
            if not user:
                user = User(email=email, full_name=name.title(), roles=[roles[name]])
                db.add(user)
                print(f"[seed] Created user: {email}")
            users[name] = user

        await db.flush()

        # 5. Sample inventory
        result = await db.execute(select(TallyCard).limit(1))
        if result.scalar_one_or_none() is None:
            cards = [
                TallyCard(tally_card_number="TC-1001", warehouse="WH1", item_number=501, note="Bolts"),
                TallyCard(tally_card_number="TC-1002", warehouse="WH1", item_number=502),
                TallyCard(tally_card_number="TC-2001", warehouse="WH2", item_number=601, note="Pallets"),
                TallyCard(tally_card_number="TC-3001", warehouse="WH3", item_number=701),
            ]
            db.add_all(cards)
            await db.flush()

            db.add(
                TallyCardHistory(
                    tally_card_id=cards[0].id,
                    action="item_changed",
                    from_item_number=500,
                    to_item_number=501,
                    note="Relabelled",
                )
            )
            db.add_all(
                [
                    WarehouseLocation(warehouse_id=warehouses["WH1"].id, name="A-01", description="Rack A"),
                    WarehouseLocation(warehouse_id=warehouses["WH2"].id, name="B-01"),
                ]
            )
            db.add_all(
                [
                    TallyCardEntry(
                        user_id=users["clerk"].id,
                        tally_card_id=cards[0].id,
                        tally_card_number=cards[0].tally_card_number,
                        warehouse_id=warehouses["WH1"].id,
                        qty=40,
                        location="A-01",
                    ),
                    TallyCardEntry(
                        user_id=users["auditor"].id,
                        tally_card_id=cards[2].id,
                        tally_card_number=cards[2].tally_card_number,
                        warehouse_id=warehouses["WH2"].id,
                        qty=12,
                        location="B-01",
                    ),
                ]
            )
            print("[seed] Sample tally cards, locations and entries created")

        await db.commit()

        for name, user in users.items():
            print(f"[seed] {name} token: {create_access_token(user.id)}")
        print("[seed] Database seeded successfully!")


if __name__ == "__main__":
    asyncio.run(seed())
