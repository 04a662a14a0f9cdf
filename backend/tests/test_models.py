"""Tests for database models: defaults, relationships and cascades."""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError


@pytest.mark.integration
class TestWarehouseModel:

    async def test_defaults(self, db_session):
        from db.models import Warehouse

        warehouse = Warehouse(code="WH9", name="Overflow")
        db_session.add(warehouse)
        await db_session.flush()
        await db_session.refresh(warehouse)
        assert len(warehouse.id) == 36
        assert warehouse.is_active is True
        assert warehouse.created_at is not None

    async def test_code_is_unique(self, db_session, seed):
        from db.models import Warehouse

        db_session.add(Warehouse(code="WH1", name="Duplicate"))
        with pytest.raises(IntegrityError):
            await db_session.flush()


@pytest.mark.integration
class TestRoleModel:

    async def test_bindings_and_permissions(self, db_session, seed):
        from db.models import Role

        role = (await db_session.execute(select(Role).where(Role.name == "auditor"))).scalar_one()
        assert sorted(w.code for w in role.warehouses) == ["WH1", "WH2", "WH4"]
        assert [p.code for p in role.permissions] == ["entries:read:any"]
        assert role.can_see_all_warehouses is False

    async def test_user_roles_back_populate(self, db_session, seed):
        from db.models import User

        user = (await db_session.execute(select(User).where(User.id == seed.users["clerk"]))).scalar_one()
        assert sorted(r.name for r in user.roles) == ["clerk", "retired"]


@pytest.mark.integration
class TestTallyCardModel:

    async def test_history_rows_reference_card(self, db_session, seed):
        from db.models import TallyCardHistory

        rows = (
            await db_session.execute(
                select(TallyCardHistory)
                .where(TallyCardHistory.tally_card_id == seed.cards["TC-1"])
                .order_by(TallyCardHistory.changed_at)
            )
        ).scalars().all()
        assert [row.action for row in rows] == ["item_changed", "note_changed"]
        assert rows[0].from_item_number == 500
