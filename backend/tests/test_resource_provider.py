"""Tests for the resource provider against a seeded database."""

import pytest

from access.definitions.catalog import build_registry
from access.filters import FilterLeaf, FilterOperator, parse_filter
from access.query import SqlAlchemyDataSource
from app.config import get_settings
from core.exceptions import (
    ForbiddenError,
    InvalidParameterError,
    NotFoundError,
    ScopeViolationError,
    UnknownResourceError,
)
from services.resource_provider import ResourceProvider, validate_id


@pytest.fixture
def provider(db_session):
    return ResourceProvider(build_registry(), SqlAlchemyDataSource(db_session))


def numbers(result):
    return [row["tally_card_number"] for row in result.rows]


@pytest.mark.integration
class TestListResource:
    async def test_warehouse_scope_limits_rows_and_total(self, provider, contexts):
        result = await provider.list_resource("tally_cards", {}, contexts["clerk"])
        assert numbers(result) == ["TC-1", "TC-2"]
        assert result.total == 2
        assert result.rows[0]["status"] == "active"
        assert result.rows[1]["status"] == "inactive"

    async def test_alias_resolves_to_the_same_resource(self, provider, contexts):
        result = await provider.list_resource("tally-cards", {"activeOnly": "true"}, contexts["clerk"])
        assert numbers(result) == ["TC-1"]
        assert result.total == 1

    async def test_global_visibility(self, provider, contexts):
        result = await provider.list_resource("tally_cards", {}, contexts["admin"])
        assert numbers(result) == ["TC-1", "TC-2", "TC-3", "TC-4"]

    async def test_no_bindings_sees_nothing(self, provider, contexts):
        result = await provider.list_resource("tally_cards", {}, contexts["unbound"])
        assert result.rows == []
        assert result.total == 0

    async def test_pagination(self, provider, contexts):
        result = await provider.list_resource("tally_cards", {"page": "2", "pageSize": "3"}, contexts["admin"])
        assert numbers(result) == ["TC-4"]
        assert result.total == 4
        assert result.page == 2
        assert result.page_size == 3

    async def test_search(self, provider, contexts):
        result = await provider.list_resource("tally_cards", {"q": "bol"}, contexts["admin"])
        assert numbers(result) == ["TC-1"]
        result = await provider.list_resource("tally_cards", {"q": "%"}, contexts["admin"])
        assert result.total == 0

    async def test_sort(self, provider, contexts):
        result = await provider.list_resource("tally_cards", {"sort": "-item_number"}, contexts["admin"])
        assert numbers(result) == ["TC-4", "TC-3", "TC-2", "TC-1"]
        with pytest.raises(InvalidParameterError):
            await provider.list_resource("tally_cards", {"sort": "-bogus"}, contexts["admin"])

    async def test_raw_mode(self, provider, contexts):
        result = await provider.list_resource("tally_cards", {"raw": "true"}, contexts["clerk"])
        assert result.raw is True
        assert "status" not in result.rows[0]
        assert result.rows[0]["is_active"] is True
        with pytest.raises(InvalidParameterError):
            await provider.list_resource("roles", {"raw": "true"}, contexts["admin"])

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ({"column": "note", "operator": "notEquals", "operand": "Bolts"}, ["TC-2", "TC-3", "TC-4"]),
            ({"column": "note", "isNull": True}, ["TC-2", "TC-4"]),
            ({"column": "item_number", "operator": "in", "operand": [501, 601]}, ["TC-1", "TC-3"]),
            ({"column": "item_number", "operator": "in", "operand": ["501", "601"]}, []),
            ({"column": "tally_card_number", "eq": 1}, []),
            ({"column": "item_number", "operator": "notEquals", "operand": "501"}, ["TC-1", "TC-2", "TC-3", "TC-4"]),
            ({"column": "item_number", "contains": "50"}, []),
            ({"or": [{"column": "warehouse", "eq": "WH3"}, {"column": "note", "contains": "pal"}]}, ["TC-3", "TC-4"]),
            ({"and": []}, ["TC-1", "TC-2", "TC-3", "TC-4"]),
            ({"or": []}, []),
        ],
    )
    async def test_storage_filters(self, provider, contexts, raw, expected):
        result = await provider.list_resource("tally_cards", {}, contexts["admin"], filter=parse_filter(raw))
        assert numbers(result) == expected
        assert result.total == len(expected)

    async def test_filter_cannot_widen_scope(self, provider, contexts):
        node = parse_filter({"column": "warehouse", "operator": "in", "operand": ["WH2", "WH3"]})
        result = await provider.list_resource("tally_cards", {}, contexts["clerk"], filter=node)
        assert result.rows == []

    async def test_in_memory_filter_on_derived_column(self, provider, contexts):
        node = FilterLeaf("warehouse_code", FilterOperator.EQUALS, "WH2")
        result = await provider.list_resource("warehouse_locations", {}, contexts["admin"], filter=node)
        assert [row["name"] for row in result.rows] == ["B-01"]
        assert result.total == 1
        assert result.rows[0]["warehouse_name"] == "Warehouse WH2"

        result = await provider.list_resource("warehouse_locations", {}, contexts["clerk"], filter=node)
        assert result.total == 0

    async def test_ownership_scope(self, seed, provider, contexts):
        own = await provider.list_resource("tally_card_entries", {}, contexts["clerk"])
        assert [row["id"] for row in own.rows] == [seed.entries["clerk"]]
        assert own.rows[0]["item_number"] == 501
        assert own.rows[0]["warehouse"] == "WH1"

        audited = await provider.list_resource("stock-adjustments", {}, contexts["auditor"])
        assert {row["id"] for row in audited.rows} == {
            seed.entries["clerk"],
            seed.entries["clerk2"],
            seed.entries["auditor"],
        }

        everything = await provider.list_resource("tally_card_entries", {}, contexts["admin"])
        assert everything.total == 4

    async def test_role_warehouse_policy(self, provider, contexts):
        result = await provider.list_resource("roles", {}, contexts["admin"])
        roles = {row["name"]: row for row in result.rows}

        assert roles["admin"]["warehouses"] == []
        assert roles["admin"]["warehouses_scope"] == "ALL"
        assert roles["admin"]["has_warehouse_restrictions"] is False
        assert roles["unbound"]["warehouses_scope"] == "ALL"

        assert roles["clerk"]["warehouses_scope"] == "RESTRICTED"
        assert [w["code"] for w in roles["clerk"]["warehouses"]] == ["WH1"]
        assert roles["clerk"]["has_warehouse_restrictions"] is True

    async def test_unknown_resource(self, provider, contexts):
        with pytest.raises(UnknownResourceError):
            await provider.list_resource("widgets", {}, contexts["admin"])


@pytest.mark.integration
class TestGetResource:
    async def test_get_with_history(self, seed, provider, contexts):
        card = await provider.get_resource("tally_cards", seed.cards["TC-1"], contexts["clerk"], include=["history"])
        assert card["tally_card_number"] == "TC-1"
        assert [entry["action"] for entry in card["history"]] == ["note_changed", "item_changed"]
        assert card["history"][1]["from_item_number"] == 500

    async def test_relations_are_opt_in(self, seed, provider, contexts):
        card = await provider.get_resource("tally_cards", seed.cards["TC-1"], contexts["clerk"])
        assert "history" not in card

    async def test_default_relation(self, seed, provider, contexts):
        location = await provider.get_resource("warehouse_locations", seed.locations["A-01"], contexts["clerk"])
        assert location["warehouse"]["code"] == "WH1"
        assert location["warehouse_code"] == "WH1"

    async def test_out_of_scope_is_not_found(self, seed, provider, contexts):
        with pytest.raises(NotFoundError):
            await provider.get_resource("tally_cards", seed.cards["TC-3"], contexts["clerk"])
        with pytest.raises(NotFoundError):
            await provider.get_resource("tally_cards", seed.cards["TC-1"], contexts["unbound"])
        with pytest.raises(NotFoundError):
            await provider.get_resource("tally_card_entries", seed.entries["clerk2"], contexts["clerk"])

    @pytest.mark.parametrize("bad_id", ["", "   ", "x" * 129, None, 42])
    def test_invalid_ids(self, bad_id):
        with pytest.raises(InvalidParameterError):
            validate_id(bad_id)


@pytest.mark.integration
class TestWrites:
    async def test_create_in_scope(self, provider, contexts):
        card = await provider.create_resource(
            "tally_cards",
            {"tally_card_number": " TC-9 ", "warehouse": "WH1", "item_number": "900"},
            contexts["clerk"],
        )
        assert card["tally_card_number"] == "TC-9"
        assert card["item_number"] == 900
        assert card["is_active"] is True
        assert card["id"]

    async def test_create_out_of_scope(self, provider, contexts):
        with pytest.raises(ScopeViolationError):
            await provider.create_resource(
                "tally_cards",
                {"tally_card_number": "TC-9", "warehouse": "WH2", "item_number": 900},
                contexts["clerk"],
            )
        result = await provider.list_resource("tally_cards", {"q": "TC-9"}, contexts["admin"])
        assert result.total == 0

    async def test_create_stamps_owner(self, seed, provider, contexts):
        entry = await provider.create_resource(
            "tally_card_entries",
            {
                "tally_card_id": seed.cards["TC-1"],
                "tally_card_number": "TC-1",
                "warehouse_id": seed.warehouses["WH1"],
                "qty": 3,
                "user_id": seed.users["clerk2"],
            },
            contexts["clerk"],
        )
        assert entry["user_id"] == seed.users["clerk"]
        assert entry["tally_card"]["item_number"] == 501

    async def test_create_rejects_unknown_fields(self, provider, contexts):
        with pytest.raises(InvalidParameterError):
            await provider.create_resource(
                "tally_cards",
                {"tally_card_number": "TC-9", "warehouse": "WH1", "item_number": 1, "colour": "red"},
                contexts["clerk"],
            )

    async def test_constraint_violation_is_a_bad_request(self, provider, contexts):
        with pytest.raises(InvalidParameterError):
            await provider.create_resource("warehouses", {"code": "WH1", "name": "Duplicate"}, contexts["admin"])

    async def test_update(self, seed, provider, contexts):
        card = await provider.update_resource(
            "tally_cards", seed.cards["TC-1"], {"note": "Hex bolts"}, contexts["clerk"]
        )
        assert card["note"] == "Hex bolts"
        assert card["warehouse"] == "WH1"

    async def test_update_cannot_move_row_out_of_scope(self, seed, provider, contexts):
        with pytest.raises(ScopeViolationError):
            await provider.update_resource("tally_cards", seed.cards["TC-1"], {"warehouse": "WH2"}, contexts["clerk"])
        card = await provider.get_resource("tally_cards", seed.cards["TC-1"], contexts["clerk"])
        assert card["warehouse"] == "WH1"

    async def test_update_out_of_scope_row(self, seed, provider, contexts):
        with pytest.raises(NotFoundError):
            await provider.update_resource("tally_cards", seed.cards["TC-3"], {"note": "x"}, contexts["clerk"])
        with pytest.raises(NotFoundError):
            await provider.update_resource(
                "tally_card_entries", seed.entries["clerk2"], {"qty": 1}, contexts["clerk"]
            )

    async def test_update_ignores_primary_key(self, seed, provider, contexts):
        card = await provider.update_resource(
            "tally_cards",
            seed.cards["TC-1"],
            {"id": "5f0c3a9e-8c7e-4d5e-9b7a-1c2d3e4f5a6b", "item_number": 777},
            contexts["clerk"],
        )
        assert card["id"] == seed.cards["TC-1"]
        assert card["item_number"] == 777

    async def test_soft_delete(self, seed, provider, contexts):
        card = await provider.delete_resource("tally_cards", seed.cards["TC-1"], contexts["clerk"])
        assert card["is_active"] is False

        again = await provider.delete_resource("tally_cards", seed.cards["TC-1"], contexts["clerk"])
        assert again["is_active"] is False

        active = await provider.list_resource("tally_cards", {"activeOnly": "1"}, contexts["clerk"])
        assert active.rows == []

    async def test_hard_delete(self, seed, provider, contexts):
        assert await provider.delete_resource("tally_card_entries", seed.entries["clerk"], contexts["clerk"]) is None
        with pytest.raises(NotFoundError):
            await provider.get_resource("tally_card_entries", seed.entries["clerk"], contexts["admin"])

    async def test_delete_out_of_scope(self, seed, provider, contexts):
        with pytest.raises(NotFoundError):
            await provider.delete_resource("tally_card_entries", seed.entries["clerk2"], contexts["clerk"])

    async def test_bulk_delete(self, seed, provider, contexts):
        ids = [seed.cards["TC-1"], seed.cards["TC-3"], seed.cards["TC-1"]]
        result = await provider.bulk_delete_resources("tally_cards", ids, contexts["admin"])
        assert result.deleted_ids == [seed.cards["TC-1"], seed.cards["TC-3"]]
        assert result.soft_delete is True

        active = await provider.list_resource("tally_cards", {"activeOnly": "1"}, contexts["admin"])
        assert numbers(active) == ["TC-4"]

    async def test_bulk_delete_is_all_or_nothing(self, seed, provider, contexts):
        with pytest.raises(NotFoundError) as exc_info:
            await provider.bulk_delete_resources(
                "tally_cards", [seed.cards["TC-1"], seed.cards["TC-3"]], contexts["clerk"]
            )
        assert seed.cards["TC-3"] in exc_info.value.message

        card = await provider.get_resource("tally_cards", seed.cards["TC-1"], contexts["clerk"])
        assert card["is_active"] is True

    async def test_bulk_hard_delete(self, seed, provider, contexts):
        result = await provider.bulk_delete_resources(
            "tally_card_entries", [seed.entries["clerk"], seed.entries["auditor"]], contexts["admin"]
        )
        assert result.soft_delete is False
        remaining = await provider.list_resource("tally_card_entries", {}, contexts["admin"])
        assert remaining.total == 2

    @pytest.mark.parametrize("ids", [[], None, "abc", {"ids": []}])
    async def test_bulk_delete_needs_ids(self, provider, contexts, ids):
        with pytest.raises(InvalidParameterError):
            await provider.bulk_delete_resources("tally_cards", ids, contexts["admin"])


@pytest.mark.integration
class TestWritePermissions:
    async def test_clerk_cannot_widen_own_role(self, seed, provider, contexts):
        with pytest.raises(ForbiddenError):
            await provider.update_resource(
                "roles", seed.roles["clerk"], {"can_see_all_warehouses": True}, contexts["clerk"]
            )
        role = await provider.get_resource("roles", seed.roles["clerk"], contexts["admin"])
        assert role["can_see_all_warehouses"] is False

    async def test_every_write_is_gated(self, seed, provider, contexts):
        with pytest.raises(ForbiddenError):
            await provider.create_resource("roles", {"name": "superclerk"}, contexts["clerk"])
        with pytest.raises(ForbiddenError):
            await provider.delete_resource("warehouses", seed.warehouses["WH1"], contexts["clerk"])
        with pytest.raises(ForbiddenError):
            await provider.bulk_delete_resources("roles", [seed.roles["clerk"]], contexts["auditor"])

    async def test_gate_runs_before_validation(self, seed, provider, contexts):
        with pytest.raises(ForbiddenError):
            await provider.update_resource("roles", seed.roles["clerk"], {"colour": "red"}, contexts["clerk"])

    async def test_admin_writes(self, seed, provider, contexts):
        role = await provider.update_resource(
            "roles", seed.roles["unbound"], {"can_see_all_warehouses": True}, contexts["admin"]
        )
        assert role["can_see_all_warehouses"] is True
        warehouse = await provider.create_resource("warehouses", {"code": "WH9", "name": "Overflow"}, contexts["admin"])
        assert warehouse["code"] == "WH9"


@pytest.mark.integration
class TestRelatedRowScope:
    async def test_create_rejects_card_outside_scope(self, seed, provider, contexts):
        with pytest.raises(InvalidParameterError) as exc_info:
            await provider.create_resource(
                "stock-adjustments",
                {
                    "tally_card_id": seed.cards["TC-3"],
                    "tally_card_number": "TC-3",
                    "warehouse_id": seed.warehouses["WH1"],
                    "qty": 1,
                },
                contexts["clerk"],
            )
        assert "tally_card" in exc_info.value.message
        everything = await provider.list_resource("tally_card_entries", {}, contexts["admin"])
        assert everything.total == 4

    async def test_update_rejects_card_outside_scope(self, seed, provider, contexts):
        with pytest.raises(InvalidParameterError):
            await provider.update_resource(
                "tally_card_entries",
                seed.entries["clerk"],
                {"tally_card_id": seed.cards["TC-3"]},
                contexts["clerk"],
            )
        entry = await provider.get_resource("tally_card_entries", seed.entries["clerk"], contexts["clerk"])
        assert entry["tally_card_id"] == seed.cards["TC-1"]

    async def test_auditor_may_reference_any_visible_card(self, seed, provider, contexts):
        entry = await provider.create_resource(
            "tally_card_entries",
            {
                "tally_card_id": seed.cards["TC-3"],
                "tally_card_number": "TC-3",
                "warehouse_id": seed.warehouses["WH2"],
                "qty": 2,
            },
            contexts["auditor"],
        )
        assert entry["tally_card"]["item_number"] == 601

    async def test_hydrated_card_outside_scope_is_left_out(self, seed, provider, contexts, db_session):
        from db.models import TallyCardEntry

        stray = TallyCardEntry(
            user_id=seed.users["clerk"],
            tally_card_id=seed.cards["TC-3"],
            tally_card_number="TC-3",
            warehouse_id=seed.warehouses["WH1"],
            qty=1,
        )
        db_session.add(stray)
        await db_session.commit()

        entry = await provider.get_resource("tally_card_entries", stray.id, contexts["clerk"])
        assert entry["tally_card"] is None
        entry = await provider.get_resource("tally_card_entries", stray.id, contexts["admin"])
        assert entry["tally_card"]["item_number"] == 601

    async def test_role_bindings_show_only_visible_warehouses(self, seed, provider, contexts):
        auditor = await provider.get_resource("roles", seed.roles["auditor"], contexts["clerk"])
        assert [warehouse["code"] for warehouse in auditor["warehouses"]] == ["WH1"]
        assert len(auditor["warehouse_ids"]) == 3
        assert auditor["warehouses_scope"] == "RESTRICTED"

        result = await provider.list_resource("roles", {}, contexts["unbound"])
        roles = {row["name"]: row for row in result.rows}
        assert roles["clerk"]["warehouses"] == []
        assert roles["clerk"]["warehouses_scope"] == "RESTRICTED"
        assert roles["admin"]["warehouses_scope"] == "ALL"


@pytest.mark.integration
class TestLocalFilterRowCap:
    @pytest.fixture
    def capped_provider(self, db_session):
        settings = get_settings().model_copy(update={"LOCAL_FILTER_ROW_CAP": 2})
        return ResourceProvider(build_registry(), SqlAlchemyDataSource(db_session), settings=settings)

    async def test_more_rows_than_cap_is_rejected(self, capped_provider, contexts):
        node = FilterLeaf("warehouse_code", FilterOperator.EQUALS, "WH2")
        with pytest.raises(InvalidParameterError) as exc_info:
            await capped_provider.list_resource("warehouse_locations", {}, contexts["admin"], filter=node)
        assert "more than 2 rows" in exc_info.value.message

    async def test_within_cap_totals_are_exact(self, capped_provider, contexts):
        node = FilterLeaf("warehouse_code", FilterOperator.EQUALS, "WH1")
        result = await capped_provider.list_resource("warehouse_locations", {}, contexts["clerk"], filter=node)
        assert [row["name"] for row in result.rows] == ["A-01"]
        assert result.total == 1

    async def test_cap_only_applies_to_in_memory_filters(self, capped_provider, contexts):
        result = await capped_provider.list_resource("warehouse_locations", {}, contexts["admin"])
        assert result.total == 3
