"""The set of resources this service exposes."""

from access.definitions.roles import ROLES
from access.definitions.tally_card_entries import TALLY_CARD_ENTRIES, to_row as entry_to_row
from access.definitions.tally_cards import TALLY_CARDS, to_row as tally_card_to_row
from access.definitions.warehouses import WAREHOUSE_LOCATIONS, WAREHOUSES
from access.registry import ResourceRegistry


def build_registry() -> ResourceRegistry:
    """Register every resource and freeze the registry.

    Called once from the application lifespan.
    """
    registry = ResourceRegistry()
    registry.register(
        "tally_cards",
        TALLY_CARDS,
        to_row=tally_card_to_row,
        allow_raw=True,
        aliases=["tally-cards"],
    )
    registry.register(
        "tally_card_entries",
        TALLY_CARD_ENTRIES,
        to_row=entry_to_row,
        allow_raw=True,
        aliases=["stock-adjustments"],
    )
    registry.register("warehouses", WAREHOUSES)
    registry.register("warehouse_locations", WAREHOUSE_LOCATIONS, aliases=["warehouse-locations"])
    registry.register("roles", ROLES)
    return registry.freeze()
