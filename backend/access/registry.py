"""Read-only registry of resource configs keyed by resource name."""

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

import structlog

from access.config import ResourceConfig
from core.exceptions import ConfigurationError, UnknownResourceError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ResourceEntry:
    """A registered resource: its config plus transport options."""

    key: str
    config: ResourceConfig
    to_row: Optional[Callable[[Any], dict]] = None
    allow_raw: bool = False

    def project(self, record: Any) -> Any:
        return self.to_row(record) if self.to_row else record


class ResourceRegistry:
    """Holds every ``ResourceEntry``; built once at startup, then frozen.

    Usage:
        registry = ResourceRegistry()
        registry.register("tally_cards", TALLY_CARDS, aliases=["tally-cards"])
        registry.freeze()
        entry = registry.resolve("tally-cards")
    """

    def __init__(self):
        self._entries: dict[str, ResourceEntry] = {}
        self._aliases: dict[str, str] = {}
        self._frozen = False

    def register(
        self,
        key: str,
        config: ResourceConfig,
        *,
        to_row: Optional[Callable[[Any], dict]] = None,
        allow_raw: bool = False,
        aliases: Iterable[str] = (),
    ) -> ResourceEntry:
        """Register a config under ``key`` and any ``aliases``.

        Raises:
            ConfigurationError: After ``freeze``, or on a duplicate key/alias
        """
        self._ensure_open()
        if not isinstance(config, ResourceConfig):
            raise ConfigurationError(f"Resource '{key}' must be a ResourceConfig")
        if key in self._entries or key in self._aliases:
            raise ConfigurationError(f"Resource '{key}' is already registered")
        entry = ResourceEntry(key=key, config=config, to_row=to_row, allow_raw=allow_raw)
        self._entries[key] = entry
        for alias in aliases:
            self.alias(alias, key)
        return entry

    def alias(self, alias: str, key: str) -> None:
        self._ensure_open()
        if key not in self._entries:
            raise ConfigurationError(f"Cannot alias '{alias}' to unknown resource '{key}'")
        if alias in self._entries or alias in self._aliases:
            raise ConfigurationError(f"Resource alias '{alias}' is already taken")
        self._aliases[alias] = key

    def freeze(self) -> "ResourceRegistry":
        self._frozen = True
        logger.info("resource_registry_ready", resources=self.keys(), aliases=sorted(self._aliases))
        return self

    def resolve(self, key: str) -> ResourceEntry:
        """Look up a resource by key or alias.

        Raises:
            UnknownResourceError: No config under that name
        """
        entry = self._entries.get(key)
        if entry is None and key in self._aliases:
            entry = self._entries[self._aliases[key]]
        if entry is None:
            raise UnknownResourceError(key, self.keys())
        return entry

    def keys(self) -> list[str]:
        return sorted(self._entries)

    def configs_for_table(self, table: str) -> list[ResourceConfig]:
        """Distinct configs reading ``table``, in registration order."""
        configs: list[ResourceConfig] = []
        for entry in self._entries.values():
            if entry.config.table == table and all(entry.config is not seen for seen in configs):
                configs.append(entry.config)
        return configs

    def __contains__(self, key: str) -> bool:
        return key in self._entries or key in self._aliases

    def _ensure_open(self) -> None:
        if self._frozen:
            raise ConfigurationError("Resource registry is frozen")
