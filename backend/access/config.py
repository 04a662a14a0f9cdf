"""Declarative resource configuration.

A ``ResourceConfig`` is plain data plus three mapping functions. It is
validated once on construction and immutable afterwards; a bad config
fails at startup with ``ConfigurationError`` instead of misbehaving per
request.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, ClassVar, Mapping, Optional, Sequence, Union

from core.exceptions import ConfigurationError

FIELD_TYPES = frozenset({"uuid", "text", "int", "float", "bool", "timestamp", "date", "json"})
EMPTY_POLICIES = frozenset({"ALL", "NONE"})


def _identity(value: Any) -> Any:
    return value


def parse_projection(select: str) -> tuple[str, ...]:
    """``"id, name, code"`` -> ``("id", "name", "code")``; ``"*"`` -> ``()``."""
    columns = tuple(part.strip() for part in select.split(",") if part.strip())
    if columns == ("*",):
        return ()
    return columns


@dataclass(frozen=True)
class FieldSpec:
    type: str = "text"
    nullable: bool = False
    writable: bool = True
    readonly: bool = False

    def __post_init__(self):
        if self.type not in FIELD_TYPES:
            raise ConfigurationError(f"Unknown field type: {self.type!r}")

    @property
    def accepts_writes(self) -> bool:
        return self.writable and not self.readonly


@dataclass(frozen=True)
class SortSpec:
    column: str
    descending: bool = False


@dataclass(frozen=True)
class OneToMany:
    """Children whose ``foreign_key`` points at the parent's primary key."""

    kind: ClassVar[str] = "oneToMany"

    name: str
    target_table: str
    foreign_key: str
    target_select: str = "*"
    order_by: Optional[SortSpec] = None
    limit: Optional[int] = None
    include_by_default: bool = False

    def __post_init__(self):
        if self.limit is not None and self.limit < 1:
            raise ConfigurationError(f"Relation '{self.name}': limit must be positive")


@dataclass(frozen=True)
class ManyToMany:
    """Targets reached through a junction table.

    ``on_empty_policy`` has no default: zero junction rows means "ALL" for
    some resources and "NONE" for others, and that must be stated.
    """

    kind: ClassVar[str] = "manyToMany"

    name: str
    via_table: str
    this_key: str
    that_key: str
    target_table: str
    on_empty_policy: str
    target_select: str = "*"
    target_key: str = "id"
    resolve_as: str = "objects"
    include_by_default: bool = False

    def __post_init__(self):
        if self.on_empty_policy not in EMPTY_POLICIES:
            raise ConfigurationError(
                f"Relation '{self.name}': on_empty_policy must be 'ALL' or 'NONE'"
            )
        if self.resolve_as not in ("objects", "ids"):
            raise ConfigurationError(
                f"Relation '{self.name}': resolve_as must be 'objects' or 'ids'"
            )


@dataclass(frozen=True)
class ManyToOne:
    """A single target row referenced by ``local_key`` on the parent."""

    kind: ClassVar[str] = "manyToOne"

    name: str
    local_key: str
    target_table: str
    target_select: str = "*"
    target_key: str = "id"
    include_by_default: bool = False


RelationSpec = Union[OneToMany, ManyToMany, ManyToOne]


@dataclass(frozen=True)
class WarehouseScope:
    """Row visibility by warehouse binding.

    ``key_kind`` says whether ``column`` holds warehouse ids or codes. When
    omitted it is inferred from an ``_id`` suffix.
    """

    mode: str
    column: Optional[str] = None
    require_binding: bool = False
    key_kind: Optional[str] = None

    def __post_init__(self):
        if self.mode not in ("none", "column"):
            raise ConfigurationError(f"Unknown warehouse scope mode: {self.mode!r}")
        if self.mode == "column" and not self.column:
            raise ConfigurationError("Warehouse scope mode 'column' requires a column")
        if self.key_kind not in (None, "id", "code"):
            raise ConfigurationError(f"Unknown warehouse key kind: {self.key_kind!r}")

    @classmethod
    def none(cls) -> "WarehouseScope":
        return cls(mode="none")

    @property
    def uses_ids(self) -> bool:
        if self.key_kind is not None:
            return self.key_kind == "id"
        return bool(self.column) and self.column.endswith("_id")


@dataclass(frozen=True)
class OwnershipScope:
    """Row visibility by owner column, unless a bypass permission is held."""

    mode: str
    column: Optional[str] = None
    bypass_permissions: tuple[str, ...] = ()

    def __post_init__(self):
        if self.mode not in ("none", "self"):
            raise ConfigurationError(f"Unknown ownership scope mode: {self.mode!r}")
        if self.mode == "self" and not self.column:
            raise ConfigurationError("Ownership scope mode 'self' requires a column")
        object.__setattr__(self, "bypass_permissions", tuple(self.bypass_permissions))

    @classmethod
    def none(cls) -> "OwnershipScope":
        return cls(mode="none")


@dataclass(frozen=True)
class ResourceConfig:
    """The declarative contract for one resource.

    Both scopes are required; ``WarehouseScope.none()`` and
    ``OwnershipScope.none()`` are the explicit opt-outs.

    ``write_permissions`` gates create, update and delete: when set, the
    caller must hold at least one of them. Reads are governed by the
    scopes alone.
    """

    table: str
    primary_key: str
    select: str
    warehouse_scope: WarehouseScope
    ownership_scope: OwnershipScope
    searchable_columns: Sequence[str] = ()
    active_flag_column: Optional[str] = None
    default_sort: Optional[SortSpec] = None
    field_schema: Mapping[str, FieldSpec] = field(default_factory=dict)
    to_domain: Callable[[dict], Any] = _identity
    from_input: Callable[[dict], dict] = _identity
    post_process: Callable[[list], list] = _identity
    relations: Sequence[RelationSpec] = ()
    write_permissions: Sequence[str] = ()
    select_columns: tuple[str, ...] = field(init=False)

    def __post_init__(self):
        if not self.table or not self.primary_key:
            raise ConfigurationError("Resource config requires table and primary_key")
        if not isinstance(self.warehouse_scope, WarehouseScope):
            raise ConfigurationError(f"{self.table}: warehouse_scope must be declared")
        if not isinstance(self.ownership_scope, OwnershipScope):
            raise ConfigurationError(f"{self.table}: ownership_scope must be declared")

        columns = parse_projection(self.select)
        if not columns:
            raise ConfigurationError(f"{self.table}: select must list columns explicitly")
        object.__setattr__(self, "select_columns", columns)
        object.__setattr__(self, "searchable_columns", tuple(self.searchable_columns))
        object.__setattr__(self, "relations", tuple(self.relations))
        object.__setattr__(self, "write_permissions", tuple(self.write_permissions))
        object.__setattr__(self, "field_schema", MappingProxyType(dict(self.field_schema)))

        self._require_selected(self.primary_key, "primary key")
        for column in self.searchable_columns:
            self._require_selected(column, "searchable column")
        if self.active_flag_column:
            self._require_selected(self.active_flag_column, "active flag column")
        if self.default_sort:
            self._require_selected(self.default_sort.column, "default sort column")
        if self.warehouse_scope.mode == "column":
            self._require_selected(self.warehouse_scope.column, "warehouse scope column")
        if self.ownership_scope.mode == "self":
            self._require_selected(self.ownership_scope.column, "ownership scope column")

        names = set()
        for relation in self.relations:
            if not isinstance(relation, (OneToMany, ManyToMany, ManyToOne)):
                raise ConfigurationError(f"{self.table}: unknown relation type {relation!r}")
            if relation.name in names:
                raise ConfigurationError(f"{self.table}: duplicate relation '{relation.name}'")
            names.add(relation.name)
            if isinstance(relation, ManyToOne):
                self._require_selected(relation.local_key, f"relation '{relation.name}' key")

    def _require_selected(self, column: str, what: str) -> None:
        if column not in self.select_columns:
            raise ConfigurationError(f"{self.table}: {what} '{column}' is not in select")

    def relation(self, name: str) -> Optional[RelationSpec]:
        for relation in self.relations:
            if relation.name == name:
                return relation
        return None
