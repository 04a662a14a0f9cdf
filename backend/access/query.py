"""Minimal relational query capability used by the access layer.

``TableQuery`` is a chainable description of a single-table read;
``DataSource`` executes it. ``SqlAlchemyDataSource`` is the async
SQLAlchemy implementation over the tables in ``Base.metadata``.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable, Optional, Protocol, Sequence

import structlog
from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    Integer,
    MetaData,
    Numeric,
    String,
    and_,
    delete,
    false,
    func,
    insert,
    or_,
    select,
    true,
    update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from access.config import SortSpec, parse_projection
from access.filters import (
    FilterGroup,
    FilterLeaf,
    FilterNode,
    FilterOperator,
    RemotePredicate,
    is_date_string,
    parse_date,
)
from core.exceptions import (
    ConfigurationError,
    InvalidFilterError,
    InvalidParameterError,
    UpstreamFailureError,
)

logger = structlog.get_logger(__name__)

LIKE_ESCAPE = "\\"


@dataclass
class TableQuery:
    """Chainable single-table read: predicates, search, order and range.

    Usage:
        query = TableQuery("tally_cards", ("id", "warehouse"))
        query.eq("is_active", True).order("tally_card_number").range(0, 49).with_count()
    """

    table: str
    columns: tuple[str, ...] = ()
    predicates: list = field(default_factory=list)
    ordering: list[SortSpec] = field(default_factory=list)
    offset: Optional[int] = None
    limit: Optional[int] = None
    count: bool = False

    @classmethod
    def from_select(cls, table: str, select: str) -> "TableQuery":
        return cls(table, parse_projection(select))

    def eq(self, column: str, value: Any) -> "TableQuery":
        self.predicates.append(FilterLeaf(column, FilterOperator.EQUALS, value))
        return self

    def in_(self, column: str, values: Iterable[Any]) -> "TableQuery":
        self.predicates.append(FilterLeaf(column, FilterOperator.IN, tuple(values)))
        return self

    def where(self, predicate: RemotePredicate) -> "TableQuery":
        self.predicates.append(predicate)
        return self

    def filter(self, node: Optional[FilterNode]) -> "TableQuery":
        if node is not None:
            self.predicates.append(node)
        return self

    def search_any(self, columns: Sequence[str], term: Optional[str]) -> "TableQuery":
        """Case-insensitive substring match on any of ``columns``."""
        if term and columns:
            self.predicates.append(
                FilterGroup(
                    "or",
                    tuple(FilterLeaf(column, FilterOperator.CONTAINS, term) for column in columns),
                )
            )
        return self

    def order(self, column: str, descending: bool = False) -> "TableQuery":
        if all(existing.column != column for existing in self.ordering):
            self.ordering.append(SortSpec(column, descending))
        return self

    def range(self, start: int, end: int) -> "TableQuery":
        """Inclusive row range, like ``LIMIT end-start+1 OFFSET start``."""
        self.offset = max(0, start)
        self.limit = max(0, end - start + 1)
        return self

    def limit_to(self, count: int) -> "TableQuery":
        self.offset = None
        self.limit = count
        return self

    def with_count(self) -> "TableQuery":
        self.count = True
        return self


class DataSource(Protocol):
    """What the access layer needs from storage."""

    async def fetch(self, query: TableQuery) -> tuple[list[dict], Optional[int]]:
        ...

    async def fetch_by_keys(
        self,
        table: str,
        key_column: str,
        keys: Sequence[Any],
        columns: Sequence[str] = (),
        order_by: Optional[SortSpec] = None,
        where: Sequence[Any] = (),
    ) -> list[dict]:
        ...

    async def insert(self, table: str, values: dict) -> dict:
        ...

    async def update(self, table: str, key_column: str, key: Any, values: dict) -> int:
        ...

    async def update_many(self, table: str, key_column: str, keys: Sequence[Any], values: dict) -> int:
        ...

    async def delete(self, table: str, key_column: str, keys: Sequence[Any]) -> int:
        ...

    async def commit(self) -> None:
        ...


# ─── SQL compilation ──────────────────────────────────────


def escape_like(term: str) -> str:
    return (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def _is_text(column) -> bool:
    return isinstance(column.type, String)


def _coerce(column, value: Any) -> Any:
    """Bring a JSON/query-string operand to the column's Python type."""
    if value is None:
        return None
    column_type = column.type
    try:
        if isinstance(column_type, DateTime) and isinstance(value, str):
            if not is_date_string(value):
                raise ValueError(value)
            return parse_date(value)
        if isinstance(column_type, Date) and isinstance(value, str):
            if not is_date_string(value):
                raise ValueError(value)
            return parse_date(value).date()
        if isinstance(column_type, Boolean) and isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in ("true", "1", "yes"):
                return True
            if lowered in ("false", "0", "no"):
                return False
            raise ValueError(value)
        if isinstance(column_type, Integer) and isinstance(value, str):
            return int(value)
        if isinstance(column_type, (Float, Numeric)) and isinstance(value, str):
            return float(value)
    except ValueError:
        raise InvalidFilterError(f"Invalid value for column '{column.name}': {value!r}")
    if isinstance(value, (datetime, date)) or not isinstance(column_type, String):
        return value
    return value if isinstance(value, str) else str(value)


_NO_MATCH = object()


def _equality_operand(column, value: Any) -> Any:
    """Operand for an equality test, or ``_NO_MATCH`` when the kinds differ.

    Same rule as ``strict_equals``: text never equals a number or a
    boolean, and a boolean never equals a number. Date columns still
    accept ISO strings.
    """
    if value is None:
        return None
    column_type = column.type
    if isinstance(column_type, (Date, DateTime)):
        return _coerce(column, value)
    if _is_text(column):
        return value if isinstance(value, str) else _NO_MATCH
    if isinstance(column_type, (Boolean, Integer, Float, Numeric)):
        if isinstance(value, str) or isinstance(value, bool) != isinstance(column_type, Boolean):
            return _NO_MATCH
    return value


def _equality_operands(column, values: Iterable[Any]) -> list:
    operands = (_equality_operand(column, value) for value in values)
    return [operand for operand in operands if operand is not _NO_MATCH]


def compile_leaf(column, operator: FilterOperator, operand: Any):
    """One leaf as a SQL boolean expression, NULL-aware like the in-memory evaluator."""
    if operator is FilterOperator.EQUALS:
        value = _equality_operand(column, operand)
        return false() if value is _NO_MATCH else column == value
    if operator is FilterOperator.NOT_EQUALS:
        value = _equality_operand(column, operand)
        if value is _NO_MATCH:
            return true()
        return column.is_not(None) if value is None else or_(column != value, column.is_(None))
    if operator is FilterOperator.CONTAINS:
        if not _is_text(column):
            return false()
        return column.ilike(f"%{escape_like(str(operand))}%", escape=LIKE_ESCAPE)
    if operator is FilterOperator.NOT_CONTAINS:
        if not _is_text(column):
            return false()
        return and_(
            column.is_not(None),
            ~column.ilike(f"%{escape_like(str(operand))}%", escape=LIKE_ESCAPE),
        )
    if operator is FilterOperator.LT:
        return column < _coerce(column, operand)
    if operator is FilterOperator.LTE:
        return column <= _coerce(column, operand)
    if operator is FilterOperator.GT:
        return column > _coerce(column, operand)
    if operator is FilterOperator.GTE:
        return column >= _coerce(column, operand)
    if operator is FilterOperator.IS_NULL:
        return or_(column.is_(None), column == "") if _is_text(column) else column.is_(None)
    if operator is FilterOperator.IS_NOT_NULL:
        return and_(column.is_not(None), column != "") if _is_text(column) else column.is_not(None)
    if operator is FilterOperator.IN:
        return column.in_(_equality_operands(column, operand))
    if operator is FilterOperator.NOT_IN:
        return or_(column.not_in(_equality_operands(column, operand)), column.is_(None))
    raise InvalidFilterError(f"Unsupported filter operator: {operator!r}")


def compile_remote(column, predicate: RemotePredicate):
    """A flat remote predicate; ``ILIKE`` values are used as given patterns."""
    if predicate.op == "ILIKE":
        return column.ilike(predicate.value) if _is_text(column) else false()
    if predicate.op == "NOT ILIKE":
        return and_(column.is_not(None), ~column.ilike(predicate.value)) if _is_text(column) else false()
    try:
        operator = predicate.operator
    except KeyError:
        raise InvalidFilterError(f"Unsupported remote operator: {predicate.op!r}")
    return compile_leaf(column, operator, predicate.value)


# ─── SQLAlchemy data source ───────────────────────────────


class SqlAlchemyDataSource:
    """Run ``TableQuery`` reads and keyed writes on one ``AsyncSession``.

    Statements are serialized with a lock so concurrent relation fetches
    can share the session.
    """

    def __init__(self, session: AsyncSession, metadata: Optional[MetaData] = None):
        if metadata is None:
            from db.base import Base
            import db.models  # noqa: F401

            metadata = Base.metadata
        self.session = session
        self.metadata = metadata
        self._lock = asyncio.Lock()

    def table(self, name: str):
        table = self.metadata.tables.get(name)
        if table is None:
            raise ConfigurationError(f"Unknown table: {name}")
        return table

    def column(self, table, name: str):
        column = table.columns.get(name)
        if column is None:
            raise InvalidFilterError(f"Unknown column '{name}' on {table.name}")
        return column

    def compile(self, table, node) -> Any:
        if isinstance(node, RemotePredicate):
            return compile_remote(self.column(table, node.column), node)
        if isinstance(node, FilterLeaf):
            return compile_leaf(self.column(table, node.column), node.operator, node.operand)
        if isinstance(node, FilterGroup):
            parts = [self.compile(table, child) for child in node.children]
            if node.combinator == "and":
                return and_(*parts) if parts else true()
            return or_(*parts) if parts else false()
        raise InvalidFilterError(f"Not a filter node: {type(node).__name__}")

    def _selected(self, table, columns: Sequence[str]):
        if not columns:
            return list(table.columns)
        selected = []
        for name in columns:
            column = table.columns.get(name)
            if column is None:
                raise ConfigurationError(f"Column '{name}' does not exist on {table.name}")
            selected.append(column)
        return selected

    async def _execute(self, statement):
        async with self._lock:
            try:
                return await self.session.execute(statement)
            except IntegrityError as exc:
                logger.warning("store_integrity_error", error=str(exc.orig))
                raise InvalidParameterError(f"Constraint violation: {exc.orig}")
            except SQLAlchemyError as exc:
                logger.error("store_failure", error=str(exc))
                raise UpstreamFailureError(str(getattr(exc, "orig", None) or exc))

    # ─── Read ──────────────────────────────────────────────

    async def fetch(self, query: TableQuery) -> tuple[list[dict], Optional[int]]:
        """Rows for the query plus the unpaginated total when requested."""
        table = self.table(query.table)
        conditions = [self.compile(table, predicate) for predicate in query.predicates]

        statement = select(*self._selected(table, query.columns))
        if conditions:
            statement = statement.where(*conditions)
        for sort in query.ordering:
            column = self.column(table, sort.column)
            statement = statement.order_by(column.desc() if sort.descending else column.asc())
        if query.offset:
            statement = statement.offset(query.offset)
        if query.limit is not None:
            statement = statement.limit(query.limit)

        result = await self._execute(statement)
        rows = [dict(row._mapping) for row in result]

        total = None
        if query.count:
            count_statement = select(func.count()).select_from(table)
            if conditions:
                count_statement = count_statement.where(*conditions)
            count_result = await self._execute(count_statement)
            total = count_result.scalar() or 0
        return rows, total

    async def fetch_by_keys(
        self,
        table: str,
        key_column: str,
        keys: Sequence[Any],
        columns: Sequence[str] = (),
        order_by: Optional[SortSpec] = None,
        where: Sequence[Any] = (),
    ) -> list[dict]:
        """One round trip for every row whose ``key_column`` is in ``keys``.

        ``where`` holds extra predicates (e.g. the target resource's scope)
        that every returned row must also satisfy.
        """
        if not keys:
            return []
        query = TableQuery(table, tuple(columns)).in_(key_column, list(dict.fromkeys(keys)))
        query.predicates.extend(where)
        if order_by is not None:
            query.order(order_by.column, order_by.descending)
        rows, _ = await self.fetch(query)
        return rows

    # ─── Write ─────────────────────────────────────────────

    async def insert(self, table: str, values: dict) -> dict:
        sa_table = self.table(table)
        payload = dict(values)
        pk_columns = list(sa_table.primary_key.columns)
        for column in pk_columns:
            if payload.get(column.name) is None and column.default is not None and column.default.is_callable:
                payload[column.name] = column.default.arg(None)
        await self._execute(insert(sa_table).values(**payload))
        return payload

    async def update(self, table: str, key_column: str, key: Any, values: dict) -> int:
        return await self.update_many(table, key_column, [key], values)

    async def update_many(self, table: str, key_column: str, keys: Sequence[Any], values: dict) -> int:
        if not keys or not values:
            return 0
        sa_table = self.table(table)
        statement = (
            update(sa_table)
            .where(self.column(sa_table, key_column).in_(list(keys)))
            .values(**values)
        )
        result = await self._execute(statement)
        return result.rowcount or 0

    async def delete(self, table: str, key_column: str, keys: Sequence[Any]) -> int:
        if not keys:
            return 0
        sa_table = self.table(table)
        statement = delete(sa_table).where(self.column(sa_table, key_column).in_(list(keys)))
        result = await self._execute(statement)
        return result.rowcount or 0

    async def commit(self) -> None:
        async with self._lock:
            try:
                await self.session.commit()
            except IntegrityError as exc:
                await self.session.rollback()
                raise InvalidParameterError(f"Constraint violation: {exc.orig}")
            except SQLAlchemyError as exc:
                await self.session.rollback()
                raise UpstreamFailureError(str(getattr(exc, "orig", None) or exc))
