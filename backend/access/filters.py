"""Declarative filter trees.

One grammar, two consumers:
- ``compile_filter`` turns a tree into an in-memory predicate over row dicts
- ``to_remote`` flattens a tree into ``{column, op, value}`` predicates for
  a storage-side query

Trees are parsed once by ``parse_filter``; unknown operators are rejected
there, not during evaluation.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Optional, Union

import structlog

from core.exceptions import FilterEvaluationError, InvalidFilterError

logger = structlog.get_logger(__name__)

ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}")


class FilterOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    NOT_CONTAINS = "notContains"
    LT = "lt"
    LTE = "lte"
    GT = "gt"
    GTE = "gte"
    IS_NULL = "isNull"
    IS_NOT_NULL = "isNotNull"
    IN = "in"
    NOT_IN = "notIn"


UNARY_OPERATORS = frozenset({FilterOperator.IS_NULL, FilterOperator.IS_NOT_NULL})
SET_OPERATORS = frozenset({FilterOperator.IN, FilterOperator.NOT_IN})
TEXT_OPERATORS = frozenset({FilterOperator.CONTAINS, FilterOperator.NOT_CONTAINS})
ORDER_OPERATORS = frozenset(
    {FilterOperator.LT, FilterOperator.LTE, FilterOperator.GT, FilterOperator.GTE}
)

# Dashboard tiles and the inventory RPC write leaves as {column, <key>: operand}
SHORTHAND_KEYS: dict[str, FilterOperator] = {
    "eq": FilterOperator.EQUALS,
    "equals": FilterOperator.EQUALS,
    "neq": FilterOperator.NOT_EQUALS,
    "notEquals": FilterOperator.NOT_EQUALS,
    "contains": FilterOperator.CONTAINS,
    "not_contains": FilterOperator.NOT_CONTAINS,
    "notContains": FilterOperator.NOT_CONTAINS,
    "lt": FilterOperator.LT,
    "lte": FilterOperator.LTE,
    "gt": FilterOperator.GT,
    "gte": FilterOperator.GTE,
    "in": FilterOperator.IN,
    "notIn": FilterOperator.NOT_IN,
}
BOOLEAN_SHORTHAND_KEYS = ("isNull", "isNotNull")


@dataclass(frozen=True)
class FilterLeaf:
    """``column <operator> operand``."""

    column: str
    operator: FilterOperator
    operand: Any = None


@dataclass(frozen=True)
class FilterGroup:
    """AND/OR over child nodes."""

    combinator: str  # "and" | "or"
    children: tuple = ()


FilterNode = Union[FilterLeaf, FilterGroup]


def and_(*nodes: Optional[FilterNode]) -> Optional[FilterNode]:
    """AND together the non-empty nodes; a single node is returned as-is."""
    present = tuple(node for node in nodes if node is not None)
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return FilterGroup("and", present)


# ─── Parsing ──────────────────────────────────────────────


def parse_filter(raw: Any) -> FilterNode:
    """Parse a JSON-shaped filter tree into typed nodes.

    Raises:
        InvalidFilterError: Unknown operator, missing column, or bad operand
    """
    if isinstance(raw, (FilterLeaf, FilterGroup)):
        return raw
    if not isinstance(raw, Mapping):
        raise InvalidFilterError("Filter node must be an object")

    groups = [key for key in ("and", "or") if key in raw]
    if groups:
        if len(groups) > 1 or len(raw) > 1:
            raise InvalidFilterError("Filter group must hold exactly one of 'and' / 'or'")
        combinator = groups[0]
        children = raw[combinator]
        if not isinstance(children, (list, tuple)):
            raise InvalidFilterError(f"Filter '{combinator}' must be a list")
        return FilterGroup(combinator, tuple(parse_filter(child) for child in children))

    column = raw.get("column")
    if not isinstance(column, str) or not column.strip():
        raise InvalidFilterError("Filter leaf requires a column")
    column = column.strip()

    if "operator" in raw:
        try:
            operator = FilterOperator(raw["operator"])
        except ValueError:
            raise InvalidFilterError(f"Unknown filter operator: {raw['operator']!r}")
        if "operand" in raw:
            operand = raw["operand"]
        else:
            operand = raw.get("value")
        has_operand = "operand" in raw or "value" in raw
        return _build_leaf(column, operator, operand, has_operand)

    return _parse_shorthand(column, raw)


def _parse_shorthand(column: str, raw: Mapping) -> FilterLeaf:
    found = [key for key in raw if key in SHORTHAND_KEYS or key in BOOLEAN_SHORTHAND_KEYS]
    unknown = [key for key in raw if key != "column" and key not in found]
    if unknown:
        raise InvalidFilterError(f"Unknown filter operator: {unknown[0]!r}")
    if len(found) != 1:
        raise InvalidFilterError(f"Filter on '{column}' must name exactly one operator")

    key = found[0]
    if key in BOOLEAN_SHORTHAND_KEYS:
        flag = raw[key]
        if not isinstance(flag, bool):
            raise InvalidFilterError(f"'{key}' expects true or false")
        wants_null = flag if key == "isNull" else not flag
        operator = FilterOperator.IS_NULL if wants_null else FilterOperator.IS_NOT_NULL
        return FilterLeaf(column, operator)

    return _build_leaf(column, SHORTHAND_KEYS[key], raw[key], True)


def _build_leaf(column: str, operator: FilterOperator, operand: Any, has_operand: bool) -> FilterLeaf:
    if operator in UNARY_OPERATORS:
        return FilterLeaf(column, operator)
    if not has_operand or operand is None:
        raise InvalidFilterError(f"Operator '{operator.value}' on '{column}' requires an operand")
    if operator in SET_OPERATORS:
        if not isinstance(operand, (list, tuple, set, frozenset)):
            raise InvalidFilterError(f"Operator '{operator.value}' expects a list of values")
        return FilterLeaf(column, operator, tuple(operand))
    if isinstance(operand, (list, tuple, dict, set)):
        raise InvalidFilterError(f"Operator '{operator.value}' expects a single value")
    if operator in TEXT_OPERATORS and not isinstance(operand, str):
        raise InvalidFilterError(f"Operator '{operator.value}' expects a string")
    return FilterLeaf(column, operator, operand)


# ─── In-memory evaluation ─────────────────────────────────


def is_date_string(value: Any) -> bool:
    return isinstance(value, str) and bool(ISO_DATE_PATTERN.match(value))


def parse_date(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00").replace(" ", "T", 1))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_blank(value: Any) -> bool:
    return value is None or value == ""


def strict_equals(left: Any, right: Any) -> bool:
    """Equality without cross-type coercion (``True != 1``, ``"1" != 1``)."""
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    if isinstance(left, str) != isinstance(right, str):
        return False
    return left == right


def _contains(value: Any, operand: str) -> bool:
    return isinstance(value, str) and operand.lower() in value.lower()


def _compare(value: Any, operand: Any, operator: FilterOperator) -> bool:
    if value is None:
        return False
    if is_date_string(value) and is_date_string(operand):
        value, operand = parse_date(value), parse_date(operand)
    if operator is FilterOperator.LT:
        return value < operand
    if operator is FilterOperator.LTE:
        return value <= operand
    if operator is FilterOperator.GT:
        return value > operand
    return value >= operand


def _evaluate_leaf(leaf: FilterLeaf, record: Mapping[str, Any]) -> bool:
    value = record.get(leaf.column)
    operator = leaf.operator

    if operator is FilterOperator.EQUALS:
        return strict_equals(value, leaf.operand)
    if operator is FilterOperator.NOT_EQUALS:
        return not strict_equals(value, leaf.operand)
    if operator is FilterOperator.CONTAINS:
        return _contains(value, leaf.operand)
    if operator is FilterOperator.NOT_CONTAINS:
        return isinstance(value, str) and not _contains(value, leaf.operand)
    if operator in ORDER_OPERATORS:
        return _compare(value, leaf.operand, operator)
    if operator is FilterOperator.IS_NULL:
        return is_blank(value)
    if operator is FilterOperator.IS_NOT_NULL:
        return not is_blank(value)
    if operator is FilterOperator.IN:
        return any(strict_equals(value, candidate) for candidate in leaf.operand)
    if operator is FilterOperator.NOT_IN:
        return not any(strict_equals(value, candidate) for candidate in leaf.operand)
    raise FilterEvaluationError(f"Unsupported filter operator: {operator!r}")


def compile_filter(
    node: Optional[FilterNode],
    strict: bool = True,
) -> Callable[[Mapping[str, Any]], bool]:
    """Compile a filter tree into ``predicate(record) -> bool``.

    AND of nothing matches every record, OR of nothing matches none.

    With ``strict`` an evaluation failure (e.g. ordering a number against a
    string) raises ``FilterEvaluationError``; otherwise the record is
    excluded and the failure logged.
    """
    if node is None:
        return lambda record: True

    if isinstance(node, FilterGroup):
        compiled = [compile_filter(child, strict) for child in node.children]
        if node.combinator == "and":
            return lambda record: all(predicate(record) for predicate in compiled)
        if node.combinator == "or":
            return lambda record: any(predicate(record) for predicate in compiled)
        raise FilterEvaluationError(f"Unknown filter combinator: {node.combinator!r}")

    if not isinstance(node, FilterLeaf):
        raise FilterEvaluationError(f"Not a filter node: {type(node).__name__}")

    def predicate(record: Mapping[str, Any]) -> bool:
        try:
            return _evaluate_leaf(node, record)
        except (TypeError, ValueError) as exc:
            if strict:
                raise FilterEvaluationError(
                    f"Cannot evaluate '{node.operator.value}' on column '{node.column}': {exc}"
                ) from exc
            logger.warning(
                "filter_evaluation_failed",
                column=node.column,
                operator=node.operator.value,
                error=str(exc),
            )
            return False

    return predicate


# ─── Remote predicates ────────────────────────────────────

REMOTE_OPS: dict[FilterOperator, str] = {
    FilterOperator.EQUALS: "=",
    FilterOperator.NOT_EQUALS: "!=",
    FilterOperator.CONTAINS: "ILIKE",
    FilterOperator.NOT_CONTAINS: "NOT ILIKE",
    FilterOperator.LT: "<",
    FilterOperator.LTE: "<=",
    FilterOperator.GT: ">",
    FilterOperator.GTE: ">=",
    FilterOperator.IS_NULL: "IS NULL",
    FilterOperator.IS_NOT_NULL: "IS NOT NULL",
    FilterOperator.IN: "IN",
    FilterOperator.NOT_IN: "NOT IN",
}
OPERATORS_BY_REMOTE_OP = {op: operator for operator, op in REMOTE_OPS.items()}


@dataclass(frozen=True)
class RemotePredicate:
    """Flat predicate in the vocabulary a storage-side procedure expects."""

    column: str
    op: str
    value: Any = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"column": self.column, "op": self.op}
        if self.op not in ("IS NULL", "IS NOT NULL"):
            payload["value"] = list(self.value) if isinstance(self.value, tuple) else self.value
        return payload

    @property
    def operator(self) -> FilterOperator:
        return OPERATORS_BY_REMOTE_OP[self.op]


def to_remote(node: Optional[FilterNode]) -> list[RemotePredicate]:
    """Flatten a leaf or an AND tree into remote predicates.

    ``contains`` becomes ``ILIKE '%x%'``. OR groups have no flat form and are
    rejected.
    """
    if node is None:
        return []
    if isinstance(node, FilterLeaf):
        op = REMOTE_OPS[node.operator]
        if node.operator in UNARY_OPERATORS:
            return [RemotePredicate(node.column, op)]
        if node.operator in TEXT_OPERATORS:
            return [RemotePredicate(node.column, op, f"%{node.operand}%")]
        return [RemotePredicate(node.column, op, node.operand)]
    if node.combinator != "and":
        raise InvalidFilterError("OR filters cannot be sent as remote predicates")
    predicates: list[RemotePredicate] = []
    for child in node.children:
        predicates.extend(to_remote(child))
    return predicates


# ─── Storage / in-memory split ────────────────────────────


def filter_columns(node: Optional[FilterNode]) -> set[str]:
    if node is None:
        return set()
    if isinstance(node, FilterLeaf):
        return {node.column}
    columns: set[str] = set()
    for child in node.children:
        columns |= filter_columns(child)
    return columns


def split_for_storage(
    node: Optional[FilterNode],
    storage_columns: Iterable[str],
) -> tuple[Optional[FilterNode], Optional[FilterNode]]:
    """Split a tree into ``(storage_part, in_memory_part)``.

    AND children are split independently. A leaf or an OR group touching a
    column outside ``storage_columns`` stays in memory as a whole.
    """
    if node is None:
        return None, None
    storage_columns = set(storage_columns)

    if isinstance(node, FilterGroup) and node.combinator == "and":
        storage_parts, local_parts = [], []
        for child in node.children:
            storage_part, local_part = split_for_storage(child, storage_columns)
            if storage_part is not None:
                storage_parts.append(storage_part)
            if local_part is not None:
                local_parts.append(local_part)
        if not node.children:
            return node, None
        return and_(*storage_parts), and_(*local_parts)

    if filter_columns(node) <= storage_columns:
        return node, None
    return None, node
