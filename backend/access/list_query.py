"""List request parameters.

``normalize_list_params`` turns raw query strings into a ``ListQuery``
and never raises: bad pagination is clamped so list views survive
hand-edited URLs. Filters are stricter; ``parse_list_filters`` rejects
malformed trees with a 400.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from app.config import get_settings
from access.filters import FilterLeaf, FilterNode, FilterOperator, and_, parse_filter
from core.exceptions import InvalidFilterError
from core.utils import first_value, parse_int, parse_truthy

RESERVED_PARAMS = frozenset(
    {"q", "search", "page", "pageSize", "activeOnly", "raw", "sort", "include", "filter"}
)
STRUCTURED_FILTER_PARAM = re.compile(r"^filters\[(.+?)\]\[(value|mode)\]$")
SUFFIX_FILTER_PARAM = re.compile(r"^(.+?)_(gte|gt|lte|lt|eq)$")
SUFFIX_OPERATORS = {
    "gt": FilterOperator.GT,
    "gte": FilterOperator.GTE,
    "lt": FilterOperator.LT,
    "lte": FilterOperator.LTE,
    "eq": FilterOperator.EQUALS,
}


@dataclass(frozen=True)
class ListQuery:
    """Canonical list request."""

    page: int = 1
    page_size: int = 50
    search: Optional[str] = None
    active_only: bool = False
    raw: bool = False
    sort: Optional[str] = None
    include: tuple[str, ...] = ()

    def to_params(self) -> dict[str, str]:
        """Render back to query-string form; ``normalize`` of this is a no-op."""
        params = {"page": str(self.page), "pageSize": str(self.page_size)}
        if self.search is not None:
            params["q"] = self.search
        if self.active_only:
            params["activeOnly"] = "true"
        if self.raw:
            params["raw"] = "true"
        if self.sort:
            params["sort"] = self.sort
        if self.include:
            params["include"] = ",".join(self.include)
        return params


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def _text(value: Any) -> Optional[str]:
    value = first_value(value)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_list_params(
    raw: Union[Mapping[str, Any], ListQuery, None],
    max_page_size: Optional[int] = None,
) -> ListQuery:
    """Clamp and canonicalize list parameters.

    - ``q`` (or ``search``) is trimmed; blank means absent
    - ``page`` is clamped to ``[1, LIST_MAX_PAGE]``, default 1
    - ``pageSize`` is clamped to ``[1, max]``, default ``LIST_DEFAULT_PAGE_SIZE``;
      an explicit blank or zero value clamps to the floor
    - ``activeOnly`` / ``raw`` accept 1/true/yes
    """
    if isinstance(raw, ListQuery):
        raw = raw.to_params()
    raw = raw or {}
    settings = get_settings()
    max_page_size = max_page_size or settings.LIST_MAX_PAGE_SIZE

    page = parse_int(raw.get("page"))
    page = _clamp(page, 1, settings.LIST_MAX_PAGE) if page is not None else 1

    if "pageSize" in raw:
        page_size = parse_int(raw.get("pageSize"))
        explicit = first_value(raw.get("pageSize"))
        if page_size is None and (explicit is None or not str(explicit).strip()):
            page_size = 1
        elif page_size is None:
            page_size = settings.LIST_DEFAULT_PAGE_SIZE
    else:
        page_size = settings.LIST_DEFAULT_PAGE_SIZE
    page_size = _clamp(page_size, 1, max_page_size)

    search = _text(raw.get("q")) if "q" in raw else _text(raw.get("search"))

    include_raw = _text(raw.get("include"))
    include: tuple[str, ...] = ()
    if include_raw:
        include = tuple(dict.fromkeys(part.strip() for part in include_raw.split(",") if part.strip()))

    return ListQuery(
        page=page,
        page_size=page_size,
        search=search,
        active_only=parse_truthy(raw.get("activeOnly")),
        raw=parse_truthy(raw.get("raw")),
        sort=_text(raw.get("sort")),
        include=include,
    )


def _coerce_number(value: str) -> Any:
    try:
        number = float(value)
    except ValueError:
        return value
    if number != number or number in (float("inf"), float("-inf")):
        return value
    return int(number) if number.is_integer() and "." not in value and "e" not in value.lower() else number


def _structured_leaf(column: str, parts: dict[str, str]) -> Optional[FilterNode]:
    mode = (parts.get("mode") or FilterOperator.CONTAINS.value).strip()
    try:
        operator = FilterOperator(mode)
    except ValueError:
        raise InvalidFilterError(f"Unknown filter mode for '{column}': {mode!r}")
    if operator in (FilterOperator.IS_NULL, FilterOperator.IS_NOT_NULL):
        return FilterLeaf(column, operator)
    value = parts.get("value")
    if value is None or not str(value).strip():
        return None
    value = str(value).strip()
    if operator in (FilterOperator.IN, FilterOperator.NOT_IN):
        return parse_filter(
            {"column": column, "operator": operator.value,
             "operand": [part.strip() for part in value.split(",") if part.strip()]}
        )
    return parse_filter({"column": column, "operator": operator.value, "operand": value})


def parse_list_filters(params: Mapping[str, Any]) -> Optional[FilterNode]:
    """Collect every filter form on a list request into one AND tree.

    Accepts a JSON ``filter`` tree, ``filters[col][value|mode]`` pairs and
    ``col_gt|_gte|_lt|_lte|_eq`` comparisons. Other params are ignored.

    Raises:
        InvalidFilterError: Malformed JSON or an unknown operator/mode
    """
    nodes: list[FilterNode] = []

    raw_tree = first_value(params.get("filter"))
    if isinstance(raw_tree, str) and raw_tree.strip():
        try:
            decoded = json.loads(raw_tree)
        except ValueError:
            raise InvalidFilterError("Malformed filter JSON")
        nodes.append(parse_filter(decoded))
    elif isinstance(raw_tree, Mapping):
        nodes.append(parse_filter(raw_tree))

    structured: dict[str, dict[str, str]] = {}
    for key, value in params.items():
        if key in RESERVED_PARAMS:
            continue
        value = first_value(value)
        if value is None:
            continue

        match = STRUCTURED_FILTER_PARAM.match(key)
        if match:
            structured.setdefault(match.group(1), {})[match.group(2)] = str(value)
            continue

        match = SUFFIX_FILTER_PARAM.match(key)
        if match:
            text = str(value).strip()
            if not text:
                continue
            nodes.append(FilterLeaf(match.group(1), SUFFIX_OPERATORS[match.group(2)], _coerce_number(text)))

    for column, parts in structured.items():
        leaf = _structured_leaf(column, parts)
        if leaf is not None:
            nodes.append(leaf)

    return and_(*nodes)
