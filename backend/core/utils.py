"""
Utility functions for the warehouse admin API.

Includes:
- Pagination helpers
- Loose string coercions for query parameters
"""

from typing import Any, Optional

TRUTHY_STRINGS = frozenset({"1", "true", "yes"})


def calculate_offset(page: int = 1, per_page: int = 50) -> int:
    """
    Calculate database offset from page and per_page values.

    Args:
        page: Page number (1-indexed)
        per_page: Items per page

    Returns:
        Offset for database queries
    """
    return (page - 1) * per_page


def page_range(page: int, per_page: int) -> tuple[int, int]:
    """Inclusive ``(start, end)`` row range for a page."""
    start = calculate_offset(page, per_page)
    return start, start + per_page - 1


def first_value(value: Any) -> Any:
    """Repeated query params arrive as lists; only the first one counts."""
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def parse_truthy(value: Any) -> bool:
    """``"1"``, ``"true"`` and ``"yes"`` (any case) are true; everything else is false."""
    value = first_value(value)
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in TRUTHY_STRINGS


def parse_int(value: Any) -> Optional[int]:
    """Parse an integer from a query value, ``None`` when it is not numeric."""
    value = first_value(value)
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value == value and value not in (float("inf"), float("-inf")) else None
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        try:
            number = float(text)
        except ValueError:
            return None
        if number != number or number in (float("inf"), float("-inf")):
            return None
        return int(number)
