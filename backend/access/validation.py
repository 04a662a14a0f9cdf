"""Write-payload validation against a resource's field schema."""

from datetime import date, datetime
from typing import Any, Mapping
from uuid import UUID

from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from access.config import ResourceConfig
from core.exceptions import InvalidParameterError

_ADAPTERS: dict[str, TypeAdapter] = {
    "uuid": TypeAdapter(UUID),
    "text": TypeAdapter(str),
    "int": TypeAdapter(int),
    "float": TypeAdapter(float),
    "bool": TypeAdapter(bool),
    "timestamp": TypeAdapter(datetime),
    "date": TypeAdapter(date),
    "json": TypeAdapter(Any),
}


def coerce_field(name: str, field_type: str, value: Any) -> Any:
    """Coerce one value to its declared type, 400 on mismatch."""
    if field_type in ("int", "float") and isinstance(value, bool):
        raise InvalidParameterError(f"Field '{name}' must be a number")
    try:
        coerced = _ADAPTERS[field_type].validate_python(value)
    except PydanticValidationError as exc:
        message = exc.errors()[0].get("msg", "invalid value")
        raise InvalidParameterError(f"Field '{name}': {message}")
    if isinstance(coerced, UUID):
        return str(coerced)
    return coerced


def validate_input(config: ResourceConfig, data: Any, partial: bool = False) -> dict:
    """Check a create/update body against ``config.field_schema``.

    Unknown fields and nulls in non-nullable fields are rejected; readonly
    and non-writable fields are silently dropped. With no schema the body
    passes through unchanged.

    Raises:
        InvalidParameterError: Body is not an object or a field is invalid
    """
    if not isinstance(data, Mapping):
        raise InvalidParameterError("Request body must be a JSON object")
    if not config.field_schema:
        return dict(data)

    cleaned: dict[str, Any] = {}
    for name, value in data.items():
        spec = config.field_schema.get(name)
        if spec is None:
            raise InvalidParameterError(f"Unknown field: {name}")
        if not spec.accepts_writes:
            continue
        if value is None:
            if not spec.nullable:
                raise InvalidParameterError(f"Field '{name}' cannot be null")
            cleaned[name] = None
            continue
        cleaned[name] = coerce_field(name, spec.type, value)

    if not partial and not cleaned:
        raise InvalidParameterError("No writable fields in request body")
    return cleaned
