"""Generic resource endpoints.

Every registered resource is served by the same handlers under
``/resources/{resource}``; the resource config decides the rest.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Request
import logging

from access.context import AuthorizationContext
from access.list_query import normalize_list_params, parse_list_filters
from api.schemas.common import (
    BulkDeleteRequest,
    BulkDeleteResponse,
    ErrorResponse,
    ItemResponse,
    ListResponse,
)
from app.dependencies import get_authorization_context, get_provider
from core.exceptions import InvalidParameterError
from services.resource_provider import ResourceProvider, validate_id

logger = logging.getLogger(__name__)

router = APIRouter(
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)

MAX_RESOURCE_LENGTH = 64


def validate_resource(resource: str) -> str:
    if not resource or len(resource) > MAX_RESOURCE_LENGTH:
        raise InvalidParameterError("Invalid resource parameter")
    return resource


def _include(request: Request) -> list[str]:
    raw = request.query_params.get("include") or ""
    return [part.strip() for part in raw.split(",") if part.strip()]


@router.get("/{resource}", response_model=ListResponse)
async def list_resource(
    resource: str,
    request: Request,
    provider: ResourceProvider = Depends(get_provider),
    ctx: AuthorizationContext = Depends(get_authorization_context),
) -> dict[str, Any]:
    """
    List rows of a resource.

    Query params: q, page, pageSize, activeOnly, raw, sort (``col`` or
    ``-col``), include, filter (JSON tree), ``filters[col][value|mode]``
    and ``col_gt|_gte|_lt|_lte|_eq``.
    """
    validate_resource(resource)
    params = {key: request.query_params.getlist(key) for key in request.query_params.keys()}
    query = normalize_list_params(params)
    filter = parse_list_filters(params)

    result = await provider.list_resource(resource, query, ctx, filter=filter)
    return {
        "rows": result.rows,
        "total": result.total,
        "page": result.page,
        "pageSize": result.page_size,
        "resource": resource,
        "raw": result.raw,
    }


@router.post("/{resource}", response_model=ItemResponse, status_code=201)
async def create_resource(
    resource: str,
    payload: Any = Body(...),
    provider: ResourceProvider = Depends(get_provider),
    ctx: AuthorizationContext = Depends(get_authorization_context),
) -> dict[str, Any]:
    """Create a row; the response carries the stored, scoped record."""
    validate_resource(resource)
    row = await provider.create_resource(resource, payload, ctx)
    return {"row": row}


@router.delete("/{resource}/bulk", response_model=BulkDeleteResponse)
async def bulk_delete_resources(
    resource: str,
    payload: BulkDeleteRequest,
    provider: ResourceProvider = Depends(get_provider),
    ctx: AuthorizationContext = Depends(get_authorization_context),
) -> dict[str, Any]:
    """Delete every id in ``{"ids": [...]}`` or none of them."""
    validate_resource(resource)
    result = await provider.bulk_delete_resources(resource, payload.ids, ctx)
    return {"success": True, "deletedIds": result.deleted_ids, "softDelete": result.soft_delete}


@router.get("/{resource}/{id}", response_model=ItemResponse)
async def get_resource(
    resource: str,
    id: str,
    request: Request,
    provider: ResourceProvider = Depends(get_provider),
    ctx: AuthorizationContext = Depends(get_authorization_context),
) -> dict[str, Any]:
    """Fetch one row; out-of-scope rows are reported as not found."""
    validate_resource(resource)
    row = await provider.get_resource(resource, validate_id(id), ctx, include=_include(request))
    return {"row": row}


@router.patch("/{resource}/{id}", response_model=ItemResponse)
async def update_resource(
    resource: str,
    id: str,
    payload: Any = Body(...),
    provider: ResourceProvider = Depends(get_provider),
    ctx: AuthorizationContext = Depends(get_authorization_context),
) -> dict[str, Any]:
    """Partially update a row."""
    validate_resource(resource)
    row = await provider.update_resource(resource, validate_id(id), payload, ctx)
    return {"row": row}


@router.delete("/{resource}/{id}")
async def delete_resource(
    resource: str,
    id: str,
    provider: ResourceProvider = Depends(get_provider),
    ctx: AuthorizationContext = Depends(get_authorization_context),
) -> dict[str, Any]:
    """Soft delete (``{"row": ...}``) when the resource has an active flag, else hard delete."""
    validate_resource(resource)
    row = await provider.delete_resource(resource, validate_id(id), ctx)
    if row is None:
        return {"success": True}
    return {"row": row}
