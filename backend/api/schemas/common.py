"""Common schemas used across the API."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorBody(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    error: ErrorBody
    resource: Optional[str] = Field(default=None, description="Resource key from the path, if any")
    request_id: Optional[str] = None


class ListResponse(BaseModel):
    """One page of resource rows."""

    model_config = ConfigDict(populate_by_name=True)

    rows: list[Any]
    total: int
    page: int
    page_size: int = Field(alias="pageSize")
    resource: str
    raw: bool = False


class ItemResponse(BaseModel):
    row: Any


class BulkDeleteRequest(BaseModel):
    ids: list[str] = Field(description="Primary keys to delete; all must be in scope")


class BulkDeleteResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    deleted_ids: list[str] = Field(alias="deletedIds")
    soft_delete: bool = Field(alias="softDelete")


class HealthResponse(BaseModel):
    app: str
    version: str
    status: str
    database: str
