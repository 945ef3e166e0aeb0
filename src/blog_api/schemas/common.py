"""Shared response envelopes: paginated lists and the error body."""

import math
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class PaginationParams(BaseModel):
    """Query parameters for paginated endpoints."""

    page: int = Field(default=1, ge=1, description="Page number (1-based)")
    page_size: int = Field(default=20, ge=1, le=100, description="Items per page")


class PaginationMeta(BaseModel):
    """Pagination metadata included in paginated responses."""

    total: int = Field(description="Total number of items")
    page: int = Field(description="Current page number")
    page_size: int = Field(description="Items per page")
    total_pages: int = Field(description="Total number of pages, at least 1")

    @classmethod
    def for_total(cls, total: int, params: PaginationParams) -> "PaginationMeta":
        return cls(
            total=total,
            page=params.page,
            page_size=params.page_size,
            total_pages=max(1, math.ceil(total / params.page_size)),
        )


class Page(BaseModel, Generic[T]):
    """One page of a list endpoint."""

    items: list[T]
    pagination: PaginationMeta


class ErrorResponse(BaseModel):
    """Body of every ``AuthError`` response."""

    detail: str = Field(description="Client-safe error message")
    code: str = Field(description="Stable machine-readable error code, e.g. account_locked")
