"""Response envelopes shared by the JSON endpoints.

Every JSON body is wrapped in ``ApiResponse`` and serialised with
camelCase keys.
"""

from typing import Generic, TypeVar

from fastapi import status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base model serialised with camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ApiResponse(CamelModel, Generic[T]):
    """Success flag plus optional message and payload."""

    success: bool = True
    message: str | None = None
    data: T | None = None


class PagedResponse(CamelModel, Generic[T]):
    """One page of a list query."""

    items: list[T] = Field(default_factory=list)
    total_count: int = 0
    page_index: int = 0
    page_size: int = 20
    total_pages: int = 0


def ok(data: T, message: str | None = None) -> ApiResponse[T]:
    return ApiResponse(success=True, message=message, data=data)


def error_response(
    message: str, status_code: int = status.HTTP_404_NOT_FOUND
) -> JSONResponse:
    """JSON error body with ``success: false``."""
    body = ApiResponse[None](success=False, message=message)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", by_alias=True),
    )
