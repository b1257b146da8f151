"""FastAPI dependencies resolving the services built in the app lifespan."""

from typing import Annotated

from fastapi import Depends, Query, Request

from pacsview.services.dicom import (
    DicomImageService,
    DicomIndex,
    DicomIndexService,
    QueryEngine,
    QueryParameters,
    ThumbnailCache,
)


def get_index(request: Request) -> DicomIndex:
    return request.app.state.dicom_index


def get_index_service(request: Request) -> DicomIndexService:
    return request.app.state.index_service


def get_query_engine(request: Request) -> QueryEngine:
    return request.app.state.query_engine


def get_image_service(request: Request) -> DicomImageService:
    return request.app.state.image_service


def get_thumbnail_cache(request: Request) -> ThumbnailCache:
    return request.app.state.thumbnail_cache


IndexDep = Annotated[DicomIndex, Depends(get_index)]
IndexServiceDep = Annotated[DicomIndexService, Depends(get_index_service)]
QueryEngineDep = Annotated[QueryEngine, Depends(get_query_engine)]
ImageServiceDep = Annotated[DicomImageService, Depends(get_image_service)]
ThumbnailCacheDep = Annotated[ThumbnailCache, Depends(get_thumbnail_cache)]


def get_query_parameters(
    page_index: Annotated[int, Query(alias="pageIndex", description="Zero-based page")] = 0,
    page_size: Annotated[int, Query(alias="pageSize", description="Items per page (1-100)")] = 20,
    search: Annotated[str | None, Query(description="Case-insensitive substring")] = None,
    sort_by: Annotated[str | None, Query(alias="sortBy", description="Sort key")] = None,
    sort_desc: Annotated[bool, Query(alias="sortDesc", description="Sort descending")] = True,
) -> QueryParameters:
    """Paging and sorting options; out-of-range paging values are clamped."""
    return QueryParameters(
        page_index=page_index,
        page_size=page_size,
        search_term=search,
        sort_by=sort_by,
        sort_descending=sort_desc,
    )


ListQueryDep = Annotated[QueryParameters, Depends(get_query_parameters)]
