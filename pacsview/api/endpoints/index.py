"""Index management endpoints for PACSView."""

from datetime import datetime

from fastapi import APIRouter
from pydantic import Field

from pacsview.api.deps import IndexServiceDep, ThumbnailCacheDep
from pacsview.api.responses import ApiResponse, CamelModel, ok
from pacsview.core.logging import get_logger
from pacsview.models import IndexStatistics

logger = get_logger(__name__)
router = APIRouter()


class IndexStatisticsResponse(CamelModel):
    """Index counts and the outcome of the last rebuild."""

    total_patients: int = 0
    total_studies: int = 0
    total_series: int = 0
    total_instances: int = 0
    last_index_time: datetime | None = Field(None, description="End of the last completed rebuild (UTC)")
    storage_path: str = ""
    is_indexing: bool = False
    files_processed: int = 0
    files_failed: int = 0
    files_skipped: int = 0
    duration_seconds: float | None = None


def _statistics_to_response(stats: IndexStatistics) -> IndexStatisticsResponse:
    return IndexStatisticsResponse(
        total_patients=stats.total_patients,
        total_studies=stats.total_studies,
        total_series=stats.total_series,
        total_instances=stats.total_instances,
        last_index_time=stats.last_index_time,
        storage_path=stats.storage_path,
        is_indexing=stats.is_indexing,
        files_processed=stats.files_processed,
        files_failed=stats.files_failed,
        files_skipped=stats.files_skipped,
        duration_seconds=stats.duration_seconds,
    )


@router.get("/statistics", response_model=ApiResponse[IndexStatisticsResponse])
async def get_statistics(index_service: IndexServiceDep) -> ApiResponse[IndexStatisticsResponse]:
    return ok(_statistics_to_response(index_service.statistics()))


@router.post("/rebuild", response_model=ApiResponse[IndexStatisticsResponse])
async def rebuild_index(index_service: IndexServiceDep) -> ApiResponse[IndexStatisticsResponse]:
    """Rebuild the index and wait for it to finish.

    While another rebuild is running this returns its current statistics
    straight away.
    """
    logger.info("Index rebuild requested")
    stats = await index_service.rebuild()
    message = "Index rebuild in progress" if stats.is_indexing else "Index rebuild completed"
    return ok(_statistics_to_response(stats), message)


@router.post("/clear-cache", response_model=ApiResponse[str])
async def clear_cache(thumbnails: ThumbnailCacheDep) -> ApiResponse[str]:
    deleted = await thumbnails.clear()
    return ok("Thumbnail cache cleared", f"{deleted} files deleted")
