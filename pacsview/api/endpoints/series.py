"""Series endpoints for PACSView."""

from fastapi import APIRouter, HTTPException, Query, Response, status
from pydantic import Field

from pacsview.api.deps import IndexDep, QueryEngineDep, ThumbnailCacheDep
from pacsview.api.endpoints.instances import InstanceMetadata, _instance_to_metadata
from pacsview.api.responses import ApiResponse, CamelModel, error_response, ok
from pacsview.models import SeriesRecord
from pacsview.services.dicom import DicomIndex, ThumbnailKind

router = APIRouter()


class SeriesMetadata(CamelModel):
    """DICOM series metadata."""

    series_instance_uid: str = Field(..., description="Unique series identifier")
    study_instance_uid: str = Field(..., description="Parent study UID")
    series_number: int | None = Field(None, description="Series number")
    series_description: str | None = Field(None, description="Series description")
    modality: str | None = Field(None, description="Series modality")
    body_part_examined: str | None = Field(None, description="Body part")
    instance_count: int = Field(0, description="Number of instances")
    thumbnail_url: str = Field(..., description="Representative thumbnail")


def _series_to_metadata(series: SeriesRecord, index: DicomIndex) -> SeriesMetadata:
    return SeriesMetadata(
        series_instance_uid=series.series_instance_uid,
        study_instance_uid=series.study_instance_uid,
        series_number=series.series_number,
        series_description=series.series_description,
        modality=series.modality,
        body_part_examined=series.body_part_examined,
        instance_count=len(index.child_uids(series)),
        thumbnail_url=f"/api/wado/thumbnail/{series.series_instance_uid}",
    )


@router.get("/{series_uid}", response_model=ApiResponse[SeriesMetadata])
async def get_series(series_uid: str, index: IndexDep):
    """Get series details."""
    series = index.get_series(series_uid)
    if series is None:
        return error_response("Series not found")
    return ok(_series_to_metadata(series, index))


@router.get("/{series_uid}/instances", response_model=ApiResponse[list[InstanceMetadata]])
async def get_series_instances(
    series_uid: str, queries: QueryEngineDep
) -> ApiResponse[list[InstanceMetadata]]:
    """Instances of a series ordered by instance number."""
    instances = queries.instances_for_series(series_uid)
    return ok([_instance_to_metadata(i) for i in instances])


@router.get("/{series_uid}/thumbnail", response_class=Response)
async def get_series_thumbnail(
    series_uid: str,
    thumbnails: ThumbnailCacheDep,
    size: int = Query(128, description="Longest side in pixels"),
) -> Response:
    data = await thumbnails.get_thumbnail(series_uid, size, ThumbnailKind.SERIES)
    if data is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Thumbnail not available: {series_uid}",
        )
    return Response(content=data, media_type="image/jpeg")
