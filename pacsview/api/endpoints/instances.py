"""Instance endpoints for PACSView.

Instance detail, tag dump, thumbnail and frame count.
"""

from fastapi import APIRouter, HTTPException, Query, Response, status
from pydantic import Field

from pacsview.api.deps import ImageServiceDep, IndexDep, ThumbnailCacheDep
from pacsview.api.responses import ApiResponse, CamelModel, error_response, ok
from pacsview.models import InstanceRecord
from pacsview.services.dicom import ThumbnailKind
from pacsview.services.dicom.parser import DicomElement

router = APIRouter()


class InstanceMetadata(CamelModel):
    """DICOM instance metadata."""

    sop_instance_uid: str = Field(..., description="Unique instance identifier")
    series_instance_uid: str = Field(..., description="Parent series UID")
    study_instance_uid: str = Field(..., description="Parent study UID")
    instance_number: int | None = Field(None, description="Instance number")
    sop_class_uid: str | None = Field(None, description="SOP class UID")
    file_path: str = Field(..., description="Location of the file under the storage root")
    rows: int | None = None
    columns: int | None = None
    number_of_frames: int | None = None
    window_center: float | None = None
    window_width: float | None = None
    photometric_interpretation: str | None = None


class DicomTag(CamelModel):
    """One entry of a tag dump."""

    tag: str = Field(..., description="Tag as (GGGG,EEEE)")
    name: str
    vr: str
    value: str


def _instance_to_metadata(instance: InstanceRecord) -> InstanceMetadata:
    return InstanceMetadata(
        sop_instance_uid=instance.sop_instance_uid,
        series_instance_uid=instance.series_instance_uid,
        study_instance_uid=instance.study_instance_uid,
        instance_number=instance.instance_number,
        sop_class_uid=instance.sop_class_uid,
        file_path=instance.file_path,
        rows=instance.rows,
        columns=instance.columns,
        number_of_frames=instance.number_of_frames,
        window_center=instance.window_center,
        window_width=instance.window_width,
        photometric_interpretation=instance.photometric_interpretation,
    )


def to_tag_models(elements: list[DicomElement]) -> list[DicomTag]:
    return [DicomTag(tag=e.tag, name=e.name, vr=e.vr, value=e.value) for e in elements]


@router.get("/{sop_instance_uid}", response_model=ApiResponse[InstanceMetadata])
async def get_instance(sop_instance_uid: str, index: IndexDep):
    """Get instance details."""
    instance = index.get_instance(sop_instance_uid)
    if instance is None:
        return error_response("Instance not found")
    return ok(_instance_to_metadata(instance))


@router.get("/{sop_instance_uid}/tags", response_model=ApiResponse[list[DicomTag]])
async def get_instance_tags(
    sop_instance_uid: str, image_service: ImageServiceDep
) -> ApiResponse[list[DicomTag]]:
    """Tag dump of an instance; empty for unknown or unreadable instances."""
    elements = await image_service.get_tags_async(sop_instance_uid)
    return ok(to_tag_models(elements))


@router.get("/{sop_instance_uid}/thumbnail", response_class=Response)
async def get_instance_thumbnail(
    sop_instance_uid: str,
    thumbnails: ThumbnailCacheDep,
    size: int = Query(128, description="Longest side in pixels"),
) -> Response:
    data = await thumbnails.get_thumbnail(sop_instance_uid, size, ThumbnailKind.INSTANCE)
    if data is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Thumbnail not available: {sop_instance_uid}",
        )
    return Response(content=data, media_type="image/jpeg")


@router.get("/{sop_instance_uid}/frames", response_model=ApiResponse[int])
async def get_frame_count(sop_instance_uid: str, image_service: ImageServiceDep) -> ApiResponse[int]:
    """Number of frames; 0 for unknown instances or instances without pixel data."""
    count = await image_service.get_frame_count_async(sop_instance_uid)
    return ok(count)
