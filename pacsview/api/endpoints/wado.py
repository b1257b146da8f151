"""WADO-style image access for PACSView.

Raw DICOM objects, rendered JPEG/PNG frames, thumbnails and tag dumps,
all addressed by UID.
"""

from enum import Enum

from fastapi import APIRouter, HTTPException, Query, Request, Response, status

from pacsview.api.deps import ImageServiceDep, IndexDep, ThumbnailCacheDep
from pacsview.api.endpoints.instances import DicomTag, to_tag_models
from pacsview.api.responses import ApiResponse, error_response, ok
from pacsview.core.logging import get_logger
from pacsview.services.dicom import DicomImageService, ImageFormat, ThumbnailKind

logger = get_logger(__name__)
router = APIRouter()

DICOM_MEDIA_TYPE = "application/dicom"


class WadoContentType(str, Enum):
    """Representations a WADO object fetch can return."""

    DICOM = "application/dicom"
    JPEG = "image/jpeg"
    PNG = "image/png"

    @classmethod
    def parse(cls, value: str | None) -> "WadoContentType":
        """Parse a media type, ignoring case and parameters; unknown -> DICOM."""
        if not value:
            return cls.DICOM
        media_type = value.split(",", 1)[0].split(";", 1)[0].strip().lower()
        if media_type == "image/jpg":
            return cls.JPEG
        try:
            return cls(media_type)
        except ValueError:
            return cls.DICOM


def _not_found(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


async def _dicom_file_response(
    sop_instance_uid: str, image_service: DicomImageService, download: bool = False
) -> Response:
    data = await image_service.get_dicom_file(sop_instance_uid)
    if data is None:
        raise _not_found("DICOM file not found")

    disposition = "attachment" if download else "inline"
    return Response(
        content=data,
        media_type=DICOM_MEDIA_TYPE,
        headers={"Content-Disposition": f"{disposition}; filename={sop_instance_uid}.dcm"},
    )


async def _rendered_response(
    image_service: DicomImageService,
    sop_instance_uid: str,
    frame: int = 0,
    window_center: float | None = None,
    window_width: float | None = None,
    image_format: ImageFormat = ImageFormat.JPEG,
    quality: int | None = None,
) -> Response:
    data = await image_service.render_async(
        sop_instance_uid, frame, window_center, window_width, image_format, quality
    )
    if data is None:
        raise _not_found("Image could not be rendered")
    return Response(content=data, media_type=image_format.media_type)


@router.get(
    "/studies/{study_uid}/series/{series_uid}/instances/{sop_instance_uid}",
    response_class=Response,
)
async def get_dicom_object(
    study_uid: str,
    series_uid: str,
    sop_instance_uid: str,
    request: Request,
    index: IndexDep,
    image_service: ImageServiceDep,
    content_type: str | None = Query(None, alias="contentType"),
) -> Response:
    """Fetch an instance as DICOM, JPEG or PNG.

    The representation comes from ``contentType``, else the first entry of
    the Accept header, defaulting to the raw DICOM file.
    """
    instance = index.get_instance(sop_instance_uid)
    if instance is None:
        raise _not_found("Instance not found")

    if instance.study_instance_uid != study_uid or instance.series_instance_uid != series_uid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Instance UID does not match study/series",
        )

    requested = WadoContentType.parse(content_type or request.headers.get("accept"))
    logger.debug("WADO object fetch", sop_instance_uid=sop_instance_uid, content_type=requested.value)

    if requested is WadoContentType.JPEG:
        return await _rendered_response(image_service, sop_instance_uid)
    if requested is WadoContentType.PNG:
        return await _rendered_response(
            image_service, sop_instance_uid, image_format=ImageFormat.PNG
        )
    return await _dicom_file_response(sop_instance_uid, image_service)


@router.get("/image/{sop_instance_uid}", response_class=Response)
async def get_rendered_image(
    sop_instance_uid: str,
    image_service: ImageServiceDep,
    frame: int = Query(0, description="Zero-based frame index"),
    window_center: float | None = Query(None, alias="windowCenter"),
    window_width: float | None = Query(None, alias="windowWidth"),
    quality: int = Query(85, description="JPEG quality (0-100)"),
) -> Response:
    """Render a frame as JPEG."""
    return await _rendered_response(
        image_service, sop_instance_uid, frame, window_center, window_width, ImageFormat.JPEG, quality
    )


@router.get("/image/{sop_instance_uid}/png", response_class=Response)
async def get_rendered_image_png(
    sop_instance_uid: str,
    image_service: ImageServiceDep,
    frame: int = Query(0, description="Zero-based frame index"),
    window_center: float | None = Query(None, alias="windowCenter"),
    window_width: float | None = Query(None, alias="windowWidth"),
) -> Response:
    """Render a frame as PNG."""
    return await _rendered_response(
        image_service, sop_instance_uid, frame, window_center, window_width, ImageFormat.PNG
    )


@router.get("/frames/{sop_instance_uid}/{frame}", response_class=Response)
async def get_frame(
    sop_instance_uid: str,
    frame: int,
    image_service: ImageServiceDep,
    window_center: float | None = Query(None, alias="windowCenter"),
    window_width: float | None = Query(None, alias="windowWidth"),
    quality: int = Query(85, description="JPEG quality (0-100)"),
) -> Response:
    return await _rendered_response(
        image_service, sop_instance_uid, frame, window_center, window_width, ImageFormat.JPEG, quality
    )


@router.get("/thumbnail/instance/{sop_instance_uid}", response_class=Response)
async def get_instance_thumbnail(
    sop_instance_uid: str,
    thumbnails: ThumbnailCacheDep,
    size: int = Query(128, description="Longest side in pixels"),
) -> Response:
    data = await thumbnails.get_thumbnail(sop_instance_uid, size, ThumbnailKind.INSTANCE)
    if data is None:
        raise _not_found("Thumbnail not available")
    return Response(content=data, media_type="image/jpeg")


@router.get("/thumbnail/{series_uid}", response_class=Response)
async def get_series_thumbnail(
    series_uid: str,
    thumbnails: ThumbnailCacheDep,
    size: int = Query(128, description="Longest side in pixels"),
) -> Response:
    data = await thumbnails.get_thumbnail(series_uid, size, ThumbnailKind.SERIES)
    if data is None:
        raise _not_found("Thumbnail not available")
    return Response(content=data, media_type="image/jpeg")


@router.get("/dicom/{sop_instance_uid}", response_class=Response)
async def get_dicom_file(
    sop_instance_uid: str,
    image_service: ImageServiceDep,
    download: bool = Query(False, description="Serve as an attachment"),
) -> Response:
    """Raw DICOM file, inline unless ``download`` is set."""
    return await _dicom_file_response(sop_instance_uid, image_service, download)


@router.get("/metadata/{sop_instance_uid}", response_model=ApiResponse[list[DicomTag]])
async def get_metadata(sop_instance_uid: str, image_service: ImageServiceDep):
    """Tag dump of an instance; 404 when nothing could be read."""
    elements = await image_service.get_tags_async(sop_instance_uid)
    if not elements:
        return error_response("Unable to read DICOM tags")
    return ok(to_tag_models(elements))
