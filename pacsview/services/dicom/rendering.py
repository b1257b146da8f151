"""DICOM Image Service for PACSView.

Renders indexed instances to JPEG/PNG, reports frame counts, and serves
raw files and tag dumps. Decode failures never escape: callers get
``None`` (or an empty result) and the failure is logged.
"""

import asyncio
from enum import Enum
from pathlib import Path

import aiofiles
import numpy as np

from pacsview.core.logging import get_logger
from pacsview.services.dicom.imaging import (
    argb_to_rgba,
    encode_jpeg,
    encode_png,
    resize_to_fit,
)
from pacsview.services.dicom.index import DicomIndex
from pacsview.services.dicom.parser import (
    DicomElement,
    DicomExtractionError,
    DicomParser,
    RenderError,
)

logger = get_logger(__name__)

DEFAULT_JPEG_QUALITY = 85


class ImageFormat(str, Enum):
    """Encodings the rendering pipeline can produce."""

    JPEG = "jpeg"
    PNG = "png"

    @property
    def media_type(self) -> str:
        return f"image/{self.value}"


class DicomImageService:
    """Rendering pipeline in front of the parser and the image encoder."""

    def __init__(
        self,
        index: DicomIndex,
        parser: DicomParser | None = None,
        default_quality: int = DEFAULT_JPEG_QUALITY,
    ):
        self.index = index
        self.parser = parser or DicomParser()
        self.default_quality = default_quality

    def get_instance_file_path(self, sop_instance_uid: str) -> str | None:
        instance = self.index.get_instance(sop_instance_uid)
        return instance.file_path if instance else None

    def _render_rgba(
        self,
        sop_instance_uid: str,
        frame: int,
        window_center: float | None,
        window_width: float | None,
    ) -> np.ndarray | None:
        instance = self.index.get_instance(sop_instance_uid)
        if instance is None:
            return None

        if window_center is None:
            window_center = instance.window_center
        if window_width is None:
            window_width = instance.window_width
        if window_width is not None:
            window_width = max(window_width, 1.0)

        try:
            dataset = self.parser.open(instance.file_path)
            buffer = self.parser.render_frame(dataset, frame, window_center, window_width)
            return argb_to_rgba(buffer)
        except (DicomExtractionError, RenderError) as e:
            logger.warning(
                "Failed to render image",
                sop_instance_uid=sop_instance_uid,
                frame=frame,
                error=str(e),
            )
        except Exception as e:
            logger.error(
                "Unexpected error rendering image",
                sop_instance_uid=sop_instance_uid,
                frame=frame,
                error=str(e),
                exc_info=e,
            )
        return None

    def render(
        self,
        sop_instance_uid: str,
        frame: int = 0,
        window_center: float | None = None,
        window_width: float | None = None,
        image_format: ImageFormat = ImageFormat.JPEG,
        quality: int | None = None,
    ) -> bytes | None:
        """Render one frame of an instance.

        Args:
            sop_instance_uid: Instance to render
            frame: Zero-based frame index
            window_center: Window center override
            window_width: Window width override, clamped to at least 1
            image_format: Output encoding
            quality: JPEG quality 0-100, service default when omitted

        Returns:
            Encoded image bytes, or None when the instance is unknown or
            cannot be rendered
        """
        rgba = self._render_rgba(sop_instance_uid, frame, window_center, window_width)
        if rgba is None:
            return None

        if image_format is ImageFormat.PNG:
            return encode_png(rgba)
        return encode_jpeg(rgba, self.default_quality if quality is None else quality)

    def render_thumbnail(self, sop_instance_uid: str, size: int, quality: int) -> bytes | None:
        """First frame at the default window, scaled so its longest side is ``size``."""
        rgba = self._render_rgba(sop_instance_uid, 0, None, None)
        if rgba is None:
            return None
        return encode_jpeg(resize_to_fit(rgba, size), quality)

    def get_frame_count(self, sop_instance_uid: str) -> int:
        """Frame count of an instance; 0 when unknown, unreadable or without pixels."""
        file_path = self.get_instance_file_path(sop_instance_uid)
        if not file_path:
            return 0

        try:
            dataset = self.parser.open(file_path, metadata_only=True)
        except DicomExtractionError as e:
            logger.debug("Cannot read frame count", sop_instance_uid=sop_instance_uid, error=str(e))
            return 0
        return dataset.frame_count()

    def get_tags(self, sop_instance_uid: str) -> list[DicomElement]:
        """Tag dump of an instance; empty when unknown or unreadable."""
        file_path = self.get_instance_file_path(sop_instance_uid)
        if not file_path:
            return []

        try:
            dataset = self.parser.open(file_path, metadata_only=True)
        except DicomExtractionError as e:
            logger.debug("Cannot read tags", sop_instance_uid=sop_instance_uid, error=str(e))
            return []
        return list(dataset.elements())

    async def get_dicom_file(self, sop_instance_uid: str) -> bytes | None:
        """Raw bytes of the instance's file, or None if it is gone."""
        file_path = self.get_instance_file_path(sop_instance_uid)
        if not file_path or not Path(file_path).is_file():
            return None

        try:
            async with aiofiles.open(file_path, "rb") as f:
                return await f.read()
        except OSError as e:
            logger.warning("Failed to read DICOM file", path=file_path, error=str(e))
            return None

    async def render_async(
        self,
        sop_instance_uid: str,
        frame: int = 0,
        window_center: float | None = None,
        window_width: float | None = None,
        image_format: ImageFormat = ImageFormat.JPEG,
        quality: int | None = None,
    ) -> bytes | None:
        return await asyncio.to_thread(
            self.render,
            sop_instance_uid,
            frame,
            window_center,
            window_width,
            image_format,
            quality,
        )

    async def render_thumbnail_async(
        self, sop_instance_uid: str, size: int, quality: int
    ) -> bytes | None:
        return await asyncio.to_thread(self.render_thumbnail, sop_instance_uid, size, quality)

    async def get_frame_count_async(self, sop_instance_uid: str) -> int:
        return await asyncio.to_thread(self.get_frame_count, sop_instance_uid)

    async def get_tags_async(self, sop_instance_uid: str) -> list[DicomElement]:
        return await asyncio.to_thread(self.get_tags, sop_instance_uid)
