"""DICOM Parser Service for PACSView.

Wraps pydicom as the metadata extractor and frame renderer used by the
indexer and the rendering pipeline. Everything pydicom-specific stays in
this module; callers work with ``DicomDataset`` and ``PixelBuffer``.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np
import pydicom
from pydicom.dataelem import DataElement
from pydicom.dataset import Dataset
from pydicom.multival import MultiValue

from pacsview.core.logging import get_logger

logger = get_logger(__name__)

PIXEL_DATA_TAG = 0x7FE00010
TAG_VALUE_MAX_LENGTH = 100
# Values above this size are read from disk only when accessed
METADATA_DEFER_SIZE = "1 KB"


class DicomExtractionError(Exception):
    """A file could not be read as a DICOM dataset."""


class RenderError(Exception):
    """A frame could not be decoded or rendered."""


@dataclass
class DicomElement:
    """One element of a tag dump."""

    tag: str
    name: str
    vr: str
    value: str


@dataclass
class PixelBuffer:
    """Rendered frame as packed 0xAARRGGBB values in row-major order."""

    width: int
    height: int
    pixels: np.ndarray


def _format_tag(element: DataElement) -> str:
    return f"({element.tag.group:04X},{element.tag.element:04X})"


def _format_value(element: DataElement) -> str:
    """Render an element value for display, truncated to a readable length."""
    if element.VR == "SQ":
        return "[Sequence]"
    if element.tag == PIXEL_DATA_TAG:
        return "[Pixel Data]"

    value = element.value
    if value is None:
        return ""
    if isinstance(value, bytes):
        text = f"[{len(value)} bytes]"
    elif isinstance(value, MultiValue):
        text = "\\".join(str(v) for v in value)
    else:
        text = str(value)

    if len(text) > TAG_VALUE_MAX_LENGTH:
        text = text[:TAG_VALUE_MAX_LENGTH] + "..."
    return text


class DicomDataset:
    """Read-only view over a parsed DICOM file."""

    def __init__(self, ds: Dataset, file_path: str):
        self._ds = ds
        self.file_path = file_path

    @property
    def raw(self) -> Dataset:
        """The underlying pydicom dataset."""
        return self._ds

    def _first_value(self, keyword: str) -> Any:
        value = self._ds.get(keyword)
        if isinstance(value, (MultiValue, list, tuple)):
            return value[0] if len(value) else None
        return value

    def get_string(self, keyword: str, default: str | None = None) -> str | None:
        """Return the first value of an element as a stripped string."""
        value = self._first_value(keyword)
        if value is None:
            return default
        text = str(value).strip()
        return text or default

    def get_int(self, keyword: str) -> int | None:
        """Return the first value of an element as an int, if it parses."""
        text = self.get_string(keyword)
        if text is None:
            return None
        try:
            return int(text)
        except ValueError:
            try:
                return int(float(text))
            except ValueError:
                return None

    def get_float(self, keyword: str) -> float | None:
        """Return the first value of an element as a float, if it parses."""
        text = self.get_string(keyword)
        if text is None:
            return None
        try:
            return float(text)
        except ValueError:
            return None

    def elements(self) -> Iterator[DicomElement]:
        """Enumerate top-level elements as display-ready tag entries.

        Elements whose value cannot be converted are skipped.
        """
        for tag in sorted(self._ds.keys()):
            if tag == PIXEL_DATA_TAG:
                yield self._pixel_data_entry()
                continue
            try:
                element = self._ds[tag]
                yield DicomElement(
                    tag=_format_tag(element),
                    name=element.name or "Unknown",
                    vr=str(element.VR),
                    value=_format_value(element),
                )
            except Exception as e:
                logger.debug("Skipping unreadable element", path=self.file_path, error=str(e))

    def _pixel_data_entry(self) -> DicomElement:
        # keep_deferred leaves a deferred pixel value on disk
        element = self._ds.get_item(PIXEL_DATA_TAG, keep_deferred=True)
        return DicomElement(
            tag="(7FE0,0010)",
            name="Pixel Data",
            vr=str(element.VR or "OW"),
            value="[Pixel Data]",
        )

    def has_pixel_data(self) -> bool:
        return "PixelData" in self._ds

    def frame_count(self) -> int:
        """Number of frames in the pixel data, 0 when there is none."""
        if not self.has_pixel_data():
            return 0
        return max(1, self.get_int("NumberOfFrames") or 1)


class DicomParser:
    """Parser and renderer for DICOM files.

    Opens files into ``DicomDataset`` views and renders single frames to
    ARGB pixel buffers with window/level applied.
    """

    def open(
        self,
        file_path: Path | str,
        headers_only: bool = False,
        metadata_only: bool = False,
    ) -> DicomDataset:
        """Parse a DICOM file.

        Args:
            file_path: Path to DICOM file
            headers_only: Stop reading before the pixel data
            metadata_only: Keep Pixel Data and other large values on disk
                until accessed; the elements stay present in the dataset

        Returns:
            Parsed dataset view

        Raises:
            DicomExtractionError: the file is missing, truncated or not DICOM
        """
        try:
            ds = pydicom.dcmread(
                str(file_path),
                stop_before_pixels=headers_only,
                defer_size=METADATA_DEFER_SIZE if metadata_only else None,
            )
        except Exception as e:
            raise DicomExtractionError(f"Cannot read DICOM file {file_path}: {e}") from e
        return DicomDataset(ds, str(file_path))

    def render_frame(
        self,
        dataset: DicomDataset,
        frame: int = 0,
        window_center: float | None = None,
        window_width: float | None = None,
    ) -> PixelBuffer:
        """Render one frame to an ARGB pixel buffer.

        Grayscale frames are rescaled and windowed; when no window is given
        the dataset's own window is used, falling back to the frame's
        value range. Color frames are passed through unwindowed.

        Raises:
            RenderError: no pixel data, frame out of range, or decoding failed
        """
        ds = dataset.raw
        if not dataset.has_pixel_data():
            raise RenderError("Instance has no pixel data")

        frame_count = dataset.frame_count()
        if frame < 0 or frame >= frame_count:
            raise RenderError(f"Frame index {frame} out of range (0-{frame_count - 1})")

        try:
            pixel_array = ds.pixel_array
        except Exception as e:
            raise RenderError(
                "Unsupported transfer syntax or pixel data decoding failed"
            ) from e

        if frame_count > 1:
            pixel_array = pixel_array[frame]

        samples_per_pixel = dataset.get_int("SamplesPerPixel") or 1
        if samples_per_pixel > 1 and pixel_array.ndim == 3:
            rgb = self._normalize_color(pixel_array[:, :, :3])
        else:
            slope = dataset.get_float("RescaleSlope")
            intercept = dataset.get_float("RescaleIntercept")
            pixels = pixel_array.astype(np.float64)
            if slope is not None and intercept is not None:
                pixels = pixels * slope + intercept

            center, width = self._resolve_window(dataset, pixels, window_center, window_width)
            gray = self.apply_windowing(pixels, center, width)
            if dataset.get_string("PhotometricInterpretation") == "MONOCHROME1":
                gray = 255 - gray
            rgb = np.stack([gray, gray, gray], axis=-1)

        height, width = rgb.shape[:2]
        return PixelBuffer(width=width, height=height, pixels=self._pack_argb(rgb))

    def apply_windowing(
        self,
        pixel_array: np.ndarray,
        window_center: float,
        window_width: float,
    ) -> np.ndarray:
        """Apply window/level to pixel data.

        Args:
            pixel_array: Input pixel array
            window_center: Window center value
            window_width: Window width value, at least 1

        Returns:
            Windowed array scaled to 0-255
        """
        min_val = window_center - window_width / 2
        max_val = window_center + window_width / 2

        windowed = np.clip(pixel_array, min_val, max_val)
        windowed = ((windowed - min_val) / (max_val - min_val) * 255).astype(np.uint8)

        return windowed

    @staticmethod
    def _resolve_window(
        dataset: DicomDataset,
        pixels: np.ndarray,
        window_center: float | None,
        window_width: float | None,
    ) -> tuple[float, float]:
        if window_center is None:
            window_center = dataset.get_float("WindowCenter")
        if window_width is None:
            window_width = dataset.get_float("WindowWidth")

        if window_center is None or window_width is None:
            low = float(pixels.min())
            high = float(pixels.max())
            if window_center is None:
                window_center = (low + high) / 2
            if window_width is None:
                window_width = high - low

        return window_center, max(window_width, 1.0)

    @staticmethod
    def _normalize_color(pixel_array: np.ndarray) -> np.ndarray:
        if pixel_array.dtype == np.uint8:
            return pixel_array
        min_val = float(pixel_array.min())
        max_val = float(pixel_array.max())
        scale = max_val - min_val or 1.0
        return ((pixel_array - min_val) / scale * 255).astype(np.uint8)

    @staticmethod
    def _pack_argb(rgb: np.ndarray) -> np.ndarray:
        r = rgb[:, :, 0].astype(np.uint32)
        g = rgb[:, :, 1].astype(np.uint32)
        b = rgb[:, :, 2].astype(np.uint32)
        argb = np.uint32(0xFF000000) | (r << 16) | (g << 8) | b
        return argb.ravel()
