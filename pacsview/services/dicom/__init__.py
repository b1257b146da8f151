"""DICOM services module."""

from pacsview.services.dicom.index import DicomIndex
from pacsview.services.dicom.indexer import DicomIndexService
from pacsview.services.dicom.parser import DicomParser
from pacsview.services.dicom.query import Page, QueryEngine, QueryParameters
from pacsview.services.dicom.rendering import DicomImageService, ImageFormat
from pacsview.services.dicom.thumbnails import ThumbnailCache, ThumbnailKind

__all__ = [
    "DicomIndex",
    "DicomIndexService",
    "DicomParser",
    "DicomImageService",
    "ImageFormat",
    "Page",
    "QueryEngine",
    "QueryParameters",
    "ThumbnailCache",
    "ThumbnailKind",
]
