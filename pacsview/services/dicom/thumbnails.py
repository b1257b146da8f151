"""Thumbnail Cache for PACSView.

Disk-backed memoisation of series and instance thumbnails. Files are laid
out flat in the cache directory:

    cache_dir/
        ├── series_{series_uid}_{size}.jpg
        ├── inst_{sop_instance_uid}_{size}.jpg
        └── ...

A miss renders synchronously and returns the bytes straight away; the
file is written by a detached task so the response never waits on disk.
Writes go to a temporary file that is renamed into place, and an empty
file counts as a miss.
"""

import asyncio
import hashlib
import re
import uuid
from contextlib import suppress
from enum import Enum
from pathlib import Path

import aiofiles
import aiofiles.os
from prometheus_client import Counter

from pacsview.core.logging import get_logger
from pacsview.services.dicom.index import DicomIndex
from pacsview.services.dicom.rendering import DicomImageService

logger = get_logger(__name__)

THUMBNAIL_LOOKUPS = Counter(
    "pacsview_thumbnail_cache_total",
    "Thumbnail cache lookups",
    ["result"],
)

_UID_SAFE = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


class ThumbnailKind(str, Enum):
    SERIES = "series"
    INSTANCE = "instance"


def _safe_name(uid: str) -> str:
    if _UID_SAFE.match(uid):
        return uid
    return hashlib.sha256(uid.encode("utf-8")).hexdigest()


class ThumbnailCache:
    """Cache of JPEG thumbnails keyed by ``(kind, uid, size)``."""

    def __init__(
        self,
        index: DicomIndex,
        image_service: DicomImageService,
        cache_dir: Path | str,
        default_size: int = 128,
        max_size: int = 1024,
        quality: int = 80,
    ):
        """Initialize thumbnail cache.

        Args:
            index: Index used to find a series' representative instance
            image_service: Rendering pipeline producing the thumbnails
            cache_dir: Directory holding cached files, created on first write
            default_size: Size used when the requested size is not positive
            max_size: Upper bound on the requested size
            quality: JPEG quality of cached thumbnails
        """
        self.index = index
        self.image_service = image_service
        self.cache_dir = Path(cache_dir)
        self.default_size = default_size
        self.max_size = max_size
        self.quality = quality
        self._pending: set[asyncio.Task] = set()

    def normalize_size(self, size: int | None) -> int:
        if size is None or size <= 0:
            return self.default_size
        return min(size, self.max_size)

    def cache_path(self, uid: str, size: int, kind: ThumbnailKind = ThumbnailKind.SERIES) -> Path:
        name = _safe_name(uid)
        if kind is ThumbnailKind.INSTANCE:
            return self.cache_dir / f"inst_{name}_{size}.jpg"
        return self.cache_dir / f"series_{name}_{size}.jpg"

    def _representative_instance(self, uid: str, kind: ThumbnailKind) -> str | None:
        if kind is ThumbnailKind.INSTANCE:
            return uid if self.index.get_instance(uid) else None
        instance = self.index.first_instance(uid)
        return instance.sop_instance_uid if instance else None

    async def get_thumbnail(
        self,
        uid: str,
        size: int | None = None,
        kind: ThumbnailKind = ThumbnailKind.SERIES,
    ) -> bytes | None:
        """Return thumbnail bytes for a series or instance.

        Returns:
            JPEG bytes, or None when the entity is unknown or its
            representative image cannot be rendered
        """
        size = self.normalize_size(size)
        path = self.cache_path(uid, size, kind)

        data = await self._read_cached(path)
        if data:
            THUMBNAIL_LOOKUPS.labels(result="hit").inc()
            return data

        THUMBNAIL_LOOKUPS.labels(result="miss").inc()
        sop_instance_uid = self._representative_instance(uid, kind)
        if sop_instance_uid is None:
            return None

        data = await self.image_service.render_thumbnail_async(
            sop_instance_uid, size, self.quality
        )
        if data is None:
            return None

        task = asyncio.create_task(self._persist(path, data))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return data

    async def _read_cached(self, path: Path) -> bytes | None:
        if not path.is_file():
            return None
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except OSError as e:
            logger.warning("Failed to read cached thumbnail", path=str(path), error=str(e))
            return None

    async def _persist(self, path: Path, data: bytes) -> None:
        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.tmp")
        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(tmp_path, "wb") as f:
                await f.write(data)
            await aiofiles.os.replace(tmp_path, path)
            logger.debug("Cached thumbnail", path=str(path))
        except OSError as e:
            logger.warning("Failed to cache thumbnail", path=str(path), error=str(e))
            with suppress(OSError):
                await aiofiles.os.remove(tmp_path)

    async def drain(self) -> None:
        """Wait for pending cache writes to finish."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def clear(self) -> int:
        """Delete every cached file.

        Returns:
            Number of files deleted
        """
        if not self.cache_dir.is_dir():
            return 0

        deleted = 0
        for path in self.cache_dir.iterdir():
            if not path.is_file():
                continue
            try:
                await aiofiles.os.remove(path)
                deleted += 1
            except OSError as e:
                logger.warning("Failed to delete cached thumbnail", path=str(path), error=str(e))

        logger.info("Thumbnail cache cleared", deleted=deleted)
        return deleted
