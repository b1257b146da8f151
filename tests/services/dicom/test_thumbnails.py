"""Tests for the thumbnail cache."""

import errno
from contextlib import asynccontextmanager
from io import BytesIO
from pathlib import Path

import aiofiles
import pytest
from PIL import Image

from pacsview.services.dicom import (
    DicomImageService,
    DicomIndex,
    DicomIndexService,
    ThumbnailCache,
    ThumbnailKind,
)


@pytest.fixture
def cache(tmp_path: Path, dicom_writer) -> ThumbnailCache:
    root = tmp_path / "archive"
    service = DicomIndexService(DicomIndex(), root)
    for n, sop_uid in enumerate(("9.1.1", "9.1.2")):
        service.index_file(
            dicom_writer(
                root / f"{n}.dcm",
                series_uid="9.1",
                sop_uid=sop_uid,
                instance_number=n + 1,
                rows=256,
                columns=512,
            )
        )
    images = DicomImageService(service.index)
    return ThumbnailCache(service.index, images, tmp_path / "thumbs", default_size=128, max_size=256)


def _size(data: bytes) -> tuple[int, int]:
    return Image.open(BytesIO(data)).size


class _DiskFullWriter:
    """Writes half of the data, then fails like a full disk."""

    def __init__(self, f):
        self._f = f

    async def write(self, data: bytes) -> None:
        await self._f.write(data[: len(data) // 2])
        raise OSError(errno.ENOSPC, "No space left on device")


class TestThumbnails:
    async def test_series_thumbnail_preserves_aspect(self, cache: ThumbnailCache):
        data = await cache.get_thumbnail("9.1", 128)

        assert data[:2] == b"\xff\xd8"
        assert _size(data) == (128, 64)

    async def test_result_is_written_to_disk(self, cache: ThumbnailCache):
        data = await cache.get_thumbnail("9.1", 100)
        await cache.drain()

        path = cache.cache_path("9.1", 100)
        assert path.name == "series_9.1_100.jpg"
        assert path.read_bytes() == data

    async def test_cache_hit_skips_rendering(self, cache: ThumbnailCache, monkeypatch):
        first = await cache.get_thumbnail("9.1.2", 64, ThumbnailKind.INSTANCE)
        await cache.drain()

        async def fail(*args, **kwargs):
            raise AssertionError("rendered on a cache hit")

        monkeypatch.setattr(cache.image_service, "render_thumbnail_async", fail)

        assert await cache.get_thumbnail("9.1.2", 64, ThumbnailKind.INSTANCE) == first
        assert cache.cache_path("9.1.2", 64, ThumbnailKind.INSTANCE).name == "inst_9.1.2_64.jpg"

    @pytest.mark.parametrize(("requested", "expected"), [(0, 128), (-1, 128), (None, 128), (64, 64), (5000, 256)])
    async def test_size_is_normalized(self, cache: ThumbnailCache, requested, expected):
        data = await cache.get_thumbnail("9.1", requested)
        assert max(_size(data)) == expected

    async def test_unknown_entities(self, cache: ThumbnailCache):
        assert await cache.get_thumbnail("nope") is None
        assert await cache.get_thumbnail("nope", kind=ThumbnailKind.INSTANCE) is None
        await cache.drain()
        assert not cache.cache_dir.exists()

    def test_unsafe_ids_are_hashed(self, cache: ThumbnailCache):
        path = cache.cache_path("../../etc/passwd", 128)
        assert path.parent == cache.cache_dir
        assert "/" not in path.name and ".." not in path.name

    async def test_write_failure_is_swallowed(self, cache: ThumbnailCache):
        cache.cache_dir.parent.mkdir(parents=True, exist_ok=True)
        cache.cache_dir.write_bytes(b"not a directory")

        data = await cache.get_thumbnail("9.1", 128)
        await cache.drain()

        assert data is not None
        assert cache.cache_dir.is_file()

    async def test_clear_deletes_cached_files(self, cache: ThumbnailCache):
        await cache.get_thumbnail("9.1", 64)
        await cache.get_thumbnail("9.1.1", 64, ThumbnailKind.INSTANCE)
        await cache.drain()

        assert await cache.clear() == 2
        assert list(cache.cache_dir.iterdir()) == []
        assert await cache.clear() == 0

    async def test_failed_write_leaves_no_partial_file(self, cache: ThumbnailCache, monkeypatch):
        real_open = aiofiles.open

        @asynccontextmanager
        async def disk_full_open(path, mode="r", *args, **kwargs):
            async with real_open(path, mode, *args, **kwargs) as f:
                yield _DiskFullWriter(f) if "w" in mode else f

        monkeypatch.setattr(aiofiles, "open", disk_full_open)
        first = await cache.get_thumbnail("9.1", 64)
        await cache.drain()
        monkeypatch.undo()

        assert list(cache.cache_dir.iterdir()) == []
        assert await cache.get_thumbnail("9.1", 64) == first
        await cache.drain()
        assert cache.cache_path("9.1", 64).read_bytes() == first

    async def test_empty_cached_file_is_a_miss(self, cache: ThumbnailCache):
        path = cache.cache_path("9.1", 64)
        path.parent.mkdir(parents=True)
        path.write_bytes(b"")

        data = await cache.get_thumbnail("9.1", 64)
        await cache.drain()

        assert data[:2] == b"\xff\xd8"
        assert data[-2:] == b"\xff\xd9"
        assert path.read_bytes() == data

    def test_series_and_instance_names_never_collide(self, cache: ThumbnailCache):
        series_path = cache.cache_path("inst_9.1.1", 64, ThumbnailKind.SERIES)
        instance_path = cache.cache_path("9.1.1", 64, ThumbnailKind.INSTANCE)

        assert series_path != instance_path
        assert series_path.name == "series_inst_9.1.1_64.jpg"
