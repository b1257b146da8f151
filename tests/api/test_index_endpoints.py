"""API tests for index management, health and readiness."""

from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient


async def test_statistics(client: AsyncClient, test_settings) -> None:
    response = await client.get("/api/index/statistics")
    stats = response.json()["data"]

    assert stats["totalPatients"] == 1
    assert stats["totalStudies"] == 1
    assert stats["totalSeries"] == 2
    assert stats["totalInstances"] == 4
    assert stats["isIndexing"] is False
    assert stats["lastIndexTime"] is not None
    assert stats["storagePath"] == str(test_settings.dicom.root_path)


async def test_rebuild_picks_up_new_files(client: AsyncClient, storage_root, dicom_writer) -> None:
    dicom_writer(storage_root / "P2" / "new.dcm", patient_id="P2", study_uid="3.3", series_uid="3.3.1")

    response = await client.post("/api/index/rebuild")
    body = response.json()

    assert response.status_code == 200
    assert body["message"] == "Index rebuild completed"
    assert body["data"]["totalPatients"] == 2
    assert body["data"]["filesProcessed"] == 5


async def test_clear_cache(client: AsyncClient, indexed_app: FastAPI, p1_uids: dict) -> None:
    await client.get(f"/api/wado/thumbnail/{p1_uids['series_a']}")
    await indexed_app.state.thumbnail_cache.drain()

    response = await client.post("/api/index/clear-cache")

    assert response.json()["success"] is True
    assert response.json()["message"] == "1 files deleted"
    assert list(indexed_app.state.thumbnail_cache.cache_dir.iterdir()) == []


async def test_health_and_ready(client: AsyncClient) -> None:
    health = await client.get("/health")
    assert health.json()["status"] == "healthy"

    ready = await client.get("/ready")
    assert ready.status_code == 200
    assert ready.json()["checks"] == {"storage": True, "index": True}


async def test_not_ready_before_first_rebuild(app: FastAPI) -> None:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.get("/ready")

    assert response.status_code == 503
    assert response.json()["checks"]["index"] is False


async def test_request_headers_and_metrics(client: AsyncClient) -> None:
    response = await client.get("/api/index/statistics")
    assert "x-request-id" in response.headers
    assert "x-process-time" in response.headers

    metrics = await client.get("/metrics/")
    assert metrics.status_code == 200
    assert "pacsview_requests_total" in metrics.text


async def test_incoming_request_id_is_echoed(client: AsyncClient) -> None:
    response = await client.get("/health", headers={"X-Request-ID": "abc123"})
    assert response.headers["x-request-id"] == "abc123"
