"""Pytest configuration and shared fixtures for PACSView tests.

Provides a DICOM file writer, a small on-disk archive for patient P1 and
a FastAPI application wired to it.
"""

from collections.abc import AsyncGenerator
from pathlib import Path

import numpy as np
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pydicom.dataset import FileDataset, FileMetaDataset
from pydicom.uid import ExplicitVRLittleEndian, generate_uid

from pacsview.core.config import Settings, StorageSettings
from pacsview.main import create_application, init_services, shutdown_services

CT_IMAGE_STORAGE = "1.2.840.10008.5.1.4.1.1.2"

PATIENT_ID = "P1"
STUDY_UID = "1.2.826.0.1.3680043.8.498.100"
SERIES_A_UID = "1.2.826.0.1.3680043.8.498.100.1"
SERIES_B_UID = "1.2.826.0.1.3680043.8.498.100.2"
SERIES_A_INSTANCES = [
    "1.2.826.0.1.3680043.8.498.100.1.1",
    "1.2.826.0.1.3680043.8.498.100.1.2",
    "1.2.826.0.1.3680043.8.498.100.1.3",
]
SERIES_B_INSTANCE = "1.2.826.0.1.3680043.8.498.100.2.1"


def write_dicom(
    path: Path,
    *,
    patient_id: str | None = PATIENT_ID,
    patient_name: str = "Doe^Jane",
    study_uid: str | None = STUDY_UID,
    series_uid: str | None = SERIES_A_UID,
    sop_uid: str | None = None,
    modality: str = "CT",
    study_date: str = "20240115",
    study_description: str = "CT CHEST",
    series_number: int = 1,
    instance_number: int = 1,
    rows: int = 8,
    columns: int = 8,
    frames: int = 1,
    window: tuple[float, float] | None = None,
    photometric: str = "MONOCHROME2",
    pixels: np.ndarray | None = None,
    with_pixels: bool = True,
) -> Path:
    """Write a small uncompressed DICOM file and return its path."""
    sop_uid = sop_uid or generate_uid()

    file_meta = FileMetaDataset()
    file_meta.MediaStorageSOPClassUID = CT_IMAGE_STORAGE
    file_meta.MediaStorageSOPInstanceUID = sop_uid
    file_meta.TransferSyntaxUID = ExplicitVRLittleEndian

    ds = FileDataset(str(path), {}, file_meta=file_meta, preamble=b"\0" * 128)
    ds.SOPClassUID = CT_IMAGE_STORAGE
    ds.SOPInstanceUID = sop_uid
    if patient_id is not None:
        ds.PatientID = patient_id
    ds.PatientName = patient_name
    ds.PatientSex = "F"
    ds.PatientBirthDate = "19700101"
    if study_uid is not None:
        ds.StudyInstanceUID = study_uid
    if series_uid is not None:
        ds.SeriesInstanceUID = series_uid
    ds.Modality = modality
    ds.StudyDate = study_date
    ds.StudyTime = "101500"
    ds.StudyDescription = study_description
    ds.AccessionNumber = f"ACC{series_number:03d}"
    ds.SeriesNumber = series_number
    ds.SeriesDescription = f"Series {series_number}"
    ds.InstanceNumber = instance_number

    if with_pixels:
        if pixels is None:
            ramp = (np.arange(rows * columns) % 4096).reshape(rows, columns)
            pixels = np.stack([ramp] * frames) if frames > 1 else ramp
        ds.Rows = rows
        ds.Columns = columns
        ds.SamplesPerPixel = 1
        ds.PhotometricInterpretation = photometric
        ds.BitsAllocated = 16
        ds.BitsStored = 16
        ds.HighBit = 15
        ds.PixelRepresentation = 0
        if frames > 1:
            ds.NumberOfFrames = frames
        if window is not None:
            ds.WindowCenter, ds.WindowWidth = window
        ds.PixelData = pixels.astype(np.uint16).tobytes()

    path.parent.mkdir(parents=True, exist_ok=True)
    ds.save_as(str(path), enforce_file_format=True)
    return path


@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    """Archive with one study for P1: series 1 has 3 instances, series 2 has one.

    File names are chosen so scan order differs from series/instance order.
    """
    root = tmp_path / "dicom"
    study_dir = root / PATIENT_ID / "study1"
    write_dicom(
        study_dir / "a.dcm",
        series_uid=SERIES_B_UID,
        sop_uid=SERIES_B_INSTANCE,
        series_number=2,
        instance_number=1,
        modality="MR",
    )
    for name, sop_uid, number in zip(
        ("b.dcm", "c.dcm", "d.dcm"), SERIES_A_INSTANCES, (3, 1, 2)
    ):
        write_dicom(
            study_dir / name,
            series_uid=SERIES_A_UID,
            sop_uid=sop_uid,
            series_number=1,
            instance_number=number,
        )
    # Cached artifacts and notes next to the images are never scanned
    (study_dir / "preview.png").write_bytes(b"not dicom")
    (study_dir / "notes.txt").write_text("not dicom")
    return root


@pytest.fixture
def test_settings(tmp_path: Path, storage_root: Path) -> Settings:
    return Settings(
        dicom=StorageSettings(
            root_path=storage_root,
            thumbnail_cache_path=tmp_path / "thumbnails",
            index_on_startup=False,
        )
    )


@pytest.fixture
async def app(test_settings: Settings) -> AsyncGenerator[FastAPI, None]:
    application = create_application(test_settings)
    init_services(application, test_settings)
    yield application
    await shutdown_services(application)


@pytest.fixture
async def indexed_app(app: FastAPI) -> FastAPI:
    app.state.index_service.rebuild_index()
    return app


@pytest.fixture
async def client(indexed_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=indexed_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def dicom_writer():
    """The ``write_dicom`` helper, for tests that build their own files."""
    return write_dicom


@pytest.fixture
def p1_uids() -> dict:
    """Identifiers of the archive written by ``storage_root``."""
    return {
        "patient_id": PATIENT_ID,
        "study": STUDY_UID,
        "series_a": SERIES_A_UID,
        "series_b": SERIES_B_UID,
        "series_a_instances": list(SERIES_A_INSTANCES),
        "series_b_instance": SERIES_B_INSTANCE,
    }
