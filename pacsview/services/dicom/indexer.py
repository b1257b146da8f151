"""DICOM Index Service for PACSView.

Scans the storage tree, feeds every candidate file through the parser and
upserts the result into the hierarchical index. Only one rebuild runs at a
time; a second request while one is running gets the current statistics
back immediately.
"""

import asyncio
import os
import threading
import time
from collections.abc import Iterator
from datetime import date, datetime
from pathlib import Path

from prometheus_client import Counter

from pacsview.core.logging import get_logger
from pacsview.models import (
    IndexStatistics,
    InstanceRecord,
    PatientRecord,
    SeriesRecord,
    StudyRecord,
)
from pacsview.services.dicom.index import DicomIndex
from pacsview.services.dicom.parser import DicomDataset, DicomParser

logger = get_logger(__name__)

INDEXED_FILES = Counter(
    "pacsview_indexed_files_total",
    "Files visited by index rebuilds",
    ["outcome"],
)

DEFAULT_EXCLUDED_EXTENSIONS = (".png", ".jpg", ".jpeg", ".txt", ".json")
UNKNOWN_PATIENT = "Unknown"


def parse_study_date(value: str | None) -> date | None:
    """Parse a DICOM DA value strictly as YYYYMMDD."""
    if not value or len(value) != 8 or not value.isdigit():
        return None
    try:
        return datetime.strptime(value, "%Y%m%d").date()
    except ValueError:
        return None


class DicomIndexService:
    """Rebuilds the in-memory index from the files under a storage root.

    State machine: idle -> rebuilding -> idle. ``rebuild_index`` blocks and
    is meant to run in a worker thread; ``rebuild`` is the async wrapper.
    """

    def __init__(
        self,
        index: DicomIndex,
        root_path: Path | str,
        parser: DicomParser | None = None,
        excluded_extensions: list[str] | tuple[str, ...] = DEFAULT_EXCLUDED_EXTENSIONS,
        progress_log_interval: int = 100,
    ):
        """Initialize index service.

        Args:
            index: Index to populate
            root_path: Storage root scanned recursively
            parser: DICOM parser, a default one is created if omitted
            excluded_extensions: Extensions of cached artifacts to skip
            progress_log_interval: Log progress every N files
        """
        self.index = index
        self.root_path = Path(root_path)
        self.parser = parser or DicomParser()
        self.excluded_extensions = tuple(ext.lower() for ext in excluded_extensions)
        self.progress_log_interval = max(1, progress_log_interval)

        self._rebuild_lock = threading.Lock()
        self._cancel_event = threading.Event()

    @property
    def is_rebuilding(self) -> bool:
        return self._rebuild_lock.locked()

    def statistics(self) -> IndexStatistics:
        stats = self.index.statistics(storage_path=str(self.root_path))
        # Indexing starts as soon as the rebuild lock is taken
        stats.is_indexing = stats.is_indexing or self.is_rebuilding
        return stats

    def cancel(self) -> None:
        """Ask a running rebuild to stop before the next file."""
        self._cancel_event.set()

    def iter_candidate_files(self) -> Iterator[Path]:
        """Yield every regular file under the root, minus excluded extensions."""
        for dirpath, _dirnames, filenames in os.walk(self.root_path):
            for filename in sorted(filenames):
                if filename.lower().endswith(self.excluded_extensions):
                    continue
                path = Path(dirpath) / filename
                if path.is_file():
                    yield path

    def rebuild_index(self) -> IndexStatistics:
        """Clear the index and re-scan the storage root.

        Returns the in-flight statistics without doing anything when a
        rebuild is already running.
        """
        if not self._rebuild_lock.acquire(blocking=False):
            logger.info("Index rebuild already in progress")
            return self.statistics()

        self._cancel_event.clear()
        started = time.perf_counter()
        processed = failed = skipped = 0
        completed = False
        try:
            self.index.mark_indexing()
            logger.info("Rebuilding DICOM index", path=str(self.root_path))
            self.index.clear_all()

            if self.root_path.is_dir():
                files = list(self.iter_candidate_files())
                logger.info("Found files to index", count=len(files))
            else:
                logger.warning("Storage path does not exist", path=str(self.root_path))
                files = []

            for count, file_path in enumerate(files, start=1):
                if self._cancel_event.is_set():
                    logger.warning("Index rebuild cancelled", processed=processed, total=len(files))
                    break

                try:
                    indexed = self.index_file(file_path)
                except Exception as e:
                    failed += 1
                    INDEXED_FILES.labels(outcome="failed").inc()
                    logger.debug("Skipping file", path=str(file_path), error=str(e))
                else:
                    if indexed:
                        processed += 1
                        INDEXED_FILES.labels(outcome="indexed").inc()
                    else:
                        skipped += 1
                        INDEXED_FILES.labels(outcome="skipped").inc()

                if count % self.progress_log_interval == 0:
                    logger.info("Indexing progress", done=count, total=len(files))
            else:
                completed = True

            logger.info(
                "Index rebuild finished",
                processed=processed,
                failed=failed,
                skipped=skipped,
                completed=completed,
            )
        finally:
            self.index.mark_indexed(
                files_processed=processed,
                files_failed=failed,
                files_skipped=skipped,
                duration_seconds=round(time.perf_counter() - started, 3),
                completed=completed,
            )
            self._rebuild_lock.release()

        return self.statistics()

    async def rebuild(self) -> IndexStatistics:
        """Run ``rebuild_index`` in a worker thread."""
        return await asyncio.to_thread(self.rebuild_index)

    async def rebuild_after(self, delay_seconds: float) -> IndexStatistics:
        """Wait, then rebuild. Used for the automatic rebuild after startup."""
        await asyncio.sleep(delay_seconds)
        return await self.rebuild()

    def index_file(self, file_path: Path | str) -> bool:
        """Parse one file and upsert it into the index.

        Returns:
            True if the file was indexed, False if it lacks one of the
            Study/Series/SOP Instance UIDs

        Raises:
            DicomExtractionError: the file is not readable DICOM
        """
        dataset = self.parser.open(file_path, headers_only=True)
        return self.index_dataset(dataset)

    def index_dataset(self, dataset: DicomDataset) -> bool:
        """Upsert an already parsed dataset into the index."""
        study_uid = dataset.get_string("StudyInstanceUID")
        series_uid = dataset.get_string("SeriesInstanceUID")
        sop_instance_uid = dataset.get_string("SOPInstanceUID")
        if not study_uid or not series_uid or not sop_instance_uid:
            return False

        patient_id = dataset.get_string("PatientID", UNKNOWN_PATIENT)
        file_path = str(dataset.file_path)

        patient = self.index.upsert_patient(
            patient_id,
            lambda pid: PatientRecord(
                patient_id=pid,
                patient_name=dataset.get_string("PatientName", UNKNOWN_PATIENT),
                birth_date=dataset.get_string("PatientBirthDate"),
                sex=dataset.get_string("PatientSex"),
            ),
        )

        study = self.index.upsert_study(
            study_uid,
            lambda uid: StudyRecord(
                study_instance_uid=uid,
                patient_id=patient_id,
                patient_name=patient.patient_name,
                study_date=dataset.get_string("StudyDate"),
                study_time=dataset.get_string("StudyTime"),
                study_description=dataset.get_string("StudyDescription"),
                accession_number=dataset.get_string("AccessionNumber"),
                referring_physician=dataset.get_string("ReferringPhysicianName"),
                folder_path=os.path.dirname(file_path),
            ),
        )

        modality = dataset.get_string("Modality")
        self.index.add_modality(study, modality)

        series = self.index.upsert_series(
            series_uid,
            lambda uid: SeriesRecord(
                series_instance_uid=uid,
                study_instance_uid=study_uid,
                series_number=dataset.get_int("SeriesNumber"),
                series_description=dataset.get_string("SeriesDescription"),
                modality=modality,
                body_part_examined=dataset.get_string("BodyPartExamined"),
            ),
        )

        self.index.set_instance(
            InstanceRecord(
                sop_instance_uid=sop_instance_uid,
                series_instance_uid=series_uid,
                study_instance_uid=study_uid,
                file_path=file_path,
                instance_number=dataset.get_int("InstanceNumber"),
                sop_class_uid=dataset.get_string("SOPClassUID"),
                rows=dataset.get_int("Rows"),
                columns=dataset.get_int("Columns"),
                number_of_frames=dataset.get_int("NumberOfFrames"),
                window_center=dataset.get_float("WindowCenter"),
                window_width=dataset.get_float("WindowWidth"),
                photometric_interpretation=dataset.get_string("PhotometricInterpretation"),
            )
        )

        self.index.link_study(patient, study_uid)
        self.index.link_series(study, series_uid)
        self.index.link_instance(series, sop_instance_uid)

        study_date = parse_study_date(study.study_date)
        if study_date is not None:
            self.index.update_latest_study_date(patient, study_date)

        return True
