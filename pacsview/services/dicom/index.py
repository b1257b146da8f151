"""In-memory hierarchical DICOM index.

Holds four entity stores (patients, studies, series, instances) keyed by
their DICOM identifiers. Each store has its own lock, so indexing and
querying of different entity types never contend on one global lock.

Records are created through factories inside the store lock, which means
a lookup sees either no record or a fully initialised one. After creation
a record is only mutated through the ``link_*``/``add_*``/``update_*``
methods below, under the lock of the store that owns it.
"""

import threading
from collections.abc import Callable
from datetime import date, datetime, timezone
from typing import TypeVar

from pacsview.core.logging import get_logger
from pacsview.models import (
    IndexStatistics,
    InstanceRecord,
    PatientRecord,
    SeriesRecord,
    StudyRecord,
)

logger = get_logger(__name__)

RecordT = TypeVar("RecordT")


class DicomIndex:
    """Concurrent-safe Patient -> Study -> Series -> Instance index."""

    def __init__(self) -> None:
        self._patients: dict[str, PatientRecord] = {}
        self._studies: dict[str, StudyRecord] = {}
        self._series: dict[str, SeriesRecord] = {}
        self._instances: dict[str, InstanceRecord] = {}

        self._patient_lock = threading.RLock()
        self._study_lock = threading.RLock()
        self._series_lock = threading.RLock()
        self._instance_lock = threading.RLock()

        self._state_lock = threading.Lock()
        self._is_indexing = False
        self._last_index_time: datetime | None = None
        self._last_run: dict[str, float | int | None] = {
            "files_processed": 0,
            "files_failed": 0,
            "files_skipped": 0,
            "duration_seconds": None,
        }

    # -------------------------------------------------------------------------
    # Upserts
    # -------------------------------------------------------------------------

    @staticmethod
    def _get_or_create(
        store: dict[str, RecordT],
        lock: threading.RLock,
        key: str,
        factory: Callable[[str], RecordT],
    ) -> RecordT:
        with lock:
            record = store.get(key)
            if record is None:
                record = factory(key)
                store[key] = record
            return record

    def upsert_patient(
        self, patient_id: str, factory: Callable[[str], PatientRecord]
    ) -> PatientRecord:
        """Return the patient for ``patient_id``, creating it with ``factory`` if absent."""
        return self._get_or_create(self._patients, self._patient_lock, patient_id, factory)

    def upsert_study(
        self, study_uid: str, factory: Callable[[str], StudyRecord]
    ) -> StudyRecord:
        """Return the study for ``study_uid``, creating it with ``factory`` if absent."""
        return self._get_or_create(self._studies, self._study_lock, study_uid, factory)

    def upsert_series(
        self, series_uid: str, factory: Callable[[str], SeriesRecord]
    ) -> SeriesRecord:
        """Return the series for ``series_uid``, creating it with ``factory`` if absent."""
        return self._get_or_create(self._series, self._series_lock, series_uid, factory)

    def set_instance(self, record: InstanceRecord) -> InstanceRecord:
        """Store an instance, replacing any previous record with the same UID."""
        with self._instance_lock:
            self._instances[record.sop_instance_uid] = record
        return record

    # -------------------------------------------------------------------------
    # Record mutations
    # -------------------------------------------------------------------------

    def link_study(self, patient: PatientRecord, study_uid: str) -> None:
        with self._patient_lock:
            patient.study_uids.setdefault(study_uid, None)

    def link_series(self, study: StudyRecord, series_uid: str) -> None:
        with self._study_lock:
            study.series_uids.setdefault(series_uid, None)

    def link_instance(self, series: SeriesRecord, sop_instance_uid: str) -> None:
        with self._series_lock:
            series.instance_uids.setdefault(sop_instance_uid, None)

    def add_modality(self, study: StudyRecord, modality: str | None) -> None:
        """Record a modality on a study; empty values are ignored."""
        if not modality:
            return
        with self._study_lock:
            study.modalities.setdefault(modality, None)

    def update_latest_study_date(self, patient: PatientRecord, study_date: date) -> None:
        """Raise the patient's latest study date if ``study_date`` is newer or it is unset."""
        with self._patient_lock:
            if patient.latest_study_date is None or study_date > patient.latest_study_date:
                patient.latest_study_date = study_date

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get_patient(self, patient_id: str) -> PatientRecord | None:
        with self._patient_lock:
            return self._patients.get(patient_id)

    def get_study(self, study_uid: str) -> StudyRecord | None:
        with self._study_lock:
            return self._studies.get(study_uid)

    def get_series(self, series_uid: str) -> SeriesRecord | None:
        with self._series_lock:
            return self._series.get(series_uid)

    def get_instance(self, sop_instance_uid: str) -> InstanceRecord | None:
        with self._instance_lock:
            return self._instances.get(sop_instance_uid)

    def patients(self) -> list[PatientRecord]:
        """Snapshot of all patients."""
        with self._patient_lock:
            return list(self._patients.values())

    def studies(self) -> list[StudyRecord]:
        """Snapshot of all studies."""
        with self._study_lock:
            return list(self._studies.values())

    def child_uids(self, record: PatientRecord | StudyRecord | SeriesRecord) -> list[str]:
        """Snapshot of a record's child UIDs in insertion order."""
        if isinstance(record, PatientRecord):
            with self._patient_lock:
                return list(record.study_uids)
        if isinstance(record, StudyRecord):
            with self._study_lock:
                return list(record.series_uids)
        with self._series_lock:
            return list(record.instance_uids)

    def modalities(self, study: StudyRecord) -> list[str]:
        with self._study_lock:
            return list(study.modalities)

    def first_instance(self, series_uid: str) -> InstanceRecord | None:
        """The first-inserted instance of a series, used as its representative image."""
        series = self.get_series(series_uid)
        if series is None:
            return None
        uids = self.child_uids(series)
        if not uids:
            return None
        return self.get_instance(uids[0])

    # -------------------------------------------------------------------------
    # Lifecycle and statistics
    # -------------------------------------------------------------------------

    def clear_all(self) -> None:
        """Drop every record. Concurrent readers may briefly see an empty index."""
        with self._patient_lock:
            self._patients.clear()
        with self._study_lock:
            self._studies.clear()
        with self._series_lock:
            self._series.clear()
        with self._instance_lock:
            self._instances.clear()
        logger.debug("Index cleared")

    def mark_indexing(self) -> None:
        with self._state_lock:
            self._is_indexing = True

    def mark_indexed(
        self,
        files_processed: int,
        files_failed: int,
        files_skipped: int,
        duration_seconds: float,
        completed: bool = True,
    ) -> None:
        """Leave the indexing state and record the outcome of the run."""
        with self._state_lock:
            self._is_indexing = False
            if completed:
                self._last_index_time = datetime.now(timezone.utc)
            self._last_run = {
                "files_processed": files_processed,
                "files_failed": files_failed,
                "files_skipped": files_skipped,
                "duration_seconds": duration_seconds,
            }

    @property
    def last_index_time(self) -> datetime | None:
        with self._state_lock:
            return self._last_index_time

    def statistics(self, storage_path: str = "") -> IndexStatistics:
        """Current counts plus the outcome of the most recent rebuild."""
        with self._state_lock:
            is_indexing = self._is_indexing
            last_index_time = self._last_index_time
            last_run = dict(self._last_run)

        return IndexStatistics(
            total_patients=len(self._patients),
            total_studies=len(self._studies),
            total_series=len(self._series),
            total_instances=len(self._instances),
            last_index_time=last_index_time,
            is_indexing=is_indexing,
            storage_path=storage_path,
            files_processed=int(last_run["files_processed"] or 0),
            files_failed=int(last_run["files_failed"] or 0),
            files_skipped=int(last_run["files_skipped"] or 0),
            duration_seconds=last_run["duration_seconds"],
        )
