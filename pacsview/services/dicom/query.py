"""Query engine over the in-memory DICOM index.

Filtering, sorting and pagination for the patient and study lists, plus
the child listings used by the drill-down endpoints.
"""

import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pacsview.models import InstanceRecord, PatientRecord, SeriesRecord, StudyRecord
from pacsview.services.dicom.index import DicomIndex

T = TypeVar("T")

MAX_PAGE_SIZE = 100


@dataclass
class QueryParameters:
    """Paging, search and sort options for list queries.

    Out-of-range paging values are clamped rather than rejected.
    """

    page_index: int = 0
    page_size: int = 20
    search_term: str | None = None
    sort_by: str | None = None
    sort_descending: bool = True

    def __post_init__(self) -> None:
        self.page_index = max(0, self.page_index)
        self.page_size = min(max(1, self.page_size), MAX_PAGE_SIZE)


@dataclass
class Page(Generic[T]):
    """One page of a filtered, sorted result set."""

    items: list[T] = field(default_factory=list)
    total_count: int = 0
    page_index: int = 0
    page_size: int = 20

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size)


def _nullable_key(value: Any) -> tuple[bool, Any]:
    # Missing values sort first ascending, last descending.
    return (value is not None, value if value is not None else "")


def _sort(records: Iterable[T], key: Callable[[T], Any], descending: bool) -> list[T]:
    return sorted(records, key=lambda record: _nullable_key(key(record)), reverse=descending)


def _matches(term: str, *values: str | None) -> bool:
    return any(value and term in value.lower() for value in values)


def _study_date(study: StudyRecord) -> str | None:
    return study.study_date


STUDY_SORT_KEYS: dict[str, Callable[[StudyRecord], Any]] = {
    "patient": lambda s: s.patient_name,
    "description": lambda s: s.study_description,
    "date": _study_date,
}


def _paginate(records: list[T], params: QueryParameters) -> Page[T]:
    skip = params.page_index * params.page_size
    return Page(
        items=records[skip : skip + params.page_size],
        total_count=len(records),
        page_index=params.page_index,
        page_size=params.page_size,
    )


class QueryEngine:
    """Read-side queries against a ``DicomIndex``."""

    def __init__(self, index: DicomIndex):
        self.index = index

    def list_patients(self, params: QueryParameters) -> Page[PatientRecord]:
        """Search by patient ID or name; sort by ``name`` or ``date``.

        The default order is latest study date, newest first.
        """
        patients = self.index.patients()

        if params.search_term and params.search_term.strip():
            term = params.search_term.strip().lower()
            patients = [p for p in patients if _matches(term, p.patient_id, p.patient_name)]

        sort_by = (params.sort_by or "").lower()
        if sort_by == "name":
            patients = _sort(patients, lambda p: p.patient_name, params.sort_descending)
        elif sort_by == "date":
            patients = _sort(patients, lambda p: p.latest_study_date, params.sort_descending)
        else:
            patients = _sort(patients, lambda p: p.latest_study_date, True)

        return _paginate(patients, params)

    def list_studies(self, params: QueryParameters) -> Page[StudyRecord]:
        """Search by patient, description or accession number.

        Sort keys are ``patient`` and ``description``; anything else sorts
        by study date.
        """
        studies = self.index.studies()

        if params.search_term and params.search_term.strip():
            term = params.search_term.strip().lower()
            studies = [
                s
                for s in studies
                if _matches(
                    term,
                    s.patient_id,
                    s.patient_name,
                    s.study_description,
                    s.accession_number,
                )
            ]

        key = STUDY_SORT_KEYS.get((params.sort_by or "").lower(), _study_date)
        studies = _sort(studies, key, params.sort_descending)

        return _paginate(studies, params)

    def studies_for_patient(self, patient_id: str) -> list[StudyRecord]:
        """Studies of a patient, newest first."""
        patient = self.index.get_patient(patient_id)
        if patient is None:
            return []
        studies = self._resolve(self.index.child_uids(patient), self.index.get_study)
        return _sort(studies, _study_date, True)

    def series_for_study(self, study_uid: str) -> list[SeriesRecord]:
        """Series of a study ordered by series number."""
        study = self.index.get_study(study_uid)
        if study is None:
            return []
        series = self._resolve(self.index.child_uids(study), self.index.get_series)
        return _sort(series, lambda s: s.series_number, False)

    def instances_for_series(self, series_uid: str) -> list[InstanceRecord]:
        """Instances of a series ordered by instance number."""
        series = self.index.get_series(series_uid)
        if series is None:
            return []
        instances = self._resolve(self.index.child_uids(series), self.index.get_instance)
        return _sort(instances, lambda i: i.instance_number, False)

    def instance_count(self, study: StudyRecord) -> int:
        """Total instances across a study's series."""
        total = 0
        for series_uid in self.index.child_uids(study):
            series = self.index.get_series(series_uid)
            if series is not None:
                total += len(self.index.child_uids(series))
        return total

    @staticmethod
    def _resolve(uids: list[str], lookup: Callable[[str], T | None]) -> list[T]:
        # Ids whose record is momentarily missing (e.g. mid-rebuild) are dropped.
        records = []
        for uid in uids:
            record = lookup(uid)
            if record is not None:
                records.append(record)
        return records
