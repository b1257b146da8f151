"""Tests for filtering, sorting and pagination."""

import math
from datetime import date

import pytest

from pacsview.models import InstanceRecord, PatientRecord, SeriesRecord, StudyRecord
from pacsview.services.dicom import DicomIndex, QueryEngine, QueryParameters


def _add_patient(index: DicomIndex, pid: str, name: str, latest: date | None = None) -> PatientRecord:
    patient = index.upsert_patient(pid, lambda key: PatientRecord(key, name))
    if latest is not None:
        index.update_latest_study_date(patient, latest)
    return patient


def _add_study(index: DicomIndex, uid: str, **fields) -> StudyRecord:
    fields.setdefault("patient_id", "P1")
    study = index.upsert_study(uid, lambda key: StudyRecord(key, **fields))
    patient = index.upsert_patient(study.patient_id, lambda key: PatientRecord(key))
    index.link_study(patient, uid)
    return study


@pytest.fixture
def patients_index() -> DicomIndex:
    index = DicomIndex()
    for n in range(23):
        _add_patient(index, f"P{n:02d}", f"Patient^{n:02d}", date(2020, 1, 1 + n))
    _add_patient(index, "NODATE", "Zed^Nobody")
    return index


class TestQueryParameters:
    @pytest.mark.parametrize(
        ("page_index", "page_size", "expected"),
        [
            (-3, 20, (0, 20)),
            (2, 0, (2, 1)),
            (0, 500, (0, 100)),
            (1, -5, (1, 1)),
        ],
    )
    def test_out_of_range_values_are_clamped(self, page_index, page_size, expected):
        params = QueryParameters(page_index=page_index, page_size=page_size)
        assert (params.page_index, params.page_size) == expected


class TestPatientQueries:
    """Patient search and paging."""

    @pytest.mark.parametrize("page_size", [1, 5, 7, 24, 100])
    def test_pages_partition_the_result(self, patients_index: DicomIndex, page_size: int):
        engine = QueryEngine(patients_index)
        first = engine.list_patients(QueryParameters(page_size=page_size))
        total = first.total_count

        seen = []
        for page_index in range(first.total_pages):
            page = engine.list_patients(QueryParameters(page_index=page_index, page_size=page_size))
            seen.extend(p.patient_id for p in page.items)

        assert total == 24
        assert first.total_pages == math.ceil(total / page_size)
        assert len(seen) == total
        assert len(set(seen)) == total

    def test_page_past_the_end_is_empty(self, patients_index: DicomIndex):
        page = QueryEngine(patients_index).list_patients(QueryParameters(page_index=10, page_size=5))
        assert page.items == []
        assert page.total_count == 24

    def test_default_order_is_newest_study_first(self, patients_index: DicomIndex):
        params = QueryParameters(page_size=100, sort_descending=False)
        items = QueryEngine(patients_index).list_patients(params).items

        assert items[0].patient_id == "P22"
        assert items[-1].patient_id == "NODATE"

    def test_sort_by_name_ascending(self, patients_index: DicomIndex):
        params = QueryParameters(page_size=3, sort_by="NAME", sort_descending=False)
        items = QueryEngine(patients_index).list_patients(params).items
        assert [p.patient_name for p in items] == ["Patient^00", "Patient^01", "Patient^02"]

    def test_sort_by_date_ascending_puts_missing_first(self, patients_index: DicomIndex):
        params = QueryParameters(page_size=2, sort_by="date", sort_descending=False)
        items = QueryEngine(patients_index).list_patients(params).items
        assert [p.patient_id for p in items] == ["NODATE", "P00"]

    @pytest.mark.parametrize(("term", "count"), [("patient^1", 10), ("p0", 10), ("  zed ", 1), ("   ", 24)])
    def test_search_is_case_insensitive_substring(self, patients_index: DicomIndex, term: str, count: int):
        page = QueryEngine(patients_index).list_patients(QueryParameters(search_term=term, page_size=100))
        assert page.total_count == count


class TestStudyQueries:
    """Study search and sort keys."""

    @pytest.fixture
    def engine(self) -> QueryEngine:
        index = DicomIndex()
        _add_study(index, "1", patient_name="Bravo", study_date="20240102", study_description="CT HEAD")
        _add_study(index, "2", patient_name="alpha", study_date="20230101", accession_number="ACC-77")
        _add_study(index, "3", patient_name="Charlie", study_date=None, study_description="MR KNEE")
        return QueryEngine(index)

    def test_default_sort_is_study_date(self, engine: QueryEngine):
        desc = engine.list_studies(QueryParameters())
        asc = engine.list_studies(QueryParameters(sort_descending=False))

        assert [s.study_instance_uid for s in desc.items] == ["1", "2", "3"]
        assert [s.study_instance_uid for s in asc.items] == ["3", "2", "1"]

    def test_unknown_sort_key_falls_back_to_date(self, engine: QueryEngine):
        page = engine.list_studies(QueryParameters(sort_by="bogus"))
        assert [s.study_instance_uid for s in page.items] == ["1", "2", "3"]

    def test_sort_by_description(self, engine: QueryEngine):
        page = engine.list_studies(QueryParameters(sort_by="description", sort_descending=False))
        assert [s.study_instance_uid for s in page.items] == ["2", "1", "3"]

    @pytest.mark.parametrize(("term", "uids"), [("acc-7", ["2"]), ("head", ["1"]), ("ALPHA", ["2"]), ("p1", ["1", "2", "3"])])
    def test_search_fields(self, engine: QueryEngine, term: str, uids: list[str]):
        page = engine.list_studies(QueryParameters(search_term=term))
        assert sorted(s.study_instance_uid for s in page.items) == uids


class TestChildListings:
    """Drill-down ordering."""

    def test_series_and_instances_are_sorted_by_number(self):
        index = DicomIndex()
        study = _add_study(index, "1.1")
        for uid, number in (("s3", 3), ("s1", 1), ("sx", None)):
            series = index.upsert_series(uid, lambda key, n=number: SeriesRecord(key, "1.1", series_number=n))
            index.link_series(study, uid)
        series = index.get_series("s1")
        for uid, number in (("i2", 2), ("i10", 10), ("i1", 1)):
            index.set_instance(InstanceRecord(uid, "s1", "1.1", f"/{uid}.dcm", instance_number=number))
            index.link_instance(series, uid)

        engine = QueryEngine(index)
        assert [s.series_instance_uid for s in engine.series_for_study("1.1")] == ["sx", "s1", "s3"]
        assert [i.sop_instance_uid for i in engine.instances_for_series("s1")] == ["i1", "i2", "i10"]
        assert engine.instance_count(study) == 3

    def test_studies_for_patient_newest_first(self):
        index = DicomIndex()
        _add_study(index, "old", study_date="20200101")
        _add_study(index, "new", study_date="20240101")

        studies = QueryEngine(index).studies_for_patient("P1")

        assert [s.study_instance_uid for s in studies] == ["new", "old"]

    def test_unknown_parents_give_empty_lists(self):
        engine = QueryEngine(DicomIndex())
        assert engine.studies_for_patient("nope") == []
        assert engine.series_for_study("nope") == []
        assert engine.instances_for_series("nope") == []

    def test_dangling_child_ids_are_dropped(self):
        index = DicomIndex()
        series = index.upsert_series("s1", lambda key: SeriesRecord(key, "1.1"))
        index.link_instance(series, "missing")

        assert QueryEngine(index).instances_for_series("s1") == []
