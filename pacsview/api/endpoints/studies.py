"""Study endpoints for PACSView.

Paged study search, study detail and the series of a study.
"""

from fastapi import APIRouter
from pydantic import Field

from pacsview.api.deps import IndexDep, ListQueryDep, QueryEngineDep
from pacsview.api.endpoints.series import SeriesMetadata, _series_to_metadata
from pacsview.api.responses import (
    ApiResponse,
    CamelModel,
    PagedResponse,
    error_response,
    ok,
)
from pacsview.models import StudyRecord
from pacsview.services.dicom import QueryEngine

router = APIRouter()


class StudyMetadata(CamelModel):
    """DICOM study metadata."""

    study_instance_uid: str = Field(..., description="Unique study identifier")
    patient_id: str = Field(..., description="Patient ID")
    patient_name: str = Field(..., description="Patient name")
    study_date: str | None = Field(None, description="Study date (YYYYMMDD)")
    study_time: str | None = Field(None, description="Study time")
    study_description: str | None = Field(None, description="Study description")
    accession_number: str | None = Field(None, description="Accession number")
    referring_physician: str | None = Field(None, description="Referring physician")
    modalities: str | None = Field(None, description="Modalities in study, comma separated")
    series_count: int = Field(0, description="Number of series")
    instance_count: int = Field(0, description="Number of instances")
    folder_path: str | None = Field(None, description="Directory of the first indexed file")


def _study_to_metadata(study: StudyRecord, queries: QueryEngine) -> StudyMetadata:
    """Convert a study record to its response model."""
    index = queries.index
    return StudyMetadata(
        study_instance_uid=study.study_instance_uid,
        patient_id=study.patient_id,
        patient_name=study.patient_name,
        study_date=study.study_date,
        study_time=study.study_time,
        study_description=study.study_description,
        accession_number=study.accession_number,
        referring_physician=study.referring_physician,
        modalities=", ".join(index.modalities(study)),
        series_count=len(index.child_uids(study)),
        instance_count=queries.instance_count(study),
        folder_path=study.folder_path,
    )


@router.get("", response_model=ApiResponse[PagedResponse[StudyMetadata]])
async def list_studies(
    queries: QueryEngineDep, params: ListQueryDep
) -> ApiResponse[PagedResponse[StudyMetadata]]:
    """Search studies.

    Matches patient ID, patient name, description and accession number.
    Sort by ``patient``, ``description`` or (default) study date.
    """
    page = queries.list_studies(params)
    return ok(
        PagedResponse[StudyMetadata](
            items=[_study_to_metadata(s, queries) for s in page.items],
            total_count=page.total_count,
            page_index=page.page_index,
            page_size=page.page_size,
            total_pages=page.total_pages,
        )
    )


@router.get("/{study_uid}", response_model=ApiResponse[StudyMetadata])
async def get_study(study_uid: str, index: IndexDep, queries: QueryEngineDep):
    """Get study details."""
    study = index.get_study(study_uid)
    if study is None:
        return error_response("Study not found")
    return ok(_study_to_metadata(study, queries))


@router.get("/{study_uid}/series", response_model=ApiResponse[list[SeriesMetadata]])
async def get_study_series(
    study_uid: str, index: IndexDep, queries: QueryEngineDep
) -> ApiResponse[list[SeriesMetadata]]:
    """Series of a study ordered by series number."""
    series = queries.series_for_study(study_uid)
    return ok([_series_to_metadata(s, index) for s in series])
