"""Patient endpoints for PACSView."""

from datetime import date

from fastapi import APIRouter
from pydantic import Field

from pacsview.api.deps import ListQueryDep, QueryEngineDep
from pacsview.api.endpoints.studies import StudyMetadata, _study_to_metadata
from pacsview.api.responses import ApiResponse, CamelModel, PagedResponse, ok
from pacsview.models import PatientRecord
from pacsview.services.dicom import DicomIndex

router = APIRouter()


class PatientMetadata(CamelModel):
    """Patient summary."""

    patient_id: str = Field(..., description="Patient ID")
    patient_name: str = Field(..., description="Patient name")
    birth_date: str | None = Field(None, description="Birth date (YYYYMMDD)")
    sex: str | None = Field(None, description="Patient sex")
    study_count: int = Field(0, description="Number of studies")
    latest_study_date: date | None = Field(None, description="Most recent study date")


def _patient_to_metadata(patient: PatientRecord, index: DicomIndex) -> PatientMetadata:
    return PatientMetadata(
        patient_id=patient.patient_id,
        patient_name=patient.patient_name,
        birth_date=patient.birth_date,
        sex=patient.sex,
        study_count=len(index.child_uids(patient)),
        latest_study_date=patient.latest_study_date,
    )


@router.get("", response_model=ApiResponse[PagedResponse[PatientMetadata]])
async def list_patients(
    queries: QueryEngineDep, params: ListQueryDep
) -> ApiResponse[PagedResponse[PatientMetadata]]:
    """Search patients by ID or name.

    Sort by ``name`` or ``date``; without a sort key the newest study date
    comes first.
    """
    page = queries.list_patients(params)
    return ok(
        PagedResponse[PatientMetadata](
            items=[_patient_to_metadata(p, queries.index) for p in page.items],
            total_count=page.total_count,
            page_index=page.page_index,
            page_size=page.page_size,
            total_pages=page.total_pages,
        )
    )


@router.get("/{patient_id}/studies", response_model=ApiResponse[list[StudyMetadata]])
async def get_patient_studies(
    patient_id: str, queries: QueryEngineDep
) -> ApiResponse[list[StudyMetadata]]:
    """Studies of a patient, newest first."""
    studies = queries.studies_for_patient(patient_id)
    return ok([_study_to_metadata(s, queries) for s in studies])
