"""
Patient index record.

Represents a patient seen while scanning the storage tree, with
demographics and the UIDs of the studies filed under it.
"""

from dataclasses import dataclass, field
from datetime import date


@dataclass
class PatientRecord:
    """
    Patient record keyed by DICOM Patient ID.

    Demographics are taken from the first file seen for the patient.
    """

    # DICOM Patient ID (0010,0020)
    patient_id: str

    # DICOM Patient's Name (0010,0010)
    patient_name: str = "Unknown"

    # DICOM Patient's Birth Date (0010,0030), raw YYYYMMDD
    birth_date: str | None = None

    # DICOM Patient's Sex (0010,0040)
    sex: str | None = None

    # Most recent parseable Study Date across the patient's studies
    latest_study_date: date | None = None

    # Insertion-ordered set of Study Instance UIDs
    study_uids: dict[str, None] = field(default_factory=dict)
