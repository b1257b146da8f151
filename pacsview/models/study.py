"""
Study index record.

Represents a DICOM study with a denormalized snapshot of its patient
and the UIDs of its series.
"""

from dataclasses import dataclass, field


@dataclass
class StudyRecord:
    """
    Study record keyed by Study Instance UID.

    ``patient_name`` is copied from the patient record when the study is
    first seen and is not corrected afterwards.
    """

    # DICOM Study Instance UID (0020,000D)
    study_instance_uid: str

    # DICOM Patient ID (0010,0020) of the owning patient
    patient_id: str

    # Snapshot of the patient's name at first sight
    patient_name: str = "Unknown"

    # DICOM Study Date (0008,0020) and Study Time (0008,0030), raw strings
    study_date: str | None = None
    study_time: str | None = None

    # DICOM Study Description (0008,1030)
    study_description: str | None = None

    # DICOM Accession Number (0008,0050)
    accession_number: str | None = None

    # DICOM Referring Physician's Name (0008,0090)
    referring_physician: str | None = None

    # Directory of the first file seen for this study
    folder_path: str | None = None

    # Insertion-ordered set of modalities seen across the study's series
    modalities: dict[str, None] = field(default_factory=dict)

    # Insertion-ordered set of Series Instance UIDs
    series_uids: dict[str, None] = field(default_factory=dict)
