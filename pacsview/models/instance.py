"""
Instance index record.

Represents a single DICOM object (image or multi-frame stack) and the
file it was read from.
"""

from dataclasses import dataclass


@dataclass
class InstanceRecord:
    """
    Instance record keyed by SOP Instance UID.

    Re-indexing the same UID replaces the whole record.
    """

    # DICOM SOP Instance UID (0008,0018)
    sop_instance_uid: str

    # Parent UIDs (0020,000E) and (0020,000D)
    series_instance_uid: str
    study_instance_uid: str

    # Absolute path of the source file
    file_path: str

    # DICOM Instance Number (0020,0013)
    instance_number: int | None = None

    # DICOM SOP Class UID (0008,0016)
    sop_class_uid: str | None = None

    # Image dimensions
    rows: int | None = None
    columns: int | None = None
    number_of_frames: int | None = None

    # Window/Level values (first value when multi-valued)
    window_center: float | None = None
    window_width: float | None = None

    # DICOM Photometric Interpretation (0028,0004)
    photometric_interpretation: str | None = None
