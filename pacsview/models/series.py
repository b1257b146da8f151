"""
Series index record.

Represents a DICOM series within a study and the UIDs of its instances.
"""

from dataclasses import dataclass, field


@dataclass
class SeriesRecord:
    """
    Series record keyed by Series Instance UID.

    The first UID in ``instance_uids`` is the representative instance
    used for the series thumbnail.
    """

    # DICOM Series Instance UID (0020,000E)
    series_instance_uid: str

    # DICOM Study Instance UID (0020,000D) of the parent study
    study_instance_uid: str

    # DICOM Series Number (0020,0011)
    series_number: int | None = None

    # DICOM Series Description (0008,103E)
    series_description: str | None = None

    # DICOM Modality (0008,0060), fixed at first sight
    modality: str | None = None

    # DICOM Body Part Examined (0018,0015)
    body_part_examined: str | None = None

    # Insertion-ordered set of SOP Instance UIDs
    instance_uids: dict[str, None] = field(default_factory=dict)
