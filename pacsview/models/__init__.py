"""
In-memory index records for the PACSView server.

This module exports the Patient/Study/Series/Instance records held by
the hierarchical index and the index statistics snapshot.
"""

from pacsview.models.instance import InstanceRecord
from pacsview.models.patient import PatientRecord
from pacsview.models.series import SeriesRecord
from pacsview.models.statistics import IndexStatistics
from pacsview.models.study import StudyRecord

__all__ = [
    "PatientRecord",
    "StudyRecord",
    "SeriesRecord",
    "InstanceRecord",
    "IndexStatistics",
]
