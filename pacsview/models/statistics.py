"""Index statistics snapshot."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class IndexStatistics:
    """Counts and timing of the in-memory index."""

    total_patients: int = 0
    total_studies: int = 0
    total_series: int = 0
    total_instances: int = 0
    last_index_time: datetime | None = None
    is_indexing: bool = False
    storage_path: str = ""

    # Outcome of the most recent rebuild
    files_processed: int = 0
    files_failed: int = 0
    files_skipped: int = 0
    duration_seconds: float | None = None
