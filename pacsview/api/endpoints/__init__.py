"""API endpoints."""

from pacsview.api.endpoints import index, instances, patients, series, studies, wado

__all__ = [
    "patients",
    "studies",
    "series",
    "instances",
    "wado",
    "index",
]
