"""API Router - Aggregates all API endpoints."""

from fastapi import APIRouter

from pacsview.api.endpoints import index, instances, patients, series, studies, wado

api_router = APIRouter()

api_router.include_router(
    patients.router,
    prefix="/patients",
    tags=["Patients"],
)

api_router.include_router(
    studies.router,
    prefix="/studies",
    tags=["Studies"],
)

api_router.include_router(
    series.router,
    prefix="/series",
    tags=["Series"],
)

api_router.include_router(
    instances.router,
    prefix="/instances",
    tags=["Instances"],
)

# WADO image access
api_router.include_router(
    wado.router,
    prefix="/wado",
    tags=["WADO"],
)

# Index management
api_router.include_router(
    index.router,
    prefix="/index",
    tags=["Index"],
)
