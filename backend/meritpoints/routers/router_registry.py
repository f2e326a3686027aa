"""Central router registry."""
from __future__ import annotations

from fastapi import FastAPI

from meritpoints.routers.activities import router as activities_router
from meritpoints.routers.catalog import router as catalog_router
from meritpoints.routers.registrations import router as registrations_router
from meritpoints.routers.scores import router as scores_router

ALL_ROUTERS = (
    catalog_router,
    activities_router,
    registrations_router,
    scores_router,
)


def include_all_routers(app: FastAPI) -> None:
    for router in ALL_ROUTERS:
        app.include_router(router)
