from __future__ import annotations

import logging

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from meritpoints.core.errors import (
    ConflictError,
    MeritPointsError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from meritpoints.core.logging import RequestLoggingMiddleware, configure_logging
from meritpoints.core.settings import settings
from meritpoints.db.session import get_db
from meritpoints.routers.router_registry import include_all_routers

configure_logging(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.project_name, version=settings.project_version)

# Always allow localhost during development (Vite often changes ports).
allow_origin_regex = None
if settings.environment != "production":
    allow_origin_regex = r"^http://(localhost|127\.0\.0\.1)(:\d+)?$"
elif any(origin.strip() == "*" for origin in settings.allow_origins):
    raise RuntimeError("ALLOW_ORIGINS cannot include '*' in production")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allow_origins,
    allow_origin_regex=allow_origin_regex,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-Actor-Id", "X-Request-Id", "Accept"],
)
app.add_middleware(RequestLoggingMiddleware)

include_all_routers(app)

STATUS_BY_ERROR: dict[type[MeritPointsError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    ConflictError: status.HTTP_409_CONFLICT,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    StorageError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@app.exception_handler(MeritPointsError)
async def domain_error_handler(request: Request, exc: MeritPointsError) -> JSONResponse:
    status_code = STATUS_BY_ERROR.get(type(exc), status.HTTP_400_BAD_REQUEST)
    if status_code >= 500:
        logger.error("storage failure: %s", exc.message, extra={"path": request.url.path})
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(OperationalError)
async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
    logger.error("database unavailable", exc_info=exc, extra={"path": request.url.path})
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=StorageError("Database unavailable").to_dict(),
    )


@app.get("/healthz", tags=["health"])
def healthcheck(db: Session = Depends(get_db)) -> dict[str, str]:
    try:
        db.execute(text("SELECT 1"))
    except OperationalError as exc:
        logger.error("healthcheck failed", exc_info=True)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service unavailable") from exc
    return {"status": "ok", "database": "ok"}
