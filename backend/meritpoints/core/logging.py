from __future__ import annotations

import json
import logging
import sys
import time
import uuid
from datetime import datetime, timezone
from typing import Any

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

ACTOR_HEADER = "x-actor-id"
REQUEST_ID_HEADER = "x-request-id"

# Keys services and the middleware pass through ``extra=``.
LOG_FIELDS = (
    "request_id",
    "actor_id",
    "path",
    "method",
    "status_code",
    "latency_ms",
    "activity_id",
    "student_id",
    "action",
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update({key: getattr(record, key) for key in LOG_FIELDS if hasattr(record, key)})
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    logging.basicConfig(level=level, handlers=[handler], force=True)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One log line per request, tagged with the request id and acting user."""

    def __init__(self, app, logger_name: str = "request") -> None:
        super().__init__(app)
        self.logger = logging.getLogger(logger_name)

    @staticmethod
    def _fields(request: Request, request_id: str, started: float) -> dict[str, Any]:
        return {
            "request_id": request_id,
            "actor_id": (request.headers.get(ACTOR_HEADER) or "").strip() or None,
            "path": request.url.path,
            "method": request.method,
            "latency_ms": round((time.perf_counter() - started) * 1000, 2),
        }

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            self.logger.exception("unhandled_exception", extra=self._fields(request, request_id, started))
            raise

        fields = self._fields(request, request_id, started)
        fields["status_code"] = response.status_code
        self.logger.info("request", extra=fields)
        response.headers["X-Request-Id"] = request_id
        return response
