"""Starlette middleware recording request count, latency and in-flight requests."""

from __future__ import annotations

import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from cardflow.core.metrics import (
    http_request_duration_seconds,
    http_requests_in_progress,
    http_requests_total,
)

_SKIP_PATHS = frozenset({"/api/health", "/metrics"})


def _is_id(segment: str) -> bool:
    if len(segment.replace("-", "")) != 32:
        return False
    try:
        uuid.UUID(segment)
    except ValueError:
        return False
    return True


def _normalise_path(path: str) -> str:
    """Replace id segments with ``{id}`` so each route is one label value.

    /api/v1/cards/550e8400-e29b-41d4-a716-446655440000/comments -> /api/v1/cards/{id}/comments
    """
    parts = ["{id}" if _is_id(p) else p for p in path.rstrip("/").split("/")]
    return "/".join(parts) or "/"


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if path in _SKIP_PATHS:
            return await call_next(request)

        method = request.method
        endpoint = _normalise_path(path)
        http_requests_in_progress.labels(method=method).inc()
        start = time.perf_counter()
        status = "500"
        try:
            response = await call_next(request)
            status = str(response.status_code)
            return response
        finally:
            http_requests_total.labels(method=method, endpoint=endpoint, status=status).inc()
            http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(
                time.perf_counter() - start
            )
            http_requests_in_progress.labels(method=method).dec()
