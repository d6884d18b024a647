"""ASGI middleware that records Prometheus metrics for every API request.

Requests are labelled with the template of the route that served them
(``/api/v1/processes/{process_id}``, ``/api/v1/job-descriptions/{role_id}/export``),
so ids never reach a label value.
"""

from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from orgflow.core.metrics import (
    http_request_duration_seconds,
    http_requests_in_progress,
    http_requests_total,
)

# Health checks and scrapes, not user traffic
_SKIP_PATHS = frozenset({"/api/health", "/metrics"})

UNMATCHED_ENDPOINT = "<unmatched>"


def route_template(request: Request) -> str:
    """Path template of the matched route, or a fixed label when none matched.

    The router stores the matched route in the scope while handling the
    request, so this is only meaningful once the response is known.
    """
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path if isinstance(path, str) else UNMATCHED_ENDPOINT


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Records request count, duration, and in-progress gauge."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        method = request.method
        if request.url.path in _SKIP_PATHS:
            return await call_next(request)

        http_requests_in_progress.labels(method=method).inc()
        start = time.perf_counter()
        status = "500"
        try:
            response = await call_next(request)
            status = str(response.status_code)
        finally:
            elapsed = time.perf_counter() - start
            endpoint = route_template(request)
            http_requests_total.labels(method=method, endpoint=endpoint, status=status).inc()
            http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(elapsed)
            http_requests_in_progress.labels(method=method).dec()

        return response
