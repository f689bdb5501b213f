"""HTTP request metrics middleware."""
import time
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from prometheus_client import Counter, Histogram, Gauge


http_requests_total = Counter(
    'imitator_http_requests_total',
    'Total HTTP requests',
    ['method', 'route', 'status']
)

# Run requests last as long as their slowest model
http_request_duration_seconds = Histogram(
    'imitator_http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'route'],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 120.0, 600.0, 3600.0]
)

http_requests_in_progress = Gauge(
    'imitator_http_requests_in_progress',
    'HTTP requests currently in progress',
    ['method']
)

UNMATCHED_ROUTE = "unmatched"


def route_label(request: Request) -> str:
    """
    Path template of the matched route, e.g. ``/api/imitator/jobs/{identifier}``.

    Job identifiers never end up in a label. Requests no route matched share
    one label.
    """
    route = request.scope.get("route")
    return getattr(route, "path_format", None) or getattr(route, "path", None) or UNMATCHED_ROUTE


class MetricsMiddleware(BaseHTTPMiddleware):
    """Counts and times HTTP requests per route template and status."""

    def __init__(self, app, skip_paths=()):
        super().__init__(app)
        self.skip_paths = frozenset(skip_paths)

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.skip_paths:
            return await call_next(request)

        method = request.method
        in_progress = http_requests_in_progress.labels(method=method)
        in_progress.inc()
        started = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            # The router has stored the matched route in the scope by now
            route = route_label(request)
            http_requests_total.labels(method=method, route=route, status=status).inc()
            http_request_duration_seconds.labels(method=method, route=route).observe(
                time.perf_counter() - started
            )
            in_progress.dec()
