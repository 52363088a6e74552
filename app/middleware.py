"""FastAPI middleware for Prometheus metrics instrumentation."""
import time
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.metrics import (
    HTTP_REQUESTS_TOTAL,
    HTTP_REQUEST_DURATION_SECONDS,
    HTTP_REQUESTS_IN_PROGRESS,
    HTTP_RESPONSE_SIZE_BYTES,
)

# Venue ids are uuid4 hex strings
VENUE_ID_LENGTH = 32


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware to collect HTTP request metrics for Prometheus."""

    # Endpoints to exclude from metrics (like /metrics itself)
    EXCLUDE_PATHS = {"/metrics", "/health", "/ping"}

    async def dispatch(self, request: Request, call_next) -> Response:
        """Process request and collect metrics."""
        path = request.url.path
        method = request.method

        if path in self.EXCLUDE_PATHS:
            return await call_next(request)

        endpoint = self._normalize_endpoint(path)

        HTTP_REQUESTS_IN_PROGRESS.labels(method=method, endpoint=endpoint).inc()
        start_time = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            HTTP_REQUEST_DURATION_SECONDS.labels(
                method=method, endpoint=endpoint
            ).observe(time.perf_counter() - start_time)
            HTTP_REQUESTS_IN_PROGRESS.labels(method=method, endpoint=endpoint).dec()
            HTTP_REQUESTS_TOTAL.labels(
                method=method, endpoint=endpoint, status_code=str(status_code)
            ).inc()

        response_size = response.headers.get("content-length")
        if response_size and response_size.isdigit():
            HTTP_RESPONSE_SIZE_BYTES.labels(
                method=method, endpoint=endpoint
            ).observe(int(response_size))

        return response

    def _normalize_endpoint(self, path: str) -> str:
        """Collapse venue ids so /v1/venues/<id> shares one label."""
        segments = path.strip("/").split("/")
        normalized = ["{id}" if self._is_venue_id(s) else s for s in segments]
        return "/" + "/".join(normalized) if normalized else "/"

    @staticmethod
    def _is_venue_id(segment: str) -> bool:
        if len(segment) != VENUE_ID_LENGTH:
            return False
        try:
            int(segment, 16)
        except ValueError:
            return False
        return True
