import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware

from agenda.core.logging import latency_bucket_ms
from agenda.core.metrics import http_request_latency_total, http_requests_total, normalize_path

logger = logging.getLogger(__name__)

# Scrapes of the exposition endpoint are not counted
_UNTRACKED_PATHS = frozenset({"/metrics"})


class MetricsMiddleware(BaseHTTPMiddleware):
    """Count requests per route template and latency bucket."""

    async def dispatch(self, request, call_next):
        if request.url.path in _UNTRACKED_PATHS:
            return await call_next(request)

        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        try:
            path = normalize_path(request.url.path)
            http_requests_total.inc(labels={
                "method": request.method.upper(),
                "path": path,
                "status": str(response.status_code),
            })
            http_request_latency_total.inc(labels={"path": path, "bucket": latency_bucket_ms(elapsed_ms)})
        except Exception:
            logger.debug("metrics.record_failed", exc_info=True)
        return response
