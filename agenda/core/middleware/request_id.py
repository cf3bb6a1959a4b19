import logging
import time
from typing import Optional
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from agenda.core.auth import COMPANY_HEADER, parse_company_id
from agenda.core.errors import UnauthorizedError
from agenda.core.logging import bind_request, latency_bucket_ms

logger = logging.getLogger("agenda")


def _tenant_from_headers(headers) -> Optional[int]:
    try:
        return parse_company_id(headers.get(COMPANY_HEADER))
    except UnauthorizedError:
        return None


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind request and tenant ids to the request's logs and echo the request id."""

    def __init__(self, app, header_name: str = "x-request-id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request, call_next):
        rid = request.headers.get(self.header_name) or str(uuid4())
        request.state.request_id = rid
        company_id = _tenant_from_headers(request.headers)

        with bind_request(rid, company_id):
            start = time.perf_counter()
            response = await call_next(request)
            elapsed_ms = (time.perf_counter() - start) * 1000
            response.headers[self.header_name] = rid

            # For event streams this is time-to-headers, not stream lifetime
            streaming = response.headers.get("content-type", "").startswith("text/event-stream")
            logger.info(
                "request.complete",
                extra={
                    "request_id": rid,
                    "company_id": company_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status": response.status_code,
                    "latency_bucket": latency_bucket_ms(elapsed_ms),
                    "streaming": streaming or None,
                },
            )
        return response
