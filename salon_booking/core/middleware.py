# salon_booking/core/middleware.py
"""HTTP middleware: correlation ids and access logging"""
import uuid
import time
import logging
from starlette.requests import Request

from salon_booking.utils.my_logging import bind_correlation_id, correlation_id_var

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


async def correlation_id_middleware(request: Request, call_next):
    """Reuse the caller's correlation id or mint one, and bind it for logging"""
    correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
    request.state.correlation_id = correlation_id
    token = bind_correlation_id(correlation_id)
    try:
        response = await call_next(request)
    finally:
        correlation_id_var.reset(token)
    response.headers[CORRELATION_HEADER] = correlation_id
    return response


async def request_logging_middleware(request: Request, call_next):
    # path only: OAuth codes travel in the query string
    started = time.perf_counter()
    response = await call_next(request)
    duration_ms = round((time.perf_counter() - started) * 1000, 2)

    log = logger.warning if response.status_code >= 500 else logger.info
    log(
        f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms} ms)",
        extra={"status_code": response.status_code, "duration_ms": duration_ms},
    )
    return response
