import os
import time
import uuid

import structlog
from fastapi import Request

from core.logging import BusinessEvents

REQUEST_ID_HEADER = "X-Request-ID"


def _redact_query() -> bool:
    # Pull-flow reads carry the customer's profile id in the query string
    return os.getenv("REDACT_QUERY_PARAMS", "").lower() in {"1", "true", "yes"}


async def log_api_entry(request: Request, call_next):
    """Log each request on entry and on completion, tagged with a request id."""
    # Fresh logger per request so test configurations are respected
    log = structlog.get_logger(__name__).bind(
        request_id=request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex,
    )

    log.info(
        BusinessEvents.API_ENTRY,
        method=request.method,
        path=request.url.path,
        client_host=request.client.host if request.client else None,
        query_params=None if _redact_query() else dict(request.query_params),
    )

    started = time.perf_counter()
    response = await call_next(request)
    log.info(
        BusinessEvents.API_EXIT,
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 2),
    )
    return response
