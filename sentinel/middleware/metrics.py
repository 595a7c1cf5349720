"""
Metrics middleware for FastAPI.

Tracks request counts, durations and errors for Prometheus monitoring.
"""

import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response

from sentinel.services.metrics_service import metrics_collector


async def metrics_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """
    Record request metrics for API routes.

    The metrics endpoint itself and non-API paths are not counted. A 402
    payment challenge is part of the normal protocol flow and is not counted
    as an error.
    """
    path = request.url.path
    if not path.startswith("/api/") or path == "/api/v1/metrics":
        return await call_next(request)

    start_time = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        metrics_collector.record_request(time.perf_counter() - start_time, error=True)
        raise

    error = response.status_code >= 400 and response.status_code != 402
    metrics_collector.record_request(time.perf_counter() - start_time, error=error)
    return response
