"""Request latency logging middleware."""

import logging
import time
from typing import Callable

from fastapi import Request, Response

logger = logging.getLogger(__name__)

# Thresholds for log levels (in milliseconds). Gateway calls dominate checkout latency.
SLOW_REQUEST_THRESHOLD_MS = 2000
VERY_SLOW_REQUEST_THRESHOLD_MS = 5000

# Probes hit these every few seconds
QUIET_PATHS = frozenset({"/health", "/health/ready"})


def log_level_for(path: str, status_code: int, latency_ms: float, error_occurred: bool) -> tuple[int, str]:
    """Pick the log level and message prefix for a finished request.

    Returns:
        tuple[int, str]: Logging level and a prefix for the message.
    """
    if path in QUIET_PATHS:
        return logging.DEBUG, ""
    if error_occurred or status_code >= 500:
        return logging.ERROR, ""
    if latency_ms > VERY_SLOW_REQUEST_THRESHOLD_MS:
        return logging.ERROR, "VERY SLOW REQUEST: "
    if latency_ms > SLOW_REQUEST_THRESHOLD_MS:
        return logging.WARNING, "SLOW REQUEST: "
    if status_code >= 400:
        return logging.WARNING, ""
    return logging.INFO, ""


async def latency_logging_middleware(request: Request, call_next: Callable) -> Response:
    """Log method, path, status and latency of every request.

    Slow requests and failures are logged at elevated levels so gateway
    slowdowns show up without extra tooling.

    Args:
        request: The incoming request.
        call_next: The next middleware/handler in the chain.

    Returns:
        Response: The response from the handler.
    """
    start_time = time.perf_counter()
    method = request.method
    path = request.url.path

    response = None
    error_occurred = False

    try:
        response = await call_next(request)
        return response
    except Exception:
        error_occurred = True
        raise
    finally:
        latency_ms = (time.perf_counter() - start_time) * 1000
        status_code = response.status_code if response else 500

        level, prefix = log_level_for(path, status_code, latency_ms, error_occurred)
        logger.log(
            level,
            "%s%s %s - %d - %.2fms",
            prefix,
            method,
            path,
            status_code,
            latency_ms,
            extra={"method": method, "path": path, "status_code": status_code, "latency_ms": round(latency_ms, 2)},
        )
