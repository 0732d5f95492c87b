"""
Flask middleware for request logging and metrics.

Provides:
- Request ID tracking (X-Request-ID in and out)
- Request timing and per-route counters
- Structured request/response logs
"""

import logging
import time
import uuid
from collections.abc import Callable
from functools import wraps

from flask import Flask, Response, g, request

from monitoring.logging import clear_request_context, set_request_context
from monitoring.metrics import metrics

logger = logging.getLogger("revledger.request")


def setup_request_logging(app: Flask) -> None:
    """
    Install request logging hooks on a Flask app.

    Args:
        app: Flask application instance
    """

    @app.before_request
    def before_request():
        g.request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        g.start_time = time.perf_counter()
        set_request_context(request_id=g.request_id, method=request.method, path=request.path)
        metrics.increment_gauge("http_requests_active")

    @app.after_request
    def after_request(response: Response) -> Response:
        _record_request(response.status_code)
        if hasattr(g, "request_id"):
            response.headers["X-Request-ID"] = g.request_id
        return response

    @app.teardown_request
    def teardown_request(exception=None):
        clear_request_context()
        metrics.decrement_gauge("http_requests_active")

        if exception:
            logger.error(
                "Request failed with exception",
                exc_info=exception,
                extra={
                    "request_id": getattr(g, "request_id", "unknown"),
                    "path": request.path,
                    "method": request.method,
                },
            )


def _record_request(status_code: int) -> None:
    """Record metrics and a log line for a completed request."""
    duration_ms = 0.0
    if hasattr(g, "start_time"):
        duration_ms = (time.perf_counter() - g.start_time) * 1000

    path = normalize_path(request.path)
    metrics.increment(
        "http_requests_total",
        labels={"method": request.method, "path": path, "status": str(status_code)},
    )
    metrics.timing("http_request_duration_ms", duration_ms, labels={"method": request.method, "path": path})

    if status_code >= 500:
        log = logger.error
    elif status_code >= 400:
        log = logger.warning
    else:
        log = logger.info
    log(
        f"{request.method} {request.path} -> {status_code}",
        extra={
            "status_code": status_code,
            "duration_ms": round(duration_ms, 2),
            "request_id": getattr(g, "request_id", "unknown"),
        },
    )


def normalize_path(path: str) -> str:
    """
    Normalize a path for metric labels.

    Collection identifiers are replaced with a placeholder to keep label
    cardinality bounded.
    """
    parts = path.strip("/").split("/")
    if len(parts) >= 3 and parts[0] == "ledger" and parts[1] == "collections":
        parts[2] = ":collection_id"
    return "/" + "/".join(p for p in parts if p)


def timed(metric_name: str | None = None):
    """
    Decorator for timing function execution.

    Usage:
        @timed("reconcile_duration_ms")
        def reconcile():
            ...
    """

    def decorator(func: Callable) -> Callable:
        name = metric_name or f"function_{func.__name__}"

        @wraps(func)
        def wrapper(*args, **kwargs):
            with metrics.timer(name):
                return func(*args, **kwargs)

        return wrapper

    return decorator
