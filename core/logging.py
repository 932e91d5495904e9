"""
Structured JSON logging for Bluhatch.

Every record is emitted as a single JSON line so that evidence uploads,
approvals and timestamp failures can be traced per request in a log
aggregator.

Example usage:
    >>> from core.logging import get_logger, setup_logging
    >>> setup_logging()
    >>> logger = get_logger(__name__)
    >>> logger.info("Evidence stored", extra={"job_id": "abc123"})
"""

import json
import logging
import sys
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """
    Render log records as JSON objects.

    The fixed keys are ``time``, ``level``, ``logger`` and ``msg``. Any
    ``extra`` context passed to the logging call is merged in, and exception
    information is added under ``exception``.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            log_entry[key] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log every request with a short correlation id and its duration.

    The id is stored on ``request.state.request_id`` so handlers can attach
    it to their own log lines, and returned in the ``X-Request-ID`` header.

    Example:
        >>> app.add_middleware(RequestLoggingMiddleware)
    """

    def __init__(self, app, logger_name: str = "bluhatch.requests"):
        super().__init__(app)
        self.logger = logging.getLogger(logger_name)

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = str(uuid.uuid4())[:8]
        request.state.request_id = request_id
        client_ip = get_client_ip(request)
        start_time = time.time()

        context = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "client_ip": client_ip,
        }

        self.logger.info(
            f"Request started: {request.method} {request.url.path}",
            extra={**context, "user_agent": request.headers.get("user-agent", "")},
        )

        try:
            response = await call_next(request)
        except Exception as e:
            self.logger.error(
                f"Request failed: {request.method} {request.url.path}",
                extra={
                    **context,
                    "status": 500,
                    "duration_ms": int((time.time() - start_time) * 1000),
                    "error": str(e),
                },
                exc_info=True,
            )
            raise

        self.logger.info(
            f"Request completed: {request.method} {request.url.path}",
            extra={
                **context,
                "status": response.status_code,
                "duration_ms": int((time.time() - start_time) * 1000),
            },
        )
        response.headers["X-Request-ID"] = request_id
        return response


def get_client_ip(request: Request) -> str:
    """Return the caller's IP, honouring proxy headers."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"


def setup_logging(
    level: str = "INFO",
    format_type: str = "json",
    logger_name: Optional[str] = None
) -> None:
    """
    Configure logging with a single stdout handler.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: "json" for structured output, anything else for plain text
        logger_name: Logger to configure; the root logger when None
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    if format_type.lower() == "json":
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(numeric_level)

    logger = logging.getLogger(logger_name) if logger_name else logging.getLogger()
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(numeric_level)

    if logger_name:
        logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    request: Optional[Request] = None,
    **kwargs
) -> None:
    """
    Log a message enriched with the request id, path and method.

    Example:
        >>> log_with_context(logger, "info", "Evidence approved", request=request, evidence_id=eid)
    """
    extra_fields = dict(kwargs)

    if request is not None:
        request_id = getattr(request.state, "request_id", None)
        if request_id:
            extra_fields["request_id"] = request_id
        extra_fields["path"] = request.url.path
        extra_fields["method"] = request.method

    log_method = getattr(logger, level.lower(), logger.info)
    log_method(message, extra=extra_fields)
