"""
Logging setup shared by the app and the uvicorn runner.
"""

import logging
import logging.config
import time
from typing import Any, Dict

from fastapi import Request

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# paths polled by load balancers
QUIET_PATHS = {"/health"}

request_logger = logging.getLogger("hostelops.requests")


def build_logging_config(level: str = "INFO") -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": LOG_FORMAT},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {"level": level.upper(), "handlers": ["console"]},
        "loggers": {
            "uvicorn": {"level": level.upper(), "handlers": [], "propagate": True},
            "uvicorn.access": {"level": "WARNING", "handlers": [], "propagate": True},
            "pymongo": {"level": "WARNING"},
        },
    }


def setup_logging(level: str = "INFO") -> None:
    logging.config.dictConfig(build_logging_config(level))


async def log_requests(request: Request, call_next):
    """HTTP middleware: one line per request with status and timing"""
    start = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start) * 1000
    response.headers["X-Process-Time"] = f"{elapsed_ms:.1f}ms"
    if request.url.path not in QUIET_PATHS:
        client = request.client.host if request.client else "-"
        request_logger.info(
            "%s %s %s %s %.1fms",
            client,
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
    return response
