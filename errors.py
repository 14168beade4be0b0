"""
Error taxonomy and the FastAPI handlers that render it.

Domain code raises these; main.py registers the handlers once.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class HostelOpsError(Exception):
    """Base class for errors surfaced to API callers"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"detail": self.message}
        if self.field:
            body["field"] = self.field
        return body


class ValidationError(HostelOpsError):
    status_code = status.HTTP_400_BAD_REQUEST


class Unauthenticated(HostelOpsError):
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(HostelOpsError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(HostelOpsError):
    """Record is absent, or belongs to someone else and is hidden."""

    status_code = status.HTTP_404_NOT_FOUND


class InternalError(HostelOpsError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ServiceUnavailable(HostelOpsError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


def _field_errors(exc: RequestValidationError) -> List[Dict[str, str]]:
    out = []
    for error in exc.errors():
        # drop the leading "body"/"query" segment
        loc = [str(part) for part in error.get("loc", ())[1:]]
        out.append({"field": ".".join(loc), "message": error.get("msg", "")})
    return out


async def hostelops_error_handler(request: Request, exc: HostelOpsError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = _field_errors(exc)
    logger.info("%s %s rejected: %s", request.method, request.url.path, errors)
    return JSONResponse(
        status_code=ValidationError.status_code,
        content={"detail": "Invalid request", "errors": errors},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=InternalError.status_code,
        content={"detail": "Internal server error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(HostelOpsError, hostelops_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
