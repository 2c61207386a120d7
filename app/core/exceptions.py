"""
Domain exceptions raised by the service layer.

Services never build HTTP responses themselves; they raise one of the
types below and ``register_exception_handlers`` turns it into a JSON
response with the matching status code.

    raise NotFoundError(resource="Device", resource_id=42)
    raise ForbiddenError("Device belongs to another company")
    raise InvalidInputError("Unknown status id", details={"status_id": 9})
"""
import logging
from typing import Any, Dict, Optional, Union

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class NotFoundError(AppError):
    """Requested resource does not exist.

    ``resource_id`` is kept on the instance for logging; the response only
    carries the resource name.
    """

    status_code = 404

    def __init__(self, resource: str, resource_id: Union[int, str, None] = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found")


class ForbiddenError(AppError):
    """Caller is authenticated but not allowed to touch the resource."""

    status_code = 403

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message)


class InvalidInputError(AppError):
    status_code = 400


class ConflictError(AppError):
    status_code = 409


def _body(exc: AppError) -> Dict[str, Any]:
    body: Dict[str, Any] = {"detail": exc.message}
    if exc.details:
        body["errors"] = exc.details
    return body


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if isinstance(exc, NotFoundError):
        logger.info("%s %s: %s id=%s not found", request.method, request.url.path, exc.resource, exc.resource_id)
    else:
        logger.info("%s %s: %s (%s)", request.method, request.url.path, exc.message, type(exc).__name__)
    return JSONResponse(status_code=exc.status_code, content=_body(exc))


async def _db_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(SQLAlchemyError, _db_error_handler)
