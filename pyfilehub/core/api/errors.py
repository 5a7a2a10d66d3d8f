"""
Standardized error response handling for PyFileHub API.

Domain errors raised below the API layer are turned into one uniform body:

    {"error": {"message": "...", "code": "..."}}

Server-side failures get a generic message so that paths and stack details
never reach the client.
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from pyfilehub.core.errors import FileHubError, ServerError
from pyfilehub.logging.setup import get_logger

logger = get_logger(__name__)

GENERIC_SERVER_MESSAGE = "Internal server error"


def error_response(
    message: str,
    details: list[str] | None = None,
    code: str | None = None
) -> dict[str, Any]:
    """
    Create a standardized error response.

    Args:
        message: Human-readable error summary
        details: List of specific error details (optional)
        code: Error code for programmatic handling (optional)

    Returns:
        Standardized error response dictionary

    Examples:
        >>> error_response("File not found", code="NOT_FOUND")
        {'error': {'message': 'File not found', 'code': 'NOT_FOUND'}}
    """
    error_dict: dict[str, Any] = {"message": message}

    if details is not None:
        error_dict["details"] = details

    if code is not None:
        error_dict["code"] = code

    return {"error": error_dict}


async def filehub_error_handler(request: Request, exc: FileHubError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}",
            exc_info=exc)
        body = error_response(GENERIC_SERVER_MESSAGE, code=exc.code)
    else:
        body = error_response(exc.message, exc.details, exc.code)
    return JSONResponse(status_code=exc.status_code, content=body)


async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError) -> JSONResponse:
    details = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        details.append(f"{location}: {error.get('msg')}")
    logger.warning(f"Validation error on {request.url.path}: {details}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_response(
            "Invalid input received", details=details, code="VALIDATION_ERROR"),
    )


async def unexpected_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled error on {request.method} {request.url.path}: {exc}",
        exc_info=exc)
    error = ServerError(GENERIC_SERVER_MESSAGE)
    return JSONResponse(
        status_code=error.status_code,
        content=error_response(error.message, code=error.code),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(FileHubError, filehub_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unexpected_exception_handler)
