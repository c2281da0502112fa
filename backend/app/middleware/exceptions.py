"""Application exceptions and the FastAPI handlers that render them.

Every error response uses one envelope:

    {"error": {"code": "ERROR_CODE", "message": "...", "details": {...}}}

The recurring engine raises the same exception types outside of a request;
there they are caught and logged at the pass / invoice boundary instead.
"""

import logging
from typing import Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class BillflowException(Exception):
    """Base exception for Billflow application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(self.message)


class BusinessLogicError(BillflowException):
    """A request that is well-formed but breaks a billing rule."""

    def __init__(self, message: str, error_code: str = "BUSINESS_LOGIC_ERROR"):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code=error_code,
        )


class ResourceNotFoundError(BillflowException):
    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(
            message=f"{resource} not found: {identifier}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="RESOURCE_NOT_FOUND",
        )


class PdfRenderError(BillflowException):
    """Invoice PDF could not be produced from the given data."""

    def __init__(self, invoice_number: str, reason: str):
        super().__init__(
            message=f"Could not render invoice {invoice_number}: {reason}",
            error_code="PDF_RENDER_FAILED",
        )


class EmailDeliveryError(BillflowException):
    """The mail transport rejected or could not send a message."""

    def __init__(self, recipient: str, reason: str):
        super().__init__(
            message=f"Email to {recipient} failed: {reason}",
            status_code=status.HTTP_502_BAD_GATEWAY,
            error_code="EMAIL_DELIVERY_FAILED",
        )


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: Union[dict, list, None] = None,
) -> JSONResponse:
    content = {"error": {"code": error_code, "message": message}}
    if details:
        content["error"]["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def _request_context(request: Request) -> dict:
    return {"path": request.url.path, "method": request.method}


async def billflow_exception_handler(
    request: Request,
    exc: BillflowException,
) -> JSONResponse:
    logger.warning(
        "Billflow exception: %s - %s", exc.error_code, exc.message,
        extra=_request_context(request),
    )
    return create_error_response(exc.status_code, exc.message, exc.error_code)


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "HTTP %d: %s", exc.status_code, exc.detail,
            extra=_request_context(request),
        )
    return create_error_response(
        exc.status_code, str(exc.detail), f"HTTP_{exc.status_code}"
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    errors = [
        {
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning(
        "Validation error on %s", request.url.path,
        extra=_request_context(request),
    )
    return create_error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation error",
        "VALIDATION_ERROR",
        details={"errors": errors},
    )


async def operational_exception_handler(
    request: Request,
    exc: OperationalError,
) -> JSONResponse:
    logger.error(
        "Database operational error on %s: %s", request.url.path, exc,
        extra=_request_context(request),
    )
    return create_error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "Database temporarily unavailable. Please try again.",
        "DATABASE_UNAVAILABLE",
    )


async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    logger.error(
        "Unhandled exception on %s: %s", request.url.path, exc,
        extra=_request_context(request),
        exc_info=True,
    )
    # Don't expose internals to the client
    return create_error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred. Please try again later.",
        "INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app):
    """Register all custom exception handlers with FastAPI app."""
    app.add_exception_handler(BillflowException, billflow_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(OperationalError, operational_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
