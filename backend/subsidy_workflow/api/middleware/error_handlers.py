"""
Error Handlers

Centralized exception handlers for the FastAPI application.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from ...domain.errors import DomainError, TransitionRejectedError
from ...utils.logger import get_logger, get_correlation_id

logger = get_logger(__name__)


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """
    Handle domain-specific errors (business logic errors)

    Rejected transitions are an expected outcome and are logged at info.
    """
    log = logger.info if isinstance(exc, TransitionRejectedError) else logger.warning
    log(
        f"Domain error: {exc.error_code} - {exc.message}",
        extra={"error_code": exc.error_code}
    )
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
        headers={"X-Correlation-Id": get_correlation_id() or ""}
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request bodies and parameters that don't match the schema"""
    errors = [
        {
            "loc": list(err.get("loc", ())),
            "msg": err.get("msg"),
            "type": err.get("type"),
        }
        for err in exc.errors()
    ]
    logger.warning(
        f"Validation error: {errors}, path={request.url.path}, method={request.method}",
        extra={"error_code": "VALIDATION_ERROR"}
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": {"errors": errors}
            }
        },
        headers={"X-Correlation-Id": get_correlation_id() or ""}
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected errors; logs full stack trace"""
    logger.error(f"Unexpected error: {exc}", exc_info=True, extra={"error_code": "INTERNAL_ERROR"})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "details": {"hint": "Check server logs for details"}
            }
        },
        headers={"X-Correlation-Id": get_correlation_id() or ""}
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application"""
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, general_exception_handler)
