"""Global exception handlers for API errors."""
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from media_relay.core.logging import get_logger
from media_relay.models.media import ErrorResponse
from media_relay.services.errors import MediaRelayError

logger = get_logger(__name__)

# Map error codes to HTTP status codes
STATUS_CODE_MAP = {
    "INVALID_INPUT": status.HTTP_400_BAD_REQUEST,
    "PAYLOAD_TOO_LARGE": status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    "PROCESS_FAILED": status.HTTP_502_BAD_GATEWAY,
    "PARSE_FAILED": status.HTTP_502_BAD_GATEWAY,
    "UPSTREAM_FAILED": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "INTERNAL_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
}

# Expected user errors, not worth a warning
_QUIET_CODES = {"INVALID_INPUT", "PAYLOAD_TOO_LARGE"}


async def media_relay_error_handler(
    request: Request, exc: MediaRelayError
) -> JSONResponse:
    """Handle all MediaRelayError exceptions.

    Args:
        request: FastAPI request
        exc: Domain exception

    Returns:
        JSON response with error details
    """
    status_code = STATUS_CODE_MAP.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    if exc.code not in _QUIET_CODES:
        logger.warning(f"Domain error: {exc.code} - {exc.message}")

    error_response = ErrorResponse(code=exc.code, message=exc.message)

    return JSONResponse(
        status_code=status_code,
        content=error_response.model_dump(),
    )


async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report malformed request bodies and parameters as 400."""
    errors = exc.errors()
    detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    error_response = ErrorResponse(code="INVALID_INPUT", message=str(detail))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_response.model_dump(),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions.

    Args:
        request: FastAPI request
        exc: Unexpected exception

    Returns:
        JSON response with generic error
    """
    logger.error(f"Unexpected error: {exc}", exc_info=True)

    error_response = ErrorResponse(
        code="INTERNAL_ERROR",
        message="An unexpected error occurred. Please try again later.",
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response.model_dump(),
    )
