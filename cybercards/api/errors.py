"""Standardized error response utilities for the API.

Every error the API returns has the same JSON shape so the browser client
can tell errors apart and decide whether to retry:

    {"error": "Human-readable message", "code": "ERROR_CODE", "retryable": false}

Route handlers either return one of the response builders below or call a
raise_* helper, which raises an APIFlask HTTPError that the app's error
processor renders in the same shape.
"""

from enum import Enum
from typing import Any, NoReturn

from apiflask import HTTPError


class ErrorCode(str, Enum):
    """Error codes for API responses."""

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"  # Invalid input data
    INVALID_FORMAT = "INVALID_FORMAT"  # Malformed JSON or wrong content type

    # Permission errors
    FORBIDDEN = "FORBIDDEN"  # Caller may not act on this resource

    # Resource errors
    NOT_FOUND = "NOT_FOUND"  # Resource doesn't exist
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"  # Wrong verb for the route

    # Server errors (potentially retryable)
    SERVER_ERROR = "SERVER_ERROR"  # Generic server error
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"  # Storage unreachable


# Errors that the frontend may safely retry automatically (for idempotent operations)
RETRYABLE_ERRORS = {
    ErrorCode.SERVICE_UNAVAILABLE,
    ErrorCode.SERVER_ERROR,  # May be transient
}

# Code used when an HTTPError carries none (e.g. Flask's own 404/405)
STATUS_ERROR_CODES: dict[int, ErrorCode] = {
    400: ErrorCode.VALIDATION_ERROR,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.METHOD_NOT_ALLOWED,
    503: ErrorCode.SERVICE_UNAVAILABLE,
}


def is_retryable(code: ErrorCode) -> bool:
    """Check if an error code indicates a retryable error."""
    return code in RETRYABLE_ERRORS


def code_for_status(status_code: int) -> ErrorCode:
    return STATUS_ERROR_CODES.get(status_code, ErrorCode.SERVER_ERROR)


def create_error_response(
    code: ErrorCode,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Create a standardized error response body.

    Args:
        code: Error code enum value
        message: Human-readable error message (safe to show to users)
        details: Optional additional details (e.g., field name for validation errors)
    """
    error_data: dict[str, Any] = {
        "error": message,
        "code": code.value,
        "retryable": is_retryable(code),
    }

    if details:
        error_data["details"] = details

    return error_data


# Convenience functions for common error types


def validation_error(message: str, field: str | None = None) -> tuple[dict[str, Any], int]:
    """Create a validation error response (400)."""
    details = {"field": field} if field else None
    return create_error_response(ErrorCode.VALIDATION_ERROR, message, details), 400


def invalid_json_error() -> tuple[dict[str, Any], int]:
    """Create an invalid JSON error response (400)."""
    return create_error_response(
        ErrorCode.INVALID_FORMAT,
        "Invalid JSON in request body",
    ), 400


def invalid_content_type_error() -> tuple[dict[str, Any], int]:
    """Create a wrong Content-Type error response (400)."""
    return create_error_response(
        ErrorCode.INVALID_FORMAT,
        "Invalid Content-Type. Expected application/json",
    ), 400


def not_found_error(message: str = "not found") -> tuple[dict[str, Any], int]:
    """Create a not found error response (404)."""
    return create_error_response(ErrorCode.NOT_FOUND, message), 404


def forbidden_error(message: str = "Permission denied") -> tuple[dict[str, Any], int]:
    """Create a forbidden error response (403)."""
    return create_error_response(ErrorCode.FORBIDDEN, message), 403


def server_error(
    message: str = "An unexpected error occurred. Please try again.",
) -> tuple[dict[str, Any], int]:
    """Create a generic server error response (500).

    Note: Never expose internal error details to users. Log them server-side instead.
    """
    return create_error_response(ErrorCode.SERVER_ERROR, message), 500


# Raising variants, for use deep inside handlers


def _raise(status_code: int, code: ErrorCode, message: str, field: str | None = None) -> NoReturn:
    extra_data: dict[str, Any] = {"code": code.value}
    if field:
        extra_data["details"] = {"field": field}
    raise HTTPError(status_code, message, extra_data=extra_data)


def raise_validation_error(message: str, field: str | None = None) -> NoReturn:
    _raise(400, ErrorCode.VALIDATION_ERROR, message, field)


def raise_not_found_error(message: str = "not found") -> NoReturn:
    _raise(404, ErrorCode.NOT_FOUND, message)


def raise_method_not_allowed_error(allowed_methods: list[str]) -> NoReturn:
    raise HTTPError(
        405,
        "Method not allowed",
        extra_data={"code": ErrorCode.METHOD_NOT_ALLOWED.value},
        headers={"Allow": ", ".join(allowed_methods)},
    )
