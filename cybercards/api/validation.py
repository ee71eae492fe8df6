"""Request validation utilities using Pydantic.

This module provides a decorator for validating Flask request bodies against
Pydantic schemas, converting validation errors to the standardized error
format used throughout the API.
"""

from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from flask import request
from pydantic import BaseModel, ValidationError

from cybercards.api.errors import invalid_content_type_error, invalid_json_error, validation_error
from cybercards.api.utils import get_request_json, is_json_request
from cybercards.utils.logging import get_logger, log_payload_snippet

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


def pydantic_to_error_response(
    error: ValidationError,
) -> tuple[dict[str, Any], int]:
    """Convert Pydantic ValidationError to standardized API error response.

    Only the first error is reported. Messages raised from our own
    validators come prefixed with "Value error, ", which is stripped so
    the client sees e.g. "Name is required".
    """
    # Get first error (most relevant)
    first_error = error.errors()[0]

    # Extract field name from location tuple
    loc = first_error.get("loc", ())
    field = ".".join(str(x) for x in loc) if loc else None

    message = first_error.get("msg", "Invalid input")
    if message.startswith("Value error, "):
        message = message[13:]
    elif first_error.get("type") == "extra_forbidden" and field:
        message = f"Unexpected field: {field}"

    logger.debug(
        "Pydantic validation failed",
        extra={
            "field": field,
            "message": message,
            "error_count": len(error.errors()),
        },
    )

    return validation_error(message, field=field)


def validate_request(
    schema_class: type[T],
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator that validates request JSON against a Pydantic schema.

    Usage:
        @api.route("/endpoint", methods=["POST"])
        @require_user
        @validate_request(MyRequestSchema)
        def my_endpoint(user: User, data: MyRequestSchema) -> ...:
            # data is the validated Pydantic model instance
            ...

    The decorator:
    1. Rejects bodies that are not declared as application/json
    2. Parses request JSON using get_request_json()
    3. Validates against the schema
    4. On success: passes the validated model after the positional args
       added by outer decorators (the user from @require_user)
    5. On failure: returns standardized error response

    Note: This decorator should be placed AFTER @require_user so that the
    caller always gets a user cookie, even on a validation error.
    """

    def decorator(f: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(f)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            if not is_json_request(request):
                return invalid_content_type_error()

            data = get_request_json(request)
            if data is None:
                return invalid_json_error()
            log_payload_snippet(logger, data)

            try:
                validated = schema_class.model_validate(data)
            except ValidationError as e:
                return pydantic_to_error_response(e)

            # Path parameters arrive as kwargs, so this lands right after the user
            return f(*args, validated, **kwargs)

        return wrapper

    return decorator
