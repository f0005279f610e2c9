"""Error envelope for the accounts API.

Every failure leaves the API as::

    {"statusCode": 404, "data": null, "message": "...", "success": false, "errors": [...]}

Views raise :class:`ApiError` (or let DRF raise its own exceptions) and
:func:`api_exception_handler`, registered as the DRF ``EXCEPTION_HANDLER``,
renders them. Handlers never return an error body with a 2xx status.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.response import Response

logger = logging.getLogger(__name__)


class ApiError(APIException):
    """An API failure with an explicit HTTP status and user-facing message."""

    def __init__(self, status_code: int, message: str = "Something went wrong", errors: Any = None):
        self.status_code = status_code
        self.message = message
        self.errors = _flatten_errors(errors) if errors is not None else []
        super().__init__(detail=message)

    def __str__(self) -> str:
        return f"{self.status_code}: {self.message}"


def _flatten_errors(detail: Any, field: Optional[str] = None) -> List[Dict[str, str]]:
    """Turn DRF error details into a flat ``[{"field", "message"}]`` list."""
    if isinstance(detail, dict):
        flattened: List[Dict[str, str]] = []
        for key, value in detail.items():
            name = key if field is None else f"{field}.{key}"
            if key == "non_field_errors":
                name = field
            flattened.extend(_flatten_errors(value, name))
        return flattened
    if isinstance(detail, (list, tuple)):
        flattened = []
        for item in detail:
            flattened.extend(_flatten_errors(item, field))
        return flattened
    entry = {"message": str(detail)}
    if field:
        entry["field"] = field
    return [entry]


def _first_message(errors: List[Dict[str, str]], default: str) -> str:
    if errors:
        return errors[0]["message"]
    return default


def build_error_body(status_code: int, message: str, errors: Optional[List[Dict[str, str]]] = None) -> Dict[str, Any]:
    return {
        "statusCode": status_code,
        "data": None,
        "message": message,
        "success": False,
        "errors": errors or [],
    }


def api_exception_handler(exc, context):
    """Render API exceptions inside the standard envelope."""
    # rest_framework.views loads DEFAULT_AUTHENTICATION_CLASSES on import,
    # which imports this module through accounts.tokens.
    from rest_framework.views import exception_handler

    response = exception_handler(exc, context)
    view = context.get("view")
    view_name = view.__class__.__name__ if view is not None else ""

    if response is None:
        logger.exception(
            "Unhandled error in accounts API",
            exc_info=exc,
            extra={"error_code": "INTERNAL_ERROR", "view": view_name},
        )
        return Response(
            build_error_body(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if isinstance(exc, ApiError):
        message = exc.message
        errors = exc.errors
    elif isinstance(exc, ValidationError):
        errors = _flatten_errors(exc.detail)
        message = _first_message(errors, "Invalid request data")
    else:
        errors = _flatten_errors(response.data.get("detail", response.data)) if isinstance(response.data, dict) else _flatten_errors(response.data)
        message = _first_message(errors, "Request failed")

    if response.status_code >= 500:
        logger.error(message, extra={"error_code": response.status_code, "view": view_name})
    else:
        logger.info(message, extra={"error_code": response.status_code, "view": view_name})

    response.data = build_error_body(response.status_code, message, errors)
    return response
