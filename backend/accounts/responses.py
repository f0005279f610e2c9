from __future__ import annotations

from typing import Any, Optional

from rest_framework import status
from rest_framework.response import Response


def api_response(status_code: int = status.HTTP_200_OK, data: Any = None, message: str = "Success",
                 headers: Optional[dict] = None) -> Response:
    """
    Wrap a successful payload in the standard response envelope
    """
    body = {
        "statusCode": status_code,
        "data": {} if data is None else data,
        "message": message,
        "success": status_code < 400,
    }
    return Response(body, status=status_code, headers=headers)
