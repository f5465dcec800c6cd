"""
Standardized errors for the Premium Sync API.
"""

import json
from typing import Optional

from .response_utils import get_cors_headers


class APIError(Exception):
    """Base class for API errors."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 400,
        details: Optional[dict] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_response(self, origin: Optional[str] = None) -> dict:
        """Convert to API Gateway response format."""
        body = {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }
        if self.details:
            body["error"]["details"] = self.details

        return {
            "statusCode": self.status_code,
            "headers": {"Content-Type": "application/json", **get_cors_headers(origin)},
            "body": json.dumps(body),
        }


class AuthenticationError(APIError):
    """Raised when a webhook notification fails signature verification.

    The payload must not be processed; callers answer with a client error.
    """

    def __init__(self, message: str = "Invalid signature", code: str = "invalid_signature"):
        super().__init__(code=code, message=message, status_code=400)


class InvalidRequestError(APIError):
    """Raised for malformed or incomplete requests."""

    def __init__(self, message: str, code: str = "invalid_request", details: Optional[dict] = None):
        super().__init__(code=code, message=message, status_code=400, details=details)


class NotFoundError(APIError):
    """Raised when the requested user or billing object does not exist."""

    def __init__(self, message: str, code: str = "not_found"):
        super().__init__(code=code, message=message, status_code=404)


class ForbiddenError(APIError):
    """Raised when a request targets a billing object owned by another identity."""

    def __init__(self, message: str, code: str = "forbidden"):
        super().__init__(code=code, message=message, status_code=403)


class InternalError(APIError):
    """Raised for internal server errors."""

    def __init__(self, message: str = "An internal error occurred", code: str = "internal_error"):
        super().__init__(code=code, message=message, status_code=500)
