# Shared utilities package
from .errors import APIError, AuthenticationError
from .identity import EmailIdentity, TokenIdentity
from .response_utils import error_response, success_response
from .status_translator import translate_status

__all__ = [
    "APIError",
    "AuthenticationError",
    "EmailIdentity",
    "TokenIdentity",
    "translate_status",
    "error_response",
    "success_response",
]
