"""Hydrotrack API middleware components.

This module provides middleware for:
- Request ID tracking for log correlation
- Consistent error response formatting
- Gateway identity extraction
"""

from hydrotrack.api.middleware.auth import GatewayIdentityMiddleware, require_actor
from hydrotrack.api.middleware.errors import (
    APIError,
    AuthenticationError,
    ErrorHandlerMiddleware,
    register_exception_handlers,
)
from hydrotrack.api.middleware.request_id import RequestIDMiddleware, get_request_id

__all__ = [
    "APIError",
    "AuthenticationError",
    "ErrorHandlerMiddleware",
    "GatewayIdentityMiddleware",
    "RequestIDMiddleware",
    "get_request_id",
    "register_exception_handlers",
    "require_actor",
]
