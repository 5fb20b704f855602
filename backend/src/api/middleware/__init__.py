"""FastAPI middleware for authentication and error handling."""

from .auth_middleware import AuthContext, get_auth_context, get_auth_service
from .error_handlers import (
    chat_error_body,
    error_body,
    register_error_handlers,
)

__all__ = [
    "AuthContext",
    "get_auth_context",
    "get_auth_service",
    "register_error_handlers",
    "error_body",
    "chat_error_body",
]
