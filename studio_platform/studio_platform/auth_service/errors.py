"""Auth service exceptions.

Raised by the auth core and account operations; the FastAPI app maps every
``AuthServiceError`` to a JSON response with ``status_code`` and ``detail``.
"""
from typing import Dict, Optional

from fastapi import status


class AuthServiceError(Exception):
    """Base exception for all auth service errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    headers: Optional[Dict[str, str]] = None

    def __init__(self, message: str = "Auth service error"):
        self.message = message
        super().__init__(self.message)


class ValidationError(AuthServiceError):
    """Raised when a required input is missing or blank."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "Invalid request data"):
        super().__init__(message)


class Unauthorized(AuthServiceError):
    """Raised for missing, invalid or expired tokens and failed credential checks."""

    status_code = status.HTTP_401_UNAUTHORIZED
    headers = {"WWW-Authenticate": "Bearer"}

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message)


class Conflict(AuthServiceError):
    """Raised when registering an email that is already taken."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "User already exists."):
        super().__init__(message)


class NotFoundOrExpired(AuthServiceError):
    """Raised when a reset secret is unknown or past its expiry."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "Invalid or expired reset token."):
        super().__init__(message)


class InternalError(AuthServiceError):
    """Raised when the store or a collaborator fails unexpectedly."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "Internal server error."):
        super().__init__(message)


class TokenError(Exception):
    """Access token could not be verified."""


class TokenInvalidError(TokenError):
    """Bad signature, malformed token or missing claims."""


class TokenExpiredError(TokenError):
    """Token signature is valid but its expiry has passed."""
