"""
core/exceptions.py

Domain error taxonomy. Services raise these; the handlers registered in
main.py turn them into the `{"success": false, "error": ...}` payload with
the matching HTTP status. Routes never build error bodies themselves.
"""

from typing import Optional


class BlogError(Exception):
    """Base class for every error the core surfaces to a caller."""

    status_code: int = 500
    default_message: str = "Internal server error."

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(BlogError):
    status_code = 400
    default_message = "Invalid request."


class Unauthorized(BlogError):
    status_code = 401
    default_message = "Authentication required. Provide a Bearer token."


class InvalidCredentials(Unauthorized):
    default_message = "Invalid username or password."


class TokenMalformed(Unauthorized):
    default_message = "Token is malformed."


class TokenExpired(Unauthorized):
    default_message = "Token has expired."


class TokenInvalid(Unauthorized):
    default_message = "Token is invalid."


class Forbidden(BlogError):
    status_code = 403
    default_message = "You do not have permission to perform this action."


class NotFound(BlogError):
    status_code = 404
    default_message = "Resource not found."


class Conflict(BlogError):
    status_code = 409
    default_message = "Resource already exists."


class RateLimited(BlogError):
    status_code = 429
    default_message = "Too many attempts, please try again later."

    def __init__(self, retry_after_minutes: int, message: Optional[str] = None) -> None:
        super().__init__(message)
        self.retry_after_minutes = retry_after_minutes


class InternalError(BlogError):
    status_code = 500
    default_message = "Internal server error."


class PersistenceError(InternalError):
    """A storage operation failed; the cause is chained via `raise ... from`."""
