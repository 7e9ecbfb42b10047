"""Error taxonomy shared by the services and the HTTP layer."""
from __future__ import annotations


class ServiceError(Exception):
    status = 500
    code = "INTERNAL_ERROR"
    default_message = "An unexpected error occurred"

    def __init__(self, message: str | None = None, clear_cookies: tuple[str, ...] = ()):
        self.message = message or self.default_message
        # Cookie names the HTTP layer should expire on the error response
        self.clear_cookies = tuple(clear_cookies)
        super().__init__(self.message)


class InvalidCredentials(ServiceError):
    status = 401
    code = "INVALID_CREDENTIALS"
    default_message = "Invalid credentials"


class Unauthenticated(ServiceError):
    status = 401
    code = "UNAUTHENTICATED"
    default_message = "Authentication required"


class Forbidden(ServiceError):
    status = 403
    code = "FORBIDDEN"
    default_message = "Forbidden"


class NotFound(ServiceError):
    status = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class Conflict(ServiceError):
    status = 409
    code = "CONFLICT"
    default_message = "Conflict"
