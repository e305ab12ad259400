"""Domain errors.

Services raise these to express a failed rule; the exception handler in
``main`` renders each one as its status code and fixed message. The message is
always one of the fixed strings below, never the text of an underlying error.
"""

from __future__ import annotations


class DomainError(Exception):
    status_code = 500
    default_message = "Internal server error"
    # auth-flow responses carry {"success": false, ...}
    auth_shape = False

    def __init__(self, message: str | None = None, *, auth_shape: bool | None = None):
        self.message = message or self.default_message
        if auth_shape is not None:
            self.auth_shape = auth_shape
        super().__init__(self.message)

    def body(self) -> dict:
        if self.auth_shape:
            return {"success": False, "message": self.message}
        return {"message": self.message}


class ValidationError(DomainError):
    status_code = 400
    default_message = "Invalid input"


class ConflictOrInvalid(DomainError):
    """Registration failure: duplicate email and bad input look the same."""

    status_code = 400
    default_message = "Email already exists or invalid input"
    auth_shape = True


class NotFound(DomainError):
    status_code = 404
    default_message = "Not found"


class InvalidCredentials(DomainError):
    status_code = 401
    default_message = "Invalid password"
    auth_shape = True


class Unauthorized(DomainError):
    status_code = 401
    default_message = "Unauthorized: No token provided"
    auth_shape = True


class Forbidden(DomainError):
    status_code = 403
    default_message = "Forbidden: Invalid token"


class Conflict(DomainError):
    status_code = 409
    default_message = "Conflict"


class NoChange(DomainError):
    status_code = 400
    default_message = "No changes detected"


class InternalError(DomainError):
    status_code = 500


class RateLimited(DomainError):
    status_code = 429
    default_message = "Too many requests. Please try again later."
    auth_shape = True

    def __init__(self, limit: int, reset_s: int):
        self.limit = limit
        self.reset_s = reset_s
        super().__init__()


# store / credential level failures, translated by the services


class InvalidToken(Exception):
    pass


class DuplicateEmail(Exception):
    pass


class DuplicateOpenTitle(Exception):
    pass
