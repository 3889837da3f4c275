"""Error taxonomy shared by the credential and relay workflows.

Every failure that may reach a caller is a :class:`ServiceError` subclass
carrying the HTTP status it maps to and a human readable message. The API
layer translates these into the ``{"success": false, "message": ...}`` shape
without inspecting the message text.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for failures surfaced to API consumers."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ServiceError):
    status_code = 400
    default_message = "Invalid request"

    def __init__(self, message: str | None = None, errors: list[dict[str, str]] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class Conflict(ServiceError):
    status_code = 400
    default_message = "Resource already exists"


class InvalidOrExpired(ServiceError):
    status_code = 400
    default_message = "Invalid or expired token"


class AlreadyVerified(ServiceError):
    status_code = 400
    default_message = "Email already verified"


class Unauthorized(ServiceError):
    status_code = 401
    default_message = "Not authorized"


class Forbidden(ServiceError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(ServiceError):
    status_code = 404
    default_message = "User not found"


class RateLimitExceeded(ServiceError):
    status_code = 429
    default_message = "Too many requests from this IP, please try again after an hour"


class UpstreamMailError(ServiceError):
    status_code = 500
    default_message = "Failed to send email"


class InvalidClientId(ServiceError):
    status_code = 400
    default_message = "Invalid Client ID"


class NotAccepting(Forbidden):
    default_message = "This endpoint is currently not accepting submissions."


class OriginNotAllowed(Forbidden):
    def __init__(self, origin: str) -> None:
        super().__init__(f"Origin {origin} is not allowed")
        self.origin = origin


class NoTargets(ServiceError):
    status_code = 400
    default_message = "No target emails configured"
