# contest_platform/errors.py
"""Error taxonomy for the contest platform.

Every request-facing failure is a ``PlatformError`` subclass that knows its
HTTP status and machine-readable code, so the global handlers in
``contest_platform.routes`` can render it without inspecting the type.

Exception hierarchy:
- PlatformError
  - ValidationError (400): malformed or missing input, carries field errors
  - DuplicateIdentity (400): username or email already registered
  - InvalidTransition (400): illegal competition status change
  - Unauthenticated (401)
    - InvalidCredentials: wrong email or password (uniform message)
    - TokenInvalid: bad signature, malformed token, unknown subject
    - TokenExpired
  - Forbidden (403)
  - NotFound (404)
    - CompetitionNotFound, EntryNotFound
  - Conflict (409)
    - CompetitionClosed, EntryLimitReached
  - ServerError (500): generic, detail only exposed in development
    - AuthSetupError: token could not be minted after registration

ConfigurationError is outside the hierarchy: it is raised while
building settings and stops the process before any request is served.
"""


class ConfigurationError(Exception):
    """Raised at start-up when required configuration is missing or invalid."""
    pass


class PlatformError(Exception):
    http_status = 500
    code = "SERVER_ERROR"
    default_message = "Internal Server Error"

    def __init__(self, message=None, details=None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_response(self) -> dict:
        body = {
            "success": False,
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            body["errors"] = self.details
        return body


class ValidationError(PlatformError):
    http_status = 400
    code = "VALIDATION_ERROR"
    default_message = "Validation Error"

    def __init__(self, details, message=None):
        # details: list of {"field": ..., "message": ...}
        super().__init__(message, details=list(details))


class DuplicateIdentity(PlatformError):
    http_status = 400
    code = "DUPLICATE_IDENTITY"
    default_message = "User already exists with this email or username"


class InvalidTransition(PlatformError):
    http_status = 400
    code = "INVALID_TRANSITION"

    def __init__(self, current, requested):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change status from '{current}' to '{requested}'")


class Unauthenticated(PlatformError):
    http_status = 401
    code = "UNAUTHENTICATED"
    default_message = "Authentication required"


class InvalidCredentials(Unauthenticated):
    code = "INVALID_CREDENTIALS"
    default_message = "Invalid credentials"


class TokenInvalid(Unauthenticated):
    code = "TOKEN_INVALID"
    default_message = "Invalid token"


class TokenExpired(Unauthenticated):
    code = "TOKEN_EXPIRED"
    default_message = "Token has expired"


class Forbidden(PlatformError):
    http_status = 403
    code = "FORBIDDEN"
    default_message = "Not authorized to perform this action"


class NotFound(PlatformError):
    http_status = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class CompetitionNotFound(NotFound):
    default_message = "Competition not found"


class EntryNotFound(NotFound):
    default_message = "Entry not found"


class Conflict(PlatformError):
    http_status = 409
    code = "CONFLICT"
    default_message = "Request conflicts with the current state"


class CompetitionClosed(Conflict):
    code = "COMPETITION_CLOSED"
    default_message = "Competition is not accepting entries"


class EntryLimitReached(Conflict):
    code = "ENTRY_LIMIT_REACHED"
    default_message = "Competition has reached its maximum number of entries"


class ServerError(PlatformError):
    pass


class AuthSetupError(ServerError):
    code = "AUTH_SETUP_FAILED"
    default_message = "Authentication setup failed"
