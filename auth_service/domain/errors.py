"""Error taxonomy raised by the auth service and rendered by the HTTP layer."""

from __future__ import annotations


class AuthServiceError(Exception):
    """Base class for errors reported to clients.

    ``code`` is a stable machine-readable identifier; ``message`` is the
    human-readable text placed in the response envelope.
    """

    status_code: int = 400
    default_messages: dict[str, str] = {}

    def __init__(self, code: str, message: str | None = None) -> None:
        self.code = code
        self.message = message or self.default_messages.get(code, code)
        super().__init__(self.message)


class ValidationError(AuthServiceError):
    """Malformed or missing input."""

    status_code = 400
    default_messages = {
        "missing_fields": "Username, email, and password are required",
        "username_too_short": "Username must be at least 3 characters long",
        "password_too_short": "Password must be at least 6 characters long",
        "password_too_long": "Password must be at most 72 bytes long",
        "invalid_email": "Please enter a valid email address",
        "invalid_request": "Request body must be a JSON object of strings",
    }


class ConflictError(AuthServiceError):
    """Uniqueness violation on account creation."""

    status_code = 400
    default_messages = {"email_taken": "User with this email already exists"}


class AuthError(AuthServiceError):
    """Credential mismatch. Unknown email and wrong password are indistinguishable."""

    status_code = 401
    default_messages = {"invalid_credentials": "Invalid credentials"}

    def __init__(self) -> None:
        super().__init__("invalid_credentials")


class InternalError(AuthServiceError):
    """Store or hashing failure; details stay in the server log."""

    status_code = 500
    default_messages = {"internal_error": "Internal server error"}

    def __init__(self) -> None:
        super().__init__("internal_error")
