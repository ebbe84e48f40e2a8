"""
Error kinds raised by the service layer.

Each kind carries the HTTP status it is answered with; the API layer only
serializes ``{"message": ...}`` and never decides the code itself.
"""


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    """Malformed or missing input, or an illegal state transition."""
    status_code = 400


class DuplicateError(AppError):
    status_code = 400


class NotFoundError(AppError):
    status_code = 404


class AuthenticationError(AppError):
    """Missing, invalid or expired credentials."""
    status_code = 401


class AuthorizationError(AppError):
    """Valid credentials, wrong principal."""
    status_code = 403


class UnexpectedError(AppError):
    status_code = 500
