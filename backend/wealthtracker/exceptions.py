"""
Domain exceptions for the application.

Services raise these instead of fastapi.HTTPException to avoid coupling
the service layer to the web framework. A global exception handler in
main.py translates them into HTTP responses.
"""


class AppError(Exception):
    """Base application error with an HTTP-equivalent status code."""

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ValidationError(AppError):
    """Input validation failure (400)."""

    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class MissingDataError(ValidationError):
    """An export format needs a data slice that was not supplied (400)."""


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(self, message: str = "Not found"):
        super().__init__(message, status_code=404)


class PermissionDeniedError(AppError):
    """A host capability (periodic sync, notifications) was refused (403)."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(message, status_code=403)


class StorageError(AppError):
    """Key-value or backup store read/write/parse failure (500)."""

    def __init__(self, message: str):
        super().__init__(message, status_code=500)


class GenerationError(AppError):
    """Format-specific serialization failure (500)."""

    def __init__(self, message: str):
        super().__init__(message, status_code=500)
