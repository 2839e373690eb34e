"""Custom exception classes for the application."""

from fastapi import HTTPException, status

from expense_terminal.config import settings


class NotFoundError(HTTPException):
    def __init__(self, resource: str = "Resource"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found",
        )


class UnauthorizedError(HTTPException):
    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenError(HTTPException):
    def __init__(self, detail: str = "You don't have permission to access this resource"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )


class ValidationError(HTTPException):
    def __init__(self, detail: str = "Validation error"):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
        )


def safe_error_message(internal_message: str | None, fallback: str = "An error occurred") -> str:
    """Return a client-safe error message.

    Production hides database and provider details; other environments keep a
    truncated message for debugging.
    """
    if settings.is_production:
        return fallback
    if not internal_message:
        return fallback
    return internal_message[:200]
