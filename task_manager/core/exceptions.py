"""
Domain errors raised by the service layer.

Each error carries the HTTP status the boundary maps it to; the handlers
registered in ``task_manager.main`` turn them into JSON payloads.
"""
from typing import Dict, List, Optional

from fastapi import status


class TaskManagerError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Bad request."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"message": self.message}


class ValidationError(TaskManagerError):
    """Bad or missing input, with per-field messages."""

    status_code = 422
    default_message = "The given data was invalid."

    def __init__(self, errors: Dict[str, List[str]], message: Optional[str] = None):
        self.errors = errors
        if message is None and errors:
            # first field error doubles as the summary message
            message = next(iter(errors.values()))[0]
        super().__init__(message)

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls({field: [message]})

    def to_dict(self) -> dict:
        return {"message": self.message, "errors": self.errors}


class InvalidCredentials(ValidationError):
    """Login failure. Never says whether the email or the password was wrong."""

    default_message = "The credentials are incorrect."

    def __init__(self):
        super().__init__({"email": [self.default_message]}, self.default_message)


class Unauthenticated(TaskManagerError):
    """Missing, malformed, expired or revoked bearer token."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthenticated."


class Forbidden(TaskManagerError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "This action is unauthorized."


class NotFound(TaskManagerError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found."
