# core/errors.py
from typing import Optional

from fastapi import status


class GameBackendError(Exception):
    """Base error; ``message`` is what the client sees, nothing more."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class DuplicateUsername(GameBackendError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Username already exists"


class InvalidCredentials(GameBackendError):
    # Same text for an unknown user and a wrong password
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid credentials"


class NotAuthenticated(GameBackendError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Could not validate credentials"


class UserNotFound(GameBackendError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "User not found"


class StoreFailure(GameBackendError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal server error"
