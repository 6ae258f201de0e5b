"""
Domain exceptions raised by the service layer.

The app factory registers a handler for ``AppError`` that turns each of these
into a JSON body with the matching HTTP status.
"""

from __future__ import annotations


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body: dict = {"error": self.message, "status": self.status_code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(AppError, ValueError):
    """Invalid input or an operation not allowed in the current state."""

    status_code = 400


class Unauthorized(AppError):
    status_code = 401


class PermissionDenied(AppError):
    status_code = 403


class NotFound(AppError):
    status_code = 404


class TooManyRequests(AppError):
    status_code = 429
