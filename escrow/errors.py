"""
Client error hierarchy.

  ValidationError      -- caught at the form layer, nothing was sent
  EscrowClientError    -- the backend or the network refused a request
    recoverable=True   -- transient; the user can retry the action
    recoverable=False  -- not found / unauthorized; leave for a safe page
"""

from __future__ import annotations

from typing import Any


class ValidationError(ValueError):
    def __init__(self, message: str, fields: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.fields = fields or {}


class EscrowClientError(Exception):
    recoverable = True

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload or {}


class NetworkError(EscrowClientError):
    pass


class ApiError(EscrowClientError):
    pass


class ApiValidationError(ApiError):
    pass


class ForbiddenError(ApiError):
    pass


class UnauthorizedError(ApiError):
    recoverable = False


class NotFoundError(ApiError):
    recoverable = False


class ActionNotAllowed(EscrowClientError):
    """The lifecycle tables do not offer this action to this role."""
