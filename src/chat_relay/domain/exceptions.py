"""Domain exceptions for the Chat Relay service.

This module defines pure domain exceptions with no framework dependencies.
They represent caller input violations detected before any streaming starts.
Upstream failures are not domain errors; they live with the upstream client
and are reported per model inside the event stream.

Exception Hierarchy:
    - DomainError: Base exception for all domain errors
    - InvalidRequestError: Request validation failures (carries an error code)
    - InvalidModelError: Requested models are not allowed
    - InvalidApiKeyError: API key missing or malformed
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Base exception for all domain errors.

    This exception should not be raised directly. Use specific subclasses
    like InvalidRequestError or InvalidModelError instead.
    """


class InvalidRequestError(DomainError):
    """Raised when a chat request violates input rules.

    Attributes:
        message: Human-readable error message returned to the caller.
        code: Stable machine-readable error code (e.g. ``MESSAGE_TOO_LONG``).
        status_code: HTTP status the API layer should answer with.
        extra: Additional fields merged into the JSON error body.
    """

    status_code: int = 400

    def __init__(
        self,
        message: str,
        code: str,
        *,
        status_code: int | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra or {}


class InvalidModelError(InvalidRequestError):
    """Raised when one or more requested models are not in the allow-list."""

    def __init__(self, invalid_models: list[str]) -> None:
        super().__init__(
            "Invalid model selection",
            "INVALID_MODEL",
            extra={"invalidModels": list(invalid_models)},
        )
        self.invalid_models = list(invalid_models)


class InvalidApiKeyError(InvalidRequestError):
    """Raised when the caller's API key is missing or malformed."""

    status_code = 401


__all__ = [
    "DomainError",
    "InvalidApiKeyError",
    "InvalidModelError",
    "InvalidRequestError",
]
