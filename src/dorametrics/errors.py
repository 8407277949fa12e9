"""Custom exception types for the GitHub DORA metrics generator."""

from __future__ import annotations

from datetime import datetime
from typing import Optional


class MetricsError(Exception):
    """Base exception for all recoverable metrics generator errors."""


class ConfigurationError(MetricsError):
    """Raised when runtime configuration values are missing or invalid."""


class AuthenticationError(MetricsError):
    """Raised when GitHub credentials are rejected or a token cannot be minted."""


class ApiError(MetricsError):
    """Raised when a GitHub API request fails or returns an unexpected response."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(ApiError):
    """Raised when the requested repository, pull request or deployment is absent."""


class ForbiddenError(ApiError):
    """Raised on a 403 that is not a rate limit, e.g. a feature disabled for the repository."""


class ClientNotConfiguredError(ApiError):
    """Raised when a data call is made before a usable transport exists."""


class RateLimitError(ApiError):
    """Raised by the transport when GitHub throttles a request.

    ``kind`` is ``"primary"`` (quota exhausted, wait until ``reset_at``) or
    ``"secondary"`` (abuse detection, wait ``retry_after`` seconds when given).
    """

    PRIMARY = "primary"
    SECONDARY = "secondary"

    def __init__(
        self,
        message: str,
        kind: str,
        status_code: Optional[int] = None,
        reset_at: Optional[datetime] = None,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message, status_code=status_code)
        self.kind = kind
        self.reset_at = reset_at
        self.retry_after = retry_after


class RateLimitExhaustedError(ApiError):
    """Raised when waiting out a rate limit would exceed the configured wait budget."""


class DataValidationError(MetricsError):
    """Raised when API payloads do not contain the fields required for metrics."""
