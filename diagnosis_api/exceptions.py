"""Domain-specific exceptions for the Diagnosis API.

Every error carries an HTTP status and a machine-readable ``code`` so that
clients can branch on the code instead of parsing messages.
"""

from typing import Any


class DiagnosisAPIError(Exception):
    """Base exception for all Diagnosis API errors."""

    status_code = 500
    default_code = "internal_error"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a JSON-serialisable error body."""
        result: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(DiagnosisAPIError):
    """Error related to input validation (not Pydantic)."""

    status_code = 400
    default_code = "invalid_input"


class NotFoundError(DiagnosisAPIError):
    """The requested account could not be resolved by the scraping service."""

    status_code = 404
    default_code = "profile_not_found"


class RateLimitError(DiagnosisAPIError):
    """Daily request quota for a client is used up."""

    status_code = 429
    default_code = "rate_limited"

    def __init__(self, retry_after: int, message: str | None = None) -> None:
        self.retry_after = retry_after
        super().__init__(message or "Daily diagnosis limit reached, please try again later")

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["retryAfter"] = self.retry_after
        return result


class UpstreamError(DiagnosisAPIError):
    """Error related to the scraping or generation collaborators."""

    default_code = "upstream_error"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
    ) -> None:
        self.retryable = retryable
        super().__init__(message, code=code, details=details)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["retryable"] = self.retryable
        return result


class ScraperError(UpstreamError):
    """Error related to profile scraping."""

    default_code = "scrape_failed"


class GenerationError(UpstreamError):
    """Error related to diagnosis generation."""

    default_code = "generation_failed"


class StorageError(DiagnosisAPIError):
    """Error related to storage operations."""

    default_code = "storage_error"


class ConfigurationError(DiagnosisAPIError):
    """Error related to configuration issues."""

    default_code = "configuration_error"


class InternalError(DiagnosisAPIError):
    """Unexpected failure outside the taxonomy above."""
