"""Custom exception classes for the application."""

from typing import Any


class AEOAuditorError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# External API Errors
class ExternalAPIError(AEOAuditorError):
    """Error calling external API."""

    def __init__(self, api_name: str, message: str) -> None:
        self.api_name = api_name
        super().__init__(f"{api_name} API error: {message}", {"api_name": api_name})


class RateLimitExceededError(ExternalAPIError):
    """Rate limit exceeded for external API."""

    def __init__(self, api_name: str) -> None:
        super().__init__(api_name, "Rate limit exceeded")


class APIKeyMissingError(ExternalAPIError):
    """API key not configured."""

    def __init__(self, api_name: str) -> None:
        super().__init__(api_name, "API key not configured")


# Audit Errors
class AuditError(AEOAuditorError):
    """Base class for audit pipeline errors."""

    pass


class ScrapeBlockedError(AuditError):
    """Website returned no usable content (bot blocking, empty page)."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(
            "Website could not be scraped. It may be blocking bots.",
            {"url": url},
        )


class ExtractionError(AuditError):
    """Phase 1 (ground truth extraction) failed."""

    pass


class PerceptionError(AuditError):
    """Phase 2 (AI perception gathering) failed."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        self.errors = list(errors or [])
        super().__init__(message, {"errors": self.errors})


class JudgeError(AuditError):
    """Phase 3 (judge scoring) failed."""

    pass


class AuditRateLimitedError(AEOAuditorError):
    """Client exhausted its audit quota."""

    def __init__(self, retry_after_seconds: int, message: str | None = None) -> None:
        self.retry_after_seconds = max(1, int(retry_after_seconds))
        super().__init__(
            message or "You have already used your free audit. Please try again later.",
            {"retry_after_seconds": self.retry_after_seconds},
        )
