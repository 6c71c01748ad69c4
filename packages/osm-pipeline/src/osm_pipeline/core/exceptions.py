from facility_core.exceptions import AccessError, ValidationError


class SourceError(AccessError):
    """Base error for the external geodata provider."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SourceUnavailable(SourceError):
    """Raised when the provider cannot be reached or failed server-side. Retried."""


class SourceRequestRejected(SourceUnavailable):
    """Raised when the provider rejects the request or returns an unusable payload. Not retried."""


class SourceRateLimited(SourceError):
    """Raised when the provider answers 429. Retried."""


class NormalizationError(ValidationError):
    """Raised when a single raw element cannot be turned into a candidate."""
