class AccessError(Exception):
    """Base exception for the facility catalog."""


class ValidationError(AccessError):
    """Raised when caller input is malformed. Never retried."""


class InvalidArea(ValidationError):
    """Raised when a center point is outside WGS84 bounds."""


class InvalidRadius(ValidationError):
    """Raised when a radius is not positive or exceeds the configured ceiling."""


class InvalidPagination(ValidationError):
    """Raised when limit or offset fall outside the accepted window."""
