from __future__ import annotations

from dataclasses import dataclass, field

from facility_core.exceptions import InvalidArea, InvalidPagination, InvalidRadius, ValidationError


@dataclass
class ApiError(Exception):
    code: str
    message: str
    status_code: int
    meta: dict[str, object] = field(default_factory=dict)


_VALIDATION_CODES: tuple[tuple[type[ValidationError], str], ...] = (
    (InvalidArea, "INVALID_AREA"),
    (InvalidRadius, "INVALID_RADIUS"),
    (InvalidPagination, "INVALID_PAGINATION"),
)


def validation_error_code(exc: ValidationError) -> str:
    for error_type, code in _VALIDATION_CODES:
        if isinstance(exc, error_type):
            return code
    return "VALIDATION_ERROR"
