"""
Trip Service - input guards shared by the aggregate and the fleet entities
"""

from uuid import UUID

from .errors import DomainValidationError

NIL_ID = UUID(int=0)


def require_id(value: UUID, field: str, label: str) -> None:
    if value == NIL_ID:
        raise DomainValidationError(f"{label} cannot be empty", field=field)


def require_text(value: str, field: str, label: str) -> None:
    if not value or not value.strip():
        raise DomainValidationError(f"{label} cannot be empty", field=field)


def require_positive(value: float, field: str, label: str) -> None:
    if value <= 0:
        raise DomainValidationError(f"{label} must be positive", field=field)


def require_non_negative(value: int, field: str, label: str) -> None:
    if value < 0:
        raise DomainValidationError(f"{label} cannot be negative", field=field)
