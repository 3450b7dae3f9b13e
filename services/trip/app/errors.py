"""
Trip Service - domain errors

Every failure the domain can report derives from DomainError. Each class
carries a stable error code and the HTTP status the API answers with.
"""

from typing import Any
from uuid import UUID


class DomainError(Exception):
    error_code: str = "DOMAIN_ERROR"
    http_status: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.error_code}


class DomainValidationError(DomainError):
    """Malformed input: nil identity, blank text or an out-of-range number."""

    error_code = "VALIDATION_ERROR"
    http_status = 400

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class InvalidTripStateError(DomainError):
    error_code = "INVALID_STATE"
    http_status = 409

    def __init__(self, current_state: str, attempted_operation: str) -> None:
        super().__init__(
            f"Cannot {attempted_operation} when trip is in {current_state} state"
        )
        self.current_state = current_state
        self.attempted_operation = attempted_operation


class InvariantViolationError(DomainError):
    """The requested transition would break a business rule."""

    error_code = "INVARIANT_VIOLATION"
    http_status = 409


class EntityNotFoundError(DomainError):
    error_code = "NOT_FOUND"
    http_status = 404

    def __init__(self, entity_type: str, entity_id: UUID | str) -> None:
        super().__init__(f"{entity_type} {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ConcurrencyConflictError(DomainError):
    """
    The writer's expected version did not match the stream length.

    The only error a caller is expected to retry, after reloading the
    aggregate to learn the current version.
    """

    error_code = "CONCURRENCY_CONFLICT"
    http_status = 409

    def __init__(
        self,
        aggregate_id: UUID,
        expected_version: int,
        actual_version: int,
    ) -> None:
        super().__init__(
            f"Concurrency conflict for aggregate {aggregate_id}. "
            f"Expected version {expected_version}, but found {actual_version}"
        )
        self.aggregate_id = aggregate_id
        self.expected_version = expected_version
        self.actual_version = actual_version

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["expected_version"] = self.expected_version
        result["actual_version"] = self.actual_version
        return result
