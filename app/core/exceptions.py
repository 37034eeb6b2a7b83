"""
Service Exceptions

Raised by the service layer and converted to HTTP responses by the
exception handlers in ``app.main``.

Hierarchy:
    ServiceError
    ├── ValidationError      (400, client-correctable)
    ├── StorageUnavailable   (500, safe to retry the whole request)
    ├── SequenceConflict     (compare-and-set lost a race; retried internally)
    └── RecordConflict       (409, unique constraint violated)
"""

from typing import Optional


class ServiceError(Exception):
    """Base service exception."""

    status_code: int = 500
    error_code: str = "service_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(ServiceError):
    """Request is missing fields or carries invalid values."""

    status_code = 400
    error_code = "validation_error"

    def __init__(self, message: str, errors: Optional[list[dict]] = None):
        super().__init__(message)
        self.errors = errors or []


class StorageUnavailable(ServiceError):
    """Backing storage failed or did not answer in time."""

    status_code = 500
    error_code = "storage_unavailable"


class SequenceConflict(ServiceError):
    """Another writer changed the sequence between read and compare-and-set."""

    status_code = 500
    error_code = "sequence_conflict"

    def __init__(self, expected: int, attempted: int):
        self.expected = expected
        self.attempted = attempted
        super().__init__(
            f"Sequence moved away from {expected} before {attempted} could be stored"
        )


class RecordConflict(ServiceError):
    """A record with the same unique key already exists."""

    status_code = 409
    error_code = "record_conflict"
