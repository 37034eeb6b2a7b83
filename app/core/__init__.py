"""
Core module initialization.
Exports configuration, logging utilities and service exceptions.
"""

from app.core.config import (
    EnvironmentMode,
    SchedulerMode,
    SequenceBackend,
    Settings,
    get_settings,
)
from app.core.exceptions import (
    RecordConflict,
    SequenceConflict,
    ServiceError,
    StorageUnavailable,
    ValidationError,
)

__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "SchedulerMode",
    "SequenceBackend",
    "ServiceError",
    "ValidationError",
    "StorageUnavailable",
    "SequenceConflict",
    "RecordConflict",
]
