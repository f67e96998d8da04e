"""
Shared infrastructure for the bookings, payments and notifications apps.

    core.exceptions       error hierarchy rendered by every API view
    core.services         BaseService and ServiceResult
    core.circuit_breaker  cache-backed breaker for notification channels
    core.models           BaseModel with timestamps
    core.model_mixins     UUID primary keys and the order version counter

Model modules are imported directly, never re-exported here, because
this package is loaded before the app registry is ready.
"""

from .exceptions import (
    BaseApplicationError,
    ConfigurationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from .services import BaseService, ServiceResult

__all__ = [
    "BaseApplicationError",
    "BaseService",
    "ConfigurationError",
    "ConflictError",
    "ExternalServiceError",
    "NotFoundError",
    "ServiceResult",
    "ValidationError",
]
