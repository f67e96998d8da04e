"""
Notification delivery exceptions.

Missing channel credentials raise core.exceptions.ConfigurationError;
everything a provider rejects or fails to answer raises DeliveryError.
"""

from __future__ import annotations

from core.exceptions import ExternalServiceError

# Provider error codes that will not succeed on retry
PERMANENT_ERRORS = {
    "invalid_recipient",
    "unverified_recipient",
    "unsubscribed",
    "invalid_email",
    "rejected",
}


class DeliveryError(ExternalServiceError):
    """A channel provider failed to accept a message."""

    def __init__(self, message: str, code: str, is_permanent: bool | None = None):
        super().__init__(message, error_code="DELIVERY_FAILED", details={"code": code})
        self.code = code
        self.is_permanent = code in PERMANENT_ERRORS if is_permanent is None else is_permanent
