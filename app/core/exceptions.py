"""
Application errors shared by the bookings, payments and notifications apps.

    BaseApplicationError
    ├── ValidationError        400  input rejected before any write
    ├── NotFoundError          404  order, ledger entry, template or session absent
    ├── ConflictError          409  state conflict, stale row, lock contention
    ├── ConfigurationError     500  Stripe or channel credentials missing
    └── ExternalServiceError   502  processor or channel call failed

Views render any of them with ``core.views.error_response``:

    except BaseApplicationError as e:
        return error_response(e)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Message for humans, error_code for clients, details for operators.

    Subclasses pick the HTTP status their views respond with.
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Response body: ``{"error": ..., "error_code": ..., "details"?: ...}``."""
        body: dict[str, Any] = {"error": self.message, "error_code": self.error_code}
        if self.details:
            body["details"] = self.details
        return body

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class ValidationError(BaseApplicationError):
    default_error_code = "VALIDATION_ERROR"
    http_status = 400


class NotFoundError(BaseApplicationError):
    default_error_code = "NOT_FOUND"
    http_status = 404


class ConflictError(BaseApplicationError):
    """A second pending checkout, a stale version or a held per-order lock."""

    default_error_code = "CONFLICT"
    http_status = 409


class ConfigurationError(BaseApplicationError):
    """
    Credentials for Stripe or a notification channel are missing.

    Raised before anything is persisted and never retried. ``details``
    names the missing setting keys:

        raise ConfigurationError(
            "Stripe not configured",
            details={"missing": ["stripe_secret_key"]},
        )
    """

    default_error_code = "CONFIGURATION_ERROR"
    http_status = 500


class ExternalServiceError(BaseApplicationError):
    """Stripe, Twilio or the mail server refused or did not answer."""

    default_error_code = "EXTERNAL_SERVICE_ERROR"
    http_status = 502
