"""
Service layer base types.

Webhook handlers and other branch-on-outcome code return a ServiceResult;
request-boundary failures raise from core.exceptions instead.

    from core.services import BaseService, ServiceResult

    class RefundService(BaseService):
        @classmethod
        def execute(cls, order_id, decision, reason):
            cls.get_logger().info("Refund issued", extra={"order_id": str(order_id)})

    def handle_event(webhook_event) -> ServiceResult:
        if not webhook_event.get_object_id():
            return ServiceResult.failure("No object id", error_code="INVALID_WEBHOOK_PAYLOAD")
        return ServiceResult.success({"recorded": 1})
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Outcome of an operation whose failure is an expected branch.

    A failed result is falsy, so ``if not result:`` reads naturally at the
    call site.
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, error: str, error_code: str | None = None) -> ServiceResult[T]:
        return cls(success=False, error=error, error_code=error_code)

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Stateless service: classmethods only.

    Collaborators (Stripe adapter, settings provider) are passed in per
    call or swapped at class level in tests.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")
