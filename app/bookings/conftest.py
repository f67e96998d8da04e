"""
Fixtures for bookings tests.

Cancellation runs the Refund Executor, so the Stripe and Redis doubles
from the payments fixtures are shared here.
"""

from payments.conftest import (  # noqa: F401
    card,
    make_intent,
    make_refund,
    mock_redis,
    stripe_adapter,
)
