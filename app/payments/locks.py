"""
Per-order Redis locks.

RefundService holds ``lock:refund:order:<id>`` for its whole
read, Stripe call, write sequence so two cancellations of one order cannot
both refund. Ledger transitions are not locked; ReconciliationService
relies on conditional updates.

    with DistributedLock(order_lock_key("refund", order.id), ttl=120, timeout=10.0):
        ...
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import TYPE_CHECKING

from django_redis import get_redis_connection
from redis.exceptions import RedisError

from payments.exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis

logger = logging.getLogger(__name__)


def order_lock_key(operation: str, order_id: Any) -> str:
    return f"{operation}:order:{order_id}"


class DistributedLock:
    """
    SET NX EX lock owned by a random token.

    ``timeout`` is how long acquire() keeps polling; 0 means a single
    attempt. ``ttl`` bounds how long a crashed holder can block others.
    """

    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    end
    return 0
    """

    POLL_SECONDS = 0.05

    def __init__(self, key: str, ttl: int = 30, timeout: float = 10.0) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.timeout = timeout
        self._token: str | None = None
        self._client: Redis | None = None

    @property
    def client(self) -> Redis:
        if self._client is None:
            self._client = get_redis_connection("default")
        return self._client

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def acquire(self) -> None:
        """
        Raises:
            LockAcquisitionError: Still held elsewhere when ``timeout`` runs out
        """
        token = uuid.uuid4().hex
        deadline = time.monotonic() + self.timeout

        while not self.client.set(self.key, token, nx=True, ex=self.ttl):
            if time.monotonic() >= deadline:
                raise LockAcquisitionError(
                    f"Lock '{self.key}' is held by another worker",
                    details={"key": self.key, "timeout": self.timeout},
                )
            time.sleep(self.POLL_SECONDS)

        self._token = token

    def release(self) -> bool:
        """Delete the key if this instance still owns it."""
        if self._token is None:
            return False
        token, self._token = self._token, None
        return bool(self.client.eval(self.RELEASE_SCRIPT, 1, self.key, token))

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        try:
            self.release()
        except RedisError:
            # The key expires after ttl; the guarded work already finished
            logger.warning("Lock release failed", extra={"key": self.key}, exc_info=True)
