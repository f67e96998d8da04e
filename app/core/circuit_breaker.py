"""
Cache-backed health breaker for external delivery channels.

Each breaker keeps a single state record in the Django cache so every web
and worker process sees the same view of a channel:

    {
        "state": "closed" | "open",
        "failures": <consecutive failures>,
        "opened_at": <epoch seconds or None>,
        "last_success_at": <epoch seconds or None>,
        "last_error": <truncated error text>,
    }

A breaker never blocks a call. Callers still attempt delivery and report
the outcome; the breaker only answers "is this channel degraded right now?"
for alerting and for the health endpoint.

Usage:
    from core.circuit_breaker import CircuitBreaker

    breaker = CircuitBreaker("notifications:sms", failure_threshold=3)
    try:
        send()
        breaker.record_success()
    except DeliveryError as e:
        breaker.record_failure(str(e))

    if breaker.is_open():
        ...
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import TYPE_CHECKING

from django.core.cache import cache

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)

ERROR_TEXT_LIMIT = 200


class CircuitState(str, Enum):
    """Breaker states."""

    CLOSED = "closed"
    OPEN = "open"


class CircuitBreaker:
    """
    Consecutive-failure counter with a recovery window.

    The breaker opens after ``failure_threshold`` consecutive failures and
    reports open until either a success is recorded or ``recovery_timeout``
    seconds pass without a new failure.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 3,
        recovery_timeout: int = 900,
        cache_ttl: int = 86400,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.cache_ttl = cache_ttl
        self._key = f"circuit:{name}"

    def record_success(self) -> None:
        """Reset the failure count and close the breaker."""
        state = self._load()
        was_open = state["state"] == CircuitState.OPEN.value

        state.update(
            state=CircuitState.CLOSED.value,
            failures=0,
            opened_at=None,
            last_success_at=time.time(),
        )
        self._store(state)

        if was_open:
            logger.info(
                "Circuit breaker closed after success",
                extra={"circuit": self.name},
            )

    def record_failure(self, error: str = "") -> int:
        """
        Count a consecutive failure and open the breaker at the threshold.

        Returns:
            The consecutive failure count after this failure
        """
        state = self._load()
        state["failures"] = int(state.get("failures") or 0) + 1
        state["last_error"] = (error or "")[:ERROR_TEXT_LIMIT]

        if state["failures"] >= self.failure_threshold:
            if state["state"] != CircuitState.OPEN.value:
                logger.warning(
                    f"Circuit breaker opened after {state['failures']} failures",
                    extra={
                        "circuit": self.name,
                        "failure_count": state["failures"],
                        "threshold": self.failure_threshold,
                    },
                )
            state["state"] = CircuitState.OPEN.value
            # Each new failure extends the recovery window.
            state["opened_at"] = time.time()

        self._store(state)
        return state["failures"]

    def is_open(self) -> bool:
        """Whether the channel is currently considered degraded."""
        state = self._load()
        if state["state"] != CircuitState.OPEN.value:
            return False

        opened_at = state.get("opened_at")
        if opened_at and (time.time() - opened_at) >= self.recovery_timeout:
            return False
        return True

    def is_available(self) -> bool:
        return not self.is_open()

    def reset(self) -> None:
        """Forget all recorded state."""
        cache.delete(self._key)
        logger.info("Circuit breaker manually reset", extra={"circuit": self.name})

    def get_status(self) -> dict[str, Any]:
        """Snapshot for the health endpoint and operator alerts."""
        state = self._load()
        status = {
            "name": self.name,
            "state": CircuitState.OPEN.value if self.is_open() else CircuitState.CLOSED.value,
            "failure_count": state.get("failures", 0),
            "failure_threshold": self.failure_threshold,
            "last_error": state.get("last_error", ""),
        }
        if state.get("last_success_at"):
            status["last_success_seconds_ago"] = int(
                time.time() - state["last_success_at"]
            )
        if state.get("opened_at"):
            status["opened_seconds_ago"] = int(time.time() - state["opened_at"])
        return status

    # =========================================================================
    # Cache access
    # =========================================================================

    def _load(self) -> dict[str, Any]:
        state = cache.get(self._key)
        if not isinstance(state, dict):
            return {
                "state": CircuitState.CLOSED.value,
                "failures": 0,
                "opened_at": None,
                "last_success_at": None,
                "last_error": "",
            }
        return state

    def _store(self, state: dict[str, Any]) -> None:
        cache.set(self._key, state, timeout=self.cache_ttl)

    def __repr__(self) -> str:
        return f"CircuitBreaker(name={self.name!r}, open={self.is_open()})"
