"""
Health check and the error renderer shared by the API views.
"""

from __future__ import annotations

import logging

from django.core.cache import cache
from django.db import DatabaseError, connection
from django.http import JsonResponse

from rest_framework.response import Response

from core.exceptions import BaseApplicationError

logger = logging.getLogger(__name__)

HEALTH_CACHE_KEY = "health:check"


def error_response(exc: BaseApplicationError) -> Response:
    return Response(exc.to_dict(), status=exc.http_status)


def _database_ok() -> bool:
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            return cursor.fetchone() is not None
    except DatabaseError:
        logger.exception("Health check: database unreachable")
        return False


def _cache_ok() -> bool:
    try:
        cache.set(HEALTH_CACHE_KEY, "ok", timeout=5)
        return cache.get(HEALTH_CACHE_KEY) == "ok"
    except Exception:
        # django-redis surfaces connection failures as its own exception types
        logger.warning("Health check: cache unreachable", exc_info=True)
        return False


def _degraded_channels() -> list[str]:
    from notifications.services import FALLBACK_CHANNELS, channel_breaker

    try:
        return [str(name) for name in FALLBACK_CHANNELS if channel_breaker(name).is_open()]
    except Exception:
        logger.warning("Health check: breaker state unavailable", exc_info=True)
        return []


def health_check(request):
    """
    Liveness for load balancers.

    200 while the database answers, 503 otherwise. Cache loss and degraded
    notification channels are reported without failing the check.

        {"status": "healthy", "database": "connected", "cache": "connected",
         "degradedChannels": []}
    """
    database = _database_ok()
    body = {
        "status": "healthy" if database else "unhealthy",
        "database": "connected" if database else "disconnected",
        "cache": "connected" if _cache_ok() else "disconnected",
        "degradedChannels": _degraded_channels(),
    }
    return JsonResponse(body, status=200 if database else 503)
