# shared/common/health.py
"""
Health check endpoints.

``health/`` and ``health/live/`` only prove the process answers.
``health/ready/`` checks the database and the lock store; bookings cannot be
serialized without the cache, so a failing cache makes the service unready.
Celery workers only deliver audit events and are checked on request
(``?workers=true``); missing workers degrade, never fail, readiness.
"""

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

from django.conf import settings
from django.core.cache import cache
from django.db import connection
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

logger = logging.getLogger(__name__)


class HealthStatus:
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


def _timed(name: str, ping: Callable[[], Dict[str, Any]], failure_status: str) -> Dict[str, Any]:
    start = time.monotonic()
    try:
        result = {"name": name, "status": HealthStatus.HEALTHY, **ping()}
    except Exception as e:
        logger.error(f"Health check '{name}' failed: {e}")
        return {"name": name, "status": failure_status, "error": str(e)}
    result["latency_ms"] = round((time.monotonic() - start) * 1000, 2)
    return result


def _ping_database() -> Dict[str, Any]:
    with connection.cursor() as cursor:
        cursor.execute("SELECT 1")
        cursor.fetchone()
    return {}


def _ping_lock_store() -> Dict[str, Any]:
    # locks are taken with cache.add, so exercise exactly that
    key = f"clinic:health:{uuid.uuid4().hex}"
    if not cache.add(key, "ok", 10):
        raise RuntimeError("cache.add refused a fresh key")
    try:
        if cache.get(key) != "ok":
            raise RuntimeError("cache read does not match write")
    finally:
        cache.delete(key)
    return {}


def _ping_workers() -> Dict[str, Any]:
    from celery import current_app

    replies = current_app.control.inspect(timeout=1).ping() or {}
    if not replies:
        return {"status": HealthStatus.DEGRADED, "workers": 0}
    return {"workers": len(replies)}


def check_database() -> Dict[str, Any]:
    return _timed("database", _ping_database, HealthStatus.UNHEALTHY)


def check_lock_store() -> Dict[str, Any]:
    return _timed("lock_store", _ping_lock_store, HealthStatus.UNHEALTHY)


def check_workers() -> Dict[str, Any]:
    return _timed("audit_workers", _ping_workers, HealthStatus.DEGRADED)


def overall_status(checks: List[Dict[str, Any]]) -> str:
    statuses = {c["status"] for c in checks}
    for status in (HealthStatus.UNHEALTHY, HealthStatus.DEGRADED):
        if status in statuses:
            return status
    return HealthStatus.HEALTHY


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@api_view(['GET'])
@authentication_classes([])
@permission_classes([AllowAny])
def health_check(request):
    """Process is up."""
    return Response({
        "status": HealthStatus.HEALTHY,
        "service": getattr(settings, 'SERVICE_NAME', 'clinic-service'),
        "version": getattr(settings, 'VERSION', '1.0.0'),
        "timestamp": _now(),
    })


@api_view(['GET'])
@authentication_classes([])
@permission_classes([AllowAny])
def liveness_check(request):
    return Response({"status": "alive", "timestamp": _now()})


@api_view(['GET'])
@authentication_classes([])
@permission_classes([AllowAny])
def readiness_check(request):
    """Database and lock store reachable; optionally audit workers too."""
    checks = [check_database(), check_lock_store()]
    if request.query_params.get('workers') == 'true':
        checks.append(check_workers())

    status = overall_status(checks)
    return Response(
        {"status": status, "checks": checks, "timestamp": _now()},
        status=503 if status == HealthStatus.UNHEALTHY else 200
    )


def get_health_urlpatterns():
    """URL patterns of the health endpoints, mounted at the site root."""
    from django.urls import path

    return [
        path('health/', health_check, name='health'),
        path('health/live/', liveness_check, name='liveness'),
        path('health/ready/', readiness_check, name='readiness'),
    ]
