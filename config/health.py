"""Liveness endpoint for load balancers and the container healthcheck.

``status`` is ``ok`` when every component answers, ``degraded`` when some
do, ``down`` when none do. Anything but ``ok`` returns HTTP 503.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Any

import redis
from django.conf import settings
from django.db import connection
from django.http import JsonResponse

from chat_relay.realtime.socketio import hub


def check_db() -> dict[str, Any]:
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1;")
            cursor.fetchone()
    except Exception as exc:  # noqa: BLE001
        return {"ok": False, "error": str(exc)}
    return {"ok": True}


def check_redis() -> dict[str, Any]:
    if not settings.REDIS_URL:
        # Single-process deployments run without a Socket.IO message queue
        return {"ok": True, "configured": False}
    client = redis.Redis.from_url(
        settings.REDIS_URL, socket_timeout=0.5, socket_connect_timeout=0.5
    )
    try:
        client.ping()
    except Exception as exc:  # noqa: BLE001
        return {"ok": False, "configured": True, "error": str(exc)}
    return {"ok": True, "configured": True}


def health(request):
    components = {"db": check_db(), "redis": check_redis()}
    healthy = [info["ok"] for info in components.values()]

    if all(healthy):
        status = "ok"
    elif any(healthy):
        status = "degraded"
    else:
        status = "down"

    return JsonResponse(
        {
            "status": status,
            "components": components,
            "realtime": {"online_users": len(hub.presence)},
        },
        status=HTTPStatus.OK if status == "ok" else HTTPStatus.SERVICE_UNAVAILABLE,
    )
