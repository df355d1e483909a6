from http import HTTPStatus
from unittest import mock

import pytest
from django.db import connection as dj_conn


class DummyDbError(Exception):
    """Synthetic DB error for testing."""


@pytest.mark.django_db
def test_health_ok(client):
    resp = client.get("/health/")
    assert resp.status_code == HTTPStatus.OK
    data = resp.json()
    assert data["status"] == "ok"
    assert data["components"]["db"]["ok"] is True
    # Tests run without a Socket.IO message queue
    assert data["components"]["redis"] == {"ok": True, "configured": False}
    assert data["realtime"] == {"online_users": 0}


@pytest.mark.django_db
def test_health_degraded_when_redis_fails(client, settings):
    settings.REDIS_URL = "redis://localhost:6379/0"
    with mock.patch(
        "config.health.redis.Redis.ping",
        side_effect=TimeoutError("redis timeout"),
    ):
        resp = client.get("/health/")
    assert resp.status_code == HTTPStatus.SERVICE_UNAVAILABLE
    data = resp.json()
    assert data["components"]["redis"]["ok"] is False
    assert data["status"] == "degraded"


@pytest.mark.django_db
def test_health_degraded_when_db_fails(client, monkeypatch):
    msg = "db down"

    def raise_cursor():
        raise DummyDbError(msg)

    monkeypatch.setattr(dj_conn, "cursor", raise_cursor, raising=True)
    resp = client.get("/health/")
    assert resp.status_code == HTTPStatus.SERVICE_UNAVAILABLE
    data = resp.json()
    assert data["components"]["db"]["ok"] is False
