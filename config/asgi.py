"""
ASGI entry point: the Socket.IO relay in front of Django.

Requests under ``settings.REALTIME_SOCKETIO_PATH`` (Engine.IO polling and
WebSocket upgrades) go to the relay; everything else reaches Django.

Run with e.g. ``uvicorn config.asgi:application``.
"""

import os

from django.core.asgi import get_asgi_application

# BUILD_ENV=local selects the development settings; anything else production
os.environ.setdefault(
    "DJANGO_SETTINGS_MODULE",
    "config.settings.local"
    if os.environ.get("BUILD_ENV", "production").lower() == "local"
    else "config.settings.production",
)

# Django must be set up before the relay imports models
django_application = get_asgi_application()

from django.conf import settings  # noqa: E402
from socketio import ASGIApp  # noqa: E402

from chat_relay.realtime.socketio import sio  # noqa: E402

application = ASGIApp(
    sio,
    other_asgi_app=django_application,
    socketio_path=settings.REALTIME_SOCKETIO_PATH,
)
