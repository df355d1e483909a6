"""Global Socket.IO server for the chat relay.

Frontend convention:
- URL base: ws://<host>:8000
- Socket.IO path: settings.REALTIME_SOCKETIO_PATH (default /ws/relay/)
- Auth (optional unless REALTIME_REQUIRE_AUTH): `query.token` or
  `auth: { token }` carrying a JWT access token

Every client event is validated and handled by the module-level ``hub``.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import parse_qs

import socketio
from asgiref.sync import async_to_sync
from channels.db import database_sync_to_async
from django.conf import settings
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken
from rest_framework_simplejwt.exceptions import TokenError

from chat_relay.realtime import protocol
from chat_relay.realtime.hub import RelayHub
from chat_relay.realtime.presence import room_for_user

logger = logging.getLogger(__name__)


def _client_manager() -> socketio.AsyncManager | None:
    # Fans room emits out to every worker when Redis is configured
    if settings.REDIS_URL:
        return socketio.AsyncRedisManager(settings.REDIS_URL)
    return None


def _cors_allowed_origins() -> str | list[str]:
    origins = settings.REALTIME_CORS_ALLOWED_ORIGINS
    # Engine.IO only treats the bare string as the wildcard
    return "*" if "*" in origins else list(origins)


sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=_cors_allowed_origins(),
    client_manager=_client_manager(),
    logger=False,
    engineio_logger=False,
)

hub = RelayHub(sio)


@database_sync_to_async
def _get_user_id_from_access_token(token: str) -> int:
    jwt_auth = JWTAuthentication()
    validated = jwt_auth.get_validated_token(token)
    user = jwt_auth.get_user(validated)
    return int(user.id)


def _extract_token(environ: dict[str, Any], auth: Any | None) -> str | None:
    """Access token from `auth: { token }`, else from the `?token=` query.

    Engine.IO's ASGI driver exposes the query string as `QUERY_STRING`.
    """

    token = auth.get("token") if isinstance(auth, dict) else None
    if isinstance(token, str) and token:
        return token
    query = parse_qs(environ.get("QUERY_STRING", ""))
    return query.get("token", [None])[0] or None


@sio.event
async def connect(sid: str, environ: dict[str, Any], auth: Any | None = None):
    token = _extract_token(environ, auth)
    user_id = None
    if token:
        try:
            user_id = await _get_user_id_from_access_token(token)
        except (TokenError, InvalidToken) as exc:
            # JWTAuthentication wraps the expiry TokenError in InvalidToken
            message = str(getattr(exc, "detail", exc))
            # Frontend expects this exact string to trigger refresh.
            if "expired" in message.lower():
                msg = "jwt_expired"
                raise socketio.exceptions.ConnectionRefusedError(msg) from exc
            msg = "unauthorized"
            raise socketio.exceptions.ConnectionRefusedError(msg) from exc
        except AuthenticationFailed as exc:  # user not found / inactive, etc.
            msg = "unauthorized"
            raise socketio.exceptions.ConnectionRefusedError(msg) from exc
    elif settings.REALTIME_REQUIRE_AUTH:
        msg = "unauthorized"
        raise socketio.exceptions.ConnectionRefusedError(msg)

    logger.debug("Connection %s opened user=%s", sid, user_id)
    await hub.connect(sid, user_id)


@sio.event
async def disconnect(sid: str, *args: Any):
    # python-socketio >= 5.12 passes the disconnect reason
    await hub.disconnect(sid)


def _bind(event: str) -> None:
    async def handler(sid: str, data: Any = None) -> None:
        await hub.dispatch(event, sid, data)

    sio.on(event, handler)


for _event in protocol.CLIENT_EVENTS:
    _bind(_event)


def emit_event_to_room(room: str, event: str, payload: dict[str, Any]) -> None:
    """Emit an event to a Socket.IO room from sync Django code."""

    async_to_sync(sio.emit)(event, payload, to=room)


def emit_event_to_user(user_id: int, event: str, payload: dict[str, Any]) -> None:
    """Emit to a user's connection on whichever worker holds it."""

    emit_event_to_room(room_for_user(user_id), event, payload)
