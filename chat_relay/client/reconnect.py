"""One logical relay connection kept alive across transport drops.

python-socketio's own reconnection is switched off: after an unexpected drop
this class opens a brand-new transport per attempt, waiting
``base_delay * 2**n`` seconds before attempt ``n`` (2, 4, 8, 16, 32 s with
the defaults). Handlers registered with ``on`` are attached to every new
transport, and the presence ``join`` is sent again after each connect. A
``disconnect`` handler is chained onto the client's own one, so it cannot
disable reconnection.

An explicit ``disconnect`` never schedules a reconnect. Running out of
attempts leaves the client in ``DISCONNECTED`` until ``connect`` succeeds
again, which also resets the attempt counter.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from enum import Enum
from typing import TYPE_CHECKING
from typing import Any

import environ
import socketio

from chat_relay.client.exceptions import TransportError

if TYPE_CHECKING:  # import for type checking only
    from collections.abc import Awaitable
    from collections.abc import Callable

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BASE_DELAY = 1.0
DEFAULT_SOCKETIO_PATH = "ws/relay"

# Owned by the client; a caller's handler for it is chained, never attached
DISCONNECT = "disconnect"


class ConnectionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"


class ReconnectingClient:
    def __init__(  # noqa: PLR0913
        self,
        url: str,
        profile: dict[str, Any] | None = None,
        *,
        token: str | None = None,
        socketio_path: str = DEFAULT_SOCKETIO_PATH,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        client_factory: Callable[..., Any] = socketio.AsyncClient,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.url = url
        self.profile = dict(profile or {})
        self.token = token
        self.socketio_path = socketio_path
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._client_factory = client_factory
        self._sleep = sleep

        self._handlers: dict[str, Callable[..., Any]] = {}
        self._transport: Any = None
        self._state = ConnectionState.IDLE
        self._attempts = 0
        self._closing = False
        self._reconnect_task: asyncio.Task | None = None
        self._terminal: asyncio.Event | None = None

    @classmethod
    def from_env(cls, profile: dict[str, Any] | None = None, **kwargs: Any):
        env = environ.Env()
        return cls(
            env("RELAY_URL", default="http://localhost:8000"),
            profile,
            token=env("RELAY_TOKEN", default=None),
            socketio_path=env("RELAY_SOCKETIO_PATH", default=DEFAULT_SOCKETIO_PATH),
            max_attempts=env.int(
                "RELAY_RECONNECT_MAX_ATTEMPTS", default=DEFAULT_MAX_ATTEMPTS
            ),
            base_delay=env.float("RELAY_RECONNECT_BASE_DELAY", default=DEFAULT_BASE_DELAY),
            **kwargs,
        )

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def connection_id(self) -> str | None:
        if self._transport is None or self._state is not ConnectionState.CONNECTED:
            return None
        return self._transport.sid

    @property
    def reconnect_task(self) -> asyncio.Task | None:
        return self._reconnect_task

    def backoff_delay(self, attempt: int) -> float:
        return self.base_delay * (2**attempt)

    # Handlers
    # ------------------------------------------------------------------

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        """Register a handler that survives reconnects."""
        self._handlers[event] = handler
        if self._transport is not None and event != DISCONNECT:
            self._transport.on(event, self._guarded(event, handler))

    def off(self, event: str) -> None:
        self._handlers.pop(event, None)
        if event == DISCONNECT:
            return
        # python-socketio keeps handlers per transport; the next transport
        # is built without it
        if self._transport is not None and hasattr(self._transport, "handlers"):
            self._transport.handlers.get("/", {}).pop(event, None)

    def _guarded(self, event: str, handler: Callable[..., Any]):
        async def run(*args: Any) -> None:
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Error in handler for %s", event)

        return run

    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection. Raises ``TransportError`` if it fails."""

        if self._state is ConnectionState.CONNECTED:
            logger.debug("Relay client already connected")
            return
        if self._state in (ConnectionState.CONNECTING, ConnectionState.RECONNECTING):
            logger.debug("Relay client is already %s", self._state.value)
            return
        self._closing = False
        self._terminal = asyncio.Event()
        self._state = ConnectionState.CONNECTING
        try:
            await self._open_transport()
        except TransportError:
            self._state = ConnectionState.DISCONNECTED
            raise

    async def disconnect(self) -> None:
        """Close on purpose; no reconnect follows."""

        self._closing = True
        task = self._reconnect_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        await self._discard_transport()
        self._finish(ConnectionState.DISCONNECTED)
        logger.info("Relay client disconnected manually")

    async def wait_closed(self) -> None:
        """Wait for the terminal state; raise if reconnection gave up."""

        if self._terminal is None:
            return
        await self._terminal.wait()
        if not self._closing:
            msg = f"Gave up after {self._attempts} reconnection attempts"
            raise TransportError(msg)

    async def emit(self, event: str, data: Any = None) -> bool:
        if self._transport is None or self._state is not ConnectionState.CONNECTED:
            logger.error("Relay client not connected, cannot emit %s", event)
            return False
        try:
            await self._transport.emit(event, data)
        except socketio.exceptions.SocketIOError:
            logger.exception("Failed to emit %s", event)
            return False
        return True

    async def _open_transport(self) -> None:
        transport = self._client_factory(reconnection=False)
        self._transport = transport
        for event, handler in self._handlers.items():
            if event != DISCONNECT:
                transport.on(event, self._guarded(event, handler))

        async def lost(*args: Any) -> None:
            handler = self._handlers.get(DISCONNECT)
            if handler is not None and (transport is self._transport or self._closing):
                await self._guarded(DISCONNECT, handler)(*args)
            await self._on_transport_lost(transport, *args)

        transport.on(DISCONNECT, lost)

        try:
            await transport.connect(
                self.url,
                auth={"token": self.token} if self.token else None,
                transports=["websocket", "polling"],
                socketio_path=self.socketio_path,
            )
        except socketio.exceptions.ConnectionError as exc:
            msg = f"Relay connection failed: {exc}"
            raise TransportError(msg) from exc

        self._attempts = 0
        self._state = ConnectionState.CONNECTED
        logger.info("Relay client connected as %s", transport.sid)
        if self.profile:
            await transport.emit("join", self.profile)

    async def _discard_transport(self) -> None:
        transport, self._transport = self._transport, None
        if transport is None:
            return
        try:
            await transport.disconnect()
        except socketio.exceptions.SocketIOError:
            logger.debug("Ignoring error while closing a dead transport", exc_info=True)

    async def _on_transport_lost(self, transport: Any, *args: Any) -> None:
        # python-socketio >= 5.12 passes the disconnect reason
        if self._closing or transport is not self._transport:
            return
        if self._state is not ConnectionState.CONNECTED:
            return
        logger.warning("Relay connection lost: %s", args[0] if args else "unknown")
        self._state = ConnectionState.RECONNECTING
        self._reconnect_task = asyncio.ensure_future(self._reconnect())

    async def _reconnect(self) -> None:
        while self._attempts < self.max_attempts:
            self._attempts += 1
            delay = self.backoff_delay(self._attempts)
            logger.info(
                "Reconnection attempt %s/%s in %.1fs",
                self._attempts,
                self.max_attempts,
                delay,
            )
            await self._sleep(delay)
            if self._closing:
                return
            await self._discard_transport()
            try:
                await self._open_transport()
            except TransportError as exc:
                logger.warning("Reconnection attempt %s failed: %s", self._attempts, exc)
                continue
            return

        logger.error("Max reconnection attempts reached")
        await self._discard_transport()
        self._finish(ConnectionState.DISCONNECTED)

    def _finish(self, state: ConnectionState) -> None:
        self._state = state
        if self._terminal is not None:
            self._terminal.set()
