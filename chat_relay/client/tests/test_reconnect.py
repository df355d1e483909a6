from __future__ import annotations

import logging
from typing import Any

import pytest
import socketio
from asgiref.sync import async_to_sync

from chat_relay.client import ConnectionState
from chat_relay.client import ReconnectingClient
from chat_relay.client import TransportError


class FakeTransport:
    def __init__(self, succeed: bool, sid: str) -> None:
        self.succeed = succeed
        self.sid = sid
        self.handlers: dict[str, dict[str, Any]] = {"/": {}}
        self.emitted: list[tuple[str, Any]] = []
        self.connected = False

    def on(self, event: str, handler: Any) -> None:
        self.handlers["/"][event] = handler

    async def connect(self, url: str, **kwargs: Any) -> None:
        if not self.succeed:
            msg = "Connection refused by the server"
            raise socketio.exceptions.ConnectionError(msg)
        self.connected = True

    async def emit(self, event: str, data: Any = None) -> None:
        self.emitted.append((event, data))

    async def disconnect(self) -> None:
        self.connected = False

    async def drop(self) -> None:
        """Simulate the server going away."""
        self.connected = False
        await self.handlers["/"]["disconnect"]("transport close")


class ScriptedFactory:
    """Hands out transports that succeed or fail in a fixed order."""

    def __init__(self, *outcomes: bool) -> None:
        self.outcomes = list(outcomes)
        self.created: list[FakeTransport] = []

    def __call__(self, **kwargs: Any) -> FakeTransport:
        assert kwargs == {"reconnection": False}
        transport = FakeTransport(self.outcomes.pop(0), f"sid-{len(self.created)}")
        self.created.append(transport)
        return transport


def make_client(factory, delays, **kwargs):
    async def sleep(seconds):
        delays.append(seconds)

    return ReconnectingClient(
        "http://relay.test",
        {"userId": 1, "fullName": "Alice"},
        client_factory=factory,
        sleep=sleep,
        **kwargs,
    )


def test_connect_sends_join():
    factory = ScriptedFactory(True)
    client = make_client(factory, [])

    async_to_sync(client.connect)()

    assert client.state is ConnectionState.CONNECTED
    assert client.connection_id == "sid-0"
    assert factory.created[0].emitted == [("join", {"userId": 1, "fullName": "Alice"})]


def test_failed_first_connect_raises():
    client = make_client(ScriptedFactory(False), [])

    with pytest.raises(TransportError):
        async_to_sync(client.connect)()
    assert client.state is ConnectionState.DISCONNECTED


def test_backoff_doubles_and_gives_up():
    delays: list[float] = []
    factory = ScriptedFactory(True, False, False, False, False, False)
    client = make_client(factory, delays)

    async def scenario():
        await client.connect()
        await factory.created[0].drop()
        assert client.state is ConnectionState.RECONNECTING
        await client.reconnect_task
        with pytest.raises(TransportError):
            await client.wait_closed()

    async_to_sync(scenario)()

    assert delays == [2.0, 4.0, 8.0, 16.0, 32.0]
    assert client.state is ConnectionState.DISCONNECTED
    # One fresh transport per attempt
    assert len(factory.created) == 6  # noqa: PLR2004


def test_success_resets_attempts():
    delays: list[float] = []
    factory = ScriptedFactory(True, False, True, True)
    client = make_client(factory, delays)
    received = []
    client.on("message:receive", received.append)

    async def scenario():
        await client.connect()
        await factory.created[0].drop()
        await client.reconnect_task

        assert client.state is ConnectionState.CONNECTED
        assert client.attempts == 0
        current = factory.created[-1]
        # Presence is re-announced and handlers survive the new transport
        assert current.emitted == [("join", {"userId": 1, "fullName": "Alice"})]
        await current.handlers["/"]["message:receive"]({"text": "hi"})

        await current.drop()
        await client.reconnect_task

    async_to_sync(scenario)()

    assert delays == [2.0, 4.0, 2.0]
    assert received == [{"text": "hi"}]
    assert client.state is ConnectionState.CONNECTED


def test_manual_disconnect_does_not_reconnect():
    delays: list[float] = []
    factory = ScriptedFactory(True)
    client = make_client(factory, delays)

    async def scenario():
        await client.connect()
        transport = factory.created[0]
        await client.disconnect()
        # python-socketio still fires the disconnect handler
        await transport.handlers["/"]["disconnect"]("client disconnect")
        await client.wait_closed()

    async_to_sync(scenario)()

    assert client.reconnect_task is None
    assert delays == []
    assert client.state is ConnectionState.DISCONNECTED


def test_emit_when_not_connected():
    client = make_client(ScriptedFactory(), [])
    assert async_to_sync(client.emit)("message:send", {"text": "x"}) is False


def test_custom_backoff_settings():
    delays: list[float] = []
    factory = ScriptedFactory(True, False, False)
    client = make_client(factory, delays, max_attempts=2, base_delay=0.5)

    async def scenario():
        await client.connect()
        await factory.created[0].drop()
        await client.reconnect_task

    async_to_sync(scenario)()

    assert delays == [1.0, 2.0]


def test_handler_errors_are_logged(caplog):
    factory = ScriptedFactory(True)
    client = make_client(factory, [])

    def explode(data):
        msg = "bad handler"
        raise ValueError(msg)

    async def scenario():
        await client.connect()
        client.on("history:result", explode)
        await factory.created[0].handlers["/"]["history:result"]({})

    with caplog.at_level(logging.ERROR, logger="chat_relay.client.reconnect"):
        async_to_sync(scenario)()

    assert "Error in handler for history:result" in caplog.text


def test_from_env(monkeypatch):
    monkeypatch.setenv("RELAY_URL", "https://chat.example.com")
    monkeypatch.setenv("RELAY_RECONNECT_MAX_ATTEMPTS", "3")
    monkeypatch.setenv("RELAY_RECONNECT_BASE_DELAY", "0.25")

    client = ReconnectingClient.from_env({"userId": 9})

    assert client.url == "https://chat.example.com"
    assert client.max_attempts == 3  # noqa: PLR2004
    assert client.backoff_delay(1) == 0.5  # noqa: PLR2004


@pytest.mark.parametrize("before_connect", [True, False])
def test_disconnect_handler_keeps_reconnection(before_connect):
    delays: list[float] = []
    factory = ScriptedFactory(True, True)
    client = make_client(factory, delays)
    reasons = []

    async def scenario():
        if before_connect:
            client.on("disconnect", reasons.append)
        await client.connect()
        if not before_connect:
            client.on("disconnect", reasons.append)

        await factory.created[0].drop()
        assert client.state is ConnectionState.RECONNECTING
        await client.reconnect_task

    async_to_sync(scenario)()

    assert reasons == ["transport close"]
    assert delays == [2.0]
    assert client.state is ConnectionState.CONNECTED
    assert client.connection_id == "sid-1"


def test_disconnect_handler_can_be_removed():
    factory = ScriptedFactory(True, True)
    client = make_client(factory, [])
    reasons = []
    client.on("disconnect", reasons.append)

    async def scenario():
        await client.connect()
        client.off("disconnect")
        await factory.created[0].drop()
        await client.reconnect_task

    async_to_sync(scenario)()

    assert reasons == []
    assert client.state is ConnectionState.CONNECTED


def test_connect_during_reconnect_does_not_open_another_transport():
    factory = ScriptedFactory(True, True)
    client = make_client(factory, [])

    async def scenario():
        await client.connect()
        await factory.created[0].drop()
        await client.connect()
        assert len(factory.created) == 1
        await client.reconnect_task

    async_to_sync(scenario)()

    assert len(factory.created) == 2  # noqa: PLR2004
    assert client.state is ConnectionState.CONNECTED
