"""Python client for the chat relay.

Only depends on python-socketio (and django-environ for ``from_env``); it
does not need Django settings.
"""

from chat_relay.client.exceptions import TransportError
from chat_relay.client.reconnect import ConnectionState
from chat_relay.client.reconnect import ReconnectingClient

__all__ = ["ConnectionState", "ReconnectingClient", "TransportError"]
