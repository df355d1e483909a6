"""Realtime infrastructure (Socket.IO).

Presence, message fan-out, call signaling and call rooms share the one
Socket.IO server defined in ``chat_relay.realtime.socketio``.
"""
