from __future__ import annotations


class TransportError(Exception):
    """The relay connection could not be opened or was lost for good."""
