"""
Core networking: connections, the registry, the event loop and the listener.

The event loop is the only place the server waits. Each iteration it asks
the selector which sockets are readable, accepts at most one new client,
and hands every readable client to the request dispatcher.
"""

from .connection import Connection, ConnectionState
from .registry import ConnectionRegistry
from .event_loop import EventLoop
from .socket_server import SocketServer
from .errors import FatalServerError, RegistryError

__all__ = [
    "Connection",          # Client socket + bounded request buffer
    "ConnectionState",     # ACCUMULATING → COMPLETE_HEADERS → DISPATCHED
    "ConnectionRegistry",  # Open connections, removal-safe iteration
    "EventLoop",           # select() loop
    "SocketServer",        # Listener bootstrap and signal handling
    "FatalServerError",
    "RegistryError",
]
