"""
=============================================================================
CONNECTION REGISTRY
=============================================================================

The set of currently open client connections.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      Registry Operations                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   add(conn)            after accept()                                │
    │       └──► remember conn, register its socket for EVENT_READ         │
    │                                                                      │
    │   for_each_ready(ready)                                              │
    │       └──► yield every registered conn whose socket is in ready      │
    │                                                                      │
    │   remove(conn)         exactly once per connection                   │
    │       └──► forget conn, unregister socket, close socket + buffer     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The registry is owned by the event loop and handed to the request
dispatcher explicitly; nothing reaches it as module-level state.

Removal while iterating is expected: handling a readable connection almost
always ends with that connection being removed. for_each_ready() walks a
snapshot taken before the first dispatch, so removals never disturb the walk,
and it re-checks membership before yielding each entry.

Everything runs on the event loop's thread, so there is no locking.

=============================================================================
"""

import logging
import selectors
from typing import Collection, Dict, Iterator, Optional

from .connection import Connection
from .errors import RegistryError


logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """
    Open connections keyed by socket file descriptor.

    Args:
        selector: When given, every added connection's socket is registered
                  with it for read readiness and unregistered on removal.
                  Tests can leave it out to exercise the bookkeeping alone.
    """

    def __init__(self, selector: Optional[selectors.BaseSelector] = None):
        self.selector = selector
        self._connections: Dict[int, Connection] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, conn: Connection) -> bool:
        return self._connections.get(conn.fileno) is conn

    def __iter__(self) -> Iterator[Connection]:
        return iter(list(self._connections.values()))

    def add(self, conn: Connection) -> None:
        """
        Register a newly accepted connection.

        Raises:
            RegistryError: A connection with the same descriptor is already
                           registered.
        """
        if conn.fileno in self._connections:
            raise RegistryError(f"add: descriptor {conn.fileno} already registered")

        self._connections[conn.fileno] = conn

        if self.selector is not None:
            self.selector.register(conn.socket, selectors.EVENT_READ, data=conn)

        logger.debug(f"[{conn.id}] Registered ({len(self._connections)} open)")

    def remove(self, conn: Connection) -> None:
        """
        Tear a connection down: forget it, close its socket, drop its buffer.

        Raises:
            RegistryError: The connection is not registered (already removed
                           or never added).
        """
        if self._connections.get(conn.fileno) is not conn:
            raise RegistryError(f"remove: connection {conn.id} not registered")

        del self._connections[conn.fileno]

        if self.selector is not None:
            self.selector.unregister(conn.socket)

        conn.close()

    def for_each_ready(self, ready: Collection) -> Iterator[Connection]:
        """
        Yield each registered connection whose socket is in ``ready``.

        Args:
            ready: Sockets reported readable by the readiness wait.
        """
        for conn in list(self._connections.values()):
            if conn not in self:
                continue  # Removed earlier in this walk
            if conn.socket not in ready:
                continue
            yield conn

    def close_all(self) -> None:
        """Remove every open connection (used on shutdown)."""
        for conn in list(self._connections.values()):
            self.remove(conn)
