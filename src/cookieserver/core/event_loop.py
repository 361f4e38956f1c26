"""
=============================================================================
EVENT LOOP
=============================================================================

One thread, one readiness wait, many connections.

=============================================================================
ONE ITERATION
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         run_once()                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   selector.select()          blocks, NO timeout, until something on  │
    │        │                     the listener, a client or the waker     │
    │        │                     is readable                             │
    │        │                     failure → FatalServerError              │
    │        ▼                                                             │
    │   waker readable?            drain it; stop if shutdown requested    │
    │        │                                                             │
    │        ▼                                                             │
    │   listener readable?         accept() ONE connection, registry.add   │
    │        │                     failure → FatalServerError              │
    │        ▼                                                             │
    │   for conn in registry.for_each_ready(ready):                        │
    │        handler(conn)         read, frame, maybe respond + remove     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The handler runs to completion before the next connection is looked at,
including any disk I/O, so one slow file read delays every other client.
There are no timeouts either: a client that connects and never finishes
its headers keeps its registry slot until it disconnects.

=============================================================================
WAKING UP FOR SHUTDOWN
=============================================================================

Because select() waits forever, setting a flag is not enough to stop the
loop from another thread. The loop also watches one end of a socket pair;
stop() writes a byte to the other end, select() returns, and the loop sees
the flag. This is the same self-pipe trick asyncio uses.

=============================================================================
"""

import socket
import logging
import selectors
from typing import Callable

from .connection import Connection
from .errors import FatalServerError
from .registry import ConnectionRegistry


logger = logging.getLogger(__name__)


ConnectionHandler = Callable[[Connection], None]
ConnectionFactory = Callable[[socket.socket, tuple], Connection]


class EventLoop:
    """
    Single-threaded readiness loop over a listening socket and its clients.

    Args:
        listener: Bound, listening server socket.
        registry: Registry of open connections. Its selector is the one the
                  loop waits on; a DefaultSelector is attached if it has none.
        handler: Called with each readable client connection.
        connection_factory: Wraps an accepted (socket, address) pair.
    """

    def __init__(
        self,
        listener: socket.socket,
        registry: ConnectionRegistry,
        handler: ConnectionHandler,
        connection_factory: ConnectionFactory = Connection,
    ):
        if registry.selector is None:
            registry.selector = selectors.DefaultSelector()

        self.registry = registry
        self._selector = registry.selector
        self._listener = listener
        self._handler = handler
        self._connection_factory = connection_factory
        self._running = False
        self._stop_requested = False

        # A readable listener whose connection vanished must not block us
        self._listener.setblocking(False)
        self._selector.register(self._listener, selectors.EVENT_READ)

        self._waker_r, self._waker_w = socket.socketpair()
        self._waker_r.setblocking(False)
        self._waker_w.setblocking(False)
        self._selector.register(self._waker_r, selectors.EVENT_READ)

    @property
    def is_running(self) -> bool:
        return self._running

    def run(self) -> None:
        """Iterate until stop() is called. Blocks."""
        self._running = True
        logger.debug("Event loop started")
        try:
            while not self._stop_requested:
                self.run_once()
        finally:
            self._running = False
        logger.debug("Event loop stopped")

    def run_once(self) -> None:
        """
        Wait for readiness once and handle everything that became ready.

        Raises:
            FatalServerError: select() or accept() failed, or the registry
                              detected misuse.
        """
        try:
            events = self._selector.select()
        except OSError as e:
            raise FatalServerError(f"select() failed: {e}") from e

        ready = {key.fileobj for key, _ in events}

        if self._waker_r in ready:
            self._drain_waker()
            if self._stop_requested:
                return

        if self._listener in ready:
            self._accept()

        for conn in self.registry.for_each_ready(ready):
            self._handler(conn)

    def stop(self) -> None:
        """
        Ask the loop to stop after the current iteration.

        Safe to call from another thread or a signal handler, and before
        run() has started.
        """
        self._stop_requested = True
        try:
            self._waker_w.send(b"\0")
        except OSError:
            pass  # Waker full or already closed; the flag is enough

    def close(self) -> None:
        """Tear down every open connection and release loop resources."""
        self.registry.close_all()

        for sock in (self._listener, self._waker_r):
            try:
                self._selector.unregister(sock)
            except (KeyError, ValueError):
                pass

        self._waker_r.close()
        self._waker_w.close()
        self._selector.close()

    def _accept(self) -> None:
        try:
            client_socket, client_address = self._listener.accept()
        except BlockingIOError:
            return  # Client gave up between select() and accept()
        except OSError as e:
            raise FatalServerError(f"accept() failed: {e}") from e

        conn = self._connection_factory(client_socket, client_address)
        self.registry.add(conn)
        logger.info(f"New connection from {conn.client_ip}:{conn.client_port} [{conn.id}]")

    def _drain_waker(self) -> None:
        try:
            while self._waker_r.recv(4096):
                pass
        except BlockingIOError:
            pass
