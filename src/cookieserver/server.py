"""
=============================================================================
COOKIE SERVER
=============================================================================

Wires the components together and runs them.

=============================================================================
ARCHITECTURE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CookieServer                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   SocketServer ── listener ──┐                                       │
    │                              ▼                                       │
    │                         EventLoop ── owns ──► ConnectionRegistry     │
    │                              │                      ▲                │
    │                   readable conn                     │ remove()       │
    │                              ▼                      │                │
    │                     RequestDispatcher ──────────────┘                │
    │                      │     │      │       │                          │
    │        RequestParser ┘     │      │       └ ResponseWriter           │
    │                 SessionStore      StaticResolver                     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Everything runs on the thread that calls run(). shutdown() is the only
method meant to be called from elsewhere.

=============================================================================
"""

import logging
import selectors
import threading
from typing import Optional, Tuple

from .config import ServerConfig
from .core.connection import Connection
from .core.errors import FatalServerError
from .core.event_loop import EventLoop
from .core.registry import ConnectionRegistry
from .core.socket_server import SocketServer
from .handlers.dispatch import RequestDispatcher
from .handlers.static import StaticResolver
from .http.request import RequestParser
from .http.response import ResponseWriter
from .log import setup_logging
from .sessions import SessionStore


logger = logging.getLogger(__name__)


class CookieServer:
    """
    Single-threaded static file server with file-backed cookie sessions.

    Usage:
        server = CookieServer(ServerConfig(port=8080, document_root="public"))
        server.run()  # Blocks until Ctrl+C / SIGTERM / shutdown()

    Args:
        config: Server configuration; validated immediately.
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.config.validate()

        self.store = SessionStore(self.config.session_root)
        self.parser = RequestParser(self.config.max_request_size)
        self.resolver = StaticResolver(
            self.config.document_root,
            index_document=self.config.index_document,
            max_path_length=self.config.max_path_length,
        )
        self.writer = ResponseWriter(
            chunk_size=self.config.chunk_size,
            cookie_max_age=self.config.cookie_max_age,
        )

        self._socket_server = SocketServer(self.config)
        self._loop: Optional[EventLoop] = None
        self._ready = threading.Event()
        self._stopping = False

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port); meaningful once the server is ready."""
        return self._socket_server.address

    @property
    def registry(self) -> Optional[ConnectionRegistry]:
        return self._loop.registry if self._loop else None

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the listener is up. Returns False on timeout."""
        return self._ready.wait(timeout)

    def _make_connection(self, client_socket, client_address) -> Connection:
        return Connection(
            socket=client_socket,
            address=client_address,
            max_request_size=self.config.max_request_size,
            recv_size=self.config.recv_size,
        )

    def run(self) -> None:
        """
        Start the server (blocking).

        Raises:
            OSError: The listener could not be bound.
            FatalServerError: The event loop could not continue.
        """
        setup_logging(self.config)

        self.store.ensure_root()
        if self.config.resume_session_ids:
            self.store.resume()

        listener = self._socket_server.start(on_signal=self.shutdown)

        registry = ConnectionRegistry(selectors.DefaultSelector())
        dispatcher = RequestDispatcher(
            registry,
            self.parser,
            self.store,
            self.resolver,
            self.writer,
            log_format=self.config.log_format,
        )
        self._loop = EventLoop(
            listener,
            registry,
            dispatcher.on_readable,
            connection_factory=self._make_connection,
        )

        host, port = self.address
        logger.info(
            f"Serving {self.config.document_root} on http://{host}:{port}, "
            f"sessions in {self.config.session_root}"
        )
        self._ready.set()

        try:
            if not self._stopping:
                self._loop.run()
        except FatalServerError as e:
            logger.critical(f"Fatal: {e}")
            raise
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._loop.close()
            self._socket_server.stop()
            self._ready.clear()
            logger.info("Server stopped")

    def shutdown(self) -> None:
        """Stop the server. Safe to call from another thread."""
        self._stopping = True
        if self._loop is not None:
            self._loop.stop()
