"""
=============================================================================
SOCKET BOOTSTRAP
=============================================================================

Creates the listening socket and installs signal handlers.

    socket()  →  setsockopt(SO_REUSEADDR)  →  bind(host, port)  →  listen(backlog)

Everything after listen() belongs to the event loop. Failing to bind or
listen is reported to the caller as the OSError it is; there is nothing to
serve without a listener.

=============================================================================
SIGNAL HANDLING
=============================================================================

SIGINT (Ctrl+C) and SIGTERM (docker stop, systemd, kill) are routed to a
shutdown callback so open connections and the listener are closed in an
orderly way. Python only allows installing handlers from the main thread;
elsewhere (tests running the server in a thread) this step is skipped.

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Callable, Optional, Tuple

from ..config import ServerConfig


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Owns the listening socket's lifecycle.

    Usage:
        server = SocketServer(config)
        listener = server.start(on_signal=loop.stop)
        ...
        server.stop()
    """

    def __init__(self, config: ServerConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._original_handlers: dict = {}

    @property
    def listener(self) -> Optional[socket.socket]:
        return self._socket

    @property
    def address(self) -> Tuple[str, int]:
        """
        The address actually bound (IP, port).

        Differs from the configured one when port 0 was requested.
        """
        if self._socket is not None:
            return self._socket.getsockname()[:2]
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Avoid "Address already in use" when restarting during TIME_WAIT
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        return sock

    def start(self, on_signal: Optional[Callable[[], None]] = None) -> socket.socket:
        """
        Create, bind and listen.

        Args:
            on_signal: Called on SIGINT/SIGTERM (main thread only).

        Returns:
            The listening socket.

        Raises:
            OSError: bind() or listen() failed.
        """
        logger.debug("Configuring local address...")
        sock = self._create_socket()

        try:
            sock.bind((self.config.host, self.config.port))
            sock.listen(self.config.backlog)
        except OSError as e:
            logger.error(f"Failed to listen on {self.config.host}:{self.config.port}: {e}")
            sock.close()
            raise

        self._socket = sock

        if on_signal is not None:
            self._setup_signals(on_signal)

        host, port = self.address
        logger.info(f"Listening on {host}:{port}")
        return sock

    def stop(self) -> None:
        """Restore signal handlers and close the listening socket."""
        self._restore_signals()

        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass  # Already closed
            self._socket = None

        logger.info("Listener closed")

    def _setup_signals(self, on_signal: Callable[[], None]) -> None:
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not in main thread, signal handlers not installed")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            on_signal()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self) -> None:
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()
