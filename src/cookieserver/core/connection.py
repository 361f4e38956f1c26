"""
=============================================================================
CONNECTION
=============================================================================

One accepted client socket plus the bytes received so far for its request.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

TCP does NOT preserve message boundaries. A request sent as

    GET /index.html HTTP/1.1\r\n
    Host: localhost\r\n
    \r\n

may arrive as "GET /ind", then "ex.html HTTP/1.1\r\nHo", then the rest.
Because the event loop only calls recv() when select() says the socket is
readable, each call hands us whatever happens to be there. The Connection
keeps those pieces in a bounded buffer until the request framer finds the
header terminator (\r\n\r\n) and, for POST, the declared body.

=============================================================================
LIFECYCLE
=============================================================================

    ┌──────────────┐  \r\n\r\n seen  ┌──────────────────┐  dispatched  ┌────────────┐
    │ ACCUMULATING │ ──────────────► │ COMPLETE_HEADERS │ ───────────► │ DISPATCHED │
    └──────┬───────┘                 └────────┬─────────┘              └─────┬──────┘
           │ disconnect / error / overflow    │ body overflow / error        │
           └──────────────────────────────────┴──────────────────────────────┤
                                                                             ▼
                                                                      ┌────────────┐
                                                                      │   CLOSED   │
                                                                      └────────────┘

A Connection serves exactly one request. There is no keep-alive: once the
response is written the registry removes and closes it.

=============================================================================
"""

import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Where a connection is in its single request/response cycle."""
    ACCUMULATING = "accumulating"          # Waiting for the header terminator
    COMPLETE_HEADERS = "complete_headers"  # Headers framed (POST may still await body)
    DISPATCHED = "dispatched"              # Response written
    CLOSED = "closed"                      # Socket closed, buffer released


@dataclass(eq=False)
class Connection:
    """
    Represents a client connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Responsibilities                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. BOUNDED BUFFERING                                                │
    │     └── Append whatever recv() returns, never past max_request_size  │
    │     └── Buffer contents are only exposed as immutable bytes          │
    │                                                                      │
    │  2. FRAMING BOOKKEEPING                                              │
    │     └── scanned: how far the terminator search has looked            │
    │     └── header_end: offset just past \r\n\r\n once found             │
    │                                                                      │
    │  3. WRITING                                                          │
    │     └── sendall() wrapper that reports failure instead of raising    │
    │                                                                      │
    │  4. CLOSE                                                            │
    │     └── Release socket and buffer                                    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Equality is identity: two Connection objects are never "the same"
    connection, even if their fields happen to match.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple, for diagnostics only.
        id: Short identifier used in log lines.
        fileno: The socket's file descriptor, captured at accept time.
        state: Current connection state.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.ACCUMULATING
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)

    max_request_size: int = 2048    # Buffer capacity
    recv_size: int = 1024           # How much to ask recv() for at once

    fileno: int = field(init=False)
    scanned: int = field(default=0, repr=False)
    header_end: Optional[int] = field(default=None, repr=False)
    _buffer: bytearray = field(default_factory=bytearray, repr=False)

    def __post_init__(self):
        self.fileno = self.socket.fileno()

        # Reads only follow a readiness report; writes may block
        self.socket.setblocking(True)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        """Get the client IP address."""
        return self.address[0] if self.address else "-"

    @property
    def client_port(self) -> int:
        """Get the client port."""
        return self.address[1] if self.address and len(self.address) > 1 else 0

    @property
    def buffer(self) -> bytes:
        """Snapshot of everything received so far for the current request."""
        return bytes(self._buffer)

    @property
    def received(self) -> int:
        """Number of bytes currently buffered."""
        return len(self._buffer)

    @property
    def remaining_capacity(self) -> int:
        return self.max_request_size - len(self._buffer)

    @property
    def is_full(self) -> bool:
        return len(self._buffer) >= self.max_request_size

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # =========================================================================
    # READING
    # =========================================================================

    def receive(self) -> int:
        """
        Read once from the socket into the buffer.

        Called only when the socket is readable, so this never blocks.
        Asks for at most recv_size bytes and never more than the space left
        in the buffer.

        Returns:
            Number of bytes appended. 0 means the peer closed the connection
            (or reset it) and the connection should be torn down.

        Raises:
            OSError: Any other socket failure.
        """
        want = min(self.recv_size, self.remaining_capacity)
        if want <= 0:
            return 0

        try:
            data = self.socket.recv(want)
        except (ConnectionResetError, BrokenPipeError):
            # Client disconnected abruptly
            return 0

        self._buffer.extend(data)
        self.last_activity = time.time()
        return len(data)

    # =========================================================================
    # WRITING
    # =========================================================================

    def send(self, data: bytes) -> bool:
        """
        Send data to the client.

        Uses sendall() so partial writes are retried until everything is out.

        Returns:
            True if send succeeded, False if the connection is gone.
        """
        try:
            self.socket.sendall(data)
            self.last_activity = time.time()
            return True
        except OSError as e:
            logger.debug(f"[{self.id}] Send failed: {e}")
            return False

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the socket and release the buffer.

        Only the registry should call this (through remove()), which is what
        guarantees it happens exactly once per connection.
        """
        try:
            # Send FIN first so the client sees an orderly end of response
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Already disconnected

        try:
            self.socket.close()
        except OSError:
            pass

        self._buffer = bytearray()
        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {time.time() - self.created_at:.3f}s")
