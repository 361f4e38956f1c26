"""
=============================================================================
REQUEST FRAMING AND PARSING
=============================================================================

Decides, from the bytes a connection has buffered so far, whether a whole
request has arrived and what it asks for.

=============================================================================
WHAT THE SERVER UNDERSTANDS
=============================================================================

A small subset of HTTP/1.1:

    ┌─────────────────────────────────────────────────────────────────┐
    │  POST /notes HTTP/1.1\r\n          ← must start "GET /" or      │
    │                                      "POST /"                    │
    │  Host: localhost\r\n                                             │
    │  Cookie: id=7\r\n                  ← session id, up to the \r    │
    │  Content-Length: 5\r\n             ← required for POST           │
    │  \r\n                              ← header terminator           │
    │  hello                             ← exactly Content-Length bytes│
    └─────────────────────────────────────────────────────────────────┘

Header lookups are literal, case-sensitive substring searches for
"Cookie: id=" and "Content-Length: ", confined to the header block. No
other header is interpreted.

=============================================================================
FRAMING
=============================================================================

    ACCUMULATING ──(\r\n\r\n found)──► COMPLETE_HEADERS ──(body complete)──► parsed

  - Each feed() only searches the bytes it has not looked at yet (minus 3,
    so a terminator split across two reads is still found).
  - A buffer that fills up without a terminator can never become a valid
    request: 400 immediately.
  - A POST whose header block plus declared body cannot fit in the buffer
    is rejected the same way.

Nothing here mutates the buffer; the parsed request holds offsets into an
immutable bytes snapshot.

=============================================================================
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional

from ..core.connection import Connection, ConnectionState
from .status_codes import HTTPStatus


logger = logging.getLogger(__name__)


HEADER_TERMINATOR = b"\r\n\r\n"
COOKIE_MARKER = b"Cookie: id="
CONTENT_LENGTH_MARKER = b"Content-Length: "

# Literal prefixes, checked in order; the method name is what precedes " /"
METHOD_PREFIXES = (
    (b"GET /", "GET"),
    (b"POST /", "POST"),
)


class HTTPParseError(Exception):
    """
    Raised when a request cannot be accepted.

    Carries the status the client should receive: 400 for framing errors
    (oversized, malformed, unknown method, bad Content-Length, over-long
    path, unusable session id on POST) and 404 for paths that try to climb
    out of the document root.
    """

    def __init__(self, message: str, status_code: int = HTTPStatus.BAD_REQUEST):
        super().__init__(message)
        self.status_code = HTTPStatus(status_code)


@dataclass(frozen=True)
class ParsedRequest:
    """
    A fully framed request.

    Attributes:
        method: "GET" or "POST".
        path: Request path without any query string, e.g. "/index.html".
        session_id: Value of "Cookie: id=", or None when absent.
        content_length: Declared body length (always 0 for GET).
        header_end: Offset just past the header terminator in ``raw``.
        raw: The bytes the request was parsed from.
    """

    method: str
    path: str
    session_id: Optional[str]
    content_length: int
    header_end: int
    raw: bytes

    @property
    def head(self) -> bytes:
        """Request line and headers, including the terminator."""
        return self.raw[:self.header_end]

    @property
    def body(self) -> bytes:
        """Exactly content_length bytes following the header terminator."""
        return self.raw[self.header_end:self.header_end + self.content_length]


class RequestParser:
    """
    Incremental request framer.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       feed(conn) Flow                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   headers framed yet? ── no ──► search new bytes for \r\n\r\n        │
    │        │                            │                                │
    │        │                 found ◄────┴────► not found                 │
    │        │                   │                 │                       │
    │        │                   │            buffer full? ── yes ──► 400  │
    │        │                   │                 │ no                    │
    │        ▼                   ▼                 ▼                       │
    │   parse(buffer, header_end)            return None (keep reading)    │
    │        │                                                             │
    │        ├──► method check      (GET / | POST /, else 400)             │
    │        ├──► path              (up to ' ', '?' dropped)               │
    │        ├──► cookie            (Cookie: id=... up to \r)              │
    │        └──► POST: Content-Length, wait for body                      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(self, max_request_size: int = 2048):
        self.max_request_size = max_request_size

    def feed(self, conn: Connection) -> Optional[ParsedRequest]:
        """
        Examine a connection's buffer after new bytes were received.

        Updates ``conn.scanned``, ``conn.header_end`` and ``conn.state``.

        Returns:
            The parsed request once headers (and any POST body) are
            complete, otherwise None.

        Raises:
            HTTPParseError: The buffered bytes can never form an acceptable
                            request.
        """
        buffer = conn.buffer

        if conn.header_end is None:
            start = max(0, conn.scanned - (len(HEADER_TERMINATOR) - 1))
            pos = buffer.find(HEADER_TERMINATOR, start)

            if pos == -1:
                conn.scanned = len(buffer)
                if len(buffer) >= self.max_request_size:
                    raise HTTPParseError(
                        f"Request headers exceed {self.max_request_size} bytes"
                    )
                return None

            conn.header_end = pos + len(HEADER_TERMINATOR)
            conn.scanned = conn.header_end
            conn.state = ConnectionState.COMPLETE_HEADERS
            logger.debug(f"[{conn.id}] Headers complete after {conn.header_end} bytes")

        return self.parse(buffer, conn.header_end)

    def parse(self, buffer: bytes, header_end: Optional[int] = None) -> Optional[ParsedRequest]:
        """
        Parse a buffer known (or checked) to contain a complete header block.

        Args:
            buffer: Everything received so far.
            header_end: Offset just past the terminator, when already known.

        Returns:
            ParsedRequest, or None if a POST body is still incomplete (or,
            when header_end is not given, the headers are).

        Raises:
            HTTPParseError: See feed().
        """
        if header_end is None:
            pos = buffer.find(HEADER_TERMINATOR)
            if pos == -1:
                if len(buffer) >= self.max_request_size:
                    raise HTTPParseError(
                        f"Request headers exceed {self.max_request_size} bytes"
                    )
                return None
            header_end = pos + len(HEADER_TERMINATOR)

        head = buffer[:header_end]

        method, prefix_len = self._parse_method(head)
        path = self._parse_path(head, prefix_len - 1)
        session_id = self._parse_cookie(head)

        content_length = 0
        if method == "POST":
            content_length = self._parse_content_length(head)

            if header_end + content_length > self.max_request_size:
                raise HTTPParseError(
                    f"Request body of {content_length} bytes does not fit in "
                    f"{self.max_request_size}-byte buffer"
                )

            if len(buffer) < header_end + content_length:
                return None  # Body still arriving

        return ParsedRequest(
            method=method,
            path=path,
            session_id=session_id,
            content_length=content_length,
            header_end=header_end,
            raw=bytes(buffer[:header_end + content_length]),
        )

    # =========================================================================
    # FIELD EXTRACTION
    # =========================================================================

    def _parse_method(self, head: bytes) -> tuple[str, int]:
        """Match the literal method prefix. Returns (method, prefix length)."""
        for prefix, method in METHOD_PREFIXES:
            if head.startswith(prefix):
                return method, len(prefix)
        raise HTTPParseError(f"Unsupported request line: {head[:16]!r}")

    def _parse_path(self, head: bytes, start: int) -> str:
        """
        Extract the request target starting at the leading '/'.

        The target ends at the first space or carriage return. A query
        string is not part of the resource name and is dropped.
        """
        end = len(head)
        for delimiter in (b" ", b"\r"):
            found = head.find(delimiter, start)
            if found != -1:
                end = min(end, found)

        target = head[start:end]
        target = target.split(b"?", 1)[0]

        # os.fsdecode keeps undecodable bytes reversible for open()
        return os.fsdecode(target)

    def _parse_cookie(self, head: bytes) -> Optional[str]:
        """
        Find "Cookie: id=" and return everything up to the next \\r.

        The value is not checked here. A GET only logs it; a POST names a
        session file with it, and the session store validates it there.
        The header block always ends in \\r\\n\\r\\n, so the \\r is always found.
        """
        marker = head.find(COOKIE_MARKER)
        if marker == -1:
            return None

        start = marker + len(COOKIE_MARKER)
        end = head.find(b"\r", start)
        return head[start:end].decode("latin-1")

    def _parse_content_length(self, head: bytes) -> int:
        """
        Parse the decimal value following "Content-Length: ".

        Raises:
            HTTPParseError: Header missing, or value not a non-negative
                            decimal integer.
        """
        marker = head.find(CONTENT_LENGTH_MARKER)
        if marker == -1:
            raise HTTPParseError("POST without Content-Length")

        start = marker + len(CONTENT_LENGTH_MARKER)
        end = head.find(b"\r", start)
        value = head[start:end if end != -1 else len(head)].strip()

        if not value.isdigit():
            raise HTTPParseError(f"Invalid Content-Length: {value!r}")

        return int(value)

