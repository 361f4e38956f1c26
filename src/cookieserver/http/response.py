"""
=============================================================================
HTTP RESPONSE WRITER
=============================================================================

Serializes the handful of responses the server can send.

=============================================================================
RESPONSE ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  HTTP/1.1 200 OK\r\n                      ← status line             │
    │  Connection: close\r\n                    ← always                  │
    │  Content-Length: 1234\r\n                 ← file size in bytes      │
    │  Content-Type: text/html\r\n              ← from the file suffix    │
    │  Set-Cookie: id=3; Max-Age=86400\r\n      ← only for new sessions   │
    │  \r\n                                                               │
    │  <file bytes, sent in chunk_size pieces>                            │
    └─────────────────────────────────────────────────────────────────────┘

The two error responses have fixed bodies, byte for byte:

    HTTP/1.1 400 Bad Request\r\n          HTTP/1.1 404 Not Found\r\n
    Connection: close\r\n                 Connection: close\r\n
    Content-Length: 11\r\n                Content-Length: 9\r\n
    \r\n                                  \r\n
    Bad Request                           Not Found

Every response ends the connection; the caller removes it from the
registry right after.

=============================================================================
"""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Union

from ..core.connection import Connection
from .mime_types import get_content_type
from .status_codes import HTTPStatus


logger = logging.getLogger(__name__)


@dataclass
class HTTPResponse:
    """
    Status line, headers and an in-memory body.

    File responses do not go through this class's body: their header block
    is built here and the file follows in chunks (see ResponseWriter).
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """E.g. "HTTP/1.1 404 Not Found"."""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    def set_header(self, name: str, value: Union[str, int]) -> "HTTPResponse":
        """Set a response header. Returns self for chaining."""
        self.headers[name] = str(value)
        return self

    def head_bytes(self) -> bytes:
        """Status line and headers, terminated by the empty line."""
        lines = [self.status_line]
        for name, value in self.headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")
        return "\r\n".join(lines).encode("latin-1") + b"\r\n"

    def to_bytes(self) -> bytes:
        """Complete response, Content-Length filled in from the body."""
        self.headers.setdefault("Content-Length", str(len(self.body)))
        return self.head_bytes() + self.body


def error_response(status: HTTPStatus) -> HTTPResponse:
    """
    The fixed-body error response for a status.

    The body is the reason phrase itself ("Bad Request", "Not Found").
    """
    body = status.phrase.encode("latin-1")
    return HTTPResponse(
        status=status,
        headers={
            "Connection": "close",
            "Content-Length": str(len(body)),
        },
        body=body,
    )


BAD_REQUEST_BYTES = error_response(HTTPStatus.BAD_REQUEST).to_bytes()
NOT_FOUND_BYTES = error_response(HTTPStatus.NOT_FOUND).to_bytes()


class ResponseWriter:
    """
    Writes responses to a connection.

    Each method returns ``(status, body_bytes_sent)`` for the access log.
    A failed send is not an error here: the client is gone and the caller
    tears the connection down regardless.

    Args:
        chunk_size: Bytes read from disk and sent per chunk.
        cookie_max_age: Max-Age advertised with Set-Cookie.
    """

    def __init__(self, chunk_size: int = 1024, cookie_max_age: int = 86400):
        self.chunk_size = chunk_size
        self.cookie_max_age = cookie_max_age

    def send_bad_request(self, conn: Connection) -> tuple[HTTPStatus, int]:
        conn.send(BAD_REQUEST_BYTES)
        return HTTPStatus.BAD_REQUEST, len(HTTPStatus.BAD_REQUEST.phrase)

    def send_not_found(self, conn: Connection) -> tuple[HTTPStatus, int]:
        conn.send(NOT_FOUND_BYTES)
        return HTTPStatus.NOT_FOUND, len(HTTPStatus.NOT_FOUND.phrase)

    def send_error(self, conn: Connection, status: HTTPStatus) -> tuple[HTTPStatus, int]:
        """Send 404 for NOT_FOUND, 400 for anything else."""
        if status == HTTPStatus.NOT_FOUND:
            return self.send_not_found(conn)
        return self.send_bad_request(conn)

    def send_empty_ok(self, conn: Connection) -> tuple[HTTPStatus, int]:
        """200 with no body, the reply to a POST appended to an existing session."""
        response = HTTPResponse(
            status=HTTPStatus.OK,
            headers={
                "Connection": "close",
                "Content-Length": "0",
            },
        )
        conn.send(response.to_bytes())
        return HTTPStatus.OK, 0

    def file_head(self, path: Path, content_length: int, session_id: Optional[str] = None) -> HTTPResponse:
        """Build the header block for a 200 file response."""
        response = (HTTPResponse(status=HTTPStatus.OK)
            .set_header("Connection", "close")
            .set_header("Content-Length", content_length)
            .set_header("Content-Type", get_content_type(path)))

        if session_id is not None:
            response.set_header("Set-Cookie", f"id={session_id}; Max-Age={self.cookie_max_age}")

        return response

    def serve_file(
        self,
        conn: Connection,
        path: Path,
        session_id: Optional[str] = None,
    ) -> tuple[HTTPStatus, int]:
        """
        Send a file as a 200 response, or 404 if it cannot be opened.

        ┌─────────────────────────────────────────────────────────────────┐
        │   open(path, "rb")  ── fails ──► 404 Not Found                   │
        │        │                                                         │
        │   fstat → Content-Length                                         │
        │        │                                                         │
        │   send header block (+ Set-Cookie when session_id is given)      │
        │        │                                                         │
        │   while chunk := read(chunk_size): send(chunk)                   │
        └─────────────────────────────────────────────────────────────────┘

        Args:
            conn: Destination connection.
            path: File to send.
            session_id: When given, a Set-Cookie header carries it.
        """
        try:
            stream = open(path, "rb")
        except OSError as e:
            logger.debug(f"[{conn.id}] Cannot open {path}: {e}")
            return self.send_not_found(conn)

        with stream:
            try:
                content_length = os.fstat(stream.fileno()).st_size
            except OSError as e:
                logger.warning(f"[{conn.id}] Cannot stat {path}: {e}")
                return self.send_not_found(conn)

            head = self.file_head(path, content_length, session_id)
            if not conn.send(head.head_bytes()):
                return HTTPStatus.OK, 0

            sent = 0
            while True:
                chunk = stream.read(self.chunk_size)
                if not chunk:
                    break
                if not conn.send(chunk):
                    break
                sent += len(chunk)

        logger.debug(f"[{conn.id}] Served {path} ({sent}/{content_length} bytes)")
        return HTTPStatus.OK, sent
