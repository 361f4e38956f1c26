"""
=============================================================================
REQUEST DISPATCH
=============================================================================

What happens when the event loop finds a client socket readable.

=============================================================================
FLOW
=============================================================================

    on_readable(conn)
        │
        ├──► conn.receive()            0 bytes / OSError → silent teardown
        │
        ├──► parser.feed(conn)         HTTPParseError → 400/404, teardown
        │        │
        │        └── None → keep the connection, wait for more bytes
        │
        └──► dispatch(request)
                 │
                 ├── GET  + cookie     serve path, no Set-Cookie
                 ├── GET  - cookie     new session (empty file), then serve
                 │                     the path with Set-Cookie
                 ├── POST + cookie     append body to session → 200 empty
                 │                     (400 if the id cannot name a session
                 │                     file, 404 if the file is missing)
                 └── POST - cookie     new session, append body, serve the
                                       session file with Set-Cookie
                 │
                 └──► access log, teardown

GET with a cookie never reads the session, and POST without one answers
with the session's own content. Both are intentional: the cookie on a GET
only identifies the client in the logs.

=============================================================================
ERROR CONTAINMENT
=============================================================================

Nothing that goes wrong with one client may stop the loop. Transport
failures close the connection without a response, request problems get the
fixed 400/404 response, and anything unexpected is logged with a traceback
before the connection is torn down. Only FatalServerError (a broken
registry) is allowed to propagate.

=============================================================================
"""

import time
import logging
from typing import Optional

from ..core.connection import Connection, ConnectionState
from ..core.errors import FatalServerError
from ..core.registry import ConnectionRegistry
from ..http.request import HTTPParseError, ParsedRequest, RequestParser
from ..http.response import ResponseWriter
from ..http.status_codes import HTTPStatus
from ..log import log_access
from ..sessions import SessionError, SessionStore, is_valid_session_id
from .static import StaticResolver


logger = logging.getLogger(__name__)


class RequestDispatcher:
    """
    Handles readable client connections for the event loop.

    Args:
        registry: Registry the connections live in; every handled request
                  ends with registry.remove(conn).
        parser: Incremental request framer.
        store: Session store.
        resolver: Maps request paths to files under the document root.
        writer: Response writer.
        log_format: Access log format ("text" or "json").
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        parser: RequestParser,
        store: SessionStore,
        resolver: StaticResolver,
        writer: ResponseWriter,
        log_format: str = "text",
    ):
        self.registry = registry
        self.parser = parser
        self.store = store
        self.resolver = resolver
        self.writer = writer
        self.log_format = log_format

    def on_readable(self, conn: Connection) -> None:
        """Entry point called by the event loop for a readable connection."""
        try:
            self._on_readable(conn)
        except FatalServerError:
            raise
        except Exception as e:
            logger.exception(f"[{conn.id}] Connection error: {e}")
            if conn in self.registry:
                self._teardown(conn)

    def _on_readable(self, conn: Connection) -> None:
        # ─────────────────────────────────────────────────────────────────
        # READ
        # ─────────────────────────────────────────────────────────────────
        try:
            received = conn.receive()
        except OSError as e:
            logger.debug(f"[{conn.id}] recv failed: {e}")
            self._teardown(conn)
            return

        if received <= 0:
            logger.info(f"Unexpected disconnect from {conn.client_ip}")
            self._teardown(conn)
            return

        # ─────────────────────────────────────────────────────────────────
        # FRAME
        # ─────────────────────────────────────────────────────────────────
        started_at = time.time()
        try:
            request = self.parser.feed(conn)
        except HTTPParseError as e:
            logger.info(f"[{conn.id}] Rejected request from {conn.client_ip}: {e}")
            status, length = self.writer.send_error(conn, e.status_code)
            self._finish(conn, None, status, length, started_at)
            return

        if request is None:
            return  # Incomplete, wait for the next readable event

        # ─────────────────────────────────────────────────────────────────
        # DISPATCH
        # ─────────────────────────────────────────────────────────────────
        status, length, session_id = self.dispatch(conn, request)
        self._finish(conn, request, status, length, started_at, session_id)

    def dispatch(
        self,
        conn: Connection,
        request: ParsedRequest,
    ) -> tuple[HTTPStatus, int, Optional[str]]:
        """
        Act on a complete request and write the response.

        Returns:
            (status sent, body bytes sent, session id involved)
        """
        try:
            if request.method == "GET":
                return self._handle_get(conn, request)
            return self._handle_post(conn, request)
        except HTTPParseError as e:
            logger.info(f"[{conn.id}] {request.method} {request.path}: {e}")
            status, length = self.writer.send_error(conn, e.status_code)
            return status, length, request.session_id

    # =========================================================================
    # METHODS
    # =========================================================================

    def _handle_get(self, conn: Connection, request: ParsedRequest):
        if request.session_id is not None:
            logger.debug(f"[{conn.id}] GET {request.path} for session {request.session_id!r}")
            full_path = self.resolver.resolve(request.path)
            status, length = self.writer.serve_file(conn, full_path)
            return status, length, request.session_id

        session_id = self._new_session()
        try:
            full_path = self.resolver.resolve(request.path)
        except HTTPParseError as e:
            logger.info(f"[{conn.id}] GET {request.path}: {e}")
            status, length = self.writer.send_error(conn, e.status_code)
            return status, length, session_id

        status, length = self.writer.serve_file(conn, full_path, session_id=session_id)
        return status, length, session_id

    def _handle_post(self, conn: Connection, request: ParsedRequest):
        body = request.body
        logger.debug(f"[{conn.id}] POST {request.path} with {len(body)}-byte body")

        if request.session_id is not None:
            if not is_valid_session_id(request.session_id):
                raise HTTPParseError(f"Unusable session id: {request.session_id!r}")

            try:
                self.store.append(request.session_id, body)
            except SessionError as e:
                logger.warning(f"[{conn.id}] There is no session {request.session_id}: {e}")
                status, length = self.writer.send_not_found(conn)
                return status, length, request.session_id

            status, length = self.writer.send_empty_ok(conn)
            return status, length, request.session_id

        session_id = self._new_session()
        try:
            self.store.append(session_id, body)
        except SessionError as e:
            logger.error(f"[{conn.id}] Cannot store body for new session {session_id}: {e}")

        status, length = self.writer.serve_file(
            conn, self.store.path_for(session_id), session_id=session_id,
        )
        return status, length, session_id

    def _new_session(self) -> str:
        """Allocate an identifier and create its empty backing file."""
        session_id = self.store.allocate()
        try:
            self.store.create(session_id)
        except SessionError as e:
            logger.error(f"Cannot create session file for {session_id}: {e}")
        return session_id

    # =========================================================================
    # TEARDOWN
    # =========================================================================

    def _finish(
        self,
        conn: Connection,
        request: Optional[ParsedRequest],
        status: HTTPStatus,
        length: int,
        started_at: float,
        session_id: Optional[str] = None,
    ) -> None:
        conn.state = ConnectionState.DISPATCHED
        log_access(
            self.log_format,
            connection_id=conn.id,
            client_ip=conn.client_ip,
            method=request.method if request else "-",
            path=request.path if request else "-",
            status_code=status,
            content_length=length,
            started_at=started_at,
            session_id=session_id,
        )
        self._teardown(conn)

    def _teardown(self, conn: Connection) -> None:
        self.registry.remove(conn)
