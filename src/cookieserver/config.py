"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the cookie server.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m cookieserver --port 3000                        │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── COOKIESERVER_PORT=3000 python -m cookieserver             │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Several of the defaults below are not tuning knobs but protocol contracts:
the 2048-byte request buffer, the 100-byte path limit and the one-day cookie
lifetime are observable by clients and should only be changed deliberately.

=============================================================================
"""

import os
from dataclasses import dataclass


LOG_FORMATS = ("text", "json")


@dataclass
class ServerConfig:
    """
    Configuration for the cookie server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, recv_size

    HTTP SETTINGS
    - max_request_size, max_path_length, index_document, chunk_size

    FILESYSTEM
    - document_root, session_root

    SESSIONS
    - cookie_max_age, resume_session_ids

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """The IP address to bind to."""

    port: int = 8080
    """
    The port number to listen on.
    0 lets the OS pick a free port (handy in tests).
    """

    backlog: int = 10
    """Maximum number of connections queued by the kernel before accept()."""

    recv_size: int = 1024
    """
    Bytes requested from recv() per readable event.
    Always capped by the space left in the connection buffer.
    """

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    max_request_size: int = 2048
    """
    Capacity of a connection's request buffer in bytes.
    Headers (and a POST body) must fit, otherwise the client gets 400.
    """

    max_path_length: int = 100
    """Request paths longer than this are rejected with 400."""

    index_document: str = "/index.html"
    """Document served for the root path '/'."""

    chunk_size: int = 1024
    """Size of each chunk read from disk and sent while serving a file."""

    # ─────────────────────────────────────────────────────────────────────
    # FILESYSTEM
    # ─────────────────────────────────────────────────────────────────────

    document_root: str = "public"
    """Directory static resources are served from."""

    session_root: str = "cookies"
    """
    Directory holding one backing file per session identifier.
    May be the same directory as document_root.
    """

    # ─────────────────────────────────────────────────────────────────────
    # SESSIONS
    # ─────────────────────────────────────────────────────────────────────

    cookie_max_age: int = 86400
    """Max-Age advertised in Set-Cookie. Advisory only, never enforced."""

    resume_session_ids: bool = False
    """
    Seed the identifier counter from existing session files at startup.
    False keeps numbering restarting at 0 on every run.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    log_format: str = "text"
    """Access log format: 'text' or 'json'."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        COOKIESERVER_HOST           Server host (default: 127.0.0.1)
        COOKIESERVER_PORT           Server port (default: 8080)
        COOKIESERVER_DOCUMENT_ROOT  Static files directory (default: public)
        COOKIESERVER_SESSION_ROOT   Session files directory (default: cookies)
        COOKIESERVER_RESUME_IDS     "1"/"true" to resume numbering
        COOKIESERVER_LOG_LEVEL      Logging level (default: INFO)
        COOKIESERVER_LOG_FORMAT     text or json (default: text)

        =====================================================================
        """
        return cls(
            host=os.getenv("COOKIESERVER_HOST", "127.0.0.1"),
            port=int(os.getenv("COOKIESERVER_PORT", "8080")),
            document_root=os.getenv("COOKIESERVER_DOCUMENT_ROOT", "public"),
            session_root=os.getenv("COOKIESERVER_SESSION_ROOT", "cookies"),
            resume_session_ids=os.getenv("COOKIESERVER_RESUME_IDS", "").lower() in ("1", "true", "yes"),
            log_level=os.getenv("COOKIESERVER_LOG_LEVEL", "INFO"),
            log_format=os.getenv("COOKIESERVER_LOG_FORMAT", "text"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called once at startup so a bad value fails immediately instead of
        surfacing on the first request.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.max_request_size < 16:
            raise ValueError("max_request_size must be >= 16")

        if self.recv_size < 1:
            raise ValueError("recv_size must be >= 1")

        if self.chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")

        if self.max_path_length < 1:
            raise ValueError("max_path_length must be >= 1")

        if not self.index_document.startswith("/"):
            raise ValueError(f"index_document must start with '/': {self.index_document}")

        if self.cookie_max_age < 0:
            raise ValueError("cookie_max_age must be >= 0")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {LOG_FORMATS}, got {self.log_format!r}")
