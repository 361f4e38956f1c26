"""
=============================================================================
COOKIESERVER - Single-Threaded HTTP Server With Cookie Sessions
=============================================================================

A small HTTP/1.1 server built on raw sockets and one readiness loop:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   1. EVENT LOOP                                                     │
    │      - select() over the listener and every open client             │
    │      - one thread, no worker pool, no timeouts                      │
    │                                                                      │
    │   2. INCREMENTAL FRAMING                                            │
    │      - bytes buffered per connection (2048-byte cap)                │
    │      - \r\n\r\n ends the headers, Content-Length ends a POST body   │
    │                                                                      │
    │   3. STATIC FILES                                                   │
    │      - "/" → /index.html, 100-byte path limit, ".." refused         │
    │                                                                      │
    │   4. COOKIE SESSIONS                                                │
    │      - "Cookie: id=N" names a file under the session root           │
    │      - requests without a cookie get a fresh id via Set-Cookie      │
    │      - POST bodies are appended to the session file                 │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
QUICK START
=============================================================================

    from cookieserver import CookieServer, ServerConfig

    server = CookieServer(ServerConfig(port=8080, document_root="public"))
    server.run()

Or from the command line:

    python -m cookieserver --port 8080 --document-root public

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    cookieserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point
    ├── config.py            # ServerConfig
    ├── log.py               # Logging setup and access log
    ├── server.py            # CookieServer - wires everything together
    ├── sessions.py          # SessionStore
    ├── core/
    │   ├── connection.py    # Per-client socket + buffer
    │   ├── registry.py      # Open connections
    │   ├── event_loop.py    # select() loop
    │   ├── socket_server.py # Listener bootstrap and signals
    │   └── errors.py        # Fatal infrastructure errors
    ├── http/
    │   ├── request.py       # Framing and parsing
    │   ├── response.py      # Response writer
    │   ├── status_codes.py  # 200 / 400 / 404
    │   └── mime_types.py    # Suffix → Content-Type
    └── handlers/
        ├── static.py        # Request path → file
        └── dispatch.py      # GET/POST session semantics

=============================================================================
"""

__version__ = "1.0.0"

from .server import CookieServer
from .config import ServerConfig
from .sessions import SessionStore, SessionError
from .core.errors import FatalServerError, RegistryError

__all__ = [
    "CookieServer",
    "ServerConfig",
    "SessionStore",
    "SessionError",
    "FatalServerError",
    "RegistryError",
    "__version__",
]
