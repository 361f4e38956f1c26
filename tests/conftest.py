"""
pytest configuration and fixtures.
"""

import socket
import threading
from pathlib import Path
from typing import Callable, Generator, Tuple

import pytest

from cookieserver import CookieServer, ServerConfig
from cookieserver.core.connection import Connection


INDEX_HTML = b"<html><body>Hello from the index</body></html>\n"
STYLE_CSS = b"body { color: #333; }\n"


@pytest.fixture
def document_root(tmp_path: Path) -> Path:
    """Document root with an index page, a stylesheet and a nested file."""
    root = tmp_path / "public"
    root.mkdir()
    (root / "index.html").write_bytes(INDEX_HTML)
    (root / "style.css").write_bytes(STYLE_CSS)
    (root / "docs").mkdir()
    (root / "docs" / "notes.txt").write_bytes(b"nested notes\n")

    # Something worth protecting just outside the root
    (tmp_path / "secret.txt").write_bytes(b"top secret\n")
    return root


@pytest.fixture
def session_root(tmp_path: Path) -> Path:
    root = tmp_path / "cookies"
    root.mkdir()
    return root


@pytest.fixture
def config(document_root: Path, session_root: Path) -> ServerConfig:
    """Test server configuration."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        document_root=str(document_root),
        session_root=str(session_root),
        log_level="WARNING",
    )


@pytest.fixture
def sample_get_request() -> bytes:
    """GET for the root document, no cookie."""
    return b"GET / HTTP/1.1\r\nHost: x\r\n\r\n"


@pytest.fixture
def sample_post_request() -> bytes:
    """POST of "hello" for session 7."""
    return (
        b"POST /x HTTP/1.1\r\n"
        b"Content-Length: 5\r\n"
        b"Cookie: id=7\r\n"
        b"\r\n"
        b"hello"
    )


@pytest.fixture
def connection_pair() -> Generator[Callable[..., Tuple[Connection, socket.socket]], None, None]:
    """
    Factory for a Connection wired to a local peer socket.

    The test plays the client through the peer: whatever it sends shows up
    in conn.receive(), whatever the server writes can be read back.
    """
    peers = []

    def make(**kwargs) -> Tuple[Connection, socket.socket]:
        server_side, client_side = socket.socketpair()
        client_side.settimeout(2.0)
        conn = Connection(socket=server_side, address=("127.0.0.1", 40000), **kwargs)
        peers.append((conn, client_side))
        return conn, client_side

    yield make

    for conn, client_side in peers:
        client_side.close()
        if not conn.is_closed:
            conn.socket.close()


def read_all(sock: socket.socket) -> bytes:
    """Read until the other side closes."""
    chunks = []
    while True:
        chunk = sock.recv(4096)
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks)


def split_response(raw: bytes) -> Tuple[str, dict, bytes]:
    """Split a raw response into (status line, headers, body)."""
    head, _, body = raw.partition(b"\r\n\r\n")
    lines = head.decode("latin-1").split("\r\n")
    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(": ")
        headers[name] = value
    return lines[0], headers, body


@pytest.fixture
def read_response() -> Callable[[socket.socket], Tuple[str, dict, bytes]]:
    """Read a full response from a client socket and split it."""
    def read(sock: socket.socket) -> Tuple[str, dict, bytes]:
        return split_response(read_all(sock))
    return read


class ServerThread:
    """Runs a CookieServer in a background thread."""

    def __init__(self, server: CookieServer):
        self.server = server
        self._thread: threading.Thread = None
        self.error: BaseException = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def _run(self):
        try:
            self.server.run()
        except BaseException as e:
            self.error = e

    def start(self):
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()
        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)

    def exchange(self, raw: bytes) -> Tuple[str, dict, bytes]:
        """Send one raw request on a fresh connection and read the response."""
        with socket.create_connection(("127.0.0.1", self.port), timeout=5.0) as sock:
            sock.sendall(raw)
            return split_response(read_all(sock))


@pytest.fixture
def server_factory() -> Generator[Callable[[ServerConfig], ServerThread], None, None]:
    """Start servers on demand; every one started is stopped afterwards."""
    started = []

    def start(config: ServerConfig) -> ServerThread:
        server_thread = ServerThread(CookieServer(config))
        server_thread.start()
        started.append(server_thread)
        return server_thread

    yield start

    for server_thread in started:
        server_thread.stop()


@pytest.fixture
def running_server(server_factory, config: ServerConfig) -> ServerThread:
    """A live server on a free port."""
    return server_factory(config)
