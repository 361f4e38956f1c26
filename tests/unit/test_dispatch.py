"""
Unit tests for request dispatch and session semantics.
"""

import logging

import pytest

from cookieserver.core.errors import FatalServerError, RegistryError
from cookieserver.core.registry import ConnectionRegistry
from cookieserver.handlers.dispatch import RequestDispatcher
from cookieserver.handlers.static import StaticResolver
from cookieserver.http.request import RequestParser
from cookieserver.http.response import ResponseWriter
from cookieserver.sessions import SessionStore


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def store(session_root):
    return SessionStore(session_root)


@pytest.fixture
def dispatcher(registry, store, document_root):
    return RequestDispatcher(
        registry,
        RequestParser(),
        store,
        StaticResolver(document_root),
        ResponseWriter(),
    )


@pytest.fixture
def exchange(connection_pair, registry, dispatcher, read_response):
    """Deliver raw bytes to a registered connection and return the response."""
    def run(raw: bytes):
        conn, peer = connection_pair()
        registry.add(conn)
        peer.sendall(raw)
        dispatcher.on_readable(conn)
        assert conn not in registry
        return read_response(peer)
    return run


class TestGet:
    """Tests for GET handling."""

    def test_get_root_without_cookie(self, exchange, document_root, session_root):
        """Test that a first visit gets the index and a new session."""
        status_line, headers, body = exchange(b"GET / HTTP/1.1\r\nHost: x\r\n\r\n")

        index = (document_root / "index.html").read_bytes()
        assert status_line == "HTTP/1.1 200 OK"
        assert headers["Connection"] == "close"
        assert headers["Content-Type"] == "text/html"
        assert headers["Content-Length"] == str(len(index))
        assert headers["Set-Cookie"] == "id=0; Max-Age=86400"
        assert body == index
        assert (session_root / "0").read_bytes() == b""

    def test_session_ids_increase(self, exchange):
        """Test that consecutive cookieless requests get new ids."""
        cookies = [
            exchange(b"GET /style.css HTTP/1.1\r\n\r\n")[1]["Set-Cookie"]
            for _ in range(3)
        ]

        assert cookies == [
            "id=0; Max-Age=86400",
            "id=1; Max-Age=86400",
            "id=2; Max-Age=86400",
        ]

    def test_get_with_cookie(self, exchange, session_root):
        """Test that a returning client gets the file and no new session."""
        status_line, headers, body = exchange(
            b"GET /style.css HTTP/1.1\r\nCookie: id=5\r\n\r\n"
        )

        assert status_line == "HTTP/1.1 200 OK"
        assert "Set-Cookie" not in headers
        assert headers["Content-Type"] == "text/css"
        assert list(session_root.iterdir()) == []

    def test_get_missing_file(self, exchange):
        """Test that a missing resource is 404."""
        status_line, _, body = exchange(b"GET /nope.html HTTP/1.1\r\nCookie: id=1\r\n\r\n")

        assert status_line == "HTTP/1.1 404 Not Found"
        assert body == b"Not Found"

    def test_traversal_is_not_found(self, exchange, session_root):
        """Test that ".." paths are 404 even for a first visit."""
        status_line, headers, body = exchange(b"GET /../secret.txt HTTP/1.1\r\n\r\n")

        assert status_line == "HTTP/1.1 404 Not Found"
        assert body == b"Not Found"
        assert "Set-Cookie" not in headers

    def test_rejected_path_still_allocates(self, exchange, store, session_root):
        """Test that every cookieless GET consumes a session id."""
        exchange(b"GET /../secret.txt HTTP/1.1\r\n\r\n")
        exchange(b"GET /" + b"a" * 120 + b" HTTP/1.1\r\n\r\n")

        assert store.next_id == 2
        assert sorted(p.name for p in session_root.iterdir()) == ["0", "1"]

    @pytest.mark.parametrize("value", [b"", b"..", b"a/b", b"../etc", b"a\\b"])
    def test_get_ignores_cookie_value(self, exchange, session_root, value):
        """Test that a GET cookie is only logged, whatever it contains."""
        status_line, headers, body = exchange(
            b"GET /style.css HTTP/1.1\r\nCookie: id=" + value + b"\r\n\r\n"
        )

        assert status_line == "HTTP/1.1 200 OK"
        assert "Set-Cookie" not in headers
        assert body == b"body { color: #333; }\n"
        assert list(session_root.iterdir()) == []

    def test_traversal_with_odd_cookie(self, exchange):
        """Test that traversal stays 404 when the cookie is "..", too."""
        status_line, _, _ = exchange(
            b"GET /../secret.txt HTTP/1.1\r\nCookie: id=..\r\n\r\n"
        )

        assert status_line == "HTTP/1.1 404 Not Found"

    def test_overlong_path_is_bad_request(self, exchange):
        """Test that a path over 100 bytes is 400."""
        raw = b"GET /" + b"a" * 120 + b" HTTP/1.1\r\n\r\n"

        status_line, _, body = exchange(raw)

        assert status_line == "HTTP/1.1 400 Bad Request"
        assert body == b"Bad Request"


class TestPost:
    """Tests for POST handling."""

    def test_post_appends_to_existing_session(self, exchange, session_root, sample_post_request):
        """Test that a POST body lands in the session file."""
        (session_root / "7").write_bytes(b"")

        status_line, headers, body = exchange(sample_post_request)

        assert status_line == "HTTP/1.1 200 OK"
        assert headers["Content-Length"] == "0"
        assert body == b""
        assert (session_root / "7").read_bytes() == b"hello"

    def test_posts_accumulate(self, exchange, session_root, sample_post_request):
        """Test that repeated POSTs append in arrival order."""
        (session_root / "7").write_bytes(b"")

        exchange(sample_post_request)
        exchange(sample_post_request)

        assert (session_root / "7").read_bytes() == b"hellohello"

    def test_post_to_unknown_session(self, exchange, session_root, sample_post_request):
        """Test that a missing session file is 404, not created."""
        status_line, _, _ = exchange(sample_post_request)

        assert status_line == "HTTP/1.1 404 Not Found"
        assert not (session_root / "7").exists()

    @pytest.mark.parametrize("value", [b"", b"..", b"../secret.txt", b"a/b", b"a\\b"])
    def test_post_with_unusable_session_id(self, exchange, tmp_path, value):
        """Test that a POST cookie that cannot name a session file is 400."""
        before = (tmp_path / "secret.txt").read_bytes()

        status_line, _, body = exchange(
            b"POST / HTTP/1.1\r\nCookie: id=" + value + b"\r\n"
            b"Content-Length: 4\r\n\r\nevil"
        )

        assert status_line == "HTTP/1.1 400 Bad Request"
        assert body == b"Bad Request"
        assert (tmp_path / "secret.txt").read_bytes() == before

    def test_post_without_cookie(self, exchange, session_root):
        """Test that a cookieless POST starts a session holding the body."""
        status_line, headers, body = exchange(
            b"POST /form HTTP/1.1\r\nContent-Length: 4\r\n\r\nnote"
        )

        assert status_line == "HTTP/1.1 200 OK"
        assert headers["Set-Cookie"] == "id=0; Max-Age=86400"
        assert headers["Content-Type"] == "text/plain"
        assert body == b"note"
        assert (session_root / "0").read_bytes() == b"note"

    def test_post_without_content_length(self, exchange):
        """Test that POST requires Content-Length."""
        status_line, _, _ = exchange(b"POST / HTTP/1.1\r\n\r\n")

        assert status_line == "HTTP/1.1 400 Bad Request"


class TestConnectionHandling:
    """Tests for framing, teardown and error containment."""

    def test_unsupported_method(self, exchange):
        """Test that other methods are 400."""
        status_line, _, body = exchange(b"HEAD / HTTP/1.1\r\n\r\n")

        assert status_line == "HTTP/1.1 400 Bad Request"
        assert body == b"Bad Request"

    def test_partial_request_stays_open(self, connection_pair, registry, dispatcher):
        """Test that an incomplete request keeps its connection."""
        conn, peer = connection_pair()
        registry.add(conn)

        peer.sendall(b"GET / HTTP/1.1\r\nHo")
        dispatcher.on_readable(conn)

        assert conn in registry
        assert not conn.is_closed

    def test_request_over_two_reads(self, connection_pair, registry, dispatcher, read_response):
        """Test that a request is dispatched once it is complete."""
        conn, peer = connection_pair()
        registry.add(conn)

        peer.sendall(b"GET /style.css HTTP/1.1\r\nCookie: id=1\r")
        dispatcher.on_readable(conn)
        peer.sendall(b"\n\r\n")
        dispatcher.on_readable(conn)

        assert conn not in registry
        status_line, _, _ = read_response(peer)
        assert status_line == "HTTP/1.1 200 OK"

    def test_disconnect_removes_connection(self, connection_pair, registry, dispatcher):
        """Test that a peer closing mid-request is torn down silently."""
        conn, peer = connection_pair()
        registry.add(conn)
        peer.sendall(b"GET / HTTP")
        dispatcher.on_readable(conn)

        peer.close()
        dispatcher.on_readable(conn)

        assert conn not in registry
        assert conn.is_closed

    def test_unexpected_error_is_contained(self, connection_pair, registry, dispatcher, monkeypatch):
        """Test that a handler bug closes only the offending connection."""
        def boom(path):
            raise RuntimeError("boom")

        monkeypatch.setattr(dispatcher.resolver, "resolve", boom)
        conn, peer = connection_pair()
        registry.add(conn)
        peer.sendall(b"GET / HTTP/1.1\r\n\r\n")

        dispatcher.on_readable(conn)

        assert conn not in registry

    def test_fatal_error_propagates(self, connection_pair, registry, dispatcher, monkeypatch):
        """Test that registry misuse is not swallowed."""
        def broken(path):
            raise FatalServerError("registry corrupted")

        monkeypatch.setattr(dispatcher.resolver, "resolve", broken)
        conn, peer = connection_pair()
        registry.add(conn)
        peer.sendall(b"GET / HTTP/1.1\r\n\r\n")

        with pytest.raises(FatalServerError):
            dispatcher.on_readable(conn)

    def test_finishing_unregistered_connection_is_fatal(self, connection_pair, dispatcher):
        """Test that removing a connection the registry never held is a hard failure."""
        conn, peer = connection_pair()
        peer.sendall(b"GET /style.css HTTP/1.1\r\nCookie: id=1\r\n\r\n")

        with pytest.raises(RegistryError):
            dispatcher.on_readable(conn)

    def test_second_teardown_is_fatal(self, connection_pair, registry, dispatcher):
        """Test that a connection torn down twice is not silently ignored."""
        conn, peer = connection_pair()
        registry.add(conn)
        peer.close()

        dispatcher.on_readable(conn)
        assert conn not in registry

        with pytest.raises(RegistryError):
            dispatcher.on_readable(conn)

    def test_access_log(self, exchange, caplog):
        """Test that each response produces one access log line."""
        with caplog.at_level(logging.INFO, logger="cookieserver.access"):
            exchange(b"GET /style.css HTTP/1.1\r\nCookie: id=4\r\n\r\n")

        records = [r for r in caplog.records if r.name == "cookieserver.access"]
        assert len(records) == 1
        assert '"GET /style.css" 200' in records[0].getMessage()
        assert records[0].getMessage().startswith("127.0.0.1 - 4 ")
