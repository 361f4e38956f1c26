"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The server only ever answers with three statuses:

    ┌──────┬─────────────┬──────────────────────────────────────────────┐
    │ Code │ Phrase      │ When                                         │
    ├──────┼─────────────┼──────────────────────────────────────────────┤
    │ 200  │ OK          │ Resource served, or POST appended to session │
    │ 400  │ Bad Request │ Framing error, unknown method, path too long │
    │ 404  │ Not Found   │ Missing file, '..' in path, unknown session  │
    └──────┴─────────────┴──────────────────────────────────────────────┘

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes used by the server.

    IntEnum, so members compare equal to plain integers:

        >>> HTTPStatus.NOT_FOUND == 404
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'Not Found'
    """

    OK = 200
    BAD_REQUEST = 400
    NOT_FOUND = 404

    @property
    def phrase(self) -> str:
        """Reason phrase used in the status line (e.g. "Not Found")."""
        return _STATUS_PHRASES[self]

    @property
    def is_success(self) -> bool:
        return 200 <= self < 300

    @property
    def is_client_error(self) -> bool:
        return 400 <= self < 500


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.NOT_FOUND: "Not Found",
}
