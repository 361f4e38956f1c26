"""
The HTTP subset the server speaks.

- request:      incremental framing and parsing (GET / and POST / only)
- response:     status line, headers, fixed error bodies, chunked file send
- status_codes: 200, 400, 404
- mime_types:   file suffix → Content-Type
"""

from .request import HTTPParseError, ParsedRequest, RequestParser
from .response import HTTPResponse, ResponseWriter, error_response
from .status_codes import HTTPStatus
from .mime_types import get_content_type

__all__ = [
    "HTTPParseError",
    "ParsedRequest",
    "RequestParser",
    "HTTPResponse",
    "ResponseWriter",
    "error_response",
    "HTTPStatus",
    "get_content_type",
]
