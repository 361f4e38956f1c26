"""
=============================================================================
MIME TYPE DETECTION
=============================================================================

Maps a file suffix to the Content-Type sent with a served resource.

Anything not listed, and anything without a suffix at all (session files
are named by bare identifiers), is served as text/plain.

=============================================================================
"""

from pathlib import Path
from typing import Optional


DEFAULT_MIME_TYPE = "text/plain"

MIME_TYPES = {
    # Text
    ".css": "text/css",
    ".csv": "text/csv",
    ".htm": "text/html",
    ".html": "text/html",
    ".txt": "text/plain",

    # Scripts and data
    ".js": "application/javascript",
    ".json": "application/json",
    ".pdf": "application/pdf",

    # Images
    ".gif": "image/gif",
    ".ico": "image/x-icon",
    ".jpeg": "image/jpeg",
    ".jpg": "image/jpeg",
    ".png": "image/png",
    ".svg": "image/svg+xml",
}


def get_content_type(path: str | Path, default: Optional[str] = None) -> str:
    """
    Get the MIME type for a file path based on its last suffix.

    Matching is exact on the suffix as written (".HTML" is not ".html"),
    the same way the suffix appears in the request path.

    Examples:
        >>> get_content_type("style.css")
        'text/css'

        >>> get_content_type("cookies/7")
        'text/plain'

        >>> get_content_type("archive.tar.gz")
        'text/plain'
    """
    if isinstance(path, str):
        path = Path(path)

    return MIME_TYPES.get(path.suffix, default or DEFAULT_MIME_TYPE)
