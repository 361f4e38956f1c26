"""
=============================================================================
STATIC RESOURCE RESOLUTION
=============================================================================

Turns a request path into a file under the document root.

=============================================================================
RULES (applied in this order)
=============================================================================

    1. "/"                       → index document ("/index.html")
    2. longer than 100 bytes     → 400 Bad Request (no file access at all)
    3. contains ".."             → 404 Not Found
    4. otherwise                 → document_root / path

=============================================================================
PATH TRAVERSAL
=============================================================================

An attacker tries to escape the document root:

    GET /../../../etc/passwd HTTP/1.1

Any path containing ".." is refused outright, before the filesystem is
touched, even if the name would resolve back inside the root or simply
contains two dots in a file name. Paths are never normalized.

Whether the resulting file exists is not checked here; the response writer
answers 404 when it cannot be opened.

=============================================================================
"""

import os
import logging
from pathlib import Path

from ..http.request import HTTPParseError
from ..http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)


class StaticResolver:
    """
    Maps request paths to files inside ``document_root``.

    Args:
        document_root: Directory static files are served from.
        index_document: Path substituted for "/".
        max_path_length: Longest accepted path, in bytes.
    """

    def __init__(
        self,
        document_root: str | Path,
        index_document: str = "/index.html",
        max_path_length: int = 100,
    ):
        self.document_root = Path(document_root)
        self.index_document = index_document
        self.max_path_length = max_path_length

    def resolve(self, path: str) -> Path:
        """
        Resolve a request path.

        Returns:
            Filesystem path of the requested resource (may not exist).

        Raises:
            HTTPParseError: 400 for over-long paths, 404 for paths
                            containing "..".
        """
        if path == "/":
            path = self.index_document

        if len(os.fsencode(path)) > self.max_path_length:
            raise HTTPParseError(
                f"Path longer than {self.max_path_length} bytes",
                HTTPStatus.BAD_REQUEST,
            )

        if ".." in path:
            logger.warning(f"Path traversal attempt: {path}")
            raise HTTPParseError(f"Path contains '..': {path}", HTTPStatus.NOT_FOUND)

        return self.document_root / path.lstrip("/")
