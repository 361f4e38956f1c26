"""
=============================================================================
SESSION STORE
=============================================================================

File-backed sessions keyed by the value of the "id" cookie.

    session_root/
    ├── 0        ← one file per session, named exactly by its identifier
    ├── 1
    └── 2

=============================================================================
IDENTIFIERS
=============================================================================

Identifiers are decimal strings from a counter that starts at 0 and only
goes up. They are not padded or bounded. The counter lives in memory, so a
restarted server hands out "0" again and may collide with a session file
from an earlier run. ``resume()`` avoids that by continuing after the
highest numeric file already present; it is opt-in.

=============================================================================
ORDERING
=============================================================================

All store operations run synchronously on the event loop's thread, so
writes to one session land in the order requests arrived. There is no
locking and no expiry: the Max-Age in Set-Cookie is only a hint to the
client.

=============================================================================
"""

import os
import logging
from pathlib import Path
from typing import BinaryIO


logger = logging.getLogger(__name__)


CREATE = "create"
APPEND = "append"


class SessionError(Exception):
    """
    A session's backing file could not be opened or written.

    Attributes:
        session_id: The identifier involved.
    """

    def __init__(self, message: str, session_id: str):
        super().__init__(message)
        self.session_id = session_id


def is_valid_session_id(session_id: str) -> bool:
    """
    Check that a session id can name a file directly inside the session root.

    Rejects empty ids and anything that could reach another directory.
    """
    if not session_id:
        return False
    if "/" in session_id or "\\" in session_id or "\x00" in session_id:
        return False
    if ".." in session_id:
        return False
    return True


class SessionStore:
    """
    Allocates session identifiers and opens their backing files.

    Usage:
        store = SessionStore("cookies")
        store.ensure_root()

        sid = store.allocate()           # "0"
        store.create(sid)                # empty cookies/0
        store.append(sid, b"hello")      # cookies/0 == b"hello"
    """

    def __init__(self, root: str | Path, start_at: int = 0):
        self.root = Path(root)
        self._next_id = start_at

    @property
    def next_id(self) -> int:
        """The number the next allocate() call will hand out."""
        return self._next_id

    def ensure_root(self) -> None:
        """Create the session directory if it does not exist yet."""
        self.root.mkdir(parents=True, exist_ok=True)

    def resume(self) -> int:
        """
        Continue numbering after the highest decimal-named session file.

        Returns:
            The next identifier that will be allocated.
        """
        highest = -1
        if self.root.is_dir():
            for entry in self.root.iterdir():
                if entry.name.isdigit() and entry.is_file():
                    highest = max(highest, int(entry.name))

        self._next_id = max(self._next_id, highest + 1)
        logger.info(f"Session numbering resumes at {self._next_id}")
        return self._next_id

    def allocate(self) -> str:
        """Hand out a new, never-before-allocated identifier."""
        session_id = str(self._next_id)
        self._next_id += 1
        return session_id

    def path_for(self, session_id: str) -> Path:
        """Location of a session's backing file."""
        if not is_valid_session_id(session_id):
            raise SessionError(f"Invalid session id: {session_id!r}", session_id)
        return self.root / session_id

    def exists(self, session_id: str) -> bool:
        try:
            return self.path_for(session_id).is_file()
        except SessionError:
            return False

    def open(self, session_id: str, mode: str) -> BinaryIO:
        """
        Open a session's backing file.

        Args:
            session_id: The session identifier.
            mode: CREATE truncates or creates the file for writing.
                  APPEND opens an existing file for appending; a missing
                  file is an error, not an implicit create.

        Returns:
            A binary file object the caller must close.

        Raises:
            SessionError: The file could not be opened.
            ValueError: Unknown mode.
        """
        path = self.path_for(session_id)

        try:
            if mode == CREATE:
                stream = open(path, "wb")
            elif mode == APPEND:
                fd = os.open(path, os.O_WRONLY | os.O_APPEND)
                stream = os.fdopen(fd, "ab")
            else:
                raise ValueError(f"Unknown session open mode: {mode!r}")
        except OSError as e:
            logger.warning(f"Cannot open session file {path} ({mode}): {e}")
            raise SessionError(f"Session {session_id} cannot be opened: {e}", session_id) from e

        logger.debug(f"Opened session file {path} ({mode})")
        return stream

    def create(self, session_id: str) -> None:
        """Create (or truncate) the backing file for a session."""
        with self.open(session_id, CREATE):
            pass
        logger.info(f"Created session file {self.path_for(session_id)}")

    def append(self, session_id: str, data: bytes) -> None:
        """
        Append bytes to an existing session.

        Raises:
            SessionError: The session does not exist or the write failed.
        """
        stream = self.open(session_id, APPEND)
        try:
            with stream:
                stream.write(data)
        except OSError as e:
            raise SessionError(f"Session {session_id} write failed: {e}", session_id) from e

        logger.debug(f"Appended {len(data)} bytes to session {session_id}")

    def read(self, session_id: str) -> bytes:
        """
        Return the full content of a session.

        Raises:
            SessionError: The session does not exist.
        """
        path = self.path_for(session_id)
        try:
            return path.read_bytes()
        except OSError as e:
            raise SessionError(f"Session {session_id} cannot be read: {e}", session_id) from e
