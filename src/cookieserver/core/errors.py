"""
Infrastructure errors.

These are the failures the event loop cannot recover from: if the server
can no longer find out which sockets are ready, accept new clients, or trust
its own bookkeeping of open connections, it stops. Everything that goes
wrong with a single client connection is handled where it happens and never
reaches this level.
"""


class FatalServerError(Exception):
    """
    Raised when the event loop itself cannot make further progress.

    Examples: the readiness wait (select) failed, accept() failed.
    The server logs it at CRITICAL and the process exits with status 1.
    """


class RegistryError(FatalServerError):
    """
    The connection registry was used inconsistently.

    Removing a connection twice or adding one that is already registered is a
    programming error, surfaced as a hard failure rather than ignored.
    """
