"""
=============================================================================
LOGGING
=============================================================================

Logging setup and the per-request access log.

Every module logs through its own namespaced logger
(``logging.getLogger(__name__)``), so everything lives under the
``cookieserver`` hierarchy and can be tuned in one place:

    logging.getLogger("cookieserver").setLevel(logging.DEBUG)
    logging.getLogger("cookieserver.access").addHandler(file_handler)

=============================================================================
ACCESS LOG FORMATS
=============================================================================

    TEXT (default):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ 127.0.0.1 - 3 [10/Jun/2026:10:55:36 +0000] "GET /" 200 1234 0.52ms │
    │ ───────────────────────────────────────────────────────────────────│
    │ IP      Session  Timestamp         Method/Path Status Size Duration │
    └─────────────────────────────────────────────────────────────────────┘

    JSON:
    ┌─────────────────────────────────────────────────────────────────────┐
    │ {"connection_id": "a1b2c3d4", "method": "GET", "path": "/",         │
    │  "client_ip": "127.0.0.1", "session_id": "3", "status_code": 200,   │
    │  "content_length": 1234, "duration_ms": 0.52, "timestamp": "..."}  │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import json
import time
import logging
from dataclasses import dataclass
from typing import Optional

from .config import ServerConfig


access_logger = logging.getLogger("cookieserver.access")


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on config."""
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    logging.getLogger("cookieserver").setLevel(level)


@dataclass
class AccessRecord:
    """
    Structured access log entry for one dispatched request.

    session_id is "-" when the request neither carried nor received a
    session identifier (framing errors rejected before cookie extraction).
    """

    connection_id: str
    method: str
    path: str
    client_ip: str
    session_id: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "connection_id": self.connection_id,
            "method": self.method,
            "path": self.path,
            "client_ip": self.client_ip,
            "session_id": self.session_id,
            "status_code": self.status_code,
            "content_length": self.content_length,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp,
        }

    def to_text(self) -> str:
        return (
            f'{self.client_ip} - {self.session_id} [{self.timestamp}] '
            f'"{self.method} {self.path}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms'
        )


def log_access(
    log_format: str,
    connection_id: str,
    client_ip: str,
    method: str,
    path: str,
    status_code: int,
    content_length: int,
    started_at: float,
    session_id: Optional[str] = None,
) -> AccessRecord:
    """
    Emit one access log line and return the record that was logged.

    Args:
        log_format: "text" or "json".
        started_at: time.time() taken when the request became complete.
    """
    record = AccessRecord(
        connection_id=connection_id,
        method=method,
        path=path,
        client_ip=client_ip,
        session_id=session_id if session_id is not None else "-",
        status_code=int(status_code),
        content_length=content_length,
        duration_ms=(time.time() - started_at) * 1000,
        timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
    )

    if log_format == "json":
        access_logger.info(json.dumps(record.to_dict()))
    else:
        access_logger.info(record.to_text())

    return record
