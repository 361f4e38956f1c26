"""
=============================================================================
COOKIE SERVER CLI ENTRY POINT
=============================================================================

    # Run with defaults (127.0.0.1:8080, ./public, ./cookies)
    python -m cookieserver

    # Custom port and directories
    python -m cookieserver --port 3000 --document-root site --session-root data

    # Serve static files and sessions from one directory
    python -m cookieserver --document-root cookies --session-root cookies

    # Keep numbering sessions after the ones already on disk
    python -m cookieserver --resume-session-ids

Configuration precedence: command line, then COOKIESERVER_* environment
variables, then the ServerConfig defaults.

=============================================================================
"""

import argparse
import sys

from . import __version__
from .config import ServerConfig
from .server import CookieServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cookieserver",
        description="Single-threaded HTTP server with file-backed cookie sessions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m cookieserver                          # Run with defaults
  python -m cookieserver --port 3000              # Custom port
  python -m cookieserver --document-root ./public # Serve ./public
  python -m cookieserver --log-format json        # JSON access log
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: 127.0.0.1)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 8080)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # FILESYSTEM ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--document-root", "-d",
        default=None,
        help="Directory static files are served from (default: public)"
    )

    parser.add_argument(
        "--session-root", "-s",
        default=None,
        help="Directory session files are stored in (default: cookies)"
    )

    parser.add_argument(
        "--resume-session-ids",
        action="store_true",
        default=None,
        help="Continue session numbering after existing session files"
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default=None,
        help="Access log format (default: text)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"cookieserver {__version__}"
    )

    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Environment-derived config with any CLI flags layered on top."""
    config = ServerConfig.from_env()

    overrides = {
        "host": args.host,
        "port": args.port,
        "document_root": args.document_root,
        "session_root": args.session_root,
        "resume_session_ids": args.resume_session_ids,
        "log_level": args.log_level,
        "log_format": args.log_format,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)

    return config


def main(argv=None):
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        server = CookieServer(config_from_args(args))
        server.run()
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
