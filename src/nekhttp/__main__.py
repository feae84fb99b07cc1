"""
=============================================================================
NEKHTTP CLI ENTRY POINT
=============================================================================

    # Serve ./index.html on 0.0.0.0:3000
    python -m nekhttp

    # Serve index.html from another directory
    python -m nekhttp --path ./public

    # Custom address
    python -m nekhttp --host 127.0.0.1 --port 8000

Settings are layered: ServerConfig defaults, then NEKHTTP_* environment
variables, then whatever was given on the command line.
=============================================================================
"""

import argparse
import sys
from typing import List, Optional

from . import __version__
from .config import ServerConfig
from .handlers import IndexPageHandler
from .server import HTTPServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nekhttp",
        description="Minimal HTTP/1.1 server serving index.html with a visit counter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  nekhttp                          # ./index.html on port 3000
  nekhttp --path ./public          # another directory
  nekhttp --port 8000 -l DEBUG     # custom port, verbose logs
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--path", "-p",
        default=".",
        help="Directory containing index.html (default: current directory)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Address to bind (default: 0.0.0.0, or NEKHTTP_HOST)"
    )

    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to listen on (default: 3000, or NEKHTTP_PORT)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # META ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO, or NEKHTTP_LOG_LEVEL)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"nekhttp {__version__}"
    )

    return parser


def build_config(args: argparse.Namespace) -> ServerConfig:
    """Environment first, then any flag given explicitly."""
    config = ServerConfig.from_env()

    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.log_level is not None:
        config.log_level = args.log_level

    return config


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        server = HTTPServer(build_config(args))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    server.register("GET", "/", IndexPageHandler(args.path))

    # Blocks until Ctrl+C
    if not server.run():
        print(f"Error: could not listen on {server.config.host}:{server.config.port}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
