"""
CLI entry point for Health Connect.

Usage:
    health-connect start --port 4000
    health-connect start --redis-url redis://localhost:6379/0 --cache-ttl 3600
"""

import argparse
import logging
import sys
from typing import Optional

from .config import Settings, get_settings

LOG_FORMAT = "[%(asctime)s] %(levelname)s - %(name)s - %(message)s"


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        prog="health-connect",
        description="Health Connect: Gemini-backed health analysis and chat API",
    )
    subparsers = parser.add_subparsers(dest="command")

    # start command
    start_parser = subparsers.add_parser("start", help="Start the API server")
    start_parser.add_argument(
        "--port", "-p",
        type=int,
        default=settings.port,
        help=f"Port to listen on (default: {settings.port})",
    )
    start_parser.add_argument(
        "--host",
        default=settings.host,
        help=f"Host to bind to (default: {settings.host})",
    )
    start_parser.add_argument(
        "--redis-url",
        default=settings.redis_url,
        help="Redis URL for sessions and history (default: in-memory)",
    )
    start_parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Disable response caching",
    )
    start_parser.add_argument(
        "--cache-ttl",
        type=int,
        default=settings.cache_ttl,
        help=f"Cache TTL in seconds (default: {settings.cache_ttl})",
    )
    start_parser.add_argument(
        "--timeout",
        type=float,
        default=settings.provider_timeout,
        help=f"Model call timeout in seconds (default: {settings.provider_timeout:g})",
    )
    start_parser.add_argument(
        "--log-level",
        default=settings.log_level,
        choices=["debug", "info", "warning", "error"],
        help=f"Log level (default: {settings.log_level})",
    )
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    if args.command == "start":
        _run_server(args)


def apply_args(args, settings: Optional[Settings] = None) -> Settings:
    """Overlay CLI flags onto the loaded settings."""
    settings = settings or get_settings()
    settings.host = args.host
    settings.port = args.port
    settings.redis_url = args.redis_url
    settings.cache_enabled = settings.cache_enabled and not args.no_cache
    settings.cache_ttl = args.cache_ttl
    settings.provider_timeout = args.timeout
    settings.log_level = args.log_level
    return settings


def _run_server(args):
    """Start the API server."""
    import uvicorn
    from .server import create_app

    settings = apply_args(args)
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)
    logger = logging.getLogger("health_connect")

    logger.info("Listening on http://%s:%s", settings.host, settings.port)
    logger.info(
        "Cache: %s", "OFF" if not settings.cache_enabled else f"ON (TTL {settings.cache_ttl}s)"
    )
    logger.info("Sessions: %s", settings.redis_url or "in-memory")

    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level)


if __name__ == "__main__":
    main()
