"""
Bravia Remote - Entry Point

Run with: python -m bravia_remote
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

from bravia_remote import __version__
from bravia_remote.config import ConfigError, RemoteConfig, load_config
from bravia_remote.server import BraviaRemoteServer


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="bravia_remote",
        description="Bravia Remote - discover and control Sony Bravia televisions",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="TOML config file merged over the built-in defaults",
    )

    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between discovery searches (default: 10)",
    )

    parser.add_argument(
        "--missing-threshold",
        type=int,
        default=None,
        help="Searches a television may miss before it is dropped (default: 3)",
    )

    parser.add_argument(
        "--web-host",
        type=str,
        default=None,
        help="Web API host address to bind to (default: 0.0.0.0)",
    )

    parser.add_argument(
        "--web-port",
        type=int,
        default=None,
        help="Web API port (default: 8060)",
    )

    parser.add_argument(
        "--no-web",
        action="store_true",
        help="Do not start the web API",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> RemoteConfig:
    """Load the config file and apply command line overrides."""
    config = load_config(args.config)

    discovery = config.discovery
    if args.interval is not None:
        if args.interval <= 0:
            raise ConfigError("--interval must be positive")
        discovery = replace(discovery, interval=args.interval)
    if args.missing_threshold is not None:
        if args.missing_threshold < 1:
            raise ConfigError("--missing-threshold must be at least 1")
        discovery = replace(discovery, missing_threshold=args.missing_threshold)

    web = config.web
    if args.web_host is not None:
        web = replace(web, host=args.web_host)
    if args.web_port is not None:
        web = replace(web, port=args.web_port)
    if args.no_web:
        web = replace(web, enabled=False)

    return replace(config, discovery=discovery, web=web)


async def run_server(config: RemoteConfig) -> None:
    """Start and run the server."""
    server = BraviaRemoteServer(config)
    await server.run()


def main() -> int:
    """Main entry point for the application."""
    args = parse_args()
    setup_logging(verbose=args.verbose)

    logger = logging.getLogger(__name__)

    try:
        config = build_config(args)
    except (ValueError, OSError) as e:
        logger.error("Could not load configuration: %s", e)
        return 2

    logger.info("Starting Bravia Remote...")

    try:
        asyncio.run(run_server(config))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1

    logger.info("Server stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
