"""Command-line interface for remsh.

Provides the main entry point for running the command server or the
interactive client.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="remsh",
        description="Remote command sessions over TCP",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/remsh.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    server_parser = subparsers.add_parser("server", help="Run the command server")
    server_parser.add_argument("--host", type=str, default=None, help="Address to bind")
    server_parser.add_argument("--port", type=int, default=None, help="Port to listen on")

    client_parser = subparsers.add_parser("client", help="Open an interactive session")
    client_parser.add_argument("host", type=str, nargs="?", default=None, help="Server host")
    client_parser.add_argument("port", type=int, nargs="?", default=None, help="Server port")

    return parser.parse_args(argv)


async def _run_server(settings) -> None:
    """Serve until SIGINT/SIGTERM."""
    from remsh.server.listener import CommandServer

    server = CommandServer(settings.server)
    await server.start()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, server.stop)

    print("=== REMSH SERVER ===")
    print(f"Listening on {settings.server.host}:{server.port}")
    print("Waiting for connections...\n")
    await server.serve_forever()


async def _run_client(settings) -> None:
    """Connect and run the interactive prompt."""
    from remsh.client.session import ClientSession

    cfg = settings.client
    print("=== REMSH CLIENT ===")
    print(f"Connecting to {cfg.host}:{cfg.port}")
    client = ClientSession(
        host=cfg.host,
        port=cfg.port,
        read_size=cfg.read_size,
        prompt=cfg.prompt,
    )
    await client.connect()
    print("=== SESSION STARTED ===")
    print("Commands run on the remote server.")
    print("Type 'salir' or 'exit' to disconnect, Ctrl+C to force it.\n")
    await client.run()
    print("Disconnected from server.")


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the remsh CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return

    from remsh.client.session import ClientError
    from remsh.config.settings import load_settings
    from remsh.server.listener import ServerError
    from remsh.utils.logging import setup_logging

    settings = load_settings(args.config)

    if args.verbose:
        settings.logging.level = "DEBUG"

    setup_logging(settings.logging)

    if args.command == "server":
        if args.host is not None:
            settings.server.host = args.host
        if args.port is not None:
            settings.server.port = args.port
        logger.info("Starting server")
        try:
            asyncio.run(_run_server(settings))
        except ServerError as e:
            logger.error("%s", e)
            sys.exit(1)

    elif args.command == "client":
        if args.host is not None:
            settings.client.host = args.host
        if args.port is not None:
            settings.client.port = args.port
        try:
            asyncio.run(_run_client(settings))
        except ClientError as e:
            logger.error("%s", e)
            print("Check that the server is running and the address and port are correct.")
            sys.exit(1)
        except KeyboardInterrupt:
            print("\nDisconnected.")


if __name__ == "__main__":
    main()
