"""
PM Server - Main entry point.

Starts the HTTP API under uvicorn, or provisions a user account. The
store is opened and its schema created by the application lifespan,
before the first request.

Usage:
    pm-server [serve]
    pm-server create-user --username alice [--password ...]
    python -m backend.pm_server.main

Configuration is entirely via environment variables (or .env).
See config.py for all available settings.

Invariants:
    - Settings are validated before anything is started
    - One stream handler on the root logger; uvicorn does not add its own

How to change safely:
    - Keep log field names stable; dashboards parse the JSON output
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import sys

import json_log_formatter
import uvicorn

from .api import create_app
from .config import Settings
from .errors import PmError
from .model import Credentials
from .service import ProjectService
from .store import ProjectStore

logger = logging.getLogger(__name__)


def setup_logging(settings: Settings) -> None:
    """Configure logging based on configuration.

    Args:
        settings: Server configuration
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def serve(settings: Settings) -> None:
    """Run the HTTP API until interrupted."""
    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


async def create_user(settings: Settings, credentials: Credentials) -> int:
    """Provision a login account in the configured database.

    Returns:
        New user id

    Raises:
        ConstraintError: If the username is taken
    """
    store = ProjectStore(
        settings.database_path,
        wal_mode=settings.wal_mode,
        busy_timeout_ms=settings.busy_timeout_ms,
    )
    await store.initialize()
    return await ProjectService(store).register_user(credentials)


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="PM Server")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("serve", help="Run the HTTP API (default)")

    # create-user command
    user_parser = subparsers.add_parser("create-user", help="Create a login account")
    user_parser.add_argument("--username", "-u", required=True, help="Login name")
    user_parser.add_argument("--password", "-p", help="Password (prompted if omitted)")

    args = parser.parse_args(argv)

    try:
        settings = Settings()
        settings.validate_settings()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(settings)

    if args.command == "create-user":
        password = args.password or getpass.getpass("Password: ")
        try:
            user_id = asyncio.run(
                create_user(settings, Credentials(user_name=args.username, password=password))
            )
        except PmError as e:
            print(f"Failed to create user {args.username}: {e.message}", file=sys.stderr)
            sys.exit(1)
        print(f"Created user {args.username} with id {user_id}")
        return

    settings.log_config()
    serve(settings)


if __name__ == "__main__":
    main()
