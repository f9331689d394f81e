"""Command-line interface for the store rating service."""

from __future__ import annotations

import argparse
import logging
import sys
from getpass import getpass
from pathlib import Path
from typing import Sequence

from storerate.config import Settings, load_settings
from storerate.database import Database
from storerate.errors import ConflictError
from storerate.models import Role
from storerate.service import DirectoryService

logger = logging.getLogger("storerate.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Store rating service utilities")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML settings file (default: STORERATE_CONFIG when set)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the database")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=5000,
        help="Port for the HTTP API (default: 5000)",
    )

    admin_parser = subparsers.add_parser(
        "create-admin", help="Create an administrator account"
    )
    admin_parser.add_argument("--name", default=None, help="Display name for the administrator")
    admin_parser.add_argument("--email", default=None, help="Login email for the administrator")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "create-admin"}

    leading: list[str] = []
    if args_list[:1] == ["--config"] and len(args_list) >= 2:
        leading, args_list = args_list[:2], args_list[2:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args([*leading, *args_list])
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args([*leading, *args_list])
            args_list = ["serve", *args_list]

    return parser.parse_args([*leading, *args_list])


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(*, settings: Settings, database: Database, host: str, port: int) -> None:
    from storerate.api import create_app
    import uvicorn

    logger.info("Starting store rating API on http://%s:%s", host, port)

    app = create_app(database=database, settings=settings)
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower())


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass("Password (8-16 characters): ")
        if not 8 <= len(password) <= 16:
            print("Password must be between 8 and 16 characters. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _create_admin(database: Database, settings: Settings, *, name: str | None, email: str | None) -> int:
    service = DirectoryService(database)
    if email is None:
        user = service.ensure_admin(
            name=settings.admin_name,
            email=settings.admin_email,
            password=settings.admin_password,
        )
        print(f"Administrator account available: #{user.id} <{user.email}>")
        return 0

    password = _prompt_for_password()
    if password is None:
        print("Aborted creating administrator.")
        return 1

    try:
        user = service.create_user(
            name=name or settings.admin_name,
            email=email,
            password=password,
            role=Role.ADMIN,
        )
    except ConflictError as exc:
        print(f"Failed to create administrator: {exc.message}")
        return 1

    print(f"Created administrator #{user.id}: {user.name} <{user.email}>")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    args = _parse_args(argv)
    settings = load_settings(Path(args.config) if args.config else None)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    database = _initialise_database(settings)

    if args.command == "serve":
        _serve(
            settings=settings,
            database=database,
            host=args.host,
            port=args.port,
        )
    elif args.command == "create-admin":
        return _create_admin(database, settings, name=args.name, email=args.email)
    elif args.command == "init-db":
        print("Database initialisation complete.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
