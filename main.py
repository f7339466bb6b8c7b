"""Command-line interface for the user API service."""

from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from userapi.config import ConfigurationError, Settings, load_settings
from userapi.database import DRIVER_ERRORS, Database
from userapi.migrations import MigrationRunner
from userapi.readiness import ReadinessError

logger = logging.getLogger("userapi.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="User API service utilities")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the YAML configuration file (default: USERAPI_CONFIG or config/userapi.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    serve_parser = subparsers.add_parser(
        "serve", help="Wait for the database, apply migrations and start the HTTP service"
    )
    serve_parser.add_argument("--host", default=None, help="Bind address (overrides server.host)")
    serve_parser.add_argument("--port", type=int, default=None, help="Listen port (overrides server.port)")
    serve_parser.add_argument(
        "--ssl-certfile",
        default=None,
        help="Path to the TLS certificate chain in PEM format",
    )
    serve_parser.add_argument(
        "--ssl-keyfile",
        default=None,
        help="Path to the TLS private key in PEM format",
    )

    subparsers.add_parser("migrate", help="Wait for the database and apply pending migrations, then exit")
    subparsers.add_parser("status", help="Show applied and pending migrations")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "migrate", "status"}

    # Global options come before the subcommand; anything else defaults to "serve".
    index = 0
    while index < len(args_list):
        if args_list[index] == "--config":
            index += 2
        elif args_list[index].startswith("--config="):
            index += 1
        else:
            break
    remaining = args_list[index:]
    if not remaining or (
        remaining[0] not in known_commands and not any(flag in remaining for flag in ("-h", "--help"))
    ):
        args_list = [*args_list[:index], "serve", *remaining]

    return parser.parse_args(args_list)


def _serve(
    settings: Settings,
    *,
    host: str | None,
    port: int | None,
    ssl_certfile: str | None,
    ssl_keyfile: str | None,
) -> None:
    from userapi.application import create_application, prepare_database
    import uvicorn

    if bool(ssl_certfile) ^ bool(ssl_keyfile):
        raise SystemExit("Both --ssl-certfile and --ssl-keyfile must be provided together.")

    database = prepare_database(settings)

    bind_host = host or settings.server.host
    bind_port = port or settings.server.port
    protocol = "https" if ssl_certfile and ssl_keyfile else "http"
    logger.info("Starting user API on %s://%s:%s", protocol, bind_host, bind_port)

    app = create_application(settings, database=database)
    uvicorn.run(
        app,
        host=bind_host,
        port=bind_port,
        log_level="info",
        # X-Forwarded-* handling lives in the app middleware.
        proxy_headers=False,
        ssl_certfile=ssl_certfile,
        ssl_keyfile=ssl_keyfile,
    )


def _migrate(settings: Settings) -> None:
    from userapi.application import prepare_database

    prepare_database(settings)
    print("Database is reachable and the schema is up to date.")


def _show_status(settings: Settings) -> int:
    database = Database(settings.database)
    runner = MigrationRunner(database)

    print(f"Database: {settings.database.describe()}")
    try:
        database.ping()
        applied = runner.applied_versions()
    except (*DRIVER_ERRORS, OSError) as exc:
        print(f"Database is not reachable: {exc}")
        return 1

    for migration in runner.migrations:
        marker = "applied" if migration.version in applied else "pending"
        print(f"  {migration.version}  {marker:<8} {migration.description}")

    pending = [migration for migration in runner.migrations if migration.version not in applied]
    print(f"{len(pending)} pending migration(s).")
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ConfigurationError as exc:
        logger.error("Invalid configuration: %s", exc)
        raise SystemExit(1) from exc

    try:
        if args.command == "serve":
            _serve(
                settings,
                host=args.host,
                port=args.port,
                ssl_certfile=args.ssl_certfile,
                ssl_keyfile=args.ssl_keyfile,
            )
        elif args.command == "migrate":
            _migrate(settings)
        elif args.command == "status":
            status = _show_status(settings)
            if status:
                raise SystemExit(status)
    except ReadinessError as exc:
        logger.error("Startup aborted: %s", exc)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
