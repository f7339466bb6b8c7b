"""Startup wiring: settings, readiness gate and the ASGI application."""
from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from fastapi import FastAPI

from .api import create_app as create_api_app
from .config import Settings, load_settings
from .database import Database
from .migrations import MigrationRunner
from .readiness import ensure_database_ready

logger = logging.getLogger("userapi.application")


def prepare_database(
    settings: Settings,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> Database:
    """Run the readiness gate and return a database that is safe to serve from."""

    database = Database(settings.database)
    report = ensure_database_ready(
        settings.database,
        settings.readiness.max_attempts,
        settings.readiness.retry_interval,
        probe=database.ping,
        migrator=MigrationRunner(database),
        sleep=sleep,
    )
    logger.info(
        "Database ready after %d attempt(s); %d migration(s) applied",
        report.attempts,
        len(report.applied_migrations),
    )
    return database


def create_application(
    settings: Optional[Settings] = None,
    *,
    database: Optional[Database] = None,
) -> FastAPI:
    """Create the ASGI application.

    When no ``database`` is supplied the readiness gate runs first, so the
    returned app is never wired to an unreachable or outdated schema.
    """

    settings = settings or load_settings()
    if database is None:
        database = prepare_database(settings)

    server = settings.server
    return create_api_app(
        database=database,
        cors_origins=server.cors_origins,
        trusted_proxies=server.trusted_proxies,
        enforce_https=server.enforce_https,
        docs_enabled=server.docs_enabled,
    )


__all__ = ["create_application", "prepare_database"]
