"""Versioned schema migrations and the runner that applies them."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Mapping, Sequence, Set, Tuple

from .database import DRIVER_ERRORS, Database

logger = logging.getLogger("userapi.migrations")

TRACKING_TABLE = "schema_migrations"

_TRACKING_TABLE_DDL = {
    "sqlite": f"""
        CREATE TABLE IF NOT EXISTS {TRACKING_TABLE} (
            version TEXT PRIMARY KEY,
            description TEXT NOT NULL,
            applied_at TEXT NOT NULL
        )
    """,
    "mysql": f"""
        CREATE TABLE IF NOT EXISTS {TRACKING_TABLE} (
            version VARCHAR(32) NOT NULL PRIMARY KEY,
            description VARCHAR(255) NOT NULL,
            applied_at VARCHAR(64) NOT NULL
        ) CHARACTER SET utf8mb4
    """,
}


class MigrationError(RuntimeError):
    """Raised when a migration cannot be applied."""

    def __init__(self, version: str, message: str) -> None:
        super().__init__(f"Migration {version} failed: {message}")
        self.version = version


@dataclass(frozen=True)
class Migration:
    """A single schema change, with SQL for every supported dialect."""

    version: str
    description: str
    statements: Mapping[str, Tuple[str, ...]]

    def statements_for(self, dialect: str) -> Tuple[str, ...]:
        try:
            return self.statements[dialect]
        except KeyError as exc:
            raise MigrationError(self.version, f"no statements defined for dialect '{dialect}'") from exc


MIGRATIONS: Tuple[Migration, ...] = (
    Migration(
        version="0001",
        description="create users table",
        statements={
            "sqlite": (
                """
                CREATE TABLE users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL
                )
                """,
            ),
            "mysql": (
                """
                CREATE TABLE users (
                    id INT NOT NULL AUTO_INCREMENT PRIMARY KEY,
                    name VARCHAR(255) NOT NULL,
                    email VARCHAR(255) NOT NULL
                ) CHARACTER SET utf8mb4
                """,
            ),
        },
    ),
    Migration(
        version="0002",
        description="index users by email",
        statements={
            "sqlite": ("CREATE INDEX idx_users_email ON users(email)",),
            "mysql": ("CREATE INDEX idx_users_email ON users(email)",),
        },
    ),
)


class MigrationRunner:
    """Report and apply outstanding migrations against a :class:`Database`."""

    def __init__(self, database: Database, migrations: Iterable[Migration] = MIGRATIONS) -> None:
        ordered = sorted(migrations, key=lambda migration: migration.version)
        seen: Set[str] = set()
        for migration in ordered:
            if migration.version in seen:
                raise ValueError(f"Duplicate migration version '{migration.version}'")
            seen.add(migration.version)
        self._database = database
        self._migrations: Tuple[Migration, ...] = tuple(ordered)

    @property
    def migrations(self) -> Tuple[Migration, ...]:
        return self._migrations

    def applied_versions(self) -> Set[str]:
        """Return the recorded versions without creating the tracking table."""

        db = self._database
        with db.connection() as conn:
            if not db.table_exists(conn, TRACKING_TABLE):
                return set()
            rows = db.execute(conn, f"SELECT version FROM {TRACKING_TABLE}").fetchall()
        return {str(row[0]) for row in rows}

    def pending(self) -> List[Migration]:
        applied = self.applied_versions()
        return [migration for migration in self._migrations if migration.version not in applied]

    def has_pending_changes(self) -> bool:
        return bool(self.pending())

    def apply_changes(self) -> Sequence[str]:
        """Apply every pending migration in order, stopping at the first failure."""

        pending = self.pending()
        if not pending:
            return []

        db = self._database
        with db.connection() as conn:
            db.execute(conn, _TRACKING_TABLE_DDL[db.dialect])

        applied: List[str] = []
        for migration in pending:
            self._apply(migration)
            applied.append(migration.version)
            logger.info("Applied migration %s (%s)", migration.version, migration.description)
        return applied

    def _apply(self, migration: Migration) -> None:
        db = self._database
        statements = migration.statements_for(db.dialect)
        try:
            with db.connection() as conn:
                if db.dialect == "sqlite":
                    # DDL does not open an implicit transaction in sqlite3.
                    conn.execute("BEGIN")
                for statement in statements:
                    db.execute(conn, statement)
                db.execute(
                    conn,
                    f"INSERT INTO {TRACKING_TABLE} (version, description, applied_at) VALUES (?, ?, ?)",
                    (migration.version, migration.description, datetime.now(timezone.utc).isoformat()),
                )
        except DRIVER_ERRORS as exc:
            raise MigrationError(migration.version, str(exc)) from exc


__all__ = ["MIGRATIONS", "Migration", "MigrationError", "MigrationRunner", "TRACKING_TABLE"]
