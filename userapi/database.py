"""Relational persistence for user records (SQLite or MySQL)."""
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence

import pymysql

from .config import DatabaseTarget
from .models import User

# Exceptions either driver raises for connectivity and SQL failures.
DRIVER_ERRORS: tuple[type[BaseException], ...] = (sqlite3.Error, pymysql.MySQLError)


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


class Database:
    """Thin DB-API wrapper that hides the differences between the supported drivers."""

    def __init__(self, target: DatabaseTarget) -> None:
        self._target = target
        if target.dialect == "sqlite":
            _ensure_directory(Path(target.database))

    @property
    def target(self) -> DatabaseTarget:
        return self._target

    @property
    def dialect(self) -> str:
        return self._target.dialect

    def _connect(self) -> Any:
        target = self._target
        if target.dialect == "sqlite":
            return sqlite3.connect(target.database, timeout=target.connect_timeout, check_same_thread=False)
        return pymysql.connect(
            host=target.host,
            port=target.port,
            user=target.username or "",
            password=target.password or "",
            database=target.database,
            charset="utf8mb4",
            autocommit=False,
            connect_timeout=target.connect_timeout,
        )

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """Yield an open connection; commit on success, roll back on error, always close."""

        conn = self._connect()
        try:
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def sql(self, statement: str) -> str:
        """Translate ``?`` placeholders into the driver's parameter style."""

        if self.dialect == "mysql":
            return statement.replace("?", "%s")
        return statement

    def execute(self, conn: Any, statement: str, params: Sequence[object] = ()) -> Any:
        cursor = conn.cursor()
        cursor.execute(self.sql(statement), tuple(params))
        return cursor

    def ping(self) -> None:
        """Open a connection and run a trivial query. Raises on any failure."""

        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute("SELECT 1")
            cursor.fetchone()
        finally:
            conn.close()

    def table_exists(self, conn: Any, name: str) -> bool:
        if self.dialect == "sqlite":
            query = "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?"
        else:
            query = (
                "SELECT table_name FROM information_schema.tables "
                "WHERE table_schema = DATABASE() AND table_name = ?"
            )
        return self.execute(conn, query, (name,)).fetchone() is not None

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(self, name: str, email: str) -> User:
        """Insert a user and return it with its generated identifier."""

        normalized_name = (name or "").strip()
        normalized_email = (email or "").strip()
        if not normalized_name:
            raise ValueError("Name must not be empty")
        if not normalized_email:
            raise ValueError("Email must not be empty")

        with self.connection() as conn:
            cursor = self.execute(
                conn,
                "INSERT INTO users (name, email) VALUES (?, ?)",
                (normalized_name, normalized_email),
            )
            user_id = cursor.lastrowid

        if user_id is None:
            raise RuntimeError("Database did not report an identifier for the new user")
        return User(id=int(user_id), name=normalized_name, email=normalized_email)

    def list_users(self) -> List[User]:
        with self.connection() as conn:
            rows = self.execute(conn, "SELECT id, name, email FROM users ORDER BY id").fetchall()
        return [self._row_to_user(row) for row in rows]

    def get_user(self, user_id: int) -> Optional[User]:
        with self.connection() as conn:
            row = self.execute(conn, "SELECT id, name, email FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_user(self, row: Sequence[object]) -> User:
        return User(id=int(row[0]), name=str(row[1]), email=str(row[2]))


__all__ = ["DRIVER_ERRORS", "Database"]
