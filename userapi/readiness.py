"""Startup readiness gate.

Blocks process startup until the database accepts connections, then brings the
schema up to date. The HTTP listener must only be started once
:func:`ensure_database_ready` has returned.

State machine::

    NOT_STARTED -> PROBING -> CONNECTED -> MIGRATING -> READY
                      |  ^
                      +--+ (failed attempt, budget left)
                      |
                      +-> FAILED (budget exhausted)

A migration failure also ends in ``FAILED``.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Callable, List, Optional, Protocol, Sequence, Tuple, Union

from .config import DatabaseTarget
from .database import Database
from .migrations import MigrationRunner

logger = logging.getLogger("userapi.readiness")

RetryInterval = Union[float, int, timedelta]


class ReadinessState(str, Enum):
    NOT_STARTED = "not_started"
    PROBING = "probing"
    CONNECTED = "connected"
    MIGRATING = "migrating"
    READY = "ready"
    FAILED = "failed"


class ReadinessError(RuntimeError):
    """Base class for unrecoverable startup failures."""


class DatabaseUnavailableError(ReadinessError):
    """The database stayed unreachable for the whole retry budget."""

    def __init__(self, attempts: int, last_error: BaseException | None) -> None:
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(f"Unable to connect to the database after {attempts} attempt(s){detail}")
        self.attempts = attempts
        self.last_error = last_error


class MigrationFailedError(ReadinessError):
    """Applying pending schema migrations failed."""


class SchemaMigrator(Protocol):
    """Minimal capability the gate needs from a migration tool."""

    def has_pending_changes(self) -> bool: ...

    def apply_changes(self) -> Sequence[str]: ...


Probe = Callable[[], object]


@dataclass(frozen=True)
class ReadinessReport:
    attempts: int
    applied_migrations: Tuple[str, ...]


def _interval_seconds(value: RetryInterval) -> float:
    if isinstance(value, timedelta):
        seconds = value.total_seconds()
    elif isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("retry_interval must be a number of seconds or a timedelta")
    else:
        seconds = float(value)
    if seconds < 0:
        raise ValueError("retry_interval must not be negative")
    return seconds


class ReadinessGate:
    """Run the probe/migrate sequence exactly once."""

    def __init__(
        self,
        probe: Probe,
        migrator: SchemaMigrator,
        *,
        max_attempts: int,
        retry_interval: RetryInterval,
        sleep: Callable[[float], None] = time.sleep,
        description: str = "database",
    ) -> None:
        if isinstance(max_attempts, bool) or not isinstance(max_attempts, int) or max_attempts < 1:
            raise ValueError("max_attempts must be a positive integer")
        self._probe = probe
        self._migrator = migrator
        self._max_attempts = max_attempts
        self._retry_interval = _interval_seconds(retry_interval)
        self._sleep = sleep
        self._description = description
        self._attempts = 0
        self._transitions: List[ReadinessState] = [ReadinessState.NOT_STARTED]

    @property
    def state(self) -> ReadinessState:
        return self._transitions[-1]

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def transitions(self) -> Tuple[ReadinessState, ...]:
        return tuple(self._transitions)

    def _enter(self, state: ReadinessState) -> None:
        self._transitions.append(state)

    def run(self) -> ReadinessReport:
        if self.state is not ReadinessState.NOT_STARTED:
            raise RuntimeError("Readiness gate has already run")

        self._wait_for_connection()
        applied = self._synchronize_schema()
        self._enter(ReadinessState.READY)
        return ReadinessReport(attempts=self._attempts, applied_migrations=tuple(applied))

    def _wait_for_connection(self) -> None:
        last_error: Optional[BaseException] = None
        while self._attempts < self._max_attempts:
            self._enter(ReadinessState.PROBING)
            self._attempts += 1
            try:
                self._probe()
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "Waiting for %s to be ready... Attempt %d/%d: %s",
                    self._description,
                    self._attempts,
                    self._max_attempts,
                    exc,
                )
                if self._attempts < self._max_attempts:
                    self._sleep(self._retry_interval)
                continue

            self._enter(ReadinessState.CONNECTED)
            logger.info("Successfully connected to %s after %d attempt(s)", self._description, self._attempts)
            return

        self._enter(ReadinessState.FAILED)
        logger.error("Giving up on %s after %d attempt(s)", self._description, self._attempts)
        raise DatabaseUnavailableError(self._attempts, last_error) from last_error

    def _synchronize_schema(self) -> Sequence[str]:
        self._enter(ReadinessState.MIGRATING)
        try:
            if not self._migrator.has_pending_changes():
                logger.info("Database schema is up to date")
                return []
            applied = list(self._migrator.apply_changes())
        except Exception as exc:
            self._enter(ReadinessState.FAILED)
            logger.error("Schema migration failed: %s", exc)
            raise MigrationFailedError(f"Schema migration failed: {exc}") from exc

        logger.info("Applied %d migration(s): %s", len(applied), ", ".join(applied))
        return applied


def ensure_database_ready(
    target: DatabaseTarget,
    max_attempts: int,
    retry_interval: RetryInterval,
    *,
    probe: Optional[Probe] = None,
    migrator: Optional[SchemaMigrator] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ReadinessReport:
    """Block until ``target`` is reachable and its schema is current.

    Raises :class:`DatabaseUnavailableError` when the retry budget runs out and
    :class:`MigrationFailedError` when a migration cannot be applied. Neither is
    retried by the caller; the process is expected to exit.
    """

    if probe is None or migrator is None:
        database = Database(target)
        if probe is None:
            probe = database.ping
        if migrator is None:
            migrator = MigrationRunner(database)

    gate = ReadinessGate(
        probe,
        migrator,
        max_attempts=max_attempts,
        retry_interval=retry_interval,
        sleep=sleep,
        description=target.describe(),
    )
    return gate.run()


__all__ = [
    "DatabaseUnavailableError",
    "MigrationFailedError",
    "ReadinessError",
    "ReadinessGate",
    "ReadinessReport",
    "ReadinessState",
    "SchemaMigrator",
    "ensure_database_ready",
]
