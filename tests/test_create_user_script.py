"""Tests for the create_user operator script."""

from __future__ import annotations

from pathlib import Path

import pymysql

from scripts.create_user import main
from userapi.config import DatabaseTarget
from userapi.database import Database
from userapi.migrations import MigrationRunner


def _config(tmp_path: Path) -> Path:
    config = tmp_path / "userapi.yaml"
    config.write_text("database:\n  url: sqlite:///script.sqlite3\n", encoding="utf-8")
    return config


def test_creates_user_in_migrated_database(tmp_path, capsys):
    config = _config(tmp_path)
    database = Database(DatabaseTarget.sqlite(tmp_path / "script.sqlite3"))
    MigrationRunner(database).apply_changes()

    assert main(["Ann", "a@x.com", "--config", str(config)]) == 0

    assert "Created user #1: Ann <a@x.com>" in capsys.readouterr().out
    assert [user.email for user in database.list_users()] == ["a@x.com"]


def test_refuses_outdated_schema(tmp_path, capsys):
    config = _config(tmp_path)

    assert main(["Ann", "a@x.com", "--config", str(config)]) == 1
    assert "schema is outdated" in capsys.readouterr().err


def test_rejects_blank_name(tmp_path, capsys):
    config = _config(tmp_path)
    MigrationRunner(Database(DatabaseTarget.sqlite(tmp_path / "script.sqlite3"))).apply_changes()

    assert main(["  ", "a@x.com", "--config", str(config)]) == 1
    assert "Name must not be empty" in capsys.readouterr().err


def test_reports_unreachable_database(tmp_path, capsys, monkeypatch):
    config = _config(tmp_path)

    def refuse(self):
        raise pymysql.err.OperationalError(2003, "Can't connect to MySQL server")

    monkeypatch.setattr(MigrationRunner, "has_pending_changes", refuse)

    assert main(["Ann", "a@x.com", "--config", str(config)]) == 1
    err = capsys.readouterr().err
    assert err.startswith("Error: database sqlite:///")
    assert "Can't connect to MySQL server" in err
