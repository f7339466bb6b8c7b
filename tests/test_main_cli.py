from pathlib import Path

import pytest
import uvicorn

import main
from main import _parse_args
from userapi import application


def test_default_command_invokes_serve() -> None:
    args = _parse_args([])
    assert args.command == "serve"
    assert args.host is None


def test_default_command_accepts_options_without_subcommand() -> None:
    args = _parse_args(["--host", "127.0.0.1", "--port", "8080"])
    assert args.command == "serve"
    assert args.host == "127.0.0.1"
    assert args.port == 8080


def test_config_option_precedes_subcommand(tmp_path: Path) -> None:
    args = _parse_args(["--config", str(tmp_path / "c.yaml"), "migrate"])
    assert args.command == "migrate"
    assert args.config == tmp_path / "c.yaml"


def test_config_option_defaults_to_serve(tmp_path: Path) -> None:
    args = _parse_args(["--config", str(tmp_path / "c.yaml")])
    assert args.command == "serve"


def test_status_subcommand_available() -> None:
    args = _parse_args(["status"])
    assert args.command == "status"


def _write_config(tmp_path: Path, url: str, max_attempts: int = 2) -> Path:
    config = tmp_path / "userapi.yaml"
    config.write_text(
        f"database:\n  url: {url}\nreadiness:\n  max_attempts: {max_attempts}\n  retry_interval: 0\n",
        encoding="utf-8",
    )
    return config


def test_serve_exits_without_listening_when_database_unreachable(tmp_path, monkeypatch) -> None:
    config = _write_config(tmp_path, "mysql://app:pw@127.0.0.1:1/users")
    attempts = []

    def refuse(self) -> None:
        attempts.append(1)
        raise ConnectionRefusedError("refused")

    def fail_run(*_args, **_kwargs) -> None:
        raise AssertionError("uvicorn.run must not be called")

    monkeypatch.setattr(application.Database, "ping", refuse)
    monkeypatch.setattr(uvicorn, "run", fail_run)

    with pytest.raises(SystemExit) as excinfo:
        main.main(["--config", str(config), "serve"])

    assert excinfo.value.code == 1
    assert len(attempts) == 2


def test_serve_starts_uvicorn_after_migrations(tmp_path, monkeypatch) -> None:
    config = _write_config(tmp_path, "sqlite:///serve.sqlite3")
    captured = {}

    def fake_run(app, **kwargs) -> None:
        captured["app"] = app
        captured.update(kwargs)

    monkeypatch.setattr(uvicorn, "run", fake_run)

    main.main(["--config", str(config), "serve", "--port", "9090"])

    assert captured["port"] == 9090
    assert captured["host"] == "0.0.0.0"
    database = captured["app"].state.database
    assert database.list_users() == []


def test_migrate_then_status(tmp_path, capsys) -> None:
    config = _write_config(tmp_path, "sqlite:///migrate.sqlite3")

    main.main(["--config", str(config), "status"])
    before = capsys.readouterr().out
    assert "2 pending migration(s)." in before

    main.main(["--config", str(config), "migrate"])
    main.main(["--config", str(config), "status"])
    after = capsys.readouterr().out
    assert "0 pending migration(s)." in after
    assert "0001  applied" in after


def test_invalid_configuration_exits_non_zero(tmp_path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main.main(["--config", str(tmp_path / "missing.yaml"), "migrate"])
    assert excinfo.value.code == 1


def test_config_option_with_equals_precedes_subcommand(tmp_path: Path) -> None:
    args = _parse_args([f"--config={tmp_path / 'c.yaml'}", "migrate"])
    assert args.command == "migrate"
    assert args.config == tmp_path / "c.yaml"


def test_config_option_with_equals_defaults_to_serve(tmp_path: Path) -> None:
    args = _parse_args([f"--config={tmp_path / 'c.yaml'}", "--port", "9000"])
    assert args.command == "serve"
    assert args.port == 9000
