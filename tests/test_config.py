from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import pytest

from archiver.config import (
    ArchiveRequest,
    ConnectionSettings,
    DEFAULT_ODBC_DRIVER,
    build_settings,
    load_config_file,
)
from archiver.errors import ConfigValidationError

ENV_NAMES = [
    "ARCHIVER_DB_HOST",
    "ARCHIVER_DB_PORT",
    "ARCHIVER_DB_USER",
    "ARCHIVER_DB_PASSWORD",
    "ARCHIVER_DB_NAME",
    "ARCHIVER_ODBC_DRIVER",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def _cli(**overrides: Any) -> Dict[str, Any]:
    values: Dict[str, Any] = {
        "host": None,
        "port": None,
        "user": None,
        "password": None,
        "database": "shop",
        "odbc_driver": None,
        "table": "orders",
        "days": None,
        "date_column": None,
        "dry_run": False,
        "export_sql": False,
        "export_csv": False,
        "export_path": None,
    }
    values.update(overrides)
    return values


def test_defaults() -> None:
    settings, request = build_settings(_cli())

    assert settings == ConnectionSettings(database="shop")
    assert settings.host == "localhost"
    assert settings.port == 3306
    assert settings.user == "root"
    assert settings.password == ""
    assert settings.odbc_driver == DEFAULT_ODBC_DRIVER
    assert request == ArchiveRequest(table="orders")
    assert request.retention_days == 90
    assert request.export_path == Path("./archives")
    assert not request.exports_enabled


def test_password_falls_back_to_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ARCHIVER_DB_PASSWORD", "from-env")

    settings, _ = build_settings(_cli())
    assert settings.password == "from-env"

    settings, _ = build_settings(_cli(password="from-flag"))
    assert settings.password == "from-flag"


def test_precedence_cli_over_file_over_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ARCHIVER_DB_HOST", "env-host")
    monkeypatch.setenv("ARCHIVER_DB_PORT", "3310")
    file_config = {
        "connection": {"host": "file-host", "user": "archiver"},
        "archive": {"days": 30, "export_csv": True, "export_path": "/backups"},
    }

    settings, request = build_settings(_cli(user="cli-user", days=7), file_config)

    assert settings.host == "file-host"
    assert settings.port == 3310
    assert settings.user == "cli-user"
    assert request.retention_days == 7
    assert request.export_csv is True
    assert request.export_path == Path("/backups")


def test_false_cli_flag_does_not_override_file() -> None:
    file_config = {"connection": {}, "archive": {"dry_run": "yes"}}

    _, request = build_settings(_cli(dry_run=False), file_config)

    assert request.dry_run is True


def test_table_and_database_can_come_from_file() -> None:
    file_config = {"connection": {"database": "sms"}, "archive": {"table": "outbound"}}

    settings, request = build_settings(_cli(database=None, table=None), file_config)

    assert settings.database == "sms"
    assert request.table == "outbound"


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"table": None}, "table"),
        ({"database": None}, "database"),
        ({"table": "bad`name"}, "table"),
        ({"table": "t" * 65}, "table"),
        ({"days": -1}, "days"),
        ({"port": 0}, "port"),
        ({"port": "abc"}, "port"),
    ],
)
def test_invalid_values(overrides: Dict[str, Any], field: str) -> None:
    with pytest.raises(ConfigValidationError) as excinfo:
        build_settings(_cli(**overrides))

    assert excinfo.value.field == field


def test_invalid_boolean_in_file() -> None:
    with pytest.raises(ConfigValidationError):
        build_settings(_cli(), {"archive": {"export_sql": "maybe"}})


def test_connection_string_quotes_special_values() -> None:
    settings = ConnectionSettings(
        database="shop", host="db01", port=3307, user="arch", password="p;w{d}"
    )

    conn_str = settings.to_connection_string()

    assert conn_str.startswith("DRIVER={MySQL ODBC 8.0 Unicode Driver};SERVER=db01;PORT=3307;")
    assert "DATABASE=shop;UID=arch;PWD={p;w{d}}};" in conn_str
    assert conn_str.endswith("CHARSET=utf8mb4")
    assert "p;w" not in settings.describe()
    assert settings.describe() == "arch@db01:3307/shop"


def test_load_config_file_expands_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ARCHIVE_PW", "s3cret")
    config_path = tmp_path / "archive.yaml"
    config_path.write_text(
        "connection:\n"
        "  host: db01\n"
        "  password: ${ARCHIVE_PW}\n"
        "archive:\n"
        "  table: orders\n"
        "  days: 180\n",
        encoding="utf-8",
    )

    config = load_config_file(config_path)

    assert config["connection"] == {"host": "db01", "password": "s3cret"}
    assert config["archive"] == {"table": "orders", "days": 180}


def test_unset_password_placeholder_is_a_config_error(tmp_path: Path) -> None:
    config_path = tmp_path / "archive.yaml"
    config_path.write_text(
        "connection:\n"
        "  password: ${ARCHIVER_DB_PASSWORD}\n"
        "archive:\n"
        "  table: orders\n",
        encoding="utf-8",
    )

    with pytest.raises(ConfigValidationError) as excinfo:
        load_config_file(config_path)

    assert excinfo.value.field == "connection.password"
    assert "ARCHIVER_DB_PASSWORD" in str(excinfo.value)


@pytest.mark.parametrize(
    "content, message",
    [
        ("- just\n- a list\n", "must contain a mapping"),
        ("source:\n  table: x\n", "Unknown config sections: source"),
        ("archive: [1, 2]\n", "'archive' section must be a mapping"),
        ("connection: {host: [unclosed\n", "not valid YAML"),
    ],
)
def test_load_config_file_rejects_bad_files(tmp_path: Path, content: str, message: str) -> None:
    config_path = tmp_path / "archive.yaml"
    config_path.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigValidationError, match=message):
        load_config_file(config_path)


def test_load_config_file_missing(tmp_path: Path) -> None:
    with pytest.raises(ConfigValidationError, match="not found"):
        load_config_file(tmp_path / "nope.yaml")


def test_empty_config_file(tmp_path: Path) -> None:
    config_path = tmp_path / "empty.yaml"
    config_path.write_text("", encoding="utf-8")

    assert load_config_file(config_path) == {"connection": {}, "archive": {}}
