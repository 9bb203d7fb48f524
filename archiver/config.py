"""Run configuration: connection settings and the archive request.

Values come from (highest precedence first) command-line flags, an optional
YAML config file, ``ARCHIVER_*`` environment variables, and built-in
defaults. Example config file::

    connection:
      host: db01.internal
      user: archiver
      password: ${ARCHIVER_DB_PASSWORD}
      database: sms
    archive:
      table: outbound_messages
      days: 180
      export_csv: true
      export_path: /backups/archives
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import yaml

from archiver.env import expand_section
from archiver.errors import ConfigValidationError

__all__ = [
    "ArchiveRequest",
    "ConnectionSettings",
    "DEFAULT_ODBC_DRIVER",
    "build_settings",
    "load_config_file",
]

DEFAULT_ODBC_DRIVER = "MySQL ODBC 8.0 Unicode Driver"
DEFAULT_EXPORT_PATH = "./archives"
DEFAULT_RETENTION_DAYS = 90

# Environment fallbacks for connection fields
ENV_VARS = {
    "host": "ARCHIVER_DB_HOST",
    "port": "ARCHIVER_DB_PORT",
    "user": "ARCHIVER_DB_USER",
    "password": "ARCHIVER_DB_PASSWORD",
    "database": "ARCHIVER_DB_NAME",
    "odbc_driver": "ARCHIVER_ODBC_DRIVER",
}

CONNECTION_DEFAULTS: Dict[str, Any] = {
    "host": "localhost",
    "port": 3306,
    "user": "root",
    "password": "",
    "database": "",
    "odbc_driver": DEFAULT_ODBC_DRIVER,
}

ARCHIVE_DEFAULTS: Dict[str, Any] = {
    "table": "",
    "days": DEFAULT_RETENTION_DAYS,
    "dry_run": False,
    "export_sql": False,
    "export_csv": False,
    "export_path": DEFAULT_EXPORT_PATH,
    "date_column": None,
}


def _odbc_value(value: str, always: bool = False) -> str:
    """Brace-quote a connection string value when it contains separators."""
    if always or any(ch in value for ch in ";{}=") or value != value.strip():
        return "{" + value.replace("}", "}}") + "}"
    return value


def _validate_identifier(name: str, field: str) -> None:
    if not name:
        raise ConfigValidationError(f"{field} is required", field=field)
    if "`" in name or "\x00" in name or len(name) > 64:
        raise ConfigValidationError(
            f"{field} is not a valid MySQL identifier", field=field, value=name
        )


@dataclass(frozen=True)
class ConnectionSettings:
    """Where to connect. The password is never included in ``describe()``."""

    database: str
    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    password: str = ""
    odbc_driver: str = DEFAULT_ODBC_DRIVER

    def __post_init__(self) -> None:
        _validate_identifier(self.database, "database")
        if not 0 < self.port < 65536:
            raise ConfigValidationError("port out of range", field="port", value=self.port)

    def to_connection_string(self) -> str:
        parts = [
            ("DRIVER", _odbc_value(self.odbc_driver, always=True)),
            ("SERVER", _odbc_value(self.host)),
            ("PORT", str(self.port)),
            ("DATABASE", _odbc_value(self.database)),
            ("UID", _odbc_value(self.user)),
            ("PWD", _odbc_value(self.password)),
            ("CHARSET", "utf8mb4"),
        ]
        return ";".join(f"{key}={value}" for key, value in parts)

    def describe(self) -> str:
        return f"{self.user}@{self.host}:{self.port}/{self.database}"


@dataclass(frozen=True)
class ArchiveRequest:
    """What to archive and what to do with it afterwards."""

    table: str
    retention_days: int = DEFAULT_RETENTION_DAYS
    export_path: Path = Path(DEFAULT_EXPORT_PATH)
    dry_run: bool = False
    export_sql: bool = False
    export_csv: bool = False
    date_column: Optional[str] = None

    def __post_init__(self) -> None:
        _validate_identifier(self.table, "table")
        if self.retention_days < 0:
            raise ConfigValidationError(
                "retention window must be >= 0 days",
                field="days",
                value=self.retention_days,
            )
        if self.date_column is not None:
            _validate_identifier(self.date_column, "date_column")

    @property
    def exports_enabled(self) -> bool:
        return self.export_sql or self.export_csv


def load_config_file(path: Union[str, Path]) -> Dict[str, Dict[str, Any]]:
    """Load a YAML config file with ``connection`` and ``archive`` sections."""
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigValidationError(
            f"Config file not found: {config_path}", field="config"
        )

    with config_path.open("r", encoding="utf-8") as handle:
        try:
            raw = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(
                f"Config file is not valid YAML: {exc}", field="config"
            ) from exc

    if not isinstance(raw, dict):
        raise ConfigValidationError(
            "Config file must contain a mapping", field="config"
        )

    unknown = set(raw) - {"connection", "archive"}
    if unknown:
        raise ConfigValidationError(
            f"Unknown config sections: {', '.join(sorted(unknown))}", field="config"
        )

    config: Dict[str, Dict[str, Any]] = {}
    for section in ("connection", "archive"):
        values = raw.get(section) or {}
        if not isinstance(values, dict):
            raise ConfigValidationError(
                f"'{section}' section must be a mapping", field=section
            )
        config[section] = expand_section(section, values)
    return config


def _pick(
    key: str,
    cli: Mapping[str, Any],
    file_section: Mapping[str, Any],
    defaults: Mapping[str, Any],
    env_var: Optional[str] = None,
) -> Any:
    if cli.get(key) is not None:
        return cli[key]
    if file_section.get(key) is not None:
        return file_section[key]
    if env_var and os.environ.get(env_var):
        return os.environ[env_var]
    return defaults[key]


def _as_int(value: Any, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigValidationError(
            f"{field} must be an integer", field=field, value=value
        ) from exc


def _as_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "yes", "1", "false", "no", "0"):
        return value.lower() in ("true", "yes", "1")
    raise ConfigValidationError(f"{field} must be a boolean", field=field, value=value)


def build_settings(
    cli: Mapping[str, Any],
    file_config: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> Tuple[ConnectionSettings, ArchiveRequest]:
    """Merge CLI values, config file and environment into typed settings.

    ``cli`` holds parsed flag values; ``None`` means "not given on the
    command line". Boolean flags only override when they are true.
    """
    file_config = file_config or {}
    conn_file = file_config.get("connection", {})
    archive_file = file_config.get("archive", {})

    conn_values = {
        key: _pick(key, cli, conn_file, CONNECTION_DEFAULTS, ENV_VARS[key])
        for key in CONNECTION_DEFAULTS
    }
    settings = ConnectionSettings(
        host=str(conn_values["host"]),
        port=_as_int(conn_values["port"], "port"),
        user=str(conn_values["user"]),
        password=str(conn_values["password"]),
        database=str(conn_values["database"]),
        odbc_driver=str(conn_values["odbc_driver"]),
    )

    flags = {
        key: True if cli.get(key) else None
        for key in ("dry_run", "export_sql", "export_csv")
    }
    merged_cli = {**cli, **flags}
    archive_values = {
        key: _pick(key, merged_cli, archive_file, ARCHIVE_DEFAULTS)
        for key in ARCHIVE_DEFAULTS
    }
    request = ArchiveRequest(
        table=str(archive_values["table"]),
        retention_days=_as_int(archive_values["days"], "days"),
        export_path=Path(archive_values["export_path"]),
        dry_run=_as_bool(archive_values["dry_run"], "dry_run"),
        export_sql=_as_bool(archive_values["export_sql"], "export_sql"),
        export_csv=_as_bool(archive_values["export_csv"], "export_csv"),
        date_column=archive_values["date_column"],
    )
    return settings, request
