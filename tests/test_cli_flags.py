from __future__ import annotations

import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import List

import pytest

pytest.importorskip("pyodbc")

import archive_table  # noqa: E402
from archiver.errors import ConnectionFailedError  # noqa: E402
from tests.fakes import ORDERS_COLUMNS, FakeDatabase  # noqa: E402

ENV_NAMES = [
    "ARCHIVER_DB_HOST",
    "ARCHIVER_DB_PORT",
    "ARCHIVER_DB_USER",
    "ARCHIVER_DB_PASSWORD",
    "ARCHIVER_DB_NAME",
    "ARCHIVER_ODBC_DRIVER",
]


@pytest.fixture(autouse=True)
def isolate(monkeypatch: pytest.MonkeyPatch):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            handler.close()
            root.removeHandler(handler)
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


@pytest.fixture
def live_db(monkeypatch: pytest.MonkeyPatch) -> FakeDatabase:
    """Three rows older than 90 days, two recent ones, relative to today."""
    now = datetime.now().replace(microsecond=0)
    rows = [(i, f"c{i}", i, now - timedelta(days=400 + i)) for i in range(1, 4)]
    rows += [(i, f"c{i}", i, now - timedelta(days=1)) for i in range(4, 6)]
    db = FakeDatabase()
    db.add_table("orders", ORDERS_COLUMNS, rows=rows, primary_key=["id"])

    calls: List = []

    def fake_connect(settings):
        calls.append(settings)
        return db

    monkeypatch.setattr(archive_table, "connect", fake_connect)
    db.connect_calls = calls
    return db


def _argv(tmp_path: Path, *extra: str) -> List[str]:
    return [
        "--database",
        "shop",
        "--table",
        "orders",
        "--log-dir",
        str(tmp_path / "logs"),
        *extra,
    ]


def test_dry_run(live_db: FakeDatabase, tmp_path: Path) -> None:
    code = archive_table.main(_argv(tmp_path, "--dry-run"))

    assert code == 0
    assert set(live_db.tables) == {"orders"}
    assert live_db.closed
    logs = list((tmp_path / "logs").glob("archive_*.log"))
    assert len(logs) == 1
    contents = logs[0].read_text(encoding="utf-8")
    assert "DRY RUN MODE" in contents
    assert "Records to archive: 3, Records to keep: 2" in contents


def test_full_run_with_csv_export(live_db: FakeDatabase, tmp_path: Path) -> None:
    export_dir = tmp_path / "dumps"

    code = archive_table.main(
        _argv(tmp_path, "--days", "90", "--export-csv", "--export-path", str(export_dir))
    )

    assert code == 0
    assert len(live_db.rows("orders")) == 2
    archive = [name for name in live_db.tables if name.startswith("orders_archive_")]
    assert len(archive) == 1
    assert len(live_db.rows(archive[0])) == 3
    dumps = list(export_dir.glob("orders_archive_*.csv"))
    assert len(dumps) == 1
    assert len(dumps[0].read_text(encoding="utf-8").splitlines()) == 4


def test_flags_reach_connection_settings(live_db: FakeDatabase, tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("ARCHIVER_DB_PASSWORD", "from-env")

    archive_table.main(
        _argv(tmp_path, "--host", "db01", "--port", "3307", "--user", "arch", "--dry-run")
    )

    (settings,) = live_db.connect_calls
    assert (settings.host, settings.port, settings.user) == ("db01", 3307, "arch")
    assert settings.password == "from-env"


def test_config_file_supplies_table(live_db: FakeDatabase, tmp_path: Path) -> None:
    config = tmp_path / "archive.yaml"
    config.write_text(
        "connection:\n  database: shop\narchive:\n  table: orders\n  dry_run: true\n",
        encoding="utf-8",
    )

    code = archive_table.main(["--config", str(config), "--log-dir", str(tmp_path)])

    assert code == 0
    assert set(live_db.tables) == {"orders"}


def test_pipeline_failure_exits_1(live_db: FakeDatabase, tmp_path: Path) -> None:
    live_db.fail_on(r"^INSERT INTO")

    assert archive_table.main(_argv(tmp_path)) == 1
    assert set(live_db.tables) == {"orders"}


def test_connection_failure_exits_1(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def refuse(settings):
        raise ConnectionFailedError("Failed to connect to database", target=settings.describe())

    monkeypatch.setattr(archive_table, "connect", refuse)

    assert archive_table.main(_argv(tmp_path)) == 1


def test_missing_table_is_a_usage_error(tmp_path: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        archive_table.main(["--database", "shop", "--log-dir", str(tmp_path)])
    assert excinfo.value.code == 2


def test_negative_days_is_a_usage_error(tmp_path: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        archive_table.main(_argv(tmp_path, "--days", "-5"))
    assert excinfo.value.code == 2


def test_version(capsys: pytest.CaptureFixture) -> None:
    with pytest.raises(SystemExit) as excinfo:
        archive_table.main(["--version"])
    assert excinfo.value.code == 0
    assert "db-archiver" in capsys.readouterr().out
