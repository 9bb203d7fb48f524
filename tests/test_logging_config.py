from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path

import pytest

from archiver.logging_config import (
    HumanReadableFormatter,
    JSONFormatter,
    get_log_level_from_env,
    get_logger,
    run_log_path,
    setup_logging,
)


@pytest.fixture(autouse=True)
def restore_root_logger():
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


def test_run_log_path() -> None:
    path = run_log_path("/var/log/archiver", datetime(2024, 6, 1, 9, 5, 7))
    assert path == Path("/var/log/archiver/archive_20240601_090507.log")


def test_setup_logging_writes_run_log(tmp_path: Path) -> None:
    log_path = tmp_path / "logs" / "archive_20240601_090507.log"
    setup_logging(level=logging.INFO, format_type="json", log_file=log_path)

    root = logging.getLogger()
    file_handler = next(h for h in root.handlers if isinstance(h, logging.FileHandler))
    console_handler = next(
        h for h in root.handlers if not isinstance(h, logging.FileHandler)
    )
    assert isinstance(console_handler.formatter, JSONFormatter)
    assert isinstance(file_handler.formatter, HumanReadableFormatter)

    logging.getLogger("archiver.cutover").info("Step 1: Retrieving CREATE TABLE statement")
    logging.getLogger("archiver.cutover").debug("not written")
    file_handler.flush()

    contents = log_path.read_text(encoding="utf-8")
    assert "[INFO] Step 1: Retrieving CREATE TABLE statement" in contents
    assert "not written" not in contents


def test_run_log_is_appended(tmp_path: Path) -> None:
    log_path = tmp_path / "archive.log"
    log_path.write_text("earlier run\n", encoding="utf-8")

    setup_logging(level=logging.INFO, log_file=log_path)
    logging.getLogger("archiver").warning("second run")
    for handler in logging.getLogger().handlers:
        handler.flush()

    lines = log_path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "earlier run"
    assert lines[1].endswith("[WARNING] second run")


def test_setup_logging_replaces_handlers() -> None:
    setup_logging(format_type="simple")
    setup_logging(format_type="simple")

    assert len(logging.getLogger().handlers) == 1


def test_json_formatter_includes_adapter_context() -> None:
    record = logging.LogRecord(
        "archiver.cutover", logging.INFO, __file__, 10, "Copied %d rows", (500,), None
    )
    record.table = "orders"

    payload = json.loads(JSONFormatter().format(record))

    assert payload["message"] == "Copied 500 rows"
    assert payload["level"] == "INFO"
    assert payload["table"] == "orders"
    assert payload["timestamp"].endswith("Z")


def test_human_formatter_without_colors() -> None:
    record = logging.LogRecord("x", logging.ERROR, __file__, 1, "boom", (), None)
    formatted = HumanReadableFormatter(use_colors=False).format(record)
    assert formatted.endswith("[ERROR] boom")
    assert "\033[" not in formatted


def test_get_logger_with_extra_returns_adapter() -> None:
    adapter = get_logger("archiver.cutover", extra={"table": "orders"})
    assert isinstance(adapter, logging.LoggerAdapter)
    assert adapter.extra == {"table": "orders"}
    assert isinstance(get_logger("archiver.cutover"), logging.Logger)


def test_log_level_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ARCHIVER_LOG_LEVEL", "debug")
    assert get_log_level_from_env() == logging.DEBUG

    monkeypatch.setenv("ARCHIVER_LOG_LEVEL", "nonsense")
    assert get_log_level_from_env() == logging.INFO

    monkeypatch.delenv("ARCHIVER_LOG_LEVEL")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    assert get_log_level_from_env() == logging.WARNING
