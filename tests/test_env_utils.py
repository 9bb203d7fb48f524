"""Tests for ${VAR} placeholders and .env loading."""

import os

import pytest

from archiver.env import expand_placeholders, expand_section, load_env_file
from archiver.errors import ConfigValidationError


def test_expand_placeholders(monkeypatch):
    monkeypatch.setenv("DB_HOST", "db01")
    assert expand_placeholders("${DB_HOST}:3306", "connection.host") == "db01:3306"


def test_bare_dollar_is_left_alone(monkeypatch):
    monkeypatch.setenv("DB_HOST", "db01")
    assert expand_placeholders("pa$DB_HOST", "connection.password") == "pa$DB_HOST"


def test_unset_placeholder_is_rejected(monkeypatch):
    monkeypatch.delenv("MISSING", raising=False)

    with pytest.raises(ConfigValidationError) as excinfo:
        expand_placeholders("${MISSING}", "connection.password")

    assert excinfo.value.field == "connection.password"
    assert "MISSING" in str(excinfo.value)


def test_empty_variable_counts_as_set(monkeypatch):
    monkeypatch.setenv("EMPTY", "")
    assert expand_placeholders("${EMPTY}", "connection.password") == ""


def test_expand_section_only_touches_strings(monkeypatch):
    monkeypatch.setenv("ARCHIVE_DIR", "/backups")
    values = {"export_path": "${ARCHIVE_DIR}/orders", "days": 30, "export_csv": True}

    assert expand_section("archive", values) == {
        "export_path": "/backups/orders",
        "days": 30,
        "export_csv": True,
    }


def test_load_env_file(tmp_path, monkeypatch):
    monkeypatch.delenv("ARCHIVER_DB_PASSWORD", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("ARCHIVER_DB_PASSWORD=from-dotenv\n", encoding="utf-8")

    assert load_env_file(env_file) is True
    assert os.environ["ARCHIVER_DB_PASSWORD"] == "from-dotenv"
    monkeypatch.delenv("ARCHIVER_DB_PASSWORD")


def test_load_env_file_does_not_override(tmp_path, monkeypatch):
    monkeypatch.setenv("ARCHIVER_DB_USER", "already-set")
    env_file = tmp_path / ".env"
    env_file.write_text("ARCHIVER_DB_USER=from-dotenv\n", encoding="utf-8")

    load_env_file(env_file)

    assert os.environ["ARCHIVER_DB_USER"] == "already-set"
