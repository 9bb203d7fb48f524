"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Make the top-level CLI module and package importable without installing
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from tests.fakes import RUN_AT, ORDERS_COLUMNS, FakeDatabase, orders_rows  # noqa: E402


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def orders_db(fake_db: FakeDatabase) -> FakeDatabase:
    """``orders`` with 1,000 rows to archive and 500 to keep."""
    fake_db.add_table(
        "orders",
        ORDERS_COLUMNS,
        rows=orders_rows(1000, 500),
        primary_key=["id"],
        extra_lines=["KEY `idx_created` (`created_at`)"],
    )
    return fake_db


@pytest.fixture
def run_clock():
    return lambda: RUN_AT
