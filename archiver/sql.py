"""SQL text helpers shared by the pipeline steps and the exporters."""

from __future__ import annotations

from typing import Iterable

__all__ = [
    "archive_predicate",
    "column_list",
    "keep_predicate",
    "quote_identifier",
]


def quote_identifier(name: str) -> str:
    """Quote a MySQL identifier with backticks."""
    return "`" + name.replace("`", "``") + "`"


def column_list(columns: Iterable[str]) -> str:
    return ",".join(quote_identifier(col) for col in columns)


def archive_predicate(date_column: str) -> str:
    """Rows strictly older than the bound cutoff."""
    return f"{quote_identifier(date_column)} < ?"


def keep_predicate(date_column: str) -> str:
    """Complement of :func:`archive_predicate`; undated rows are kept."""
    col = quote_identifier(date_column)
    return f"({col} >= ? OR {col} IS NULL)"
