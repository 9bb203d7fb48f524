"""Catalog introspection and age-column selection.

``SchemaInspector`` reads a table's ``SHOW CREATE TABLE`` text and its
columns in ordinal order. The exporters depend on that ordering: they
select columns explicitly in this order, so the header row, the INSERT
column list and every value tuple line up.

``DateColumnSelector`` picks the column that encodes row age. The choice
must be deterministic for a given schema, because re-running the tool has
to select the same column every time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable, List, Optional, Sequence, Tuple, Union

from archiver.errors import (
    CatalogQueryError,
    DatabaseError,
    NoSuitableDateColumnError,
    SchemaNotFoundError,
)
from archiver.sql import quote_identifier

if TYPE_CHECKING:
    from archiver.connection import Database

logger = logging.getLogger(__name__)

__all__ = [
    "ColumnInfo",
    "DATED_TYPES",
    "DateColumnSelector",
    "PREFERRED_DATE_COLUMNS",
    "SchemaInspector",
    "TEMPORAL_TYPES",
    "TableStructure",
    "choose_date_column",
]

# Common age column names, most specific first
PREFERRED_DATE_COLUMNS: Tuple[str, ...] = (
    "smsdate",
    "request_time",
    "deli_date",
    "created_at",
    "updated_at",
    "req_date",
    "res_date",
    "date_created",
    "created",
)

TEMPORAL_TYPES = frozenset({"date", "datetime", "timestamp", "time"})

# TIME holds no calendar date, so it is only used when named explicitly
DATED_TYPES = TEMPORAL_TYPES - {"time"}

TABLE_EXISTS_SQL = (
    "SELECT COUNT(*) FROM INFORMATION_SCHEMA.TABLES "
    "WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = ?"
)

COLUMNS_SQL = (
    "SELECT COLUMN_NAME, DATA_TYPE, COLUMN_TYPE, ORDINAL_POSITION, COLUMN_KEY "
    "FROM INFORMATION_SCHEMA.COLUMNS "
    "WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = ? "
    "ORDER BY ORDINAL_POSITION"
)


def _text(value: Any) -> str:
    # Some server/driver combinations hand catalog strings back as bytes
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8")
    return "" if value is None else str(value)


@dataclass(frozen=True)
class ColumnInfo:
    """One column as reported by INFORMATION_SCHEMA.COLUMNS."""

    name: str
    data_type: str
    column_type: str = ""
    ordinal_position: int = 0
    is_primary_key: bool = False

    @property
    def is_temporal(self) -> bool:
        return self.data_type.lower() in TEMPORAL_TYPES

    @property
    def is_dated(self) -> bool:
        return self.data_type.lower() in DATED_TYPES


@dataclass(frozen=True)
class TableStructure:
    """Verbatim structural definition of a table plus its ordered columns."""

    name: str
    create_statement: str
    columns: Tuple[ColumnInfo, ...] = field(default_factory=tuple)

    @property
    def column_names(self) -> List[str]:
        return [col.name for col in self.columns]

    @property
    def primary_key(self) -> List[str]:
        return [col.name for col in self.columns if col.is_primary_key]


class SchemaInspector:
    """Read-only access to the catalog for one database connection."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def table_exists(self, table: str) -> bool:
        try:
            count = self.db.query_scalar(TABLE_EXISTS_SQL, (table,))
        except DatabaseError as exc:
            raise CatalogQueryError(
                "Failed to look up table", table=table, operation="table_exists", cause=exc
            ) from exc
        return int(count) > 0

    def get_create_statement(self, table: str) -> str:
        if not self.table_exists(table):
            raise SchemaNotFoundError(table)
        statement = f"SHOW CREATE TABLE {quote_identifier(table)}"
        try:
            row = self.db.query_one(statement)
        except DatabaseError as exc:
            raise CatalogQueryError(
                "Failed to read table definition",
                table=table,
                operation="show_create_table",
                cause=exc,
            ) from exc
        if row is None or len(row) < 2:
            raise SchemaNotFoundError(table)
        return _text(row[1])

    def list_columns(self, table: str) -> List[ColumnInfo]:
        """Return the table's columns in ordinal order."""
        try:
            rows = self.db.query(COLUMNS_SQL, (table,))
        except DatabaseError as exc:
            raise CatalogQueryError(
                "Failed to list columns", table=table, operation="list_columns", cause=exc
            ) from exc
        if not rows:
            raise SchemaNotFoundError(table)
        return [
            ColumnInfo(
                name=_text(name),
                data_type=_text(data_type).lower(),
                column_type=_text(column_type),
                ordinal_position=int(position),
                is_primary_key=_text(column_key).upper() == "PRI",
            )
            for name, data_type, column_type, position, column_key in rows
        ]

    def inspect(self, table: str) -> TableStructure:
        """Return the structural definition and ordered columns of ``table``.

        Raises:
            SchemaNotFoundError: the table does not exist
            CatalogQueryError: any lower-level catalog failure
        """
        create_statement = self.get_create_statement(table)
        columns = self.list_columns(table)
        logger.debug("Inspected %s: %d columns", table, len(columns))
        return TableStructure(
            name=table, create_statement=create_statement, columns=tuple(columns)
        )


def choose_date_column(
    columns: Iterable[ColumnInfo],
    table: str,
    preferred: Sequence[str] = PREFERRED_DATE_COLUMNS,
    forced: Optional[str] = None,
) -> str:
    """Pick the age column from a list of columns.

    Preferred names win in list order; otherwise the alphabetically first
    date-bearing column is used. A TIME column qualifies only as ``forced``.
    """
    columns = list(columns)
    temporal = {col.name for col in columns if col.is_temporal}
    dated = {col.name for col in columns if col.is_dated}

    if forced:
        if forced not in {col.name for col in columns}:
            raise NoSuitableDateColumnError(table, f"column '{forced}' does not exist")
        if forced not in temporal:
            raise NoSuitableDateColumnError(
                table, f"column '{forced}' is not a date/time column"
            )
        return forced

    for name in preferred:
        if name in dated:
            return name

    if dated:
        return sorted(dated)[0]

    raise NoSuitableDateColumnError(table)


class DateColumnSelector:
    """Choose the column used as the age discriminator for a table."""

    def __init__(
        self,
        source: Union[SchemaInspector, Database],
        preferred: Sequence[str] = PREFERRED_DATE_COLUMNS,
    ) -> None:
        self.inspector = source if isinstance(source, SchemaInspector) else SchemaInspector(source)
        self.preferred = tuple(preferred)

    def select(
        self,
        table: str,
        columns: Optional[Sequence[ColumnInfo]] = None,
        forced: Optional[str] = None,
    ) -> str:
        if columns is None:
            columns = self.inspector.list_columns(table)
        return choose_date_column(columns, table, self.preferred, forced=forced)
