"""Retention-based table archiving for MySQL.

Splits a live table into a trimmed live table (rows newer than the cutoff)
and a dated archive table (everything older), optionally dumping the
archive to ``.sql`` and ``.csv`` files.

The pyodbc-backed connection lives in :mod:`archiver.connection` and is not
imported here, so the pure parts of the package work without an ODBC driver
manager installed.
"""

from archiver.config import ArchiveRequest, ConnectionSettings, build_settings, load_config_file
from archiver.cutover import (
    CutoverPipeline,
    CutoverResult,
    CutoverState,
    RowCounts,
    RunNames,
    compute_cutoff,
    run_archive,
)
from archiver.ddl import rewrite_create_statement, rewrite_structure
from archiver.errors import ArchiverError
from archiver.export import CsvExporter, SqlDumpExporter, TableExporter, build_exporters
from archiver.schema import (
    PREFERRED_DATE_COLUMNS,
    ColumnInfo,
    DateColumnSelector,
    SchemaInspector,
    TableStructure,
    choose_date_column,
)

__version__ = "1.0.0"

__all__ = [
    "ArchiveRequest",
    "ArchiverError",
    "ColumnInfo",
    "ConnectionSettings",
    "CsvExporter",
    "CutoverPipeline",
    "CutoverResult",
    "CutoverState",
    "DateColumnSelector",
    "PREFERRED_DATE_COLUMNS",
    "RowCounts",
    "RunNames",
    "SchemaInspector",
    "SqlDumpExporter",
    "TableExporter",
    "TableStructure",
    "build_exporters",
    "build_settings",
    "choose_date_column",
    "compute_cutoff",
    "load_config_file",
    "rewrite_create_statement",
    "rewrite_structure",
    "run_archive",
]
