"""Dump writers for finished archive tables."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional, Union

from archiver.config import ArchiveRequest, ConnectionSettings
from archiver.export.base import TableExporter
from archiver.export.csv_dump import CsvExporter
from archiver.export.sql_dump import SqlDumpExporter

if TYPE_CHECKING:
    from archiver.connection import Database

__all__ = ["CsvExporter", "SqlDumpExporter", "TableExporter", "build_exporters"]


def build_exporters(
    db: "Database",
    request: ArchiveRequest,
    settings: Optional[ConnectionSettings] = None,
    logger: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
) -> List[TableExporter]:
    """Return the exporters enabled by ``request``, SQL first."""
    exporters: List[TableExporter] = []
    if request.export_sql:
        exporters.append(
            SqlDumpExporter(
                db,
                request.export_path,
                host=settings.host if settings else "",
                database=settings.database if settings else "",
                logger=logger,
            )
        )
    if request.export_csv:
        exporters.append(CsvExporter(db, request.export_path, logger=logger))
    return exporters
