"""Self-contained ``.sql`` dump of a single table.

The file can be replayed with the mysql client: it disables unique/foreign
key checks while loading, recreates the table from its own ``SHOW CREATE
TABLE`` text, inserts the rows in multi-row ``INSERT`` statements, and then
restores the session settings it changed.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, List, Optional, Sequence, TextIO, Union

from archiver.errors import DatabaseError
from archiver.export.base import TableExporter
from archiver.export.formatting import DATETIME_FORMAT, format_sql_value
from archiver.schema import TableStructure
from archiver.sql import column_list, quote_identifier

if TYPE_CHECKING:
    from archiver.connection import Database

__all__ = ["SqlDumpExporter"]

HEADER_TEMPLATE = """\
-- MySQL dump of table {table}
-- Host: {host}    Database: {database}
-- Generated: {generated}
-- ------------------------------------------------------

SET @OLD_UNIQUE_CHECKS=@@UNIQUE_CHECKS, UNIQUE_CHECKS=0;
SET @OLD_FOREIGN_KEY_CHECKS=@@FOREIGN_KEY_CHECKS, FOREIGN_KEY_CHECKS=0;
SET @OLD_SQL_MODE=@@SQL_MODE, SQL_MODE='NO_AUTO_VALUE_ON_ZERO';
SET @OLD_TIME_ZONE=@@TIME_ZONE, TIME_ZONE='+00:00';

--
-- Table structure for table {table}
--

DROP TABLE IF EXISTS {quoted};

"""

DATA_HEADER_TEMPLATE = """\
--
-- Dumping data for table {quoted}
--

LOCK TABLES {quoted} WRITE;
"""

FOOTER_TEMPLATE = """\
UNLOCK TABLES;

--
-- Dump completed on {generated}
-- Total rows exported: {total}
--

SET SQL_MODE=@OLD_SQL_MODE;
SET FOREIGN_KEY_CHECKS=@OLD_FOREIGN_KEY_CHECKS;
SET UNIQUE_CHECKS=@OLD_UNIQUE_CHECKS;
SET TIME_ZONE=@OLD_TIME_ZONE;
"""


class SqlDumpExporter(TableExporter):
    """Write a table as replayable ``INSERT`` statements.

    The source table is held under ``LOCK TABLES ... READ`` while its pages
    are read, so every page sees the same snapshot.
    """

    extension = "sql"
    page_size = 1000
    rows_per_insert = 100

    def __init__(
        self,
        db: "Database",
        export_dir: Union[str, Path],
        *,
        host: str = "",
        database: str = "",
        rows_per_insert: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(db, export_dir, **kwargs)
        self.host = host
        self.database = database
        if rows_per_insert is not None:
            self.rows_per_insert = rows_per_insert

    def _insert_statement(self, table: str, columns: str, tuples: Sequence[str]) -> str:
        return f"INSERT INTO {table} ({columns}) VALUES\n" + ",\n".join(tuples) + ";\n"

    def write(self, handle: TextIO, structure: TableStructure) -> int:
        quoted = quote_identifier(structure.name)
        columns = column_list(structure.column_names)

        handle.write(
            HEADER_TEMPLATE.format(
                table=structure.name,
                host=self.host,
                database=self.database,
                generated=self.clock().strftime(DATETIME_FORMAT),
                quoted=quoted,
            )
        )
        handle.write(structure.create_statement + ";\n\n")
        handle.write(DATA_HEADER_TEMPLATE.format(quoted=quoted))

        total = self._write_rows(handle, structure, quoted, columns)

        handle.write(
            FOOTER_TEMPLATE.format(
                generated=self.clock().strftime(DATETIME_FORMAT), total=total
            )
        )
        return total

    def _write_rows(
        self, handle: TextIO, structure: TableStructure, quoted: str, columns: str
    ) -> int:
        self.db.execute(f"LOCK TABLES {quoted} READ")
        try:
            total = 0
            pending: List[str] = []
            for page in self.iter_pages(structure):
                for row in page:
                    pending.append(
                        "(" + ",".join(format_sql_value(value) for value in row) + ")"
                    )
                    if len(pending) >= self.rows_per_insert:
                        handle.write(self._insert_statement(quoted, columns, pending))
                        pending = []
                total += len(page)
                self.logger.info("Exported %d rows...", total)
            if pending:
                handle.write(self._insert_statement(quoted, columns, pending))
            return total
        finally:
            try:
                self.db.execute("UNLOCK TABLES")
            except DatabaseError as exc:
                self.logger.warning("Failed to release read lock on %s: %s", quoted, exc)
