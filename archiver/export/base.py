"""Base class for the table dump writers.

Exporters stream a table into ``<export_dir>/<table>_<YYYYMMDD_HHMMSS>.<ext>``
one page at a time. Each page is an independent ``LIMIT ? OFFSET ?`` query,
so memory use is bounded by the page size and not by the table size.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Iterator, List, Optional, TextIO, Tuple, Union

from archiver.errors import ArchiverError, ExportError
from archiver.schema import SchemaInspector, TableStructure
from archiver.sql import column_list, quote_identifier

if TYPE_CHECKING:
    from archiver.connection import Database

__all__ = ["TableExporter"]

Row = Tuple[Any, ...]


class TableExporter(ABC):
    """Stream every row of a table into a dump file.

    Subclasses set ``extension`` and ``page_size`` and implement
    :meth:`write`.
    """

    extension: str = ""
    page_size: int = 1000

    def __init__(
        self,
        db: "Database",
        export_dir: Union[str, Path],
        *,
        inspector: Optional[SchemaInspector] = None,
        logger: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
        page_size: Optional[int] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.db = db
        self.export_dir = Path(export_dir)
        self.inspector = inspector or SchemaInspector(db)
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        if page_size is not None:
            if page_size <= 0:
                raise ValueError("page_size must be positive")
            self.page_size = page_size
        self.clock = clock

    @property
    def name(self) -> str:
        return self.extension.upper()

    def output_path(self, table: str) -> Path:
        stamp = self.clock().strftime("%Y%m%d_%H%M%S")
        return self.export_dir / f"{table}_{stamp}.{self.extension}"

    def export(self, table: str) -> Path:
        """Dump ``table`` and return the written file.

        Raises:
            ExportError: anything went wrong; a partial file may remain
        """
        path = self.output_path(table)
        self.logger.info("Exporting %s to %s file: %s", table, self.name, path)
        try:
            self.export_dir.mkdir(parents=True, exist_ok=True)
            structure = self.inspector.inspect(table)
            with path.open(
                "w", encoding="utf-8", errors="surrogateescape", newline=""
            ) as handle:
                total = self.write(handle, structure)
        except ExportError:
            raise
        except (ArchiverError, OSError) as exc:
            raise ExportError(
                f"{self.name} export of '{table}' failed",
                table=table,
                path=str(path),
                cause=exc,
            ) from exc

        self.logger.info("Successfully exported %d rows to %s", total, path)
        return path

    @abstractmethod
    def write(self, handle: TextIO, structure: TableStructure) -> int:
        """Write the dump for ``structure`` to ``handle``; return rows written."""

    def page_statement(self, structure: TableStructure) -> str:
        statement = (
            f"SELECT {column_list(structure.column_names)} "
            f"FROM {quote_identifier(structure.name)}"
        )
        # Offset paging needs a stable order to neither skip nor repeat rows
        if structure.primary_key:
            statement += f" ORDER BY {column_list(structure.primary_key)}"
        return statement + " LIMIT ? OFFSET ?"

    def iter_pages(self, structure: TableStructure) -> Iterator[List[Row]]:
        """Yield the table one page at a time, in column ordinal order."""
        statement = self.page_statement(structure)
        offset = 0
        while True:
            rows = self.db.query(statement, (self.page_size, offset))
            if rows:
                yield rows
            if len(rows) < self.page_size:
                break
            offset += self.page_size
