"""CSV dump of a single table: a header row, then one line per row."""

from __future__ import annotations

import csv
from typing import TextIO

from archiver.export.base import TableExporter
from archiver.export.formatting import format_csv_value
from archiver.schema import TableStructure

__all__ = ["CsvExporter"]


class CsvExporter(TableExporter):
    """Write a table as CSV with CRLF record endings.

    A field holding either line-break character is quoted, so a stray
    carriage return in a text value stays inside its row.

    No lock is taken, so rows written to the table while the export runs
    may be skipped or repeated across page boundaries.
    """

    extension = "csv"
    page_size = 5000

    def write(self, handle: TextIO, structure: TableStructure) -> int:
        writer = csv.writer(handle, lineterminator="\r\n")
        writer.writerow(structure.column_names)

        total = 0
        for page in self.iter_pages(structure):
            writer.writerows(
                [format_csv_value(value) for value in row] for row in page
            )
            total += len(page)
            handle.flush()
            self.logger.info("Exported %d rows to CSV...", total)
        return total
