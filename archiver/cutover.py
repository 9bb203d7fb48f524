"""The archive cutover: split one live table into a trimmed live table and
an archive table.

Order of operations (nothing is resumable; each step runs once):

    1. Inspect   structure and age column of the live table
    2. Count     rows to archive (< cutoff) and to keep (>= cutoff or NULL)
    3. Dry run   report and stop, if requested
    4. Create    working table <table>_<YYYYMMDD> from the rewritten DDL
    5. Copy      keep rows into the working table (insert-select)
    6. Verify    working table row count == keep count
    7. Delete    keep rows from the live table; it now holds the archive rows
    8. Swap      <table> -> <table>_archive_<YYYYMMDD>, working -> <table>
    9. Export    optional SQL/CSV dumps of the archive table

DDL cannot share a transaction with the DML around it, so partial failures
are possible. Where a run stops decides what an operator has to do:

    - before 7: the live table is untouched; drop the working table if it
      exists
    - between 7 and 8: the live table holds only archive rows and the
      working table holds the keep rows; finish both renames by hand
    - between the two renames: ``<table>`` is missing; rename the working
      table to ``<table>``

Steps 1-3 are read-only and safe to repeat.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Sequence, Union

from archiver.config import ArchiveRequest, ConnectionSettings
from archiver.ddl import rewrite_structure
from archiver.errors import (
    CatalogQueryError,
    ConfigValidationError,
    CopyRecordsError,
    CreateTableError,
    DatabaseError,
    DeleteRecordsError,
    ExportError,
    RecordCountMismatchError,
    RenameTableError,
)
from archiver.export import TableExporter, build_exporters
from archiver.schema import DateColumnSelector, SchemaInspector, TableStructure
from archiver.sql import archive_predicate, column_list, keep_predicate, quote_identifier

if TYPE_CHECKING:
    from archiver.connection import Database

__all__ = [
    "CutoverPipeline",
    "CutoverResult",
    "CutoverState",
    "RowCounts",
    "RunNames",
    "compute_cutoff",
    "run_archive",
]

MAX_TABLE_NAME_LENGTH = 64


class CutoverState(Enum):
    """Where a pipeline run got to."""

    INIT = "init"
    INSPECTED = "inspected"
    COUNTED = "counted"
    NOTHING_TO_ARCHIVE = "nothing_to_archive"
    DRY_RUN_REPORTED = "dry_run_reported"
    CREATED = "created"
    COPIED = "copied"
    VERIFIED = "verified"
    DELETED = "deleted"
    SWAPPED = "swapped"
    EXPORTED = "exported"


@dataclass(frozen=True)
class RunNames:
    """The table names in play during one run."""

    original: str
    working: str
    archive: str
    suffix: str

    @classmethod
    def for_table(cls, table: str, run_date: date) -> "RunNames":
        suffix = run_date.strftime("%Y%m%d")
        return cls(
            original=table,
            working=f"{table}_{suffix}",
            archive=f"{table}_archive_{suffix}",
            suffix=suffix,
        )


@dataclass(frozen=True)
class RowCounts:
    """Row counts captured before any mutation."""

    archive_count: int
    keep_count: int

    @property
    def total(self) -> int:
        return self.archive_count + self.keep_count


def compute_cutoff(retention_days: int, now: datetime) -> datetime:
    """Return ``now - retention_days``, truncated to whole seconds."""
    if retention_days < 0:
        raise ValueError("retention_days must be >= 0")
    return (now - timedelta(days=retention_days)).replace(microsecond=0)


@dataclass
class CutoverResult:
    """Outcome of a pipeline run."""

    state: CutoverState
    names: RunNames
    cutoff: datetime
    dry_run: bool = False
    date_column: Optional[str] = None
    counts: Optional[RowCounts] = None
    exported_files: List[Path] = field(default_factory=list)
    export_errors: List[str] = field(default_factory=list)

    @property
    def archived(self) -> bool:
        return self.state in (CutoverState.SWAPPED, CutoverState.EXPORTED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "table": self.names.original,
            "archive_table": self.names.archive,
            "working_table": self.names.working,
            "cutoff": self.cutoff.isoformat(sep=" "),
            "dry_run": self.dry_run,
            "date_column": self.date_column,
            "archive_count": self.counts.archive_count if self.counts else None,
            "keep_count": self.counts.keep_count if self.counts else None,
            "exported_files": [str(path) for path in self.exported_files],
            "export_errors": list(self.export_errors),
        }


class CutoverPipeline:
    """Run the archive cutover for one table on one connection.

    Example:
        >>> pipeline = CutoverPipeline(db, ArchiveRequest(table="orders", retention_days=90))
        >>> result = pipeline.run()
        >>> result.state
        <CutoverState.SWAPPED: 'swapped'>
    """

    def __init__(
        self,
        db: "Database",
        request: ArchiveRequest,
        *,
        settings: Optional[ConnectionSettings] = None,
        inspector: Optional[SchemaInspector] = None,
        exporters: Optional[Sequence[TableExporter]] = None,
        logger: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.db = db
        self.request = request
        self.settings = settings
        self.inspector = inspector or SchemaInspector(db)
        self.selector = DateColumnSelector(self.inspector)
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self._exporters = list(exporters) if exporters is not None else None

        # One clock reading per run: names and cutoff must agree
        started_at = clock()
        self.names = RunNames.for_table(request.table, started_at.date())
        self.cutoff = compute_cutoff(request.retention_days, started_at)
        self.state = CutoverState.INIT

        self.structure: Optional[TableStructure] = None
        self.date_column: Optional[str] = None
        self.counts: Optional[RowCounts] = None

    def _advance(self, state: CutoverState) -> None:
        self.logger.debug("State %s -> %s", self.state.value, state.value)
        self.state = state

    def _result(self, **kwargs: Any) -> CutoverResult:
        return CutoverResult(
            state=self.state,
            names=self.names,
            cutoff=self.cutoff,
            dry_run=self.request.dry_run,
            date_column=self.date_column,
            counts=self.counts,
            **kwargs,
        )

    def _count(self, table: str, where: Optional[str] = None) -> int:
        statement = f"SELECT COUNT(*) FROM {quote_identifier(table)}"
        params: Sequence[Any] = ()
        if where:
            statement += f" WHERE {where}"
            params = (self.cutoff,)
        try:
            return int(self.db.query_scalar(statement, params))
        except DatabaseError as exc:
            raise CatalogQueryError(
                "Failed to count records", table=table, operation="count", cause=exc
            ) from exc

    # -- steps -------------------------------------------------------------

    def inspect(self) -> None:
        table = self.request.table
        self.logger.info("Step 1: Retrieving CREATE TABLE statement for %s", table)
        for name in (self.names.working, self.names.archive):
            if len(name) > MAX_TABLE_NAME_LENGTH:
                raise ConfigValidationError(
                    f"Derived table name '{name}' exceeds {MAX_TABLE_NAME_LENGTH} characters",
                    field="table",
                    value=table,
                )
        self.structure = self.inspector.inspect(table)
        self.date_column = self.selector.select(
            table, self.structure.columns, forced=self.request.date_column
        )
        self.logger.info("Using date column: %s", self.date_column)
        self._advance(CutoverState.INSPECTED)

    def count(self) -> RowCounts:
        table = self.request.table
        assert self.date_column is not None
        self.logger.info("Step 2: Counting records")
        self.logger.info("Cutoff date: %s", self.cutoff.strftime("%Y-%m-%d %H:%M:%S"))
        self.counts = RowCounts(
            archive_count=self._count(table, archive_predicate(self.date_column)),
            keep_count=self._count(table, keep_predicate(self.date_column)),
        )
        self.logger.info(
            "Records to archive: %d, Records to keep: %d",
            self.counts.archive_count,
            self.counts.keep_count,
        )
        self._advance(CutoverState.COUNTED)
        return self.counts

    def report_dry_run(self) -> None:
        assert self.counts is not None
        self.logger.info("DRY RUN MODE - No changes will be made")
        self.logger.info("Would create working table: %s", self.names.working)
        self.logger.info(
            "Would keep %d records in %s", self.counts.keep_count, self.request.table
        )
        self.logger.info(
            "Would move %d records to archive", self.counts.archive_count
        )
        self.logger.info("Would rename original table to: %s", self.names.archive)
        for name in (self.names.working, self.names.archive):
            if self.inspector.table_exists(name):
                self.logger.warning("Table %s already exists; a real run would fail", name)
        self._advance(CutoverState.DRY_RUN_REPORTED)

    def create(self) -> None:
        assert self.structure is not None
        working = self.names.working
        self.logger.info("Step 3: Creating new table %s", working)
        for name in (working, self.names.archive):
            if self.inspector.table_exists(name):
                raise CreateTableError(working, reason=f"table '{name}' already exists")
        try:
            rewritten = rewrite_structure(self.structure, working, self.names.suffix)
        except ValueError as exc:
            raise CreateTableError(working, reason=str(exc), cause=exc) from exc
        try:
            self.db.execute(rewritten.create_statement)
        except DatabaseError as exc:
            raise CreateTableError(working, cause=exc) from exc
        self._advance(CutoverState.CREATED)

    def copy(self) -> None:
        assert self.structure is not None and self.date_column is not None
        source, working = self.request.table, self.names.working
        self.logger.info("Step 4: Copying records to keep into %s", working)
        columns = column_list(self.structure.column_names)
        statement = (
            f"INSERT INTO {quote_identifier(working)} ({columns}) "
            f"SELECT {columns} FROM {quote_identifier(source)} "
            f"WHERE {keep_predicate(self.date_column)}"
        )
        self.logger.info(
            "Executing: %s with cutoff %s", statement, self.cutoff.strftime("%Y-%m-%d %H:%M:%S")
        )
        try:
            copied = self.db.execute(statement, (self.cutoff,))
        except DatabaseError as exc:
            self.logger.error("Failed to copy records, dropping new table %s", working)
            cleanup = self._drop_working_table()
            raise CopyRecordsError(source, working, cleanup, cause=exc) from exc
        self.logger.info("Copied %d rows", copied)
        self._advance(CutoverState.COPIED)

    def _drop_working_table(self) -> str:
        """Best-effort compensation after a failed copy."""
        working = self.names.working
        try:
            self.db.execute(f"DROP TABLE IF EXISTS {quote_identifier(working)}")
        except DatabaseError as exc:
            self.logger.error(
                "Could not drop %s after failed copy; drop it manually: %s", working, exc
            )
            return "failed"
        return "dropped"

    def verify(self) -> None:
        assert self.counts is not None
        working = self.names.working
        self.logger.info("Step 5: Verifying copied records")
        copied = self._count(working)
        expected = self.counts.keep_count
        if copied != expected:
            self.logger.error(
                "Record count mismatch! Expected keep count: %d, Got: %d", expected, copied
            )
            raise RecordCountMismatchError(self.request.table, working, expected, copied)
        self.logger.info("Verification successful: %d records copied", copied)
        self._advance(CutoverState.VERIFIED)

    def delete(self) -> None:
        assert self.counts is not None and self.date_column is not None
        table = self.request.table
        self.logger.info("Step 6: Deleting kept records from %s", table)
        statement = (
            f"DELETE FROM {quote_identifier(table)} "
            f"WHERE {keep_predicate(self.date_column)}"
        )
        self.logger.info(
            "Executing: %s with cutoff %s", statement, self.cutoff.strftime("%Y-%m-%d %H:%M:%S")
        )
        try:
            deleted = self.db.execute(statement, (self.cutoff,))
        except DatabaseError as exc:
            raise DeleteRecordsError(table, self.names.working, cause=exc) from exc
        self.logger.info("Deleted %d rows", deleted)
        if deleted >= 0 and deleted != self.counts.keep_count:
            self.logger.warning(
                "Deleted %d rows but counted %d to keep; was %s written to during the run?",
                deleted,
                self.counts.keep_count,
                table,
            )
        self._advance(CutoverState.DELETED)

    def swap(self) -> None:
        table, working, archive = self.request.table, self.names.working, self.names.archive
        self.logger.info("Step 7: Renaming original table to %s", archive)
        self._rename(
            table,
            archive,
            recovery=(
                f"'{table}' holds the archived rows and '{working}' the kept rows. "
                f"Rename '{table}' to '{archive}', then '{working}' to '{table}'."
            ),
        )
        self.logger.info("Step 8: Renaming %s to %s", working, table)
        self._rename(
            working,
            table,
            recovery=(
                f"'{table}' is missing; its rows are in '{working}'. "
                f"Rename '{working}' to '{table}'."
            ),
        )
        self.logger.info(
            "Archive complete! Old table renamed to %s, new table is now %s", archive, table
        )
        self._advance(CutoverState.SWAPPED)

    def _rename(self, old_name: str, new_name: str, recovery: str) -> None:
        statement = f"RENAME TABLE {quote_identifier(old_name)} TO {quote_identifier(new_name)}"
        try:
            self.db.execute(statement)
        except DatabaseError as exc:
            raise RenameTableError(old_name, new_name, recovery, cause=exc) from exc

    def export(self) -> CutoverResult:
        exporters = self._exporters
        if exporters is None:
            exporters = build_exporters(self.db, self.request, self.settings, self.logger)
        result = self._result()
        if not exporters:
            return result

        for step, exporter in zip("abcdefgh", exporters):
            self.logger.info(
                "Step 9%s: Exporting archived table to %s file", step, exporter.name
            )
            try:
                result.exported_files.append(exporter.export(self.names.archive))
            except ExportError as exc:
                # The archive itself succeeded; a failed dump is only reported
                self.logger.warning("Failed to export %s: %s", exporter.name, exc)
                result.export_errors.append(str(exc))
            else:
                self.logger.info("%s export completed successfully", exporter.name)

        if not result.export_errors:
            self._advance(CutoverState.EXPORTED)
            result.state = self.state
        return result

    # -- driver ------------------------------------------------------------

    def run(self) -> CutoverResult:
        """Run every step in order and return the outcome.

        Raises:
            ArchiverError: any fatal step failure; ``self.state`` tells how
                far the run got
        """
        self.logger.info(
            "Starting archive of %s (keep %d days, dry run: %s)",
            self.request.table,
            self.request.retention_days,
            self.request.dry_run,
        )
        self.inspect()
        counts = self.count()

        if counts.archive_count == 0:
            self.logger.warning("No records to archive. Exiting.")
            self._advance(CutoverState.NOTHING_TO_ARCHIVE)
            return self._result()

        if self.request.dry_run:
            self.report_dry_run()
            return self._result()

        self.create()
        self.copy()
        self.verify()
        self.delete()
        self.swap()
        return self.export()


def run_archive(
    db: "Database",
    request: ArchiveRequest,
    *,
    settings: Optional[ConnectionSettings] = None,
    logger: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
) -> CutoverResult:
    """Convenience wrapper: build a pipeline and run it."""
    return CutoverPipeline(db, request, settings=settings, logger=logger).run()
