"""Exception taxonomy for the archiver.

Every failure mode of an archive run has its own exception type with a
stable error code, so that the run log (and any wrapper scripts) can tell
exactly which step failed and what state the tables were left in.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

__all__ = [
    "ArchiverError",
    "ConfigValidationError",
    "DatabaseError",
    "ConnectionFailedError",
    "SchemaNotFoundError",
    "CatalogQueryError",
    "NoSuitableDateColumnError",
    "CreateTableError",
    "CopyRecordsError",
    "RecordCountMismatchError",
    "DeleteRecordsError",
    "RenameTableError",
    "ExportError",
]


class ArchiverError(Exception):
    """Base exception for all archiver errors."""

    error_code: str = "ERR000"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        *,
        suggestion: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})
        self.suggestion = suggestion
        self.cause = cause
        if cause is not None:
            self.details.setdefault("cause", str(cause))
            self.details.setdefault("cause_type", type(cause).__name__)

    def __str__(self) -> str:
        parts = [f"[{self.error_code}] {self.message}"]
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"({detail_str})")
        if self.suggestion:
            parts.append(f"- {self.suggestion}")
        return " ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class ConfigValidationError(ArchiverError):
    """Raised when the archive request or connection settings are invalid."""

    error_code = "CFG001"

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        details: Dict[str, Any] = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = value
        super().__init__(message, details)
        self.field = field


class DatabaseError(ArchiverError):
    """A statement failed at the driver level.

    Raised by :class:`archiver.connection.Database`; the pipeline steps wrap
    it into the step-specific errors below.
    """

    error_code = "DB001"

    def __init__(
        self,
        message: str,
        statement: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        details: Dict[str, Any] = {}
        if statement:
            details["statement"] = _truncate(statement)
        super().__init__(message, details, cause=cause)
        self.statement = statement


class ConnectionFailedError(ArchiverError):
    error_code = "CONN001"

    def __init__(
        self,
        message: str,
        target: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        details: Dict[str, Any] = {}
        if target:
            details["target"] = target
        super().__init__(
            message,
            details,
            suggestion=(
                "Check that the host is reachable, the credentials are correct "
                "and the MySQL ODBC driver is installed."
            ),
            cause=cause,
        )


class SchemaNotFoundError(ArchiverError):
    error_code = "SCHEMA001"

    def __init__(self, table: str) -> None:
        super().__init__(f"Table '{table}' does not exist", {"table": table})
        self.table = table


class CatalogQueryError(ArchiverError):
    """Raised when a catalog or aggregate query fails."""

    error_code = "CAT001"

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        operation: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        details: Dict[str, Any] = {}
        if table:
            details["table"] = table
        if operation:
            details["operation"] = operation
        super().__init__(message, details, cause=cause)


class NoSuitableDateColumnError(ArchiverError):
    error_code = "DATE001"

    def __init__(self, table: str, reason: Optional[str] = None) -> None:
        message = f"No suitable date column found in table '{table}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message,
            {"table": table},
            suggestion="Pass --date-column to choose the age column explicitly.",
        )


class CreateTableError(ArchiverError):
    error_code = "CREATE001"

    def __init__(
        self,
        table: str,
        reason: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        details: Dict[str, Any] = {"working_table": table}
        if reason:
            details["reason"] = reason
        super().__init__(
            f"Failed to create working table '{table}'", details, cause=cause
        )


class CopyRecordsError(ArchiverError):
    """Raised when the insert-select into the working table fails.

    By the time this is raised the working table has been dropped (or a drop
    was attempted, see ``details['cleanup']``).
    """

    error_code = "COPY001"

    def __init__(
        self,
        source: str,
        target: str,
        cleanup: str,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            f"Failed to copy records from '{source}' to '{target}'",
            {"source_table": source, "working_table": target, "cleanup": cleanup},
            suggestion=f"Table '{source}' was not modified.",
            cause=cause,
        )


class RecordCountMismatchError(ArchiverError):
    """Raised when the working table does not hold exactly the keep rows.

    Fatal. Nothing is cleaned up so that an operator can inspect both tables.
    """

    error_code = "VERIFY001"

    def __init__(self, table: str, working: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Record count mismatch in '{working}': expected {expected}, got {actual}",
            {
                "source_table": table,
                "working_table": working,
                "expected": expected,
                "actual": actual,
            },
            suggestion=(
                f"Table '{table}' is untouched. Inspect '{working}' and drop it "
                "before re-running."
            ),
        )
        self.expected = expected
        self.actual = actual


class DeleteRecordsError(ArchiverError):
    error_code = "DELETE001"

    def __init__(
        self, table: str, working: str, cause: Optional[BaseException] = None
    ) -> None:
        super().__init__(
            f"Failed to delete kept records from '{table}'",
            {"source_table": table, "working_table": working},
            suggestion=(
                f"'{working}' already holds the kept rows. Inspect '{table}' "
                "before retrying; do not re-run blindly."
            ),
            cause=cause,
        )


class RenameTableError(ArchiverError):
    error_code = "RENAME001"

    def __init__(
        self,
        old_name: str,
        new_name: str,
        recovery: str,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            f"Failed to rename '{old_name}' to '{new_name}'",
            {"from": old_name, "to": new_name},
            suggestion=recovery,
            cause=cause,
        )


class ExportError(ArchiverError):
    """Raised by the exporters. Never fails an archive run on its own."""

    error_code = "EXPORT001"

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        path: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        details: Dict[str, Any] = {}
        if table:
            details["table"] = table
        if path:
            details["path"] = path
        super().__init__(message, details, cause=cause)


def _truncate(statement: str, max_len: int = 200) -> str:
    if len(statement) <= max_len:
        return statement
    return statement[:max_len] + "..."
