"""Thin synchronous wrapper around a single pyodbc connection.

Every archive run uses exactly one connection in autocommit mode: the
cutover mixes DDL and DML, and MySQL commits DDL implicitly anyway, so there
is no transaction to hold open between steps. ``LOCK TABLES`` is
per-session, which is another reason the exporters must share this one
connection instead of opening their own.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence, Tuple

import pyodbc

from archiver.config import ConnectionSettings
from archiver.errors import ConnectionFailedError, DatabaseError

logger = logging.getLogger(__name__)

__all__ = ["Database", "connect"]

Row = Tuple[Any, ...]


class Database:
    """Synchronous query/exec primitives over one DB-API connection."""

    def __init__(self, connection: Any) -> None:
        self._conn = connection

    def execute(self, statement: str, params: Optional[Sequence[Any]] = None) -> int:
        """Run a statement and return the affected row count (-1 if unknown)."""
        cursor = self._cursor(statement)
        try:
            self._run(cursor, statement, params)
            return cursor.rowcount
        finally:
            cursor.close()

    def query(
        self, statement: str, params: Optional[Sequence[Any]] = None
    ) -> List[Row]:
        """Run a query and return every row.

        Callers are responsible for bounding the result with ``LIMIT``.
        """
        cursor = self._cursor(statement)
        try:
            self._run(cursor, statement, params)
            try:
                return [tuple(row) for row in cursor.fetchall()]
            except pyodbc.Error as exc:
                raise DatabaseError(
                    "Failed to fetch query results", statement=statement, cause=exc
                ) from exc
        finally:
            cursor.close()

    def query_one(
        self, statement: str, params: Optional[Sequence[Any]] = None
    ) -> Optional[Row]:
        rows = self.query(statement, params)
        return rows[0] if rows else None

    def query_scalar(
        self, statement: str, params: Optional[Sequence[Any]] = None
    ) -> Any:
        row = self.query_one(statement, params)
        if row is None:
            raise DatabaseError("Query returned no rows", statement=statement)
        return row[0]

    def close(self) -> None:
        try:
            self._conn.close()
        except pyodbc.Error as exc:
            logger.warning("Error while closing database connection: %s", exc)

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _cursor(self, statement: str) -> Any:
        try:
            return self._conn.cursor()
        except pyodbc.Error as exc:
            raise DatabaseError(
                "Failed to open cursor", statement=statement, cause=exc
            ) from exc

    def _run(
        self, cursor: Any, statement: str, params: Optional[Sequence[Any]]
    ) -> None:
        logger.debug("Executing SQL: %s params=%s", statement, params)
        try:
            if params:
                cursor.execute(statement, list(params))
            else:
                cursor.execute(statement)
        except pyodbc.Error as exc:
            raise DatabaseError(str(exc), statement=statement, cause=exc) from exc


def connect(settings: ConnectionSettings, *, timeout: int = 10) -> Database:
    """Open the run's connection and verify it with a round trip."""
    target = settings.describe()
    logger.info("Connecting to database %s", target)
    try:
        conn = pyodbc.connect(
            settings.to_connection_string(), autocommit=True, timeout=timeout
        )
    except pyodbc.Error as exc:
        raise ConnectionFailedError(
            "Failed to connect to database", target=target, cause=exc
        ) from exc

    db = Database(conn)
    try:
        db.query_scalar("SELECT 1")
    except DatabaseError as exc:
        db.close()
        raise ConnectionFailedError(
            "Database did not answer a ping", target=target, cause=exc
        ) from exc

    logger.info("Database connection established")
    return db
