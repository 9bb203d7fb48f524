"""Identifier rewriting for ``SHOW CREATE TABLE`` output.

The working table is created next to the original, so every identifier that
MySQL keeps in a schema-wide namespace (foreign key and check constraint
names) must change, and index names are suffixed too so the archive table's
indexes stay recognisable. The statement is split into a minimal typed
representation first:

    CREATE TABLE `orders` (              <- header (table name)
      `id` int NOT NULL AUTO_INCREMENT,  <- COLUMN entries
      PRIMARY KEY (`id`),                <- PRIMARY_KEY entry (no identifier)
      KEY `idx_created` (`created_at`),  <- INDEX entries
      CONSTRAINT `fk_x` FOREIGN KEY ...  <- FOREIGN_KEY / CHECK entries
    ) ENGINE=InnoDB ...                  <- table options

Only the identifier span of INDEX, FOREIGN_KEY and CHECK entries is
replaced; every other character of the statement is carried over verbatim,
so column definitions, types and defaults are never touched.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Optional, Tuple

from archiver.schema import TableStructure
from archiver.sql import quote_identifier

__all__ = [
    "CreateTableDefinition",
    "DefinitionEntry",
    "EntryKind",
    "parse_create_statement",
    "rewrite_create_statement",
    "rewrite_structure",
    "suffixed_name",
]

MAX_IDENTIFIER_LENGTH = 64
DIGEST_LENGTH = 8

_IDENT = r"`((?:[^`]|``)+)`"
_HEADER_RE = re.compile(r"^\s*CREATE\s+TABLE\s+" + _IDENT + r"\s*\(\s*$", re.IGNORECASE)


class EntryKind(Enum):
    """Kinds of lines inside the parenthesised table body."""

    COLUMN = "column"
    PRIMARY_KEY = "primary_key"
    INDEX = "index"
    FOREIGN_KEY = "foreign_key"
    CHECK = "check"
    OTHER = "other"


_ENTRY_PATTERNS: List[Tuple[EntryKind, "re.Pattern[str]"]] = [
    (EntryKind.COLUMN, re.compile(r"^\s*`")),
    (EntryKind.PRIMARY_KEY, re.compile(r"^\s*PRIMARY\s+KEY\b", re.IGNORECASE)),
    (
        EntryKind.INDEX,
        re.compile(
            r"^\s*(?:(?:UNIQUE|FULLTEXT|SPATIAL)\s+)?(?:KEY|INDEX)\s+" + _IDENT,
            re.IGNORECASE,
        ),
    ),
    (
        EntryKind.FOREIGN_KEY,
        re.compile(r"^\s*CONSTRAINT\s+" + _IDENT + r"\s+FOREIGN\s+KEY\b", re.IGNORECASE),
    ),
    (
        EntryKind.CHECK,
        re.compile(r"^\s*CONSTRAINT\s+" + _IDENT + r"\s+CHECK\b", re.IGNORECASE),
    ),
]

RENAMED_KINDS = frozenset({EntryKind.INDEX, EntryKind.FOREIGN_KEY, EntryKind.CHECK})


def _unescape(identifier: str) -> str:
    return identifier.replace("``", "`")


@dataclass(frozen=True)
class DefinitionEntry:
    """One line of the table body, kept verbatim.

    ``span`` covers the quoted identifier (backticks included) for entries
    that declare one.
    """

    kind: EntryKind
    line: str
    identifier: Optional[str] = None
    span: Optional[Tuple[int, int]] = None

    def renamed(self, new_identifier: str) -> "DefinitionEntry":
        if self.span is None:
            raise ValueError(f"{self.kind.value} entry has no identifier to rename")
        start, end = self.span
        quoted = quote_identifier(new_identifier)
        return DefinitionEntry(
            kind=self.kind,
            line=self.line[:start] + quoted + self.line[end:],
            identifier=new_identifier,
            span=(start, start + len(quoted)),
        )


@dataclass(frozen=True)
class CreateTableDefinition:
    """Minimal typed view of a ``CREATE TABLE`` statement."""

    table_name: str
    header: str
    name_span: Tuple[int, int]
    entries: Tuple[DefinitionEntry, ...]
    trailer: str

    def identifiers(self, *kinds: EntryKind) -> List[str]:
        wanted = set(kinds) or RENAMED_KINDS
        return [
            entry.identifier
            for entry in self.entries
            if entry.kind in wanted and entry.identifier is not None
        ]

    def with_table_name(self, new_name: str) -> "CreateTableDefinition":
        start, end = self.name_span
        quoted = quote_identifier(new_name)
        return replace(
            self,
            table_name=new_name,
            header=self.header[:start] + quoted + self.header[end:],
            name_span=(start, start + len(quoted)),
        )

    def render(self) -> str:
        lines = [self.header]
        lines.extend(entry.line for entry in self.entries)
        lines.append(self.trailer)
        return "\n".join(lines)


def _classify(line: str) -> DefinitionEntry:
    for kind, pattern in _ENTRY_PATTERNS:
        match = pattern.match(line)
        if not match:
            continue
        if match.groups():
            return DefinitionEntry(
                kind=kind,
                line=line,
                identifier=_unescape(match.group(1)),
                span=(match.start(1) - 1, match.end(1) + 1),
            )
        return DefinitionEntry(kind=kind, line=line)
    return DefinitionEntry(kind=EntryKind.OTHER, line=line)


def parse_create_statement(statement: str) -> CreateTableDefinition:
    """Split ``SHOW CREATE TABLE`` output into header, entries and trailer.

    MySQL always renders one definition per line, with the body closed by a
    line starting with ``)``. Anything else is rejected with ``ValueError``.
    """
    lines = statement.split("\n")
    header_match = _HEADER_RE.match(lines[0])
    if not header_match:
        raise ValueError("Statement does not start with 'CREATE TABLE `name` ('")

    close_index = next(
        (i for i, line in enumerate(lines[1:], start=1) if line.startswith(")")),
        None,
    )
    if close_index is None:
        raise ValueError("Statement has no closing ')' line for the table body")

    return CreateTableDefinition(
        table_name=_unescape(header_match.group(1)),
        header=lines[0],
        name_span=(header_match.start(1) - 1, header_match.end(1) + 1),
        entries=tuple(_classify(line) for line in lines[1:close_index]),
        trailer="\n".join(lines[close_index:]),
    )


def suffixed_name(identifier: str, suffix: str) -> str:
    """Append ``_<suffix>``, shortening the base to fit MySQL's 64-char limit.

    A shortened base ends in a digest of the full name, so two long names
    sharing a prefix still map to different identifiers.
    """
    tail = f"_{suffix}"
    if len(identifier) + len(tail) <= MAX_IDENTIFIER_LENGTH:
        return identifier + tail
    digest = hashlib.sha1(identifier.encode("utf-8")).hexdigest()[:DIGEST_LENGTH]
    keep = MAX_IDENTIFIER_LENGTH - len(tail) - len(digest) - 1
    return f"{identifier[:keep]}_{digest}{tail}"


def rewrite_create_statement(
    statement: str, old_name: str, new_name: str, suffix: str
) -> str:
    """Rename the table and suffix every secondary identifier.

    Raises:
        ValueError: the statement is not a ``CREATE TABLE`` for ``old_name``
    """
    definition = parse_create_statement(statement)
    if definition.table_name != old_name:
        raise ValueError(
            f"Statement creates '{definition.table_name}', expected '{old_name}'"
        )

    entries = tuple(
        entry.renamed(suffixed_name(entry.identifier, suffix))
        if entry.kind in RENAMED_KINDS and entry.identifier is not None
        else entry
        for entry in definition.entries
    )
    return replace(definition.with_table_name(new_name), entries=entries).render()


def rewrite_structure(
    structure: TableStructure, new_name: str, suffix: str
) -> TableStructure:
    """Return a new structure for ``new_name``; ``structure`` is unchanged."""
    return TableStructure(
        name=new_name,
        create_statement=rewrite_create_statement(
            structure.create_statement, structure.name, new_name, suffix
        ),
        columns=structure.columns,
    )
