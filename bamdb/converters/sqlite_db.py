"""Bulk load of BAM records into a SQLite table.

WHY: Querying reads by name or barcode needs a relational table with
indexes. Files hold tens of millions of records, so the load has to be
one transaction with index creation deferred until after the insert,
and a truncated input must not leave half a file committed.

HOW: SQLiteLoader is a small state machine around one sqlite3
connection in autocommit mode, with explicit BEGIN / COMMIT / ROLLBACK:

  unopened → schema_ready → loading → committed → indexed
                               └──→ aborted

open() creates the table and applies the bulk-load pragmas. load() runs
every insert inside a single transaction through one cursor; the sqlite3
module caches the prepared INSERT and rebinds parameters for each row.
finalize() creates the barcode and name indexes. SQLiteConverter wires
the loader into the converter interface.

RULES:
- Table: seq (id INTEGER PRIMARY KEY, qname TEXT, bx TEXT, bam_record BLOB)
- CREATE TABLE / CREATE INDEX use IF NOT EXISTS (safe on existing files)
- Pragmas come from config.sqlite_pragmas() unless passed explicitly
- Any failure while loading → ROLLBACK, state aborted, error re-raised
- Indexes are only built from the committed state
- Progress is logged every progress_interval rows
- Default destination: input path with its last extension replaced by
  the configured suffix (sample.bam → sample.db)
"""

from __future__ import annotations

import enum
import logging
import os
import sqlite3
from pathlib import Path
from typing import Iterable, Optional

from bamdb import config
from bamdb.converters.base import BaseConverter
from bamdb.core.bam import barcode
from bamdb.core.ir import BamHeader, BamRecord

logger = logging.getLogger(__name__)

TABLE_NAME = "seq"

CREATE_TABLE_SQL = (
    "CREATE TABLE IF NOT EXISTS seq "
    "(id INTEGER PRIMARY KEY, qname TEXT, bx TEXT, bam_record BLOB)"
)
INSERT_SQL = "INSERT INTO seq (id, qname, bx, bam_record) VALUES (NULL, ?, ?, ?)"
CREATE_INDEX_SQL = (
    "CREATE INDEX IF NOT EXISTS seq_bx_idx ON seq (bx)",
    "CREATE INDEX IF NOT EXISTS seq_qname_idx ON seq (qname)",
)


class DatabaseLoadError(RuntimeError):
    """Raised when the database cannot be opened, written, or indexed."""


class LoadStateError(RuntimeError):
    """Raised when a loader operation is called from the wrong state."""


class LoadState(str, enum.Enum):
    """Lifecycle of a SQLiteLoader.

    RULES:
    - unopened: constructed, no connection yet
    - schema_ready: connected, table exists, pragmas applied
    - loading: transaction open, rows being inserted
    - committed: transaction committed, no indexes yet
    - indexed: barcode and name indexes built
    - aborted: load failed and the transaction was rolled back
    """

    UNOPENED = "unopened"
    SCHEMA_READY = "schema_ready"
    LOADING = "loading"
    COMMITTED = "committed"
    INDEXED = "indexed"
    ABORTED = "aborted"


def default_db_name(input_path: str | Path, suffix: Optional[str] = None) -> str:
    """Derive a database path from a BAM path.

    Only the last extension is stripped: "a.b.bam" → "a.b.db". A path
    without an extension just gets the suffix appended.
    """
    if suffix is None:
        suffix = config.DB_SUFFIX
    stem, _ext = os.path.splitext(str(input_path))
    return stem + suffix


class SQLiteLoader:
    """Transactional bulk loader for the ``seq`` table.

    Use as a context manager so the connection is closed on every path:

        with SQLiteLoader("reads.db") as loader:
            loader.load(records)
            loader.finalize()
    """

    def __init__(
        self,
        db_path: str | Path,
        synchronous: Optional[str] = None,
        journal_mode: Optional[str] = None,
        progress_interval: Optional[int] = None,
    ) -> None:
        if synchronous is None or journal_mode is None:
            default_sync, default_journal = config.sqlite_pragmas()
            synchronous = synchronous or default_sync
            journal_mode = journal_mode or default_journal

        self.db_path = str(db_path)
        self.synchronous = synchronous.upper()
        self.journal_mode = journal_mode.upper()
        self.progress_interval = progress_interval or config.progress_interval()
        self.state = LoadState.UNOPENED
        self.rows_loaded = 0
        self._conn: Optional[sqlite3.Connection] = None

    def __enter__(self) -> SQLiteLoader:
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.close()

    def _require(self, *states: LoadState) -> None:
        if self.state not in states:
            raise LoadStateError(
                "Operation not allowed in state {!r} (expected {})".format(
                    self.state.value, " or ".join(s.value for s in states)
                )
            )

    def open(self) -> None:
        """Connect, create the table if absent, and apply bulk-load pragmas."""
        self._require(LoadState.UNOPENED)
        try:
            self._conn = sqlite3.connect(self.db_path, isolation_level=None)
            self._conn.execute(CREATE_TABLE_SQL)
            self._conn.execute("PRAGMA synchronous = {}".format(self.synchronous))
            self._conn.execute("PRAGMA journal_mode = {}".format(self.journal_mode))
        except sqlite3.Error as exc:
            self.close()
            raise DatabaseLoadError(
                "Error opening database {}: {}".format(self.db_path, exc)
            ) from exc

        if self.journal_mode == "OFF":
            logger.warning(
                "journal_mode=OFF: a failed load into %s cannot be rolled back", self.db_path
            )
        self.state = LoadState.SCHEMA_READY

    def load(self, records: Iterable[BamRecord]) -> int:
        """Insert every record in one transaction and commit.

        Returns:
            Number of rows inserted.

        Raises:
            DatabaseLoadError: if an insert or the commit fails.
            TruncatedFileError: propagated from the record iterator.
        """
        self._require(LoadState.SCHEMA_READY)
        self.state = LoadState.LOADING

        count = 0
        cursor = self._conn.cursor()
        try:
            cursor.execute("BEGIN")
            for record in records:
                cursor.execute(INSERT_SQL, (record.name, barcode(record), record.raw))
                count += 1
                if count % self.progress_interval == 0:
                    logger.info("%d rows inserted", count)
            cursor.execute("COMMIT")
        except sqlite3.Error as exc:
            self._abort(count)
            raise DatabaseLoadError(
                "Error inserting row {} into {}: {}".format(count + 1, self.db_path, exc)
            ) from exc
        except BaseException:
            self._abort(count)
            raise
        finally:
            cursor.close()

        self.rows_loaded = count
        self.state = LoadState.COMMITTED
        return count

    def _abort(self, count: int) -> None:
        self.state = LoadState.ABORTED
        try:
            if self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
        except sqlite3.Error:
            logger.exception("Rollback failed for %s", self.db_path)
            return
        logger.warning("Rolled back %d uncommitted rows in %s", count, self.db_path)

    def finalize(self) -> None:
        """Build the barcode and name indexes after a committed load."""
        self._require(LoadState.COMMITTED)
        try:
            for sql in CREATE_INDEX_SQL:
                self._conn.execute(sql)
        except sqlite3.Error as exc:
            raise DatabaseLoadError(
                "Error creating indexes in {}: {}".format(self.db_path, exc)
            ) from exc
        self.state = LoadState.INDEXED

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


class SQLiteConverter(BaseConverter):
    """Converter that loads records into a SQLite database.

    RULES:
    - destination None → default_db_name(source_path)
    - The database path actually used is kept in ``db_path`` after convert()
    """

    def __init__(self, destination: Optional[str | Path] = None, **options) -> None:
        self._destination = destination
        self.db_path: Optional[str] = None

    @property
    def name(self) -> str:
        return "SQLite database"

    def convert(
        self,
        source_path: str,
        header: BamHeader,
        records: Iterable[BamRecord],
    ) -> int:
        self.db_path = str(self._destination) if self._destination else default_db_name(source_path)
        logger.info("Converting bam file %s into sqlite database %s", source_path, self.db_path)

        with SQLiteLoader(self.db_path) as loader:
            count = loader.load(records)
            loader.finalize()

        logger.info("Loaded %d rows into %s", count, self.db_path)
        return count
