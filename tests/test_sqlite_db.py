"""Tests for the SQLite bulk loader and converter.

WHY: The load is all-or-nothing: a truncated input or a failed insert
must leave no committed rows, and indexes must only appear after a
successful commit. Rows must carry the exact record bytes.

HOW: Loads the sample BAM into databases under tmp_path and inspects
them with a separate sqlite3 connection.
"""

import logging
import sqlite3

import pytest

from bamdb.converters.sqlite_db import (
    DatabaseLoadError,
    LoadState,
    LoadStateError,
    SQLiteConverter,
    SQLiteLoader,
    default_db_name,
)
from bamdb.core.bam import BamReader, TruncatedFileError, parse_record
from bamdb.core.pipeline import convert_file
from tests.bam_factory import pack_record, write_bam


def _records(path):
    """Yield records from a BAM file, keeping the reader open while iterating."""
    with BamReader(path) as reader:
        reader.read_header()
        yield from reader


def _query(db_path, sql, params=()):
    conn = sqlite3.connect(str(db_path))
    try:
        return conn.execute(sql, params).fetchall()
    finally:
        conn.close()


def _index_names(db_path):
    rows = _query(db_path, "SELECT name FROM sqlite_master WHERE type = 'index' AND tbl_name = 'seq'")
    return {name for (name,) in rows}


class TestDefaultDbName:
    """Destination derived from the input path."""

    @pytest.mark.parametrize(
        "source, expected",
        [
            ("sample.bam", "sample.db"),
            ("a.b.bam", "a.b.db"),
            ("/data/run.v2/reads.bam", "/data/run.v2/reads.db"),
            ("reads", "reads.db"),
        ],
    )
    def test_strip_last_extension(self, source, expected):
        assert default_db_name(source, suffix=".db") == expected

    def test_custom_suffix(self):
        assert default_db_name("x.bam", suffix=".sqlite") == "x.sqlite"


class TestLoad:
    """Successful loads."""

    def test_row_count_and_columns(self, tmp_path, sample_bam):
        db_path = tmp_path / "out.db"
        with SQLiteLoader(db_path) as loader:
            count = loader.load(_records(sample_bam))
            loader.finalize()

        assert count == 3
        assert loader.rows_loaded == 3
        assert loader.state is LoadState.INDEXED
        rows = _query(db_path, "SELECT id, qname, bx FROM seq ORDER BY id")
        assert rows == [(1, "read1", "AAAC-1"), (2, "read2", "CCCG-1"), (3, "read3", None)]

    def test_raw_record_round_trips(self, tmp_path, sample_bam, sample_blocks):
        db_path = tmp_path / "out.db"
        with SQLiteLoader(db_path) as loader:
            loader.load(_records(sample_bam))

        blobs = [blob for (blob,) in _query(db_path, "SELECT bam_record FROM seq ORDER BY id")]
        assert blobs == sample_blocks
        assert parse_record(blobs[1]) == parse_record(sample_blocks[1])

    def test_empty_input_commits_zero_rows(self, tmp_path, empty_bam):
        db_path = tmp_path / "out.db"
        with SQLiteLoader(db_path) as loader:
            assert loader.load(_records(empty_bam)) == 0
            loader.finalize()
        assert _query(db_path, "SELECT COUNT(*) FROM seq") == [(0,)]

    def test_existing_database_is_appended(self, tmp_path, sample_bam):
        db_path = tmp_path / "out.db"
        for _ in range(2):
            with SQLiteLoader(db_path) as loader:
                loader.load(_records(sample_bam))
                loader.finalize()
        assert _query(db_path, "SELECT COUNT(*) FROM seq") == [(6,)]

    def test_bulk_load_pragmas(self, tmp_path):
        with SQLiteLoader(tmp_path / "out.db", synchronous="off", journal_mode="memory") as loader:
            assert loader._conn.execute("PRAGMA synchronous").fetchone() == (0,)
            assert loader._conn.execute("PRAGMA journal_mode").fetchone() == ("memory",)

    def test_progress_is_logged(self, tmp_path, caplog):
        path = write_bam(tmp_path / "five.bam", [pack_record(name="r{}".format(i)) for i in range(5)])
        caplog.set_level(logging.INFO, logger="bamdb")
        with SQLiteLoader(tmp_path / "out.db", progress_interval=2) as loader:
            loader.load(_records(path))

        messages = [r.getMessage() for r in caplog.records]
        assert "2 rows inserted" in messages
        assert "4 rows inserted" in messages
        assert "6 rows inserted" not in messages


class TestIndexes:
    """Indexes exist only after finalize() and serve equality lookups."""

    def test_no_indexes_before_finalize(self, tmp_path, sample_bam):
        db_path = tmp_path / "out.db"
        with SQLiteLoader(db_path) as loader:
            loader.load(_records(sample_bam))
            assert _index_names(db_path) == set()

    def test_indexes_after_finalize(self, tmp_path, sample_bam):
        db_path = tmp_path / "out.db"
        with SQLiteLoader(db_path) as loader:
            loader.load(_records(sample_bam))
            loader.finalize()
        assert _index_names(db_path) == {"seq_bx_idx", "seq_qname_idx"}

    def test_equality_lookups(self, tmp_path, sample_bam):
        db_path = tmp_path / "out.db"
        with SQLiteLoader(db_path) as loader:
            loader.load(_records(sample_bam))
            loader.finalize()

        assert _query(db_path, "SELECT qname FROM seq WHERE bx = ?", ("CCCG-1",)) == [("read2",)]
        assert _query(db_path, "SELECT bx FROM seq WHERE qname = ?", ("read1",)) == [("AAAC-1",)]
        plan = " ".join(str(row) for row in _query(db_path, "EXPLAIN QUERY PLAN SELECT id FROM seq WHERE bx = 'x'"))
        assert "seq_bx_idx" in plan


class TestAbort:
    """Failures roll the whole transaction back."""

    def test_truncated_input_rolls_back(self, tmp_path, truncated_bam):
        db_path = tmp_path / "out.db"
        with SQLiteLoader(db_path) as loader:
            with pytest.raises(TruncatedFileError):
                loader.load(_records(truncated_bam))
            assert loader.state is LoadState.ABORTED

        assert _query(db_path, "SELECT COUNT(*) FROM seq") == [(0,)]
        assert _index_names(db_path) == set()

    def test_truncation_keeps_previous_loads(self, tmp_path, sample_bam, truncated_bam):
        db_path = tmp_path / "out.db"
        with SQLiteLoader(db_path) as loader:
            loader.load(_records(sample_bam))
        with SQLiteLoader(db_path) as loader:
            with pytest.raises(TruncatedFileError):
                loader.load(_records(truncated_bam))
        assert _query(db_path, "SELECT COUNT(*) FROM seq") == [(3,)]

    def test_insert_failure_rolls_back(self, tmp_path):
        db_path = tmp_path / "out.db"
        conn = sqlite3.connect(str(db_path))
        conn.execute(
            "CREATE TABLE seq (id INTEGER PRIMARY KEY, qname TEXT CHECK (qname != 'bad'), "
            "bx TEXT, bam_record BLOB)"
        )
        conn.commit()
        conn.close()

        path = write_bam(tmp_path / "in.bam", [pack_record(name="good"), pack_record(name="bad")])
        with SQLiteLoader(db_path) as loader:
            with pytest.raises(DatabaseLoadError, match="Error inserting row 2"):
                loader.load(_records(path))
            assert loader.state is LoadState.ABORTED

        assert _query(db_path, "SELECT COUNT(*) FROM seq") == [(0,)]

    def test_unopenable_destination(self, tmp_path):
        loader = SQLiteLoader(tmp_path / "missing-dir" / "out.db")
        with pytest.raises(DatabaseLoadError, match="Error opening database"):
            loader.open()
        assert loader.state is LoadState.UNOPENED


class TestStateMachine:
    """Operations are only valid from their source states."""

    def test_load_before_open(self, tmp_path):
        loader = SQLiteLoader(tmp_path / "out.db")
        with pytest.raises(LoadStateError):
            loader.load([])

    def test_finalize_before_commit(self, tmp_path):
        with SQLiteLoader(tmp_path / "out.db") as loader:
            with pytest.raises(LoadStateError):
                loader.finalize()

    def test_load_twice(self, tmp_path, sample_bam):
        with SQLiteLoader(tmp_path / "out.db") as loader:
            loader.load(_records(sample_bam))
            assert loader.state is LoadState.COMMITTED
            with pytest.raises(LoadStateError):
                loader.load(_records(sample_bam))

    def test_finalize_after_abort(self, tmp_path, truncated_bam):
        with SQLiteLoader(tmp_path / "out.db") as loader:
            with pytest.raises(TruncatedFileError):
                loader.load(_records(truncated_bam))
            with pytest.raises(LoadStateError):
                loader.finalize()

    def test_state_values(self):
        assert LoadState.SCHEMA_READY == "schema_ready"
        assert LoadState.ABORTED.value == "aborted"


class TestSQLiteConverter:
    """Converter wiring: destination naming and full load."""

    def test_explicit_destination(self, tmp_path, sample_bam):
        db_path = tmp_path / "explicit.db"
        with BamReader(sample_bam) as reader:
            header = reader.read_header()
            converter = SQLiteConverter(destination=db_path)
            assert converter.convert(str(sample_bam), header, reader) == 3
        assert converter.db_path == str(db_path)
        assert _index_names(db_path) == {"seq_bx_idx", "seq_qname_idx"}

    def test_default_destination(self, sample_bam):
        with BamReader(sample_bam) as reader:
            header = reader.read_header()
            converter = SQLiteConverter()
            converter.convert(str(sample_bam), header, reader)
        assert converter.db_path == str(sample_bam.with_suffix(".db"))
        assert _query(converter.db_path, "SELECT COUNT(*) FROM seq") == [(3,)]

    def test_undecodable_tags_do_not_stop_the_load(self, tmp_path, malformed_tags_bam):
        db_path = tmp_path / "out.db"
        assert convert_file(malformed_tags_bam, convert_to="sqlite", destination=db_path) == 2
        rows = _query(db_path, "SELECT qname, bx FROM seq ORDER BY id")
        assert rows == [("bad-tags", None), ("good-tags", "GGGT-1")]
