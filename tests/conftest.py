"""Shared test fixtures for the bamdb test suite.

WHY: Reader, converter, pipeline, and CLI tests all need the same small
BAM files. Centralizing them here keeps the expected values in one place.

HOW: Record blocks are hand-packed with tests/bam_factory.py so their
exact bytes are known; fixtures write them to BGZF files under tmp_path.

RULES:
- SAMPLE_BLOCKS has three records: two with a BX barcode, one without
- truncated_bam holds the same records followed by half of a fourth
- bad_magic_bam is a valid BGZF file whose payload is not a BAM
- malformed_tags_bam has an undecodable tag block in its first record
"""

from typing import List

import pytest

from tests.bam_factory import (
    frame,
    pack_record,
    tag_array,
    tag_scalar,
    tag_string,
    write_bam,
    write_raw_bgzf,
)

SAMPLE_BLOCKS: List[bytes] = [
    pack_record(
        name="read1",
        aux=tag_string("BX", "AAAC-1") + tag_scalar("NM", "c", 1) + tag_string("RG", "grp1"),
    ),
    pack_record(
        name="read2",
        flag=16,
        ref_id=1,
        pos=499,
        mapq=12,
        cigar=(("S", 2), ("M", 3)),
        seq="GGTCA",
        qual=(20, 20, 20, 20, 20),
        aux=tag_string("BX", "CCCG-1") + tag_scalar("AS", "i", -3),
    ),
    pack_record(
        name="read3",
        flag=4,
        ref_id=-1,
        pos=-1,
        mapq=0,
        cigar=(),
        seq="",
        qual=(),
        aux=tag_array("XB", "s", [7, -8]),
    ),
]


@pytest.fixture
def sample_blocks():
    """The three hand-packed record blocks (without block_size)."""
    return list(SAMPLE_BLOCKS)


@pytest.fixture
def sample_bam(tmp_path):
    """A well-formed BAM with the three sample records."""
    return write_bam(tmp_path / "sample.bam", SAMPLE_BLOCKS)


@pytest.fixture
def empty_bam(tmp_path):
    """A BAM with a header and no records."""
    return write_bam(tmp_path / "empty.bam", [])


@pytest.fixture
def truncated_bam(tmp_path):
    """The sample records followed by a record cut off halfway."""
    partial = frame(pack_record(name="read4"))
    return write_bam(tmp_path / "truncated.bam", SAMPLE_BLOCKS, trailing=partial[: len(partial) // 2])


@pytest.fixture
def bad_magic_bam(tmp_path):
    """BGZF-compressed text that is not a BAM file."""
    return write_raw_bgzf(tmp_path / "not_a.bam", b"@HD\tVN:1.6\nthis is SAM text\n")


@pytest.fixture
def malformed_tags_bam(tmp_path):
    """A record whose tag block starts with an unknown type code, then a clean record."""
    return write_bam(
        tmp_path / "malformed-tags.bam",
        [
            pack_record(name="bad-tags", aux=b"XQq\x01\x02\x03"),
            pack_record(name="good-tags", aux=tag_string("BX", "GGGT-1")),
        ],
    )
