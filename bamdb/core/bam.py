"""BAM header and record streaming on top of htslib's BGZF reader.

WHY: The converters need three things higher-level alignment APIs do not
hand out: the raw auxiliary tag block, the raw serialized record bytes,
and a clear distinction between a clean end of file and a truncated one.
BGZF decompression itself is delegated to pysam (htslib); this module
only frames and parses the decompressed BAM stream.

HOW: BamReader opens the file with pysam.BGZFile. read_header() parses
the magic, the SAM header text, and the reference dictionary. Iterating
the reader reads one 4-byte block_size, then that many bytes, and hands
the block to parse_record(). The field renderers (CIGAR, sequence,
quality, barcode) turn packed fields into SAM-style strings on demand.

RULES:
- read_header() must be called before iterating records
- Zero bytes at a record boundary is a clean end of stream
- A short block_size or short record block is TruncatedFileError
- Decompression failures from htslib surface as TruncatedFileError
- Each renderer returns a new string; no shared scratch buffers
"""

from __future__ import annotations

import logging
import os
import struct
from pathlib import Path
from typing import Iterator, Optional

import pysam

from bamdb.core.ir import BamHeader, BamRecord
from bamdb.core.tags import find_tag

logger = logging.getLogger(__name__)

BAM_MAGIC = b"BAM\x01"

# refID, pos, l_read_name, mapq, bin, n_cigar_op, flag, l_seq,
# next_refID, next_pos, tlen
_CORE = struct.Struct("<iiBBHHHIiii")
_INT32 = struct.Struct("<i")
_UINT32 = struct.Struct("<I")

CIGAR_OPS = "MIDNSHP=X"
SEQ_CODES = "=ACMGRSVTWYHKDBN"
BARCODE_TAG = "BX"

_MISSING_QUAL = 0xFF


class BamOpenError(OSError):
    """Raised when the input file cannot be opened for reading."""


class HeaderError(ValueError):
    """Raised when the BAM header is missing or malformed.

    RULES:
    - Covers a bad magic number, an empty file, and a header cut short
    - Always fatal for the whole run
    """


class TruncatedFileError(EOFError):
    """Raised when the input ends in the middle of a record.

    WHY: A clean end of stream and a truncated stream both "run out of
    bytes", but only the first one means the conversion is complete.
    Loaders use this distinction to decide between commit and rollback.
    """


def parse_record(block: bytes) -> BamRecord:
    """Parse one BAM record block (the bytes after block_size).

    Raises:
        TruncatedFileError: if the block is shorter than its own
            length fields claim.
    """
    if len(block) < _CORE.size:
        raise TruncatedFileError(
            "Record block of {} bytes is shorter than the fixed fields".format(len(block))
        )

    (ref_id, pos, l_read_name, mapq, bin_, n_cigar_op, flag, l_seq,
     next_ref_id, next_pos, tlen) = _CORE.unpack_from(block, 0)

    offset = _CORE.size
    name_end = offset + l_read_name
    cigar_end = name_end + 4 * n_cigar_op
    seq_end = cigar_end + (l_seq + 1) // 2
    qual_end = seq_end + l_seq
    if qual_end > len(block):
        raise TruncatedFileError(
            "Record block of {} bytes declares {} bytes of fields".format(len(block), qual_end)
        )

    name = block[offset:name_end].rstrip(b"\x00").decode("ascii", errors="replace")

    return BamRecord(
        name=name,
        flag=flag,
        ref_id=ref_id,
        pos=pos,
        mapq=mapq,
        bin=bin_,
        next_ref_id=next_ref_id,
        next_pos=next_pos,
        tlen=tlen,
        l_seq=l_seq,
        cigar=block[name_end:cigar_end],
        seq=block[cigar_end:seq_end],
        qual=block[seq_end:qual_end],
        aux=block[qual_end:],
        raw=bytes(block),
    )


# ---------------------------------------------------------------------------
# Field renderers
# ---------------------------------------------------------------------------

def cigar_string(record: BamRecord) -> str:
    """Render the CIGAR as text, e.g. "10M1D25M", or "*" when empty."""
    if not record.cigar:
        return "*"
    parts = []
    for (word,) in _UINT32.iter_unpack(record.cigar):
        op = word & 0xF
        parts.append("{}{}".format(word >> 4, CIGAR_OPS[op] if op < len(CIGAR_OPS) else "?"))
    return "".join(parts)


def sequence_string(record: BamRecord) -> str:
    """Unpack the 4-bit encoded read sequence, or "*" when absent."""
    if record.l_seq == 0:
        return "*"
    bases = []
    for i in range(record.l_seq):
        byte = record.seq[i >> 1]
        code = (byte >> 4) if i % 2 == 0 else (byte & 0xF)
        bases.append(SEQ_CODES[code])
    return "".join(bases)


def quality_string(record: BamRecord) -> str:
    """Render base qualities as phred+33 ASCII, or "*" when absent."""
    if record.l_seq == 0 or record.qual[0] == _MISSING_QUAL:
        return "*"
    return "".join(chr(q + 33) for q in record.qual)


def barcode(record: BamRecord) -> Optional[str]:
    """Return the BX:Z barcode of the record, or None if it has none."""
    entry = find_tag(record.aux, BARCODE_TAG)
    if entry is None or entry.type_code != "Z":
        return None
    return entry.value


# ---------------------------------------------------------------------------
# Reader
# ---------------------------------------------------------------------------

class BamReader:
    """Streaming reader over a BGZF-compressed BAM file.

    WHY: Gives the pipeline the header and a record iterator with
    well-defined failure modes, and guarantees the file handle is
    released on every exit path.

    HOW: Use as a context manager. Call read_header() once, then iterate
    the reader to get BamRecord objects until a clean end of stream.

    RULES:
    - Use as: with BamReader(path) as reader: ...
    - Opening a missing, unreadable or directory path raises BamOpenError
    - Any readable path works, including FIFOs and /dev/stdin
    - Iterating before read_header() raises RuntimeError
    """

    def __init__(self, path: str | Path) -> None:
        self.path = str(path)
        self._handle = None
        self.header: Optional[BamHeader] = None

    def __enter__(self) -> BamReader:
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.close()

    def open(self) -> None:
        # FIFOs and /dev/stdin are accepted; pysam.BGZFile is only handed
        # paths the process can actually read.
        if os.path.isdir(self.path) or not os.access(self.path, os.R_OK):
            raise BamOpenError("Unable to open file {}".format(self.path))
        try:
            self._handle = pysam.BGZFile(self.path, "rb")
        except (OSError, ValueError) as exc:
            raise BamOpenError("Unable to open file {}: {}".format(self.path, exc)) from exc

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def _read(self, size: int) -> bytes:
        """Read up to ``size`` bytes, looping over short BGZF reads."""
        if self._handle is None:
            raise RuntimeError("BamReader must be opened before reading")
        chunks = []
        remaining = size
        while remaining > 0:
            chunk = self._handle.read(remaining)
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)

    def _read_exact(self, size: int, what: str) -> bytes:
        data = self._read(size)
        if len(data) != size:
            raise HeaderError(
                "Unable to read the header from {}: {} cut short".format(self.path, what)
            )
        return data

    def read_header(self) -> BamHeader:
        """Parse and return the BAM header.

        Raises:
            HeaderError: on a bad magic number or a header cut short.
        """
        try:
            magic = self._read(len(BAM_MAGIC))
            if magic != BAM_MAGIC:
                raise HeaderError("Unable to read the header from {}".format(self.path))

            (l_text,) = _INT32.unpack(self._read_exact(_INT32.size, "text length"))
            text = self._read_exact(l_text, "header text").rstrip(b"\x00").decode("utf-8", errors="replace")

            (n_ref,) = _INT32.unpack(self._read_exact(_INT32.size, "reference count"))
            references = []
            for _ in range(n_ref):
                (l_name,) = _INT32.unpack(self._read_exact(_INT32.size, "reference name length"))
                name = self._read_exact(l_name, "reference name").rstrip(b"\x00").decode("ascii", errors="replace")
                (l_ref,) = _INT32.unpack(self._read_exact(_INT32.size, "reference length"))
                references.append((name, l_ref))
        except OSError as exc:
            raise HeaderError("Unable to read the header from {}: {}".format(self.path, exc)) from exc

        self.header = BamHeader(text=text, references=references)
        logger.debug("Read header from %s with %d references", self.path, len(references))
        return self.header

    def next_record(self) -> Optional[BamRecord]:
        """Return the next record, or None at a clean end of stream.

        Raises:
            TruncatedFileError: when the stream ends mid-record or the
                compressed data cannot be decoded.
        """
        if self.header is None:
            raise RuntimeError("read_header() must be called before reading records")
        try:
            prefix = self._read(_INT32.size)
            if not prefix:
                return None
            if len(prefix) != _INT32.size:
                raise TruncatedFileError("Attempting to process truncated file {}".format(self.path))
            (block_size,) = _INT32.unpack(prefix)
            if block_size < _CORE.size:
                raise TruncatedFileError(
                    "Invalid record size {} in {}".format(block_size, self.path)
                )
            block = self._read(block_size)
        except OSError as exc:
            raise TruncatedFileError(
                "Attempting to process truncated file {}: {}".format(self.path, exc)
            ) from exc

        if len(block) != block_size:
            raise TruncatedFileError("Attempting to process truncated file {}".format(self.path))
        return parse_record(block)

    def __iter__(self) -> Iterator[BamRecord]:
        while True:
            record = self.next_record()
            if record is None:
                return
            yield record
