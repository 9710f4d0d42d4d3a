"""Intermediate representation dataclasses for BAM headers, records and tags.

WHY: The BAM reader, the tag codec, and every converter need the same view
of a record: fixed fields, packed fields, the raw tag block, and the raw
serialized bytes. A single set of dataclasses decouples parsing from
rendering and loading.

HOW: Three dataclasses:
  TagEntry:  one decoded auxiliary tag (id, type code, value)
  BamHeader: SAM header text plus the reference sequence dictionary
  BamRecord: one alignment record, fixed fields plus packed byte fields

RULES:
- Positions (pos, next_pos) are 0-based, exactly as stored in BAM
- Float tag values render as the shortest decimal that parses back to
  the same single (f) or double (d) precision value
- ref_id / next_ref_id of -1 mean "unmapped" and render as "*"
- BamRecord.raw is the record block as it appeared in the file (without
  the 4-byte block_size prefix); it is the serialized form we persist
- Records are per-iteration values; converters must not keep them
"""

from __future__ import annotations

import math
import struct
from dataclasses import dataclass, field

_INTEGER_CODES = frozenset("cCsSiI")
_FLOAT_CODES = frozenset("fd")
_FLOAT32 = struct.Struct("<f")


def _same_float(type_code: str, text: str, value: float) -> bool:
    parsed = float(text)
    if type_code == "f":
        try:
            return _FLOAT32.unpack(_FLOAT32.pack(parsed))[0] == value
        except OverflowError:
            # rounded past the single-precision maximum
            return False
    return parsed == value


def _format_number(type_code: str, value: int | float) -> str:
    """Render a tag number; floats get the shortest %g text that reads back exactly."""
    if type_code not in _FLOAT_CODES:
        return str(value)
    if not math.isfinite(value):
        return "%g" % value
    digits = 9 if type_code == "f" else 17
    for precision in range(1, digits + 1):
        text = "%.*g" % (precision, value)
        if _same_float(type_code, text, value):
            return text
    return "%.*g" % (digits, value)


@dataclass(frozen=True)
class TagEntry:
    """A single decoded auxiliary tag.

    RULES:
    - tag: two-character tag id, e.g. "NM"
    - type_code: the binary type code ("A", "c", "C", "s", ..., "Z", "H", "B")
    - value: str for A/Z/H, int for integer codes, float for f/d,
      tuple of numbers for B
    - subtype: element type code for B arrays, None otherwise
    """

    tag: str
    type_code: str
    value: str | int | float | tuple
    subtype: str | None = None

    @property
    def text(self) -> str:
        """Canonical TAG:TYPE:VALUE rendering.

        All integer widths collapse to "i"; arrays render as
        "B:<subtype>,v0,v1,..." with no trailing comma for empty arrays.
        """
        if self.type_code in _INTEGER_CODES:
            return "{}:i:{}".format(self.tag, self.value)
        if self.type_code in _FLOAT_CODES:
            return "{}:{}:{}".format(self.tag, self.type_code, _format_number(self.type_code, self.value))
        if self.type_code == "B":
            parts = ["{}:B:{}".format(self.tag, self.subtype)]
            parts.extend(_format_number(self.subtype, v) for v in self.value)
            return ",".join(parts)
        return "{}:{}:{}".format(self.tag, self.type_code, self.value)

    def __str__(self) -> str:
        return self.text


@dataclass
class BamHeader:
    """Header of a BAM file.

    RULES:
    - text: the embedded SAM header text (may be empty)
    - references: (name, length) pairs in file order; ref ids index into it
    """

    text: str
    references: list[tuple[str, int]] = field(default_factory=list)

    def reference_name(self, ref_id: int) -> str:
        """Return the reference name for ref_id, or "*" if it is unmapped."""
        if 0 <= ref_id < len(self.references):
            return self.references[ref_id][0]
        return "*"


@dataclass
class BamRecord:
    """One alignment record parsed from a BAM record block.

    WHY: Converters need both the decoded fixed fields (for the text
    report and the qname column) and the untouched packed data (for the
    tag codec and the raw blob column).

    HOW: Built by bamdb.core.bam.parse_record(). Packed fields stay as
    bytes; the renderers in bamdb.core.bam turn them into strings on
    demand.

    RULES:
    - cigar: n_cigar_op little-endian uint32 words (len = 4 * n_cigar_op)
    - seq: 4-bit packed bases, (l_seq + 1) // 2 bytes
    - qual: l_seq raw phred bytes (0xFF fill means "absent")
    - aux: the auxiliary tag block, everything after qual
    """

    name: str
    flag: int
    ref_id: int
    pos: int
    mapq: int
    bin: int
    next_ref_id: int
    next_pos: int
    tlen: int
    l_seq: int
    cigar: bytes
    seq: bytes
    qual: bytes
    aux: bytes
    raw: bytes
