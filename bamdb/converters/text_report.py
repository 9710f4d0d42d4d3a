"""Human-readable text report, one labelled block per record.

WHY: The quickest way to inspect a BAM file is a dump of each record's
fields with the auxiliary tags decoded into readable TAG:TYPE:VALUE form.

HOW: render_record() formats one record into a "Row N:" line followed by
one tab-indented "LABEL: value" line per field, in fixed SAM column
order, then the BX barcode and the decoded tag block. Each field is
rendered by its own call. TextReportConverter writes the blocks to a
text stream as records arrive.

RULES:
- Field order: QNAME, FLAG, RNAME, POS, MAPQ, CIGAR, RNEXT, PNEXT, TLEN,
  SEQ, QUAL, BX, TAGs
- POS and PNEXT are printed 1-based (SAM convention)
- Missing reference names, CIGAR, SEQ, QUAL render as "*"
- A missing BX tag renders as an empty value
- TAGs are tab-delimited, in binary order
- Rows are numbered from 0 per conversion
"""

from __future__ import annotations

import sys
from typing import IO, Iterable, Optional

from bamdb.converters.base import BaseConverter
from bamdb.core.bam import barcode, cigar_string, quality_string, sequence_string
from bamdb.core.ir import BamHeader, BamRecord
from bamdb.core.tags import format_tags


def render_record(record: BamRecord, header: BamHeader, row_number: int) -> str:
    """Format one record as a labelled report block (newline-terminated)."""
    fields = [
        ("QNAME", record.name),
        ("FLAG", record.flag),
        ("RNAME", header.reference_name(record.ref_id)),
        ("POS", record.pos + 1),
        ("MAPQ", record.mapq),
        ("CIGAR", cigar_string(record)),
        ("RNEXT", header.reference_name(record.next_ref_id)),
        ("PNEXT", record.next_pos + 1),
        ("TLEN", record.tlen),
        ("SEQ", sequence_string(record)),
        ("QUAL", quality_string(record)),
        ("BX", barcode(record) or ""),
        ("TAGs", format_tags(record.aux)),
    ]

    lines = ["Row {}:".format(row_number)]
    lines.extend("\t{}: {}".format(label, value) for label, value in fields)
    return "\n".join(lines) + "\n"


class TextReportConverter(BaseConverter):
    """Converter that prints a text report of every record.

    RULES:
    - Writes to ``stream`` (default: sys.stdout at conversion time)
    - Nothing is buffered across records; each block is written as soon
      as it is rendered
    """

    def __init__(self, stream: Optional[IO[str]] = None, **options) -> None:
        self._stream = stream

    @property
    def name(self) -> str:
        return "Text report"

    def convert(
        self,
        source_path: str,
        header: BamHeader,
        records: Iterable[BamRecord],
    ) -> int:
        stream = self._stream if self._stream is not None else sys.stdout
        count = 0
        for record in records:
            stream.write(render_record(record, header, count))
            count += 1
        stream.flush()
        return count
