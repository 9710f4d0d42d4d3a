"""bamdb: BAM alignment files to text reports or SQLite tables.

WHY: BAM records are compact and binary; inspecting them or querying them
by read name or barcode needs either a readable dump or a relational
table. This package streams records out of a BAM file and hands them to
one of two converters.

HOW: Three-stage pipeline: read (BAM record layer), decode (auxiliary
tag codec), convert (pluggable converters: text report, SQLite load).
Each stage is independently testable.

RULES:
- All converters consume the same BamHeader / BamRecord IR
- Adding a new output mode = one new converter module, no core changes
- Tag decoding never raises on malformed input; it stops early instead
"""

__version__ = "0.1.0"
