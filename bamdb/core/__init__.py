"""Core BAM reading, tag decoding, and pipeline modules.

WHY: The core package holds the format-level code every output mode
depends on: the IR dataclasses, the BAM record layer, the auxiliary
tag codec, and the pipeline that drives a converter.

HOW: ir.py defines the data structures, bam.py streams them out of a
BGZF file, tags.py decodes the auxiliary block, pipeline.py connects a
reader to a converter.

RULES:
- IR dataclasses are the contract; change with care
- Nothing here imports from bamdb.converters except pipeline.py
"""
