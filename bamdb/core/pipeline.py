"""Conversion pipeline: open a BAM file and drive one converter over it.

WHY: The CLI, tests, and any embedding code need one call that performs
a whole conversion with the same failure semantics everywhere.

HOW: convert_file() resolves the converter for the requested mode, opens
the BAM with BamReader, reads the header, and hands the header plus the
reader's record iterator to the converter. The reader is closed on every
exit path by its context manager.

RULES:
- Unknown mode → ValueError before the input is touched
- Missing/unreadable input → BamOpenError
- Missing or malformed header → HeaderError (nothing is converted)
- Truncated input → TruncatedFileError, after the converter cleaned up
- Returns the number of records converted
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import IO, Optional

from bamdb.config import CONVERT_TO_TEXT
from bamdb.converters import CONVERTERS
from bamdb.converters.base import BaseConverter
from bamdb.core.bam import BamReader

logger = logging.getLogger(__name__)


def build_converter(
    convert_to: str,
    destination: Optional[str | Path] = None,
    stream: Optional[IO[str]] = None,
) -> BaseConverter:
    """Instantiate the converter registered for ``convert_to``.

    Every converter receives the same keyword options and keeps the ones
    it uses (``destination`` for sqlite, ``stream`` for text).
    """
    try:
        converter_class = CONVERTERS[convert_to]
    except KeyError:
        available = ", ".join(sorted(CONVERTERS))
        raise ValueError(
            "Invalid output format {!r}. Available formats: {}".format(convert_to, available)
        ) from None
    return converter_class(destination=destination, stream=stream)


def convert_file(
    input_path: str | Path,
    convert_to: str = CONVERT_TO_TEXT,
    destination: Optional[str | Path] = None,
    stream: Optional[IO[str]] = None,
) -> int:
    """Convert one BAM file with the converter for ``convert_to``.

    Args:
        input_path: BAM file to read.
        convert_to: Output mode key from CONVERTERS ("text" or "sqlite").
        destination: SQLite path for "sqlite" mode; derived when None.
        stream: Text stream for "text" mode; stdout when None.

    Returns:
        Number of records converted.
    """
    converter = build_converter(convert_to, destination=destination, stream=stream)
    source = str(input_path)

    with BamReader(source) as reader:
        header = reader.read_header()
        logger.debug("Running %s converter on %s", converter.name, source)
        count = converter.convert(source, header, reader)

    logger.debug("%s converter finished: %d records", converter.name, count)
    return count
