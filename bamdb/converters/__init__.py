"""Converter registry, one entry per output mode.

WHY: The CLI and the pipeline need a single lookup to find the converter
for the -t value. A central dict makes adding a mode a one-line change.

HOW: CONVERTERS maps mode names to converter *classes* (not instances).
Callers instantiate with keyword options; each converter picks the ones
it uses: ``CONVERTERS["sqlite"](destination="out.db", stream=None)``.

RULES:
- Keys are the values accepted by -t (see config.CONVERT_TO_CHOICES)
- Values are BaseConverter subclasses
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from bamdb.config import CONVERT_TO_SQLITE, CONVERT_TO_TEXT
from bamdb.converters.sqlite_db import SQLiteConverter
from bamdb.converters.text_report import TextReportConverter

if TYPE_CHECKING:
    from bamdb.converters.base import BaseConverter

CONVERTERS: dict[str, type[BaseConverter]] = {
    CONVERT_TO_TEXT: TextReportConverter,
    CONVERT_TO_SQLITE: SQLiteConverter,
}
