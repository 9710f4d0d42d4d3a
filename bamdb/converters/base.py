"""Abstract base converter.

WHY: Every output mode consumes the same header and record stream but
does something different with it: print a report, load a table. This
base class enforces one interface so the pipeline and the CLI can drive
any converter generically.

HOW: BaseConverter is an ABC with two requirements: a ``name`` property
and a ``convert()`` method that consumes the record iterator itself.
Handing the iterator to the converter lets it react to a truncated
input (for example by rolling back) before the error reaches the caller.

RULES:
- Subclasses MUST implement ``name`` (human-readable) and ``convert()``
- ``convert()`` returns the number of records written
- ``convert()`` must release everything it acquires on every exit path
- Errors from the record iterator propagate after local cleanup
- ``__init__`` takes keyword options only and ignores the ones it does
  not use, so the pipeline can pass the same options to every mode

To add a new output mode:
1. Create a new module in converters/
2. Subclass BaseConverter
3. Implement convert() and name
4. Register in CONVERTERS in converters/__init__.py
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable

from bamdb.core.ir import BamHeader, BamRecord


class BaseConverter(ABC):
    """Abstract base for all output modes."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable mode name, e.g. 'SQLite database'."""

    @abstractmethod
    def convert(
        self,
        source_path: str,
        header: BamHeader,
        records: Iterable[BamRecord],
    ) -> int:
        """Consume the record stream and write it to this converter's output.

        Args:
            source_path: Path of the BAM file being converted (used for
                         messages and default destination naming).
            header: The parsed BAM header.
            records: Iterator of records; may raise TruncatedFileError.

        Returns:
            Number of records written.
        """
