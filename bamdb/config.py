"""Configuration constants, environment defaults, and .env loading.

WHY: Centralizes every tunable value so it is easy to find, update, and
override. Output mode names, the derived database suffix, the progress
interval, and the SQLite bulk-load pragmas are plain data, not buried in
the loader, so the durability trade-off is an explicit, visible choice.

HOW: python-dotenv loads the .env file on import. Simple defaults are
module-level constants. Values that need validation are read through
small accessor functions that raise ValueError with a clear message.

RULES:
- Output modes: "text" (default) and "sqlite"
- Derived database name suffix defaults to ".db"
- Bulk load defaults: synchronous=OFF, journal_mode=MEMORY (fast, and a
  crash mid-load may corrupt the database)
- Progress is logged every 100,000 rows unless overridden
- All defaults can be overridden via environment variables
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

# Load .env from the working directory (where the tool is run from)
load_dotenv()

# ---------------------------------------------------------------------------
# Output modes
# ---------------------------------------------------------------------------

CONVERT_TO_TEXT = "text"
CONVERT_TO_SQLITE = "sqlite"

CONVERT_TO_CHOICES: tuple[str, ...] = (CONVERT_TO_TEXT, CONVERT_TO_SQLITE)
"""Accepted values for the -t/--type flag, in help-text order."""

# ---------------------------------------------------------------------------
# Defaults overridable from the environment
# ---------------------------------------------------------------------------

DB_SUFFIX = os.getenv("BAMDB_DB_SUFFIX", ".db")
LOG_LEVEL = os.getenv("BAMDB_LOG_LEVEL", "INFO").upper()

DEFAULT_PROGRESS_INTERVAL = 100_000
DEFAULT_SQLITE_SYNCHRONOUS = "OFF"
DEFAULT_SQLITE_JOURNAL_MODE = "MEMORY"

SQLITE_SYNCHRONOUS_MODES = frozenset({"OFF", "NORMAL", "FULL", "EXTRA"})
SQLITE_JOURNAL_MODES = frozenset({"DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"})


def default_convert_to() -> str:
    """Return the output mode used when -t is not given.

    RULES:
    - Reads BAMDB_CONVERT_TO, falls back to "text"
    - Raises ValueError for anything outside CONVERT_TO_CHOICES
    """
    value = os.getenv("BAMDB_CONVERT_TO", CONVERT_TO_TEXT).strip().lower()
    if value not in CONVERT_TO_CHOICES:
        raise ValueError(
            "Invalid BAMDB_CONVERT_TO {!r}; expected one of: {}".format(
                value, ", ".join(CONVERT_TO_CHOICES)
            )
        )
    return value


def progress_interval() -> int:
    """Return the number of inserted rows between progress log lines.

    RULES:
    - Reads BAMDB_PROGRESS_INTERVAL, falls back to 100,000
    - Must be a positive integer, otherwise ValueError
    """
    raw = os.getenv("BAMDB_PROGRESS_INTERVAL", str(DEFAULT_PROGRESS_INTERVAL)).strip()
    try:
        interval = int(raw)
    except ValueError:
        raise ValueError(
            "BAMDB_PROGRESS_INTERVAL must be an integer, got {!r}".format(raw)
        ) from None
    if interval <= 0:
        raise ValueError(
            "BAMDB_PROGRESS_INTERVAL must be positive, got {}".format(interval)
        )
    return interval


def sqlite_pragmas() -> tuple[str, str]:
    """Return the (synchronous, journal_mode) pragmas for bulk loading.

    WHY: Loading millions of rows with full durability is slow. Relaxing
    fsync and keeping the rollback journal in memory trades crash safety
    for throughput. That trade must be visible and overridable.

    RULES:
    - BAMDB_SQLITE_SYNCHRONOUS in SQLITE_SYNCHRONOUS_MODES (default OFF)
    - BAMDB_SQLITE_JOURNAL_MODE in SQLITE_JOURNAL_MODES (default MEMORY)
    - Values are case-insensitive and returned upper-case
    """
    synchronous = os.getenv("BAMDB_SQLITE_SYNCHRONOUS", DEFAULT_SQLITE_SYNCHRONOUS).strip().upper()
    if synchronous not in SQLITE_SYNCHRONOUS_MODES:
        raise ValueError(
            "Invalid BAMDB_SQLITE_SYNCHRONOUS {!r}; expected one of: {}".format(
                synchronous, ", ".join(sorted(SQLITE_SYNCHRONOUS_MODES))
            )
        )

    journal_mode = os.getenv("BAMDB_SQLITE_JOURNAL_MODE", DEFAULT_SQLITE_JOURNAL_MODE).strip().upper()
    if journal_mode not in SQLITE_JOURNAL_MODES:
        raise ValueError(
            "Invalid BAMDB_SQLITE_JOURNAL_MODE {!r}; expected one of: {}".format(
                journal_mode, ", ".join(sorted(SQLITE_JOURNAL_MODES))
            )
        )

    return synchronous, journal_mode
