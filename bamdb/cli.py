"""Command-line interface for bamdb.

WHY: Users convert BAM files from the terminal, either to eyeball records
or to build a queryable SQLite file. The CLI wires argument parsing,
logging, and the conversion pipeline behind a single command, and maps
every fatal condition to an error message and a non-zero exit code.

HOW: argparse accepts -t (output mode), -f (input file), an optional
trailing positional input file, -o (SQLite destination), and -v. The
positional path wins over -f when both are given. Logging goes to stderr
so text reports on stdout can be piped.

RULES:
- -t {text,sqlite}; default from BAMDB_CONVERT_TO ("text")
- Positional input path overrides -f
- Unknown flags or mode values → argparse error, exit code 2
- Missing input, unreadable file, bad header, truncated input, database
  failure → "Error: ..." on stderr, exit code 1
- Success → exit code 0
"""

from __future__ import annotations

import argparse
import logging
import sqlite3
import sys
from typing import List, Optional

from bamdb import __version__, config
from bamdb.converters.sqlite_db import DatabaseLoadError
from bamdb.core.bam import BamOpenError, HeaderError, TruncatedFileError
from bamdb.core.pipeline import convert_file

logger = logging.getLogger(__name__)


def _fail(message: str) -> None:
    """Print an error to stderr and exit with status 1."""
    print("Error: {}".format(message), file=sys.stderr, flush=True)
    sys.exit(1)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, config.LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    WHY: Separating parser construction from main() lets tests inspect
    the parser without running a conversion.
    """
    parser = argparse.ArgumentParser(
        prog="bamdb",
        description="Convert a BAM file into a text report or a SQLite database.",
    )

    parser.add_argument(
        "-t", "--type",
        dest="convert_to",
        choices=config.CONVERT_TO_CHOICES,
        default=None,
        help="Output format (default: $BAMDB_CONVERT_TO or text).",
    )

    parser.add_argument(
        "-f", "--file",
        dest="input_file_option",
        default=None,
        help="Path to the BAM file to convert.",
    )

    parser.add_argument(
        "input_file",
        nargs="?",
        default=None,
        help="Path to the BAM file to convert (overrides -f).",
    )

    parser.add_argument(
        "-o", "--output",
        default=None,
        help="SQLite database to write (default: input path with a {} suffix).".format(
            config.DB_SUFFIX
        ),
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s {}".format(__version__),
    )

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the ``bamdb`` command and ``python -m bamdb``.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    input_file = args.input_file or args.input_file_option
    if not input_file:
        parser.print_usage(sys.stderr)
        _fail("No input file given (use -f PATH or a trailing PATH).")

    try:
        convert_to = args.convert_to or config.default_convert_to()
        convert_file(input_file, convert_to=convert_to, destination=args.output)
    except BamOpenError as e:
        _fail(str(e))
    except HeaderError as e:
        _fail(str(e))
    except TruncatedFileError as e:
        _fail(str(e))
    except DatabaseLoadError as e:
        _fail(str(e))
    except sqlite3.Error as e:
        _fail("Database error: {}".format(e))
    except ValueError as e:
        # Config errors (bad environment values, unknown output format)
        _fail(str(e))
    except KeyboardInterrupt:
        print("\nCancelled by user.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    main()
