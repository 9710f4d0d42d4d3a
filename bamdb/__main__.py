"""Package entry point for ``python -m bamdb``.

Delegates straight to the CLI's main() function.
"""

from bamdb.cli import main

if __name__ == "__main__":
    main()
