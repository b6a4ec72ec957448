"""Allow ``python -m conductor_toolkit``."""

import sys

from .cli import main

if __name__ == "__main__":  # pragma: no cover - exercised via runpy in tests
    sys.exit(main())
